"""Per-message dispatch report and the reporter that turns it into logs and diagnostics.

The dispatcher never logs failures inline: every attribute ends up as an
``AttributeOutcome`` in the message's ``DispatchReport``, and ``ErrorReporter`` consumes
the finished report.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from meshbridge.exceptions import (
    AttributeDispatchError,
    ConverterOperationError,
    EntityNotFoundError,
    MessageError,
    UnsupportedEntityError,
)
from meshbridge.logging_abstraction import get_logger
from meshbridge.structs import CommandDescriptor, EntityKind, PublisherProtocol

__all__ = [
    "AttributeOutcome",
    "DiagnosticType",
    "DispatchReport",
    "ErrorReporter",
    "OutcomeKind",
]

logger = get_logger(__name__)


class OutcomeKind(StrEnum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILURE = "failure"


class DiagnosticType(StrEnum):
    ENTITY_NOT_FOUND = "entity_not_found"
    ZIGBEE_PUBLISH_ERROR = "zigbee_publish_error"


@dataclass(slots=True)
class AttributeOutcome:
    key: str
    kind: OutcomeKind
    converter: str | None = None
    endpoint_name: str | None = None
    # why a SKIPPED attribute was not dispatched
    reason: str | None = None
    error: AttributeDispatchError | None = None


@dataclass(slots=True)
class DispatchReport:
    """Everything that happened while dispatching one inbound message."""

    topic: str
    descriptor: CommandDescriptor | None = None
    entity_name: str | None = None
    entity_kind: EntityKind | None = None
    # message-level failure; when set no attribute was dispatched
    error: MessageError | None = None
    outcomes: list[AttributeOutcome] = field(default_factory=list)
    published: dict[str, dict[str, Any]] = field(default_factory=dict)
    scheduled_reads: int = 0

    @property
    def applicable(self) -> bool:
        return self.descriptor is not None

    @property
    def aborted(self) -> bool:
        return self.error is not None

    def _of_kind(self, kind: OutcomeKind) -> list[AttributeOutcome]:
        return [outcome for outcome in self.outcomes if outcome.kind == kind]

    @property
    def successes(self) -> list[AttributeOutcome]:
        return self._of_kind(OutcomeKind.SUCCESS)

    @property
    def skipped(self) -> list[AttributeOutcome]:
        return self._of_kind(OutcomeKind.SKIPPED)

    @property
    def failures(self) -> list[AttributeOutcome]:
        return self._of_kind(OutcomeKind.FAILURE)

    def add(self, outcome: AttributeOutcome) -> AttributeOutcome:
        self.outcomes.append(outcome)
        return outcome


class ErrorReporter:
    """Logs message and attribute failures; mirrors selected ones to ``<base>/bridge/log``.

    Mirroring only happens with the legacy API enabled, and only for unknown entities and
    converter failures.
    """

    lp: str = "ErrorReporter:"

    def __init__(self, publisher: PublisherProtocol, legacy_api: bool) -> None:
        self.publisher: PublisherProtocol = publisher
        self.legacy_api: bool = legacy_api

    async def report(self, report: DispatchReport) -> None:
        lp = f"{self.lp}report:"
        if report.error is not None:
            await self._report_message_error(lp, report.error)
            return

        for outcome in report.failures:
            if outcome.error is None:
                continue
            await self._report_attribute_error(lp, outcome.error)

        for outcome in report.skipped:
            logger.debug("%s skipped '%s' on '%s': %s", lp, outcome.key, report.entity_name, outcome.reason)

    async def _report_message_error(self, lp: str, error: MessageError) -> None:
        if isinstance(error, EntityNotFoundError):
            logger.error("%s %s", lp, error)
            await self._mirror(DiagnosticType.ENTITY_NOT_FOUND, str(error), error.entity_key)
        elif isinstance(error, UnsupportedEntityError):
            logger.warning("%s %s", lp, error)
        else:
            logger.error("%s %s", lp, error)

    async def _report_attribute_error(self, lp: str, error: AttributeDispatchError) -> None:
        logger.error("%s %s", lp, error)
        if isinstance(error, ConverterOperationError):
            logger.debug(
                "%s traceback for '%s':\n%s",
                lp,
                error.key,
                "".join(traceback.format_exception(error.cause)),
            )
            await self._mirror(DiagnosticType.ZIGBEE_PUBLISH_ERROR, str(error), error.entity_name)

    async def _mirror(self, record_type: DiagnosticType, message: str, friendly_name: str) -> None:
        if not self.legacy_api:
            return
        record = {
            "type": str(record_type),
            "message": message,
            "meta": {"friendly_name": friendly_name},
        }
        await self.publisher.publish_bridge_log(record)
