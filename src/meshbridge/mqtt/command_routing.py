"""Routing of ``<base>/<entity>[/<endpoint>]/<get|set>[/<attribute>]`` commands.

One inbound message runs through: topic parse, entity resolution, payload decoding,
attribute ordering, then a strictly sequential per-attribute dispatch loop. Optimistic
deltas gathered by the loop are flushed once at the end and the finished report is
handed to the error reporter.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from meshbridge.const import ENDPOINT_NAMES
from meshbridge.converters.base import ConversionResult, Converter, DispatchMeta
from meshbridge.devices.resolver import ResolvedEntity
from meshbridge.exceptions import (
    ConverterOperationError,
    EndpointNotFoundError,
    EntityNotFoundError,
    MessageError,
    MissingConverterError,
    UnsupportedEntityError,
)
from meshbridge.instrumentation import timed_async
from meshbridge.logging_abstraction import get_logger
from meshbridge.mqtt.payload import decode_payload, drop_redundant_state, order_attributes
from meshbridge.mqtt.reporting import AttributeOutcome, DispatchReport, ErrorReporter, OutcomeKind
from meshbridge.mqtt.state_updates import PublishBuffer
from meshbridge.mqtt.topics import parse_topic
from meshbridge.scheduler import ReadScheduler
from meshbridge.settings import BridgeSettings
from meshbridge.structs import (
    Action,
    CommandDescriptor,
    EntityKind,
    MeshTargetProtocol,
    PublisherProtocol,
    ResolverProtocol,
    StateStoreProtocol,
)

__all__ = ["CommandRouter", "split_endpoint_suffix"]

logger = get_logger(__name__)


def split_endpoint_suffix(key: str) -> tuple[str, str | None]:
    """``state_left`` -> ``("state", "left")``; keys without a known suffix come back unchanged."""
    if "_" not in key:
        return key, None
    for name in ENDPOINT_NAMES:
        suffix = f"_{name}"
        if key.endswith(suffix) and len(key) > len(suffix):
            return key[: -len(suffix)], name
    return key, None


def _strip_suffix(message: dict[str, Any], endpoint_name: str) -> dict[str, Any]:
    suffix = f"_{endpoint_name}"
    stripped: dict[str, Any] = {}
    for key, value in message.items():
        if key.endswith(suffix) and len(key) > len(suffix):
            stripped[key[: -len(suffix)]] = value
        else:
            stripped.setdefault(key, value)
    return stripped


@timed_async("convert_set")
async def _invoke_set(
    converter: Converter,
    target: MeshTargetProtocol,
    key: str,
    value: Any,
    meta: DispatchMeta,
) -> ConversionResult | None:
    assert converter.convert_set is not None
    return await converter.convert_set(target, key, value, meta)


@timed_async("convert_get")
async def _invoke_get(converter: Converter, target: MeshTargetProtocol, key: str, meta: DispatchMeta) -> None:
    assert converter.convert_get is not None
    await converter.convert_get(target, key, meta)


@dataclass(slots=True)
class _MessageScope:
    """State shared by every attribute of one message."""

    descriptor: CommandDescriptor
    entity: ResolvedEntity
    message: dict[str, Any]
    prior_state: dict[str, Any]
    members_state: dict[str, dict[str, Any]] | None
    buffer: PublishBuffer = field(default_factory=PublishBuffer)
    # converters already applied by a SET, per endpoint/group key
    used: dict[str, set[Converter]] = field(default_factory=dict)


class CommandRouter:
    """Dispatches inbound command messages to converters and publishes optimistic state."""

    lp: str = "CommandRouter:"

    def __init__(
        self,
        settings: BridgeSettings,
        resolver: ResolverProtocol,
        state_store: StateStoreProtocol,
        publisher: PublisherProtocol,
        scheduler: ReadScheduler,
        reporter: ErrorReporter | None = None,
    ) -> None:
        self.settings: BridgeSettings = settings
        self.resolver: ResolverProtocol = resolver
        self.state_store: StateStoreProtocol = state_store
        self.publisher: PublisherProtocol = publisher
        self.scheduler: ReadScheduler = scheduler
        self.reporter: ErrorReporter = reporter or ErrorReporter(publisher, settings.legacy_api)

    async def handle_message(self, topic: str, payload: str | bytes | bytearray) -> DispatchReport:
        """Process one inbound message. Never raises for message or attribute failures."""
        lp = f"{self.lp}handle_message:"
        report = DispatchReport(topic=topic)
        descriptor = parse_topic(topic, self.settings.base_topic)
        if descriptor is None:
            logger.debug("%s ignoring topic %s", lp, topic)
            return report

        report.descriptor = descriptor
        logger.debug("%s %s %s -> %r", lp, descriptor.action, descriptor.entity_key, payload)
        try:
            await self._dispatch(descriptor, payload, report)
        except MessageError as e:
            report.error = e
        await self.reporter.report(report)
        return report

    def _resolve(self, descriptor: CommandDescriptor) -> ResolvedEntity:
        entity = self.resolver.resolve(descriptor.entity_id, descriptor.endpoint_name)
        if entity is None:
            raise EntityNotFoundError(descriptor.entity_key)
        if entity.kind is EntityKind.DEVICE and entity.definition is None:
            raise UnsupportedEntityError(entity.name, entity.device.model_id)
        return entity

    async def _dispatch(
        self,
        descriptor: CommandDescriptor,
        payload: str | bytes | bytearray,
        report: DispatchReport,
    ) -> None:
        entity = self._resolve(descriptor)
        report.entity_name = entity.name
        report.entity_kind = entity.kind

        message = decode_payload(descriptor, payload)
        member_ids = list(entity.member_ids) if entity.kind is EntityKind.GROUP else []

        # prior state stays locked until the deltas computed from it are merged
        async with self.state_store.hold(entity.entity_id, *member_ids):
            prior_state = self.state_store.get(entity.entity_id)
            if self.settings.homeassistant:
                message = drop_redundant_state(message, prior_state)

            members_state: dict[str, dict[str, Any]] | None = None
            if entity.kind is EntityKind.GROUP:
                members_state = {member_id: self.state_store.get(member_id) for member_id in member_ids}

            scope = _MessageScope(
                descriptor=descriptor,
                entity=entity,
                message=message,
                prior_state=prior_state,
                members_state=members_state,
            )
            for key, value in order_attributes(message):
                report.add(await self._dispatch_attribute(scope, key, value, report))

            report.published = await scope.buffer.flush(self.publisher)

    async def _dispatch_attribute(
        self,
        scope: _MessageScope,
        key: str,
        value: Any,
        report: DispatchReport,
    ) -> AttributeOutcome:
        entity = scope.entity
        action = scope.descriptor.action
        target: MeshTargetProtocol = entity.target
        endpoint_name = scope.descriptor.endpoint_name
        attribute = key
        message = dict(scope.message)
        suffix_endpoint: str | None = None

        if entity.kind is EntityKind.DEVICE:
            attribute, suffix_endpoint = split_endpoint_suffix(key)
            if suffix_endpoint is not None:
                endpoint = entity.endpoint_for(suffix_endpoint)
                if endpoint is None:
                    error = EndpointNotFoundError(key, entity.name, suffix_endpoint)
                    return AttributeOutcome(key=key, kind=OutcomeKind.FAILURE, endpoint_name=suffix_endpoint, error=error)
                target = endpoint
                endpoint_name = suffix_endpoint
                message = _strip_suffix(message, suffix_endpoint)

        converter = entity.converters.find(attribute)
        if converter is None:
            return AttributeOutcome(
                key=key,
                kind=OutcomeKind.FAILURE,
                endpoint_name=endpoint_name,
                error=MissingConverterError(key, value),
            )

        if entity.kind is EntityKind.GROUP:
            usage_key = entity.entity_id
        elif suffix_endpoint is not None:
            usage_key = suffix_endpoint
        else:
            usage_key = target.address
        used = scope.used.setdefault(usage_key, set())

        if action is Action.SET and converter in used:
            return AttributeOutcome(
                key=key,
                kind=OutcomeKind.SKIPPED,
                converter=converter.name,
                endpoint_name=endpoint_name,
                reason=f"already applied by {converter.name}",
            )

        operation = converter.convert_set if action is Action.SET else converter.convert_get
        if operation is None:
            return AttributeOutcome(
                key=key,
                kind=OutcomeKind.FAILURE,
                converter=converter.name,
                endpoint_name=endpoint_name,
                error=MissingConverterError(key, value, str(action)),
            )

        meta = DispatchMeta(
            endpoint_name=endpoint_name,
            options=entity.options,
            message=message,
            state=scope.prior_state,
            members_state=scope.members_state,
            device=entity.device if entity.kind is EntityKind.DEVICE else None,
            mapped=entity.definition if entity.kind is EntityKind.DEVICE else entity.converters,
        )

        if action is Action.GET:
            try:
                await _invoke_get(converter, target, attribute, meta)
            except Exception as e:
                error = ConverterOperationError(key, entity.name, str(action), e)
                return AttributeOutcome(
                    key=key, kind=OutcomeKind.FAILURE, converter=converter.name, endpoint_name=endpoint_name, error=error
                )
            return AttributeOutcome(key=key, kind=OutcomeKind.SUCCESS, converter=converter.name, endpoint_name=endpoint_name)

        used.add(converter)
        try:
            result = await _invoke_set(converter, target, attribute, value, meta)
        except Exception as e:
            error = ConverterOperationError(key, entity.name, str(action), e)
            return AttributeOutcome(
                key=key, kind=OutcomeKind.FAILURE, converter=converter.name, endpoint_name=endpoint_name, error=error
            )

        if result is not None:
            self._collect_optimistic(scope, result, endpoint_name)
            if self._schedule_read(scope, converter, target, attribute, meta, result):
                report.scheduled_reads += 1
        return AttributeOutcome(key=key, kind=OutcomeKind.SUCCESS, converter=converter.name, endpoint_name=endpoint_name)

    def _collect_optimistic(self, scope: _MessageScope, result: ConversionResult, endpoint_name: str | None) -> None:
        options = scope.entity.options
        if options.get("optimistic", True) is False:
            return

        state = result.state
        if endpoint_name:
            state = {f"{key}_{endpoint_name}": value for key, value in state.items()}
        filtered = set(options.get("filtered_optimistic") or ())
        scope.buffer.add(scope.entity.entity_id, {k: v for k, v in state.items() if k not in filtered})

        for member_id, member_state in result.members_state.items():
            scope.buffer.add(member_id, member_state)

    def _schedule_read(
        self,
        scope: _MessageScope,
        converter: Converter,
        target: MeshTargetProtocol,
        attribute: str,
        meta: DispatchMeta,
        result: ConversionResult,
    ) -> bool:
        entity = scope.entity
        if (
            result.read_after_write is None
            or entity.kind is not EntityKind.DEVICE
            or not entity.options.get("retrieve_state")
            or converter.convert_get is None
        ):
            return False

        async def _read() -> None:
            await _invoke_get(converter, target, attribute, meta)

        self.scheduler.schedule(entity.entity_id, result.read_after_write, _read, f"{converter.name}:{attribute}")
        return True
