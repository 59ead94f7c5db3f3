"""Logging for the mesh bridge.

Every module logs through ``get_logger(__name__)``. Output goes to a human-readable stream,
a JSON lines file, or both (``MESHBRIDGE_LOG_FORMAT``), and each line carries the
correlation id of the MQTT message being processed.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast, override

__all__ = [
    "BridgeLogger",
    "HumanReadableFormatter",
    "JSONFormatter",
    "get_logger",
]


def _context(record: logging.LogRecord) -> dict[str, object]:
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping):
        return dict(cast("Mapping[str, object]", extra_data))
    return {}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        from meshbridge.correlation import get_correlation_id

        entry: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
            "correlation_id": get_correlation_id(),
            "message": record.getMessage(),
        }
        if context := _context(record):
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Console lines tagged with the first 8 chars of the message correlation id."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        from meshbridge.correlation import get_correlation_id

        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id[:8]}]" if correlation_id else "[--------]"
        line = super().format(record)
        if context := _context(record):
            line += " | " + " | ".join(f"{k}={v}" for k, v in context.items())
        return line


_STREAMS = {"stdout": sys.stdout, "stderr": sys.stderr}


def _file_handler(path: str | Path) -> logging.Handler | None:
    try:
        log_path = Path(path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path, mode="a")
    except OSError as e:
        # logging is not up yet, stderr is the only place left to complain
        print(f"meshbridge: cannot open log file {path}: {e}", file=sys.stderr)
        return None


def _human_handler(output: str | None) -> logging.Handler:
    target = output or "stdout"
    if target in _STREAMS:
        return logging.StreamHandler(_STREAMS[target])
    return _file_handler(target) or logging.StreamHandler(sys.stdout)


class BridgeLogger:
    """Per-module logger with structured ``extra`` context.

    Handlers are attached the first time a name is seen; later ``get_logger`` calls for
    the same module reuse them.
    """

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stdout",
    ) -> None:
        """Attach handlers for ``name`` unless an earlier call already did.

        Args:
            name: module name
            log_format: "json", "human" or "both"
            json_file: JSON lines file; JSON output is off without it
            human_output: "stdout", "stderr" or a file path

        """
        from meshbridge.const import MESHBRIDGE_DEBUG

        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if MESHBRIDGE_DEBUG else logging.INFO)
        if self.logger.handlers:
            return

        handlers: list[tuple[logging.Handler | None, logging.Formatter]] = []
        if log_format in ("json", "both") and json_file:
            handlers.append((_file_handler(json_file), JSONFormatter()))
        if log_format in ("human", "both"):
            handlers.append((_human_handler(human_output), HumanReadableFormatter()))
        for handler, formatter in handlers:
            if handler is None:
                continue
            handler.setFormatter(formatter)
            handler.setLevel(self.logger.level)
            self.logger.addHandler(handler)

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        context = {"extra_data": dict(extra)} if extra else None
        self.logger.log(level, msg, *args, extra=context, stacklevel=3)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Error-level record carrying the traceback of the exception being handled."""
        context = {"extra_data": dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=context, stacklevel=2)


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> BridgeLogger:
    """Get or create a BridgeLogger, falling back to the MESHBRIDGE_LOG_* environment defaults."""
    from meshbridge.const import (
        MESHBRIDGE_LOG_FORMAT,
        MESHBRIDGE_LOG_HUMAN_OUTPUT,
        MESHBRIDGE_LOG_JSON_FILE,
    )

    return BridgeLogger(
        name=name,
        log_format=log_format or MESHBRIDGE_LOG_FORMAT,
        json_file=json_file or MESHBRIDGE_LOG_JSON_FILE,
        human_output=human_output or MESHBRIDGE_LOG_HUMAN_OUTPUT,
    )
