"""Logging abstraction layer for the bridge.

Every module gets its logger from `get_logger(__name__)`. Output is
human-readable, JSON lines, or both, and each record carries the correlation
id of the bus message or reconciliation pass that produced it.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import NamedTuple, cast

from typing_extensions import override

from hkz2m.const import YES_ANSWER
from hkz2m.correlation import get_correlation_id

__all__ = [
    "BridgeLogger",
    "HumanReadableFormatter",
    "JSONFormatter",
    "LogOutput",
    "build_handlers",
    "configure_output",
    "configure_third_party_loggers",
    "get_logger",
    "set_debug",
]

# Third-party loggers that are chatty at INFO
_NOISY_LOGGERS: dict[str, int] = {
    "pyhap": logging.WARNING,
    "zeroconf": logging.WARNING,
    "mqtt": logging.ERROR,
}

_registry: dict[str, BridgeLogger] = {}
_handlers: list[logging.Handler] = []
_output: LogOutput | None = None


def _context_of(record: logging.LogRecord) -> Mapping[str, object] | None:
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping) and extra_data:
        return cast("Mapping[str, object]", extra_data)
    return None


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        context = _context_of(record)
        if context:
            log_data["context"] = dict(context)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_data["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """`timestamp level [module:line] [corr-id] > message | key=value ...`"""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id[:8]}]" if correlation_id else "[--------]"
        formatted = super().format(record)
        context = _context_of(record)
        if context:
            formatted = f"{formatted} | " + " | ".join(f"{k}={v}" for k, v in context.items())
        return formatted


class LogOutput(NamedTuple):
    """Where log records go, read from the HKZ2M_LOG_* variables."""

    log_format: str = "human"  # "json", "human" or "both"
    json_file: str | None = None
    human_output: str = "stdout"  # "stdout", "stderr" or a file path
    debug: bool = False

    @classmethod
    def from_env(cls) -> LogOutput:
        return cls(
            log_format=os.environ.get("HKZ2M_LOG_FORMAT", "human"),
            json_file=os.environ.get("HKZ2M_LOG_JSON_FILE") or None,
            human_output=os.environ.get("HKZ2M_LOG_HUMAN_OUTPUT") or "stdout",
            debug=os.environ.get("HKZ2M_DEBUG", "0").casefold() in YES_ANSWER,
        )


def _open_file_handler(path: str, kind: str) -> logging.Handler | None:
    try:
        log_path = Path(path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path, mode="a")
    except OSError as e:
        print(f"Warning: cannot open {kind} log file {path}: {e}", file=sys.stderr)
        return None


def build_handlers(output: LogOutput) -> list[logging.Handler]:
    """Handlers for `output`; an unopenable human log file falls back to stdout."""
    handlers: list[logging.Handler] = []
    if output.log_format in ("json", "both") and output.json_file:
        json_handler = _open_file_handler(output.json_file, "JSON")
        if json_handler is not None:
            json_handler.setFormatter(JSONFormatter())
            handlers.append(json_handler)
    if output.log_format in ("human", "both"):
        human_handler: logging.Handler | None
        if output.human_output == "stderr":
            human_handler = logging.StreamHandler(sys.stderr)
        elif output.human_output == "stdout":
            human_handler = logging.StreamHandler(sys.stdout)
        else:
            human_handler = _open_file_handler(output.human_output, "human")
        if human_handler is None:
            human_handler = logging.StreamHandler(sys.stdout)
        human_handler.setFormatter(HumanReadableFormatter())
        handlers.append(human_handler)
    return handlers


class BridgeLogger:
    """Thin wrapper over `logging.Logger` with an `extra=` mapping for structured context.

    The mapping is rendered as `key=value` pairs by the human formatter and
    as a `context` object by the JSON formatter. Handlers are shared by all
    bridge loggers and swapped by `configure_output`.
    """

    def __init__(self, name: str, handlers: Iterable[logging.Handler] = (), level: int = logging.INFO) -> None:
        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)
        self.logger.setLevel(level)
        self.replace_handlers((), handlers)

    def replace_handlers(self, old: Iterable[logging.Handler], new: Iterable[logging.Handler]) -> None:
        for handler in old:
            self.logger.removeHandler(handler)
        for handler in new:
            self.logger.addHandler(handler)

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        extra_payload = {"extra_data": dict(extra)} if extra else None
        # stacklevel=3 attributes the record to the caller, not this wrapper
        self.logger.log(level, msg, *args, extra=extra_payload, stacklevel=3)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def critical(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.CRITICAL, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at ERROR with the active exception's traceback."""
        extra_payload = {"extra_data": dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=extra_payload, stacklevel=2)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers


def configure_output(output: LogOutput | None = None) -> LogOutput:
    """Rebuild the shared handlers and attach them to every bridge logger.

    Without `output` the HKZ2M_LOG_* variables are read again, so values
    loaded from an env file after startup take effect.
    """
    global _output
    _output = output or LogOutput.from_env()
    old_handlers = list(_handlers)
    _handlers[:] = build_handlers(_output)
    for bridge_logger in _registry.values():
        bridge_logger.replace_handlers(old_handlers, _handlers)
    for handler in old_handlers:
        handler.close()
    return _output


def get_logger(name: str) -> BridgeLogger:
    """Get or create the BridgeLogger for `name`.

    The first call configures output from the environment; HKZ2M_DEBUG
    selects the initial level.
    """
    if name in _registry:
        return _registry[name]
    if _output is None:
        configure_output()
    level = logging.DEBUG if _output is not None and _output.debug else logging.INFO
    bridge_logger = BridgeLogger(name, _handlers, level)
    _registry[name] = bridge_logger
    return bridge_logger


def set_debug(enabled: bool) -> None:
    """Switch every bridge logger created so far between DEBUG and INFO."""
    level = logging.DEBUG if enabled else logging.INFO
    for bridge_logger in _registry.values():
        bridge_logger.set_level(level)


def configure_third_party_loggers() -> None:
    for name, level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
