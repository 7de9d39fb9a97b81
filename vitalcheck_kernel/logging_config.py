"""Structured logging for the vitalcheck batch (JSON and operator console)."""

__all__ = [
    "StructuredFormatter",
    "ConsoleFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

ContextValue = str | int | None


class LogContext:
    """Thread-safe context holder for run-scoped log fields."""

    _log_id: ContextVar[ContextValue] = ContextVar("log_log_id", default=None)
    _phase: ContextVar[ContextValue] = ContextVar("log_phase", default=None)
    _window: ContextVar[ContextValue] = ContextVar("log_window", default=None)
    _trigger: ContextVar[ContextValue] = ContextVar("log_trigger", default=None)

    _FIELD_NAMES = (
        "log_id",
        "phase",
        "window",
        "trigger",
    )

    @classmethod
    def set(
        cls,
        *,
        log_id: ContextValue = None,
        phase: ContextValue = None,
        window: ContextValue = None,
        trigger: ContextValue = None,
    ) -> None:
        """Set context fields. Only non-None values are updated."""
        if log_id is not None:
            cls._log_id.set(log_id)
        if phase is not None:
            cls._phase.set(phase)
        if window is not None:
            cls._window.set(window)
        if trigger is not None:
            cls._trigger.set(trigger)

    @classmethod
    def get_all(cls) -> dict[str, str | int]:
        """Return all non-None context fields as a dict."""
        ctx: dict[str, str | int] = {}
        for name in cls._FIELD_NAMES:
            val = getattr(cls, f"_{name}").get()
            if val is not None:
                ctx[name] = val
        return ctx

    @classmethod
    def clear(cls) -> None:
        """Reset all context fields to None."""
        for name in cls._FIELD_NAMES:
            getattr(cls, f"_{name}").set(None)

    @classmethod
    def bind(cls, **kwargs: ContextValue) -> "_LogContextManager":
        """Context manager that sets fields on entry and restores on exit."""
        return _LogContextManager(**kwargs)


class _LogContextManager:
    """Context manager for LogContext.bind()."""

    def __init__(self, **kwargs: ContextValue):
        self._kwargs = kwargs
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> "type[LogContext]":
        for key, val in self._kwargs.items():
            if val is not None:
                var = getattr(LogContext, f"_{key}", None)
                if var is not None:
                    self._tokens[key] = var.set(val)
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        for key, token in self._tokens.items():
            var = getattr(LogContext, f"_{key}", None)
            if var is not None:
                var.reset(token)


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}

# Presentation-only extras consumed by ConsoleFormatter.
_CONSOLE_KEYS: frozenset[str] = frozenset({"task", "color"})


class _JSONEncoder(json.JSONEncoder):
    """Handle datetime, date and Enum values in log payloads."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def _extra_fields(record: logging.LogRecord, skip: frozenset[str] | set[str] = frozenset()) -> dict[str, Any]:
    return {
        key: val
        for key, val in vars(record).items()
        if key not in _STDLIB_KEYS and key not in skip
    }


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        # Mandatory envelope
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(
                record.created, tz=UTC
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        payload.update(LogContext.get_all())

        for key, val in _extra_fields(record).items():
            if key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if hasattr(exc, "code"):
                payload["exc_code"] = exc.code
            # Structured fields carried by VitalCheckError subclasses
            for k, v in vars(exc).items():
                if not k.startswith("_") and k not in ("args", "code"):
                    payload[f"exc_{k}"] = v
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder, default=str)


_ANSI_COLORS: dict[str, str] = {
    "purple": "\x1b[1;38;2;148;2;232m",
    "blue": "\x1b[1;38;2;124;252;237m",
    "red": "\x1b[1;38;2;232;2;2m",
    "green": "\x1b[1;38;2;0;251;88m",
    "orange": "\x1b[1;38;2;232;98;2m",
}
_ANSI_GRAY = "\x1b[90m"
_ANSI_RESET = "\x1b[0m"

_LEVEL_COLORS: dict[int, str] = {
    logging.ERROR: "red",
    logging.CRITICAL: "red",
    logging.WARNING: "orange",
}


class ConsoleFormatter(logging.Formatter):
    """Operator-facing line: ``HH:MM:SS.mmm | TASK | message key=value``.

    ``TASK`` comes from the ``task`` extra (defaults to ``SYS``) and is
    colored by the ``color`` extra; without one, the level picks the color.
    """

    def __init__(self, color: bool = True):
        super().__init__()
        self._color = color

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created)
        timestamp = created.strftime("%H:%M:%S") + f".{int(record.msecs):03d}"
        task = str(getattr(record, "task", None) or "SYS")
        color_name = getattr(record, "color", None) or _LEVEL_COLORS.get(
            record.levelno, "blue"
        )

        fields = dict(LogContext.get_all())
        fields.update(_extra_fields(record, skip=_CONSOLE_KEYS))
        suffix = " ".join(f"{k}={_render(v)}" for k, v in fields.items())

        if self._color:
            code = _ANSI_COLORS.get(color_name, _ANSI_COLORS["blue"])
            separator = f"{_ANSI_GRAY}|{_ANSI_RESET}"
            tag = f"{code}{task}{_ANSI_RESET}"
        else:
            separator = "|"
            tag = task

        line = f"{timestamp} {separator} {tag} | {record.getMessage()}"
        if suffix:
            line = f"{line} {suffix}"
        if record.exc_info and record.exc_info[1] is not None:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _render(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    text = str(value)
    return f'"{text}"' if " " in text else text


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "vitalcheck"

_QUIET_LOGGERS = ("urllib3", "sqlalchemy.engine")


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the vitalcheck namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    fmt: str = "json",
    stream: Any = None,
    handler: logging.Handler | None = None,
    color: bool | None = None,
) -> None:
    """Configure the vitalcheck logger hierarchy (idempotent).

    Args:
        level: Level name or number.
        fmt: ``"json"`` for StructuredFormatter, ``"console"`` for the
            color-tagged operator format.
        stream: Target stream when no handler is given (default stderr).
        handler: Pre-built handler; its formatter is replaced.
        color: Force ANSI color on or off for the console format.  By
            default color is used only when the stream is a TTY.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    if handler is not None:
        h = handler
    else:
        h = logging.StreamHandler(stream or sys.stderr)

    if fmt == "console":
        if color is None:
            target = getattr(h, "stream", None)
            color = bool(target is not None and hasattr(target, "isatty") and target.isatty())
        h.setFormatter(ConsoleFormatter(color=color))
    else:
        h.setFormatter(StructuredFormatter())
    root_logger.addHandler(h)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
