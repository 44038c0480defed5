"""Structured JSON logging for the vesting engine."""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "configure_from_settings",
    "reset_logging",
]

import json
import logging
from contextvars import ContextVar
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------


class LogContext:
    """Context holder for per-operation log fields (grant, schedule, correlation)."""

    _grant_id: ContextVar[Optional[str]] = ContextVar("log_grant_id", default=None)
    _schedule_id: ContextVar[Optional[str]] = ContextVar("log_schedule_id", default=None)
    _correlation_id: ContextVar[Optional[str]] = ContextVar("log_correlation_id", default=None)

    _FIELD_NAMES = ("grant_id", "schedule_id", "correlation_id")

    @classmethod
    def get_all(cls) -> Dict[str, str]:
        """Return all non-None context fields as a dict."""
        ctx: Dict[str, str] = {}
        for name in cls._FIELD_NAMES:
            val = getattr(cls, f"_{name}").get()
            if val is not None:
                ctx[name] = val
        return ctx

    @classmethod
    def clear(cls) -> None:
        for name in cls._FIELD_NAMES:
            getattr(cls, f"_{name}").set(None)

    @classmethod
    def bind(cls, **kwargs: Optional[str]) -> "_LogContextManager":
        """Context manager that sets fields on entry and restores them on exit."""
        unknown = set(kwargs) - set(cls._FIELD_NAMES)
        if unknown:
            raise ValueError(f"Unknown log context fields: {sorted(unknown)}")
        return _LogContextManager(**kwargs)


class _LogContextManager:

    def __init__(self, **kwargs: Optional[str]):
        self._kwargs = kwargs
        self._tokens: Dict[str, Any] = {}

    def __enter__(self) -> type:
        for key, val in self._kwargs.items():
            if val is not None:
                var = getattr(LogContext, f"_{key}")
                self._tokens[key] = var.set(val)
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        for key, token in self._tokens.items():
            getattr(LogContext, f"_{key}").reset(token)
        self._tokens.clear()


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        payload.update(LogContext.get_all())

        # extra={...} fields
        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            to_dict = getattr(exc, "to_dict", None)
            if callable(to_dict):
                for k, v in to_dict().items():
                    if v is not None:
                        payload[f"exc_{k}"] = v
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "vesting_domain"
_HANDLER_NAME = "vesting_domain_handler"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the vesting_domain namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(level: str = "INFO", fmt: str = "json") -> logging.Logger:
    """Install a single stream handler on the vesting_domain root logger.

    Calling it again replaces the previous handler instead of stacking a new one.
    """
    root = logging.getLogger(_LOGGER_PREFIX)
    reset_logging()

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    if fmt == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    root.addHandler(handler)
    root.setLevel(level.upper())
    return root


def reset_logging() -> None:
    """Remove the handler installed by configure_logging()."""
    root = logging.getLogger(_LOGGER_PREFIX)
    for handler in list(root.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(logging.NOTSET)


def configure_from_settings(settings) -> logging.Logger:
    """configure_logging() with VestingSettings.log_level and log_format."""
    return configure_logging(settings.log_level, settings.log_format)
