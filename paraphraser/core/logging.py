"""
Operator-console logging for the paraphraser service.

- One logger, "paraphraser"; JSON lines in production, readable lines elsewhere.
- request_id is bound per request by RequestIdMiddleware and stamped on every record.
- Anything passed through ``extra=`` (including the usage-log mirror's
  ``usage_context``) is rendered alongside the message.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LOGGER_NAME = "paraphraser"

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "request_id"}
_LINE_KEYS = frozenset({"ts", "level", "msg", "request_id", "exc"})

# upper bounds in ms; model streams routinely run for seconds
_LATENCY_BUCKETS = ((100, "<100ms"), (500, "100-500ms"), (2000, "500ms-2s"), (10000, "2-10s"))


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return rid if rid is not None else default


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    if latency_ms is None:
        return "unknown"
    for limit, label in _LATENCY_BUCKETS:
        if latency_ms < limit:
            return label
    return ">=10s"


def _clip(value: Any, limit: int = 500) -> str:
    try:
        text = str(value)
    except Exception:
        return "<unserializable>"
    return text if len(text) <= limit else f"{text[:limit]}...<truncated>"


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class _StructuredFormatter(logging.Formatter):
    def fields(self, record: logging.LogRecord) -> Dict[str, Any]:
        extras = {k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS}
        usage_context = extras.pop("usage_context", None)
        if isinstance(usage_context, dict):
            for key, value in usage_context.items():
                extras[f"ctx_{key}" if key in _LINE_KEYS else key] = value
        return extras

    @staticmethod
    def timestamp(record: logging.LogRecord) -> str:
        return datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class JsonFormatter(_StructuredFormatter):
    def format(self, record: logging.LogRecord) -> str:
        line = {
            "ts": self.timestamp(record),
            "level": record.levelname,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
            **self.fields(record),
        }
        if record.exc_info:
            line["exc"] = self.formatException(record.exc_info)
        return json.dumps(line, default=str)


class PrettyFormatter(_StructuredFormatter):
    def format(self, record: logging.LogRecord) -> str:
        rid = getattr(record, "request_id", None)
        parts = [self.timestamp(record), f"{record.levelname:<7}", f"rid={rid}" if rid else "-", record.getMessage()]
        parts.extend(f"{k}={v}" for k, v in self.fields(record).items())
        text = " ".join(parts)
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


def configure_logging(env: str = "development", level: str = "INFO") -> logging.Logger:
    """Install a single stdout handler on the service logger."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(RequestIdFilter())

    logger.handlers = [handler]
    logger.propagate = True

    # one INFO line per collector POST otherwise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.error").propagate = False
    return logger


def log_event(
    level: str,
    msg: str,
    *,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    **fields: Any,
) -> None:
    """Emit one structured record; field values are clipped to 500 chars."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    extra: Dict[str, Any] = {"request_id": get_request_id()}
    if event_type:
        extra["event_type"] = event_type
    if error_code:
        extra["error_code"] = error_code
    for key, value in fields.items():
        extra[f"ctx_{key}" if key in _STANDARD_ATTRS else key] = _clip(value)

    logger.log(logging.getLevelName(level.upper()), msg, extra=extra)
