"""
Structured logging for the manzai service.

Every record on the `manzai` logger carries the current request_id and any of
the structured fields below. Production emits one JSON object per line;
elsewhere a single readable line with `key=value` suffixes.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Optional

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

STRUCTURED_FIELDS = ("user_id", "event_type", "error_code", "stage", "status", "path", "method", "latency_bucket")
MAX_FIELD_CHARS = 500


def get_request_id() -> Optional[str]:
    return request_id_ctx_var.get()


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    """Coarse buckets sized for multi-call LLM requests."""
    if latency_ms is None:
        return "unknown"
    if latency_ms < 100:
        return "<100ms"
    if latency_ms < 1000:
        return "100-1000ms"
    if latency_ms < 10000:
        return "1-10s"
    if latency_ms < 30000:
        return "10-30s"
    return ">=30s"


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")


def _structured(record: logging.LogRecord) -> Dict[str, object]:
    return {name: getattr(record, name) for name in STRUCTURED_FIELDS if getattr(record, name, None) is not None}


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
            **_structured(record),
        }
        # scripts are Japanese; keep them readable in log search
        return json.dumps(payload, default=str, ensure_ascii=False)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        rid = getattr(record, "request_id", None)
        rid_part = f" [rid={rid}]" if rid else ""
        fields = "".join(f" {key}={value}" for key, value in _structured(record).items())
        return f"{_timestamp(record)} {record.levelname} [manzai]{rid_part} {record.getMessage()}{fields}"


def configure_logging(env: str = "development") -> None:
    """Install one stdout handler on the `manzai` logger."""
    logger = logging.getLogger("manzai")
    logger.setLevel(logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(RequestIdFilter())

    logger.handlers = [handler]
    logger.propagate = True


def _clip(value, limit: int = MAX_FIELD_CHARS) -> str:
    text = str(value)
    if len(text) <= limit:
        return text
    return text[:limit] + "...<truncated>"


def log_event(
    level: str,
    msg: str,
    *,
    user_id: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
):
    """Log a named event; values in `extra` are stringified and clipped."""
    payload: Dict[str, object] = {"user_id": user_id}
    if event_type:
        payload["event_type"] = event_type
    if error_code:
        payload["error_code"] = error_code
    for key, value in (extra or {}).items():
        payload[key] = _clip(value)

    logger = logging.getLogger("manzai")
    getattr(logger, level, logger.info)(msg, extra=payload)
