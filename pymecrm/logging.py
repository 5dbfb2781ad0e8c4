from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from pymecrm.context import get_correlation_id
from pymecrm.core.config import get_settings


# extras allowed into the "fields" object of a JSON log line
LOG_FIELDS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "entity",
        "entity_id",
        "operation",
        "event_name",
        "seeded",
        "error",
    }
)
MAX_ERROR_LENGTH = 500

_base_factory = logging.getLogRecordFactory()


def _record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _base_factory(*args, **kwargs)
    if getattr(record, "correlation_id", None) is None:
        record.correlation_id = get_correlation_id()
    return record


class JsonLogFormatter(logging.Formatter):
    """Renders a record as one JSON line.

    Only keys listed in ``LOG_FIELDS`` survive from ``extra``, so request bodies and other payload
    data passed by mistake never reach the log stream.
    """

    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {key: value for key, value in record.__dict__.items() if key in LOG_FIELDS}
        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "fields": fields,
        }
        if self.service:
            payload["service"] = self.service
        return json.dumps(payload, default=str)


def configure_logging() -> None:
    root = logging.getLogger()
    if getattr(root, "_pymecrm_configured", False):
        return

    settings = get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter(service=settings.app_name))

    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(handler)
    logging.setLogRecordFactory(_record_factory)
    root._pymecrm_configured = True  # type: ignore[attr-defined]
