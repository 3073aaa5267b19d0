from __future__ import annotations

import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Mapping

# Use python-json-logger for structured logging
from pythonjsonlogger import jsonlogger

DEFAULT_LOG_LEVEL = "INFO"
LOG_LEVEL_ENV = "TRAFFIC_TRANSLATOR_LOG_LEVEL"
ROOT_LOGGER_NAME = "traffic_translator"

_SENSITIVE_KEYS = frozenset(
    {
        "address",
        "src_address",
        "source_address",
        "ip",
        "ip_address",
    }
)

_IPV4_RE = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")
# Full eight-group form, or any form carrying a "::" run.
_IPV6_RE = re.compile(
    r"(?<![\w:])(?:"
    r"(?:[0-9A-Fa-f]{1,4}:){7}[0-9A-Fa-f]{1,4}"
    r"|(?:[0-9A-Fa-f]{1,4}:){0,6}[0-9A-Fa-f]{0,4}::(?:[0-9A-Fa-f]{1,4}:){0,6}[0-9A-Fa-f]{0,4}"
    r")(?![\w:])"
)


def scrub_text(text: str) -> str:
    text = _IPV4_RE.sub("[REDACTED_IP]", text)
    text = _IPV6_RE.sub("[REDACTED_IP]", text)
    return text


def scrub_pii(value: Any) -> Any:
    if isinstance(value, Mapping):
        out: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if key.lower() in _SENSITIVE_KEYS:
                out[key] = "[REDACTED]"
            else:
                out[key] = scrub_pii(v)
        return out

    if isinstance(value, (list, tuple)):
        return [scrub_pii(v) for v in value]

    if isinstance(value, str):
        return scrub_text(value)

    return value


class PrivacyFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 (filter)
        try:
            message = record.getMessage()
        except Exception:
            message = str(record.msg)

        record.msg = scrub_text(message)
        record.args = ()

        fields = getattr(record, "fields", None)
        if isinstance(fields, Mapping):
            record.fields = scrub_pii(fields)

        return True


class JsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter emitting an ISO 8601 UTC timestamp on every record."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        if not args and "fmt" not in kwargs:
            kwargs["fmt"] = "%(levelname)s %(name)s %(message)s"
            kwargs.setdefault("rename_fields", {"levelname": "level", "name": "logger"})
        super().__init__(*args, **kwargs)

    def add_fields(self, log_record: dict[str, Any], record: logging.LogRecord, message_dict: dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            now = datetime.fromtimestamp(record.created, tz=timezone.utc)
            log_record["timestamp"] = now.isoformat()


def _normalize_level(level: str | int | None) -> int:
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL)
    if isinstance(level, int):
        return level
    return logging._nameToLevel.get(str(level).upper(), logging.INFO)


def configure_logging(*, level: str | int | None = None) -> logging.Logger:
    """Configure process-wide logging.

    Idempotent: calling multiple times will not add multiple handlers.
    """

    resolved_level = _normalize_level(level)

    root = logging.getLogger()
    root.setLevel(resolved_level)

    handler_name = "translator_json"
    for h in root.handlers:
        if getattr(h, "name", None) == handler_name:
            return logging.getLogger(ROOT_LOGGER_NAME)

    handler = logging.StreamHandler()
    handler.name = handler_name
    handler.setLevel(resolved_level)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(PrivacyFilter())

    root.addHandler(handler)

    # scapy is chatty at INFO about missing optional backends.
    for noisy in ("scapy", "scapy.runtime", "scapy.loading"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logging.getLogger(ROOT_LOGGER_NAME)


def add_file_handler(path: str | os.PathLike[str]) -> logging.Handler:
    """Mirror root logging into a JSON-lines file."""

    handler = logging.FileHandler(os.fspath(path), encoding="utf-8")
    handler.name = "translator_file"
    handler.setFormatter(JsonFormatter())
    handler.addFilter(PrivacyFilter())
    logging.getLogger().addHandler(handler)
    return handler


def log_event(
    logger: logging.Logger,
    event: str,
    /,
    *,
    level: int | str = logging.INFO,
    **fields: Any,
) -> None:
    if isinstance(level, str):
        level = logging._nameToLevel.get(level.upper(), logging.INFO)

    logger.log(level, event, extra={"fields": scrub_pii(fields)})
