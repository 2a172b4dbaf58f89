"""Structured logging for revWave services.

JSON log lines carry the tenant and job identifiers (tenant, integration,
campaign) so a sync run or a campaign dispatch can be followed across the
core and worker processes.
"""

import json
import logging
import sys
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


_loggers: dict[str, "StructuredLogger"] = {}

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_SERVICE_NAME = "revwave"

# Keys that must never reach a log line
REDACTED_KEYS = frozenset(
    {"access_token", "refresh_token", "client_secret", "password", "smtp_password"}
)


class JsonFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    RESERVED_FIELDS = {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "message", "asctime", "taskName",
    }

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        if record.levelno >= logging.WARNING:
            log_entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_entry["exception"] = "".join(
                traceback.format_exception(*record.exc_info)
            )

        for key, value in record.__dict__.items():
            if key in self.RESERVED_FIELDS or key.startswith("_"):
                continue
            if key in REDACTED_KEYS:
                log_entry[key] = "[redacted]"
                continue
            try:
                json.dumps(value)
                log_entry[key] = value
            except (TypeError, ValueError):
                log_entry[key] = str(value)

        return json.dumps(log_entry)


@dataclass
class TenantContext:
    """Identifiers attached to every log line of a tenant-scoped job."""

    tenant_id: Optional[str] = None
    integration_id: Optional[int] = None
    campaign_id: Optional[int] = None
    task_id: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result = {}

        if self.tenant_id:
            result["tenant_id"] = self.tenant_id
        if self.integration_id is not None:
            result["integration_id"] = self.integration_id
        if self.campaign_id is not None:
            result["campaign_id"] = self.campaign_id
        if self.task_id:
            result["task_id"] = self.task_id

        result.update(self.extra)
        return result


class StructuredLogger:
    """Wraps a stdlib logger, passing keyword fields through as ``extra``."""

    def __init__(self, name: str):
        self.name = name
        self._logger = logging.getLogger(name)

    def _log(
        self,
        level: int,
        msg: str,
        context: Optional[TenantContext] = None,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        if context:
            kwargs.update(context.to_dict())

        self._logger.log(level, msg, exc_info=exc_info, extra=dict(kwargs))

    def debug(self, msg: str, context: Optional[TenantContext] = None, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, context, **kwargs)

    def info(self, msg: str, context: Optional[TenantContext] = None, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, context, **kwargs)

    def warning(self, msg: str, context: Optional[TenantContext] = None, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, context, **kwargs)

    def error(
        self,
        msg: str,
        context: Optional[TenantContext] = None,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        self._log(logging.ERROR, msg, context, exc_info=exc_info, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get or create a structured logger.

    Args:
        name: Logger name (typically module name)

    Returns:
        StructuredLogger instance
    """
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)
    return _loggers[name]


def configure_logging(
    level: str = DEFAULT_LOG_LEVEL,
    json_format: bool = True,
    service_name: str = DEFAULT_SERVICE_NAME,
) -> None:
    """Configure the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Whether to use JSON format
        service_name: Service name for log identification
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(JsonFormatter(service_name=service_name))
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root_logger.addHandler(handler)

    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
