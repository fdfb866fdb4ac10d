"""
Structured logging for the skin analysis pipeline.

Every entry carries an ISO timestamp, level, logger name and whatever
request or analysis context is bound (request_id, photo_session_id,
doctor_id, stage).

Entries pass through redact_secrets before rendering, so an API key or
service key that reaches a log call under a known field name is masked.
"""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog
from structlog.types import Processor

from skinwellness.config.config import Settings, get_settings

REDACTED = "***REDACTED***"

SECRET_FIELDS = frozenset({
    "api_key",
    "apikey",
    "authorization",
    "skinxs_api_key",
    "service_key",
    "supabase_service_role_key",
})


def redact_secrets(
    logger: Any,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """structlog processor masking credential fields."""
    for field in SECRET_FIELDS.intersection(event_dict):
        if event_dict[field]:
            event_dict[field] = REDACTED
    return event_dict


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(settings: Settings | None = None) -> None:
    """
    Route structlog and stdlib logging through one stdout handler.

    JSON lines when LOG_FORMAT=json, coloured console output otherwise.
    """
    settings = settings or get_settings()

    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
    ]
    if settings.log_format == "json":
        pre_chain.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=pre_chain + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=_renderer(settings.log_format),
        foreign_pre_chain=pre_chain,
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(settings.log_level.upper())

    # httpx logs every request URL, including signed photo URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_request_context(request_id: str, method: str, path: str, **extra: Any) -> None:
    """
    Start a fresh log context for an incoming HTTP request.

    Clears anything left over from a previous request on the same task.
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        http_method=method,
        http_path=path,
        **extra,
    )


def bind_analysis_context(photo_session_id: str, doctor_id: str) -> None:
    """Attach the analysis identifiers to every log entry of the current flow."""
    structlog.contextvars.bind_contextvars(
        photo_session_id=photo_session_id,
        doctor_id=doctor_id,
    )


def bind_analysis_stage(stage: str) -> None:
    """Record which orchestration stage subsequent log entries belong to."""
    structlog.contextvars.bind_contextvars(stage=stage)
