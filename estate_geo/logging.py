"""structlog setup for the geo service.

Events from ``estate_geo`` and from stdlib loggers (uvicorn, sqlalchemy,
asyncpg) go through one ``ProcessorFormatter``: JSON lines by default, the
console renderer when ``APP_ENV=dev`` and no ``LOG_FORMAT`` is set.
"""

from __future__ import annotations

import logging

import structlog
from structlog.types import EventDict, Processor

from estate_geo.core.config import Settings, settings

SERVICE_NAME = "estate-geo"

# Statement-level chatter; raised to WARNING unless LOG_SQL is on
NOISY_LOGGERS = ("sqlalchemy.engine", "asyncpg")


def add_service_name(_: object, __: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def resolve_format(config: Settings) -> str:
    if config.log_format:
        return config.log_format.lower()
    return "console" if config.app_env == "dev" else "json"


def resolve_level(config: Settings) -> int:
    return getattr(logging, config.log_level.upper(), logging.INFO)


def setup_logging(config: Settings = settings) -> None:
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_service_name,
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    renderer: Processor
    if resolve_format(config) == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    level = resolve_level(config)
    logging.basicConfig(level=level, handlers=[handler], force=True)

    noisy_level = level if config.log_sql else max(level, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)
