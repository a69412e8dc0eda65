# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Structured logging for the Gateway Publisher.

Package modules log through ``logging.getLogger(__name__)``; those records
are rendered by structlog so vendor adapters, background jobs and request
handlers share one output. Background jobs bind ``deployment_id`` and
``gateway_id`` so every line a job emits can be traced back to its record.
"""

import logging
import re
import sys
from typing import Any, Iterable, Literal, Optional

import structlog
from structlog.types import EventDict, Processor

from .config import settings

JOB_CONTEXT_KEYS = ("deployment_id", "gateway_id", "vendor")

# Loggers that stay at WARNING unless LOG_COMPONENTS says otherwise
QUIET_LOGGERS = ("httpcore", "httpx", "asyncio", "aiosqlite", "sqlalchemy.engine")


class SecretRedactor:
    """structlog processor replacing vendor credentials with a mask.

    Keys are matched case-insensitively with underscores ignored,
    so ``secret_key``, ``accessKey`` and ``Authorization`` are all caught.
    Nested dicts (connection configs, request bodies) are walked.
    """

    def __init__(self, patterns: Iterable[str], mask: str = "[REDACTED]"):
        self._pattern = re.compile("|".join(re.escape(p.replace("_", "")) for p in patterns), re.IGNORECASE) if patterns else None
        self._mask = mask

    def __call__(self, logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        if self._pattern is None:
            return event_dict
        return self._redact(event_dict, top_level=True)

    def _redact(self, data: dict, top_level: bool = False) -> dict:
        redacted = {}
        for key, value in data.items():
            if not (top_level and key == "event") and self._pattern.search(str(key).replace("_", "")):
                redacted[key] = self._mask
            elif isinstance(value, dict):
                redacted[key] = self._redact(value)
            elif isinstance(value, list):
                redacted[key] = [self._redact(v) if isinstance(v, dict) else v for v in value]
            else:
                redacted[key] = value
        return redacted


class LoggerLevelFilter(logging.Filter):
    """Per-logger thresholds from ``LOG_COMPONENTS``.

    ``gateway_publisher.adapters:DEBUG`` also applies to
    ``gateway_publisher.adapters.higress.client``; the most specific prefix wins.
    """

    def __init__(self, levels: dict[str, str], default_level: str = "INFO"):
        super().__init__()
        self._levels = {name: logging.getLevelName(level.upper()) for name, level in levels.items()}
        self._default = logging.getLevelName(default_level.upper())

    def threshold_for(self, logger_name: str) -> int:
        name = logger_name
        while name:
            if name in self._levels and isinstance(self._levels[name], int):
                return self._levels[name]
            name = name.rpartition(".")[0]
        return self._default if isinstance(self._default, int) else logging.INFO

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self.threshold_for(record.name)


def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", "gateway-publisher")
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    event_dict.setdefault("version", settings.VERSION)
    return event_dict


def configure_logging(
    log_level: Optional[str] = None,
    log_format: Optional[Literal["json", "text"]] = None,
) -> None:
    """Install the structlog pipeline on the root logger.

    Args:
        log_level: default threshold, falls back to ``LOG_LEVEL``
        log_format: "json" for deployed environments, "text" for a terminal
    """
    level = log_level or settings.LOG_LEVEL
    fmt = log_format or settings.LOG_FORMAT
    levels = settings.log_components_dict

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_service_context,
    ]
    if settings.LOG_MASKING_ENABLED:
        processors.append(SecretRedactor(settings.log_masking_patterns_list))

    if fmt == "json":
        processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    handler.addFilter(LoggerLevelFilter(levels, default_level=level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(levels.get(name, "WARNING").upper())

    structlog.configure(
        processors=processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_job_context(**values: Any) -> None:
    """Attach job identifiers to every log line emitted by the current task."""
    structlog.contextvars.bind_contextvars(**values)


def clear_job_context() -> None:
    structlog.contextvars.unbind_contextvars(*JOB_CONTEXT_KEYS)
