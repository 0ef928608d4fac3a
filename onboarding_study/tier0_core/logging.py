"""
onboarding_study.tier0_core.logging
─────────────────────────────────────
structlog wired to StudySettings. Every record carries the bound study
context (study, variation, addon) and has identifiers masked before it
reaches the stdout handler.

Minimal stack: structlog
Configure via: STUDY_LOG_LEVEL, STUDY_LOG_FORMAT=json|console
               (environment or .env, read through get_settings())
"""
from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from onboarding_study.tier0_core.config import StudySettings, get_settings

# Logger the telemetry collaborator writes through; its threshold follows
# STUDY_UTILS_LOG_LEVEL rather than the study-wide level.
STUDY_UTILS_LOGGER = "onboarding_study.tier2_study.telemetry"

_MASKED = "[REDACTED]"

# The telemetry client id is the bucketing seed; it never reaches a sink.
_MASKED_FIELDS = frozenset({
    "client_id", "telemetry_id", "token", "session_token",
    "password", "secret", "email",
})

_handler: logging.Handler | None = None


def _mask(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: _MASKED if str(k).lower() in _MASKED_FIELDS else _mask(v)
            for k, v in value.items()
        }
    return value


def _mask_identifiers(logger: Any, method: str, event_dict: dict) -> dict:
    """Mask identifier fields, including ones nested in dict-valued fields."""
    return _mask(event_dict)


def _level_number(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(settings: StudySettings | None = None) -> None:
    """
    (Re)configure structlog and the stdout handler from settings.

    Calling again replaces the handler installed by the previous call, so
    tests and the kernel can switch level or format without stacking output.
    """
    global _handler
    settings = settings or get_settings()
    level = _level_number(settings.log_level)

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        _mask_identifiers,
    ]
    if settings.log_format.lower() == "console":
        renderer: Any = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=pre_chain + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=not settings.is_test,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    ))

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)
    root.addHandler(handler)
    root.setLevel(level)
    _handler = handler

    set_logger_level(STUDY_UTILS_LOGGER, settings.study_utils_log_level)


def set_logger_level(name: str, level: str) -> None:
    """Raise or lower the threshold of one component logger."""
    logging.getLogger(name).setLevel(_level_number(level))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Return a structured logger, configuring logging on first use.

    Usage:
        log = get_logger(__name__)
        log.info("study.startup", reason="ADDON_INSTALL")
    """
    if _handler is None:
        configure_logging()
    return structlog.get_logger(name or __name__)


def bind_context(**kwargs: Any) -> None:
    """Attach fields (study, variation, addon) to every later record in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


__all__ = [
    "STUDY_UTILS_LOGGER",
    "configure_logging",
    "set_logger_level",
    "get_logger",
    "bind_context",
    "clear_context",
]
