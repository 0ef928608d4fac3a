"""
onboarding_study.tier0_core.metrics
─────────────────────────────────────
Counters with standard naming and labels, exported via a Prometheus
/metrics endpoint when the kernel host enables it.

Minimal stack: prometheus-client
Configure via: APP_NAME, APP_ENV (the service/env labels)
               STUDY_METRICS_ENABLED=true|false
               STUDY_METRICS_PORT (default: 8001)
"""
from __future__ import annotations

from typing import Callable

from prometheus_client import Counter, start_http_server

from onboarding_study.tier0_core.config import get_settings

# Standard labels applied to every metric
_DEFAULT_LABELS = ["service", "env"]


def default_labels() -> dict[str, str]:
    """service/env label values, resolved from settings at observation time."""
    settings = get_settings()
    return {"service": settings.app_name, "env": settings.environment}


def counter(name: str, description: str, labels: list[str] | None = None) -> Callable:
    """
    Create a counter with standard labels.

    Usage:
        endings_total = counter("study_endings_total", "Study endings", ["reason"])
        endings_total(reason="user-disable").inc()
    """
    all_labels = _DEFAULT_LABELS + (labels or [])
    c = Counter(name, description, all_labels)

    def _counter(**extra_labels: str) -> Counter:
        # labels() takes positional or keyword values, never both.
        return c.labels(**default_labels(), **extra_labels)

    return _counter


def start_metrics_server(port: int | None = None) -> None:
    """
    Start the Prometheus HTTP metrics server on a dedicated port.
    Call once at host startup.
    """
    start_http_server(port or get_settings().metrics_port)


# ── Study counters ────────────────────────────────────────────────────────────

variation_assigned = counter(
    "study_variation_assigned_total",
    "Variation assignments by arm and source",
    ["variation", "source"],
)
study_endings = counter(
    "study_endings_total",
    "Study endings by reason",
    ["reason"],
)
pref_writes = counter(
    "study_pref_writes_total",
    "Bridge preference writes by outcome",
    ["outcome"],
)
bridge_messages = counter(
    "study_bridge_messages_total",
    "Content messages received by action",
    ["action"],
)


__all__ = [
    "counter",
    "default_labels",
    "start_metrics_server",
    "variation_assigned",
    "study_endings",
    "pref_writes",
    "bridge_messages",
]
