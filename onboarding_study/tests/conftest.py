"""
onboarding_study test configuration.

All tests run against in-memory host services, no browser required.
Override by setting environment variables before running pytest.
"""
from __future__ import annotations

import os

import pytest

# ── Force test settings ────────────────────────────────────────────────────
# These must be set before any onboarding_study modules are imported.

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("APP_NAME", "onboarding-study-test")
os.environ.setdefault("STUDY_LOG_LEVEL", "DEBUG")
os.environ.setdefault("STUDY_LOG_FORMAT", "console")
os.environ.setdefault("STUDY_METRICS_ENABLED", "false")


# ── Fixtures ───────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def reset_settings_and_log_context(monkeypatch):
    """
    Fresh settings and log context for every test, so STUDY_* overrides in one
    test never leak into the next.
    """
    from onboarding_study.tier0_core.config import _reset_settings
    from onboarding_study.tier0_core.logging import clear_context

    monkeypatch.delenv("STUDY_CONFIG_PATH", raising=False)
    monkeypatch.delenv("STUDY_VARIATION", raising=False)
    _reset_settings()
    yield
    _reset_settings()
    clear_context()


@pytest.fixture
def prefs():
    from onboarding_study.tier1_runtime.prefs import InMemoryPreferenceStore
    return InMemoryPreferenceStore()


@pytest.fixture
def bus():
    from onboarding_study.tier1_runtime.observers import InMemoryNotificationBus
    return InMemoryNotificationBus()


@pytest.fixture
def experiment_config():
    """Two equal arms, no forced variation."""
    from onboarding_study.tier0_core.config import (
        EndingAction,
        ExperimentConfig,
        WeightedVariation,
    )
    return ExperimentConfig(
        study_name="onboarding-tour-study",
        weighted_variations=(
            WeightedVariation(name="var1", weight=1),
            WeightedVariation(name="var4", weight=1),
        ),
        endings={
            "ineligible": EndingAction(category="ended-neutral"),
            "user-disable": EndingAction(category="ended-negative", url="https://example.com/survey"),
        },
        modules=("json", "decimal"),
    )


@pytest.fixture
def host():
    """In-memory host whose UI is already up (late-attach startup)."""
    from onboarding_study.tier3_onboarding.context import in_memory_host
    return in_memory_host(client_id="client-1234")


@pytest.fixture
def addon():
    from onboarding_study.tier3_onboarding.context import AddonData
    return AddonData(id="onboarding-tour-study@shield.mozilla.org", version="1.0.0")
