"""
onboarding_study.tier3_onboarding.tours
─────────────────────────────────────────
Per-variation tour configuration and the preferences a fresh install writes
for the onboarding UI. Impression caps and durations are advisory values the
UI reads; nothing here enforces them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Protocol, runtime_checkable

from onboarding_study.tier0_core.logging import get_logger
from onboarding_study.tier1_runtime.prefs import ONBOARDING_BRANCH, PreferenceStore, write_pref

log = get_logger(__name__)

FRAME_SCRIPT_URL = "resource://onboarding/onboarding.js"

MUTE_DURATION_PREF = "browser.onboarding.notification.mute-duration-on-first-session-ms"
MAX_LIFETIME_PREF = "browser.onboarding.notification.max-life-time-per-tour-ms"
MAX_PROMPT_COUNT_PREF = "browser.onboarding.notification.max-prompt-count-per-tour"
TOUR_ORDER_PREF = "browser.onboarding.newtour"

# Written in this order on every fresh install, after the branch is cleared.
BASELINE_PREFERENCES: tuple[tuple[str, Any], ...] = (
    ("browser.onboarding.enabled", True),
    # Marks the profile as upgraded so the new-user tour is not offered.
    ("browser.onboarding.tourset-version", 1),
    ("browser.onboarding.hidden", False),
    # Tells the activity stream page our notification is not finished yet.
    ("browser.onboarding.notification.finished", False),
    ("browser.onboarding.updatetour", ""),
    ("extensions.screenshots.disabled", False),
)


@dataclass(frozen=True)
class TourPreferenceSet:
    tour_order: tuple[str, ...]
    max_impressions_per_tour: int
    max_lifetime_per_tour_ms: int
    first_session_mute_ms: int

    @property
    def tour_order_pref(self) -> str:
        return ",".join(self.tour_order)

    def as_preferences(self) -> Iterator[tuple[str, Any]]:
        yield MUTE_DURATION_PREF, self.first_session_mute_ms
        yield MAX_LIFETIME_PREF, self.max_lifetime_per_tour_ms
        yield MAX_PROMPT_COUNT_PREF, self.max_impressions_per_tour
        yield TOUR_ORDER_PREF, self.tour_order_pref


def _row(order: str, impressions: int, expires_ms: int, mute_ms: int) -> TourPreferenceSet:
    return TourPreferenceSet(
        tour_order=tuple(order.split(",")),
        max_impressions_per_tour=impressions,
        max_lifetime_per_tour_ms=expires_ms,
        first_session_mute_ms=mute_ms,
    )


DEFAULT_TOURS = _row("private,addons,customize,search,default,sync", 4, 86400000, 300000)

TOUR_TABLE: dict[str, TourPreferenceSet] = {
    "var1": _row("private,addons,customize,search,default,sync", 4, 43200000, 120000),
    "var2": _row("private,search,addons,customize,default,sync", 4, 43200000, 120000),
    "var3": _row("private,default,addons,customize,search,sync", 4, 43200000, 120000),
    "var4": _row("private,default,addons,customize,search,sync", 2, 21600000, 60000),
    "default": DEFAULT_TOURS,
}


def tour_preferences_for(variation_name: str) -> TourPreferenceSet:
    """Tour settings for an arm; unknown arms get the default row."""
    return TOUR_TABLE.get(variation_name, DEFAULT_TOURS)


def apply_fresh_install_preferences(store: PreferenceStore, tours: TourPreferenceSet) -> None:
    """Clear stale onboarding prefs, then write the baseline and the arm's tour set."""
    store.delete_branch(ONBOARDING_BRANCH)
    for name, value in BASELINE_PREFERENCES:
        write_pref(store, name, value)
    for name, value in tours.as_preferences():
        write_pref(store, name, value)
    log.info("tours.prefs_written", tour_order=tours.tour_order_pref)


# ── Tour runtime (onboarding UI side) ─────────────────────────────────────────

@runtime_checkable
class TourRuntime(Protocol):
    frame_script_url: str

    def check_tour_type(self) -> None: ...


class MockTourRuntime:
    def __init__(self, frame_script_url: str = FRAME_SCRIPT_URL) -> None:
        self.frame_script_url = frame_script_url
        self.checks = 0

    def check_tour_type(self) -> None:
        self.checks += 1


__all__ = [
    "FRAME_SCRIPT_URL",
    "BASELINE_PREFERENCES",
    "TourPreferenceSet",
    "DEFAULT_TOURS",
    "TOUR_TABLE",
    "tour_preferences_for",
    "apply_fresh_install_preferences",
    "TourRuntime",
    "MockTourRuntime",
]
