"""
onboarding_study.tier1_runtime.prefs
──────────────────────────────────────
Preference store abstraction plus the whitelist-constrained gateway used for
writes that originate in content.

Content can read onboarding prefs itself but lacks the privilege to write
them, so it asks the bridge. Only the names in PREF_WHITELIST may be written
that way; anything else is dropped without an error.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Protocol, runtime_checkable

from onboarding_study.tier0_core.errors import PreferenceTypeError
from onboarding_study.tier0_core.logging import get_logger
from onboarding_study.tier0_core.metrics import pref_writes

log = get_logger(__name__)

ONBOARDING_BRANCH = "browser.onboarding"


class PrefType(str, Enum):
    BOOL = "bool"
    INT = "int"
    STRING = "string"


TOUR_IDS = (
    "onboarding-tour-addons",
    "onboarding-tour-customize",
    "onboarding-tour-default-browser",
    "onboarding-tour-library",
    "onboarding-tour-performance",
    "onboarding-tour-private-browsing",
    "onboarding-tour-search",
    "onboarding-tour-singlesearch",
    "onboarding-tour-sync",
)

PREF_WHITELIST: tuple[tuple[str, PrefType], ...] = (
    ("browser.onboarding.enabled", PrefType.BOOL),
    ("browser.onboarding.hidden", PrefType.BOOL),
    ("browser.onboarding.notification.finished", PrefType.BOOL),
    ("browser.onboarding.notification.prompt-count", PrefType.INT),
    ("browser.onboarding.notification.last-time-of-changing-tour-sec", PrefType.INT),
    ("browser.onboarding.notification.tour-ids-queue", PrefType.STRING),
) + tuple(
    (f"browser.onboarding.tour.{tour_id}.completed", PrefType.BOOL)
    for tour_id in TOUR_IDS
)


@dataclass(frozen=True)
class PrefEntry:
    name: str
    value: Any


# ── Protocol ───────────────────────────────────────────────────────────────

@runtime_checkable
class PreferenceStore(Protocol):
    """Typed key/value preference storage owned by the host."""

    def get(self, name: str, default: Any = None) -> Any: ...

    def has(self, name: str) -> bool: ...

    def set_bool(self, name: str, value: bool) -> None: ...

    def set_int(self, name: str, value: int) -> None: ...

    def set_string(self, name: str, value: str) -> None: ...

    def delete_branch(self, prefix: str) -> None: ...


# ── In-memory store (kernel host and tests) ────────────────────────────────

class InMemoryPreferenceStore:
    """
    Dict-backed store. Enforces the typed setters the way the host does:
    a setter called with the wrong value type raises PreferenceTypeError.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._prefs: dict[str, Any] = dict(initial or {})
        self.writes: list[tuple[str, Any]] = []

    def get(self, name: str, default: Any = None) -> Any:
        return self._prefs.get(name, default)

    def has(self, name: str) -> bool:
        return name in self._prefs

    def set_bool(self, name: str, value: bool) -> None:
        if not isinstance(value, bool):
            raise PreferenceTypeError(name, type(value).__name__)
        self._write(name, value)

    def set_int(self, name: str, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise PreferenceTypeError(name, type(value).__name__)
        self._write(name, value)

    def set_string(self, name: str, value: str) -> None:
        if not isinstance(value, str):
            raise PreferenceTypeError(name, type(value).__name__)
        self._write(name, value)

    def delete_branch(self, prefix: str) -> None:
        branch = prefix.rstrip(".")
        for name in list(self._prefs):
            if name == branch or name.startswith(branch + "."):
                del self._prefs[name]

    def snapshot(self) -> dict[str, Any]:
        return dict(self._prefs)

    def _write(self, name: str, value: Any) -> None:
        self._prefs[name] = value
        self.writes.append((name, value))


def write_pref(store: PreferenceStore, name: str, value: Any) -> None:
    """Write a trusted, internally generated pref, picking the setter from the value."""
    if isinstance(value, bool):
        store.set_bool(name, value)
    elif isinstance(value, int):
        store.set_int(name, value)
    elif isinstance(value, str):
        store.set_string(name, value)
    else:
        raise PreferenceTypeError(name, type(value).__name__)


# ── Gateway ────────────────────────────────────────────────────────────────

class PreferenceGateway:
    """Applies whitelisted preference writes on behalf of content."""

    def __init__(
        self,
        store: PreferenceStore,
        whitelist: Iterable[tuple[str, Any]] = PREF_WHITELIST,
    ) -> None:
        self._store = store
        self._whitelist: dict[str, Any] = dict(whitelist)

    def is_allowed(self, name: str) -> bool:
        return name in self._whitelist

    def set_preferences(self, entries: Iterable[PrefEntry | Mapping[str, Any]]) -> None:
        """
        Write each entry whose name is whitelisted, using the declared type.

        Unknown names are skipped. An unrecognised type tag in the whitelist
        raises PreferenceTypeError naming the preference.
        """
        for entry in entries:
            name, value = _unpack(entry)
            pref_type = self._whitelist.get(name)
            if pref_type is None:
                log.debug("prefs.ignored", pref=name)
                pref_writes(outcome="ignored").inc()
                continue

            if pref_type == PrefType.BOOL:
                self._store.set_bool(name, value)
            elif pref_type == PrefType.INT:
                self._store.set_int(name, value)
            elif pref_type == PrefType.STRING:
                self._store.set_string(name, value)
            else:
                raise PreferenceTypeError(name, pref_type)

            log.debug("prefs.applied", pref=name, type=str(pref_type))
            pref_writes(outcome="applied").inc()


def _unpack(entry: PrefEntry | Mapping[str, Any]) -> tuple[str, Any]:
    if isinstance(entry, PrefEntry):
        return entry.name, entry.value
    return entry.get("name"), entry.get("value")


__all__ = [
    "ONBOARDING_BRANCH",
    "PrefType",
    "TOUR_IDS",
    "PREF_WHITELIST",
    "PrefEntry",
    "PreferenceStore",
    "InMemoryPreferenceStore",
    "PreferenceGateway",
    "write_pref",
]
