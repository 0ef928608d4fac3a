"""
onboarding_study.tier2_study.accounts
───────────────────────────────────────
Sync-tour completion tracking. SyncTourChecker follows the account login
state through login/logout notifications and can be queried at any time once
initialized. Logging in marks the sync tour completed; logging out does not
undo that.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Protocol, runtime_checkable

from onboarding_study.tier0_core.logging import get_logger
from onboarding_study.tier1_runtime.observers import LOGIN, LOGOUT, NotificationBus
from onboarding_study.tier1_runtime.prefs import PreferenceStore

log = get_logger(__name__)

SYNC_TOUR_COMPLETED_PREF = "browser.onboarding.tour.onboarding-tour-sync.completed"


class LoginState(str, Enum):
    UNREGISTERED = "unregistered"
    LOGGED_OUT = "registered-logged-out"
    LOGGED_IN = "registered-logged-in"


@runtime_checkable
class AccountsProvider(Protocol):
    async def get_signed_in_user(self) -> dict[str, Any] | None: ...


class MockAccountsProvider:
    """Returns a seeded user (or None); counts queries."""

    def __init__(self, user: dict[str, Any] | None = None) -> None:
        self.user = user
        self.queries = 0

    async def get_signed_in_user(self) -> dict[str, Any] | None:
        self.queries += 1
        return self.user


class SyncTourChecker:
    def __init__(
        self,
        prefs: PreferenceStore,
        bus: NotificationBus,
        accounts: AccountsProvider,
    ) -> None:
        self._prefs = prefs
        self._bus = bus
        self._accounts = accounts
        self._registered = False
        self._logged_in = False
        self._generation = 0

    @property
    def registered(self) -> bool:
        return self._registered

    @property
    def state(self) -> LoginState:
        if not self._registered:
            return LoginState.UNREGISTERED
        return LoginState.LOGGED_IN if self._logged_in else LoginState.LOGGED_OUT

    def is_logged_in(self) -> bool:
        return self._logged_in

    async def init(self) -> None:
        """Check whether we are already logged in, then observe login changes."""
        generation = self._generation
        user = await self._accounts.get_signed_in_user()
        if generation != self._generation:
            # uninit() ran while we were waiting; stay torn down.
            log.debug("sync_tour.init_abandoned")
            return
        if user:
            self.set_complete()
        self.register()

    def observe(self, subject: Any, topic: str, data: Any = None) -> None:
        if topic == LOGIN:
            self.set_complete()
        elif topic == LOGOUT:
            self._logged_in = False
            log.debug("sync_tour.logged_out")

    def register(self) -> None:
        if self._registered:
            return
        self._bus.subscribe(LOGIN, self.observe)
        self._bus.subscribe(LOGOUT, self.observe)
        self._registered = True

    def set_complete(self) -> None:
        self._logged_in = True
        self._prefs.set_bool(SYNC_TOUR_COMPLETED_PREF, True)
        log.debug("sync_tour.completed")

    def unregister(self) -> None:
        if not self._registered:
            return
        self._bus.unsubscribe(LOGIN, self.observe)
        self._bus.unsubscribe(LOGOUT, self.observe)
        self._registered = False

    def uninit(self) -> None:
        self._generation += 1
        self.unregister()


__all__ = [
    "SYNC_TOUR_COMPLETED_PREF",
    "LoginState",
    "AccountsProvider",
    "MockAccountsProvider",
    "SyncTourChecker",
]
