"""
onboarding_study.tier3_onboarding.context
───────────────────────────────────────────
The host services a study controller runs against, bundled into one
explicitly constructed object. Nothing in the controller reaches for a
module-level singleton; everything it touches comes through HostContext.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable

from onboarding_study.tier0_core.logging import bind_context
from onboarding_study.tier1_runtime.messages import InMemoryMessageManager, MessageManager
from onboarding_study.tier1_runtime.modules import MockModuleLoader, ModuleLoader
from onboarding_study.tier1_runtime.observers import InMemoryNotificationBus, NotificationBus
from onboarding_study.tier1_runtime.prefs import InMemoryPreferenceStore, PreferenceStore
from onboarding_study.tier2_study.accounts import AccountsProvider, MockAccountsProvider
from onboarding_study.tier2_study.telemetry import InMemoryStudyUtils, StudyUtils
from onboarding_study.tier3_onboarding.tours import MockTourRuntime, TourRuntime


async def always_eligible() -> bool:
    return True


@dataclass(frozen=True)
class AddonData:
    id: str
    version: str


@dataclass
class HostContext:
    prefs: PreferenceStore
    bus: NotificationBus
    messages: MessageManager
    loader: ModuleLoader
    accounts: AccountsProvider
    study_utils: StudyUtils
    tours: TourRuntime
    is_eligible: Callable[[], Awaitable[bool]] = always_eligible
    # True while the host UI is still coming up (browser-ready not yet sent).
    starting_up: Callable[[], bool] = field(default=lambda: False)


def in_memory_host(
    *,
    starting_up: bool = False,
    eligible: bool = True,
    signed_in_user: dict | None = None,
    client_id: str | None = None,
) -> HostContext:
    """A HostContext wired entirely to in-memory collaborators."""

    async def _is_eligible() -> bool:
        return eligible

    return HostContext(
        prefs=InMemoryPreferenceStore(),
        bus=InMemoryNotificationBus(),
        messages=InMemoryMessageManager(),
        loader=MockModuleLoader(),
        accounts=MockAccountsProvider(signed_in_user),
        study_utils=InMemoryStudyUtils(client_id=client_id),
        tours=MockTourRuntime(),
        is_eligible=_is_eligible,
        starting_up=lambda: starting_up,
    )


def bind_study_context(study_name: str, addon: AddonData, variation: str | None = None) -> None:
    """Push study identity into the structlog context for every later log line."""
    fields = {"study": study_name, "addon_id": addon.id, "addon_version": addon.version}
    if variation is not None:
        fields["variation"] = variation
    bind_context(**fields)


__all__ = [
    "AddonData",
    "HostContext",
    "always_eligible",
    "in_memory_host",
    "bind_study_context",
]
