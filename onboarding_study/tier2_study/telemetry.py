"""
onboarding_study.tier2_study.telemetry
────────────────────────────────────────
Study-lifecycle collaborator: study setup, enrollment and ending pings,
client identity, and the sampling helpers used for arm assignment.

The transport is owned by the host. InMemoryStudyUtils records pings and
models the host's reaction to an ending (uninstalling the add-on, which calls
shutdown() again) through the optional on_uninstall hook.
"""
from __future__ import annotations

import inspect
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Protocol, Union, runtime_checkable

from onboarding_study.tier0_core.config import EndingAction, TelemetryConfig
from onboarding_study.tier0_core.logging import STUDY_UTILS_LOGGER, get_logger, set_logger_level
from onboarding_study.tier0_core.reasons import LifecycleReason
from onboarding_study.tier2_study.sampling import Sampler

if TYPE_CHECKING:
    from onboarding_study.tier2_study.variation import VariationAssignment

log = get_logger(STUDY_UTILS_LOGGER)


@dataclass(frozen=True)
class StudySetup:
    study_name: str
    endings: Mapping[str, EndingAction]
    addon_id: str
    addon_version: str
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)


@dataclass
class Ping:
    kind: str  # enter | install | active | ineligible | exit | ending
    data: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class StudyUtils(Protocol):
    sample: Sampler

    def setup(self, setup: StudySetup) -> None: ...

    def set_logging_level(self, level: str) -> None: ...

    def set_variation(self, variation: VariationAssignment) -> None: ...

    async def first_seen(self) -> None: ...

    async def startup(self, reason: LifecycleReason) -> None: ...

    async def end_study(self, reason: str, ending: EndingAction | None = None) -> None: ...

    async def get_telemetry_id(self) -> str: ...

    def info(self) -> dict[str, Any]: ...


UninstallHook = Callable[[], Union[None, Awaitable[None]]]


class InMemoryStudyUtils:
    """Records every lifecycle call; no network transport."""

    def __init__(
        self,
        client_id: str | None = None,
        on_uninstall: UninstallHook | None = None,
    ) -> None:
        self.sample = Sampler()
        self.client_id = client_id or str(uuid.uuid4())
        self.on_uninstall = on_uninstall
        self.study_setup: StudySetup | None = None
        self.variation: VariationAssignment | None = None
        self.logging_level: str | None = None
        self.pings: list[Ping] = []
        self.endings: list[str] = []
        self.telemetry_id_requests = 0

    def setup(self, setup: StudySetup) -> None:
        self.study_setup = setup
        log.debug("telemetry.setup", study=setup.study_name, addon=setup.addon_id)

    def set_logging_level(self, level: str) -> None:
        self.logging_level = level
        set_logger_level(STUDY_UTILS_LOGGER, level)

    def set_variation(self, variation: VariationAssignment) -> None:
        self.variation = variation

    async def first_seen(self) -> None:
        self._ping("enter")

    async def startup(self, reason: LifecycleReason) -> None:
        kind = "install" if reason == LifecycleReason.ADDON_INSTALL else "active"
        self._ping(kind, reason=reason.name)

    async def end_study(self, reason: str, ending: EndingAction | None = None) -> None:
        self.endings.append(reason)
        data: dict[str, Any] = {"reason": reason}
        if ending is not None:
            data["category"] = ending.category
            if ending.url:
                data["url"] = ending.url
        self._ping("ending", **data)
        self._ping("exit")

        if self.on_uninstall is not None:
            result = self.on_uninstall()
            if inspect.isawaitable(result):
                await result

    async def get_telemetry_id(self) -> str:
        self.telemetry_id_requests += 1
        return self.client_id

    def info(self) -> dict[str, Any]:
        setup = self.study_setup
        return {
            "study_name": setup.study_name if setup else None,
            "addon": {"id": setup.addon_id, "version": setup.addon_version} if setup else None,
            "variation": self.variation.name if self.variation else None,
            "pings": [p.kind for p in self.pings],
        }

    def _ping(self, kind: str, **data: Any) -> None:
        if self.study_setup is not None and not self.study_setup.telemetry.send:
            log.debug("telemetry.suppressed", kind=kind)
            return
        self.pings.append(Ping(kind=kind, data=data))
        log.debug("telemetry.ping", kind=kind, **data)


__all__ = ["StudySetup", "Ping", "StudyUtils", "UninstallHook", "InMemoryStudyUtils"]
