"""
onboarding_study.tier3_onboarding.lifecycle
─────────────────────────────────────────────
Study lifecycle controller. Sequences install / startup / shutdown /
uninstall for the onboarding tour study:

  startup   → study setup, arm assignment, auxiliary module import,
              eligibility gate (fresh install), enrollment ping, fresh-install
              prefs, then onboarding start now or once the browser is ready.
  shutdown  → on disable/uninstall, the first call ends the study
              ("user-disable") and returns; the host answers the ending by
              uninstalling, which calls shutdown again, and that second call
              unloads modules. Listener cleanup runs on every call.

Phases: NOT_STARTED → WAITING_FOR_BROWSER_READY → RUNNING → ENDING → ENDED.
ENDING is entered once per process; it is the ending guard.
"""
from __future__ import annotations

from enum import Enum
from typing import Any

from onboarding_study.tier0_core.config import ExperimentConfig, StudySettings, get_settings
from onboarding_study.tier0_core.errors import LifecycleError
from onboarding_study.tier0_core.logging import get_logger
from onboarding_study.tier0_core.metrics import study_endings
from onboarding_study.tier0_core.reasons import TERMINATING_REASONS, LifecycleReason, describe
from onboarding_study.tier1_runtime.observers import BROWSER_READY, SESSION_RESTORED
from onboarding_study.tier1_runtime.prefs import PreferenceGateway
from onboarding_study.tier2_study.accounts import SyncTourChecker
from onboarding_study.tier2_study.telemetry import StudySetup
from onboarding_study.tier2_study.variation import VariationAssignment, choose_variation
from onboarding_study.tier3_onboarding.bridge import ContentMessageBridge
from onboarding_study.tier3_onboarding.context import AddonData, HostContext, bind_study_context
from onboarding_study.tier3_onboarding.tours import (
    TourPreferenceSet,
    apply_fresh_install_preferences,
    tour_preferences_for,
)

log = get_logger(__name__)

# The controller's own config and telemetry modules, unloaded last.
CORE_MODULES = (
    "onboarding_study.tier0_core.config",
    "onboarding_study.tier2_study.telemetry",
)


class LifecyclePhase(str, Enum):
    NOT_STARTED = "not-started"
    WAITING_FOR_BROWSER_READY = "waiting-for-browser-ready"
    RUNNING = "running"
    ENDING = "ending"
    ENDED = "ended"


_TRANSITIONS: dict[LifecyclePhase, frozenset[LifecyclePhase]] = {
    LifecyclePhase.NOT_STARTED: frozenset({
        LifecyclePhase.WAITING_FOR_BROWSER_READY,
        LifecyclePhase.RUNNING,
        LifecyclePhase.ENDING,
    }),
    LifecyclePhase.WAITING_FOR_BROWSER_READY: frozenset({
        LifecyclePhase.RUNNING,
        LifecyclePhase.ENDING,
    }),
    LifecyclePhase.RUNNING: frozenset({LifecyclePhase.ENDING}),
    LifecyclePhase.ENDING: frozenset({LifecyclePhase.ENDED}),
    LifecyclePhase.ENDED: frozenset(),
}

_ENDING_PHASES = frozenset({LifecyclePhase.ENDING, LifecyclePhase.ENDED})


class StudyOrchestrator:
    def __init__(
        self,
        config: ExperimentConfig,
        host: HostContext,
        settings: StudySettings | None = None,
    ) -> None:
        self._config = config
        self._host = host
        self._settings = settings or get_settings()
        self._phase = LifecyclePhase.NOT_STARTED
        self._variation: VariationAssignment | None = None
        self._waiting_for_browser_ready = False
        self._waiting_for_session_restore = False

        self.gateway = PreferenceGateway(host.prefs)
        self.tracker = SyncTourChecker(host.prefs, host.bus, host.accounts)
        self.bridge = ContentMessageBridge(host.messages, self.gateway, self.tracker)

    # ── State ─────────────────────────────────────────────────────────────────

    @property
    def phase(self) -> LifecyclePhase:
        return self._phase

    @property
    def is_ending(self) -> bool:
        return self._phase in _ENDING_PHASES

    @property
    def variation(self) -> VariationAssignment | None:
        return self._variation

    @property
    def tour_preferences(self) -> TourPreferenceSet | None:
        if self._variation is None:
            return None
        return tour_preferences_for(self._variation.name)

    @property
    def waiting_for_browser_ready(self) -> bool:
        return self._waiting_for_browser_ready

    def _transition(self, target: LifecyclePhase) -> None:
        if target not in _TRANSITIONS[self._phase]:
            raise LifecycleError(
                user_message=f"Illegal lifecycle transition {self._phase.value} -> {target.value}",
                current=self._phase.value,
                target=target.value,
            )
        log.debug("study.phase", previous=self._phase.value, phase=target.value)
        self._phase = target

    def _halted(self, step: str) -> bool:
        if self.is_ending:
            log.info("study.startup_halted", step=step, phase=self._phase.value)
            return True
        return False

    # ── Host entry points ─────────────────────────────────────────────────────

    def install(self, addon: AddonData, reason: int | LifecycleReason) -> None:
        log.debug("study.install", addon_id=addon.id, reason=describe(reason))

    def uninstall(self, addon: AddonData, reason: int | LifecycleReason) -> None:
        log.debug("study.uninstall", addon_id=addon.id, reason=describe(reason))

    async def startup(self, addon: AddonData, reason: int | LifecycleReason) -> None:
        reason = LifecycleReason.from_code(reason)
        if self._phase is not LifecyclePhase.NOT_STARTED:
            raise LifecycleError(
                user_message=f"startup() called in phase {self._phase.value}",
                current=self._phase.value,
            )
        log.debug("study.startup", addon_id=addon.id, reason=reason.name)

        study_utils = self._host.study_utils
        study_utils.setup(StudySetup(
            study_name=self._config.study_name,
            endings=self._config.endings,
            addon_id=addon.id,
            addon_version=addon.version,
            telemetry=self._config.telemetry,
        ))
        study_utils.set_logging_level(self._settings.study_utils_log_level)

        self._variation = await choose_variation(self._config, study_utils)
        study_utils.set_variation(self._variation)
        bind_study_context(self._config.study_name, addon, self._variation.name)
        if self._halted("variation"):
            return

        self._host.loader.import_modules(self._config.modules)

        fresh_install = reason is LifecycleReason.ADDON_INSTALL
        if fresh_install:
            await study_utils.first_seen()
            eligible = await self._host.is_eligible()
            if self._halted("eligibility"):
                return
            if not eligible:
                log.info("study.ineligible")
                await self.end_study("ineligible")
                return

        await study_utils.startup(reason)
        log.info("study.info", info=study_utils.info())
        if self._halted("telemetry-startup"):
            return

        if fresh_install:
            apply_fresh_install_preferences(
                self._host.prefs, tour_preferences_for(self._variation.name)
            )

        # Only start onboarding once the browser UI is ready.
        if self._host.starting_up():
            self._transition(LifecyclePhase.WAITING_FOR_BROWSER_READY)
            self._host.bus.subscribe(BROWSER_READY, self.observe)
            self._host.bus.subscribe(SESSION_RESTORED, self.observe)
            self._waiting_for_browser_ready = True
            self._waiting_for_session_restore = True
            log.debug("study.deferred", until=BROWSER_READY)
        else:
            self._on_browser_ready()
            await self.tracker.init()

    async def observe(self, subject: Any, topic: str, data: Any = None) -> None:
        """Notification handler for the deferred-startup topics."""
        if topic == BROWSER_READY:
            self._host.bus.unsubscribe(BROWSER_READY, self.observe)
            self._waiting_for_browser_ready = False
            self._on_browser_ready()
        elif topic == SESSION_RESTORED:
            self._host.bus.unsubscribe(SESSION_RESTORED, self.observe)
            self._waiting_for_session_restore = False
            if self.is_ending:
                return
            await self.tracker.init()

    def _on_browser_ready(self) -> None:
        """Continue startup once the browser is ready."""
        if self._halted("browser-ready"):
            return
        self._transition(LifecyclePhase.RUNNING)
        tours = self._host.tours
        tours.check_tour_type()
        self._host.messages.load_frame_script(tours.frame_script_url, True)
        self.bridge.start()
        log.info("study.running")

    async def end_study(self, reason: str) -> None:
        """End the study once; later calls are ignored."""
        if self.is_ending:
            log.debug("study.end_ignored", reason=reason, phase=self._phase.value)
            return
        self._transition(LifecyclePhase.ENDING)
        log.info("study.ending", reason=reason)
        study_endings(reason=reason).inc()
        await self._host.study_utils.end_study(reason, self._config.endings.get(reason))

    async def shutdown(self, addon: AddonData, reason: int | LifecycleReason) -> None:
        reason = LifecycleReason.from_code(reason)
        log.debug("study.shutdown", addon_id=addon.id, reason=reason.name, phase=self._phase.value)
        try:
            if reason in TERMINATING_REASONS:
                if not self.is_ending:
                    # First requester: the user disabled or removed the add-on.
                    log.info("study.user_disable")
                    await self.end_study("user-disable")
                    return
                self._unload_modules()
        finally:
            self._teardown_listeners()

    def _unload_modules(self) -> None:
        if self._phase is LifecyclePhase.ENDED:
            return
        log.debug("study.unloading")
        self._host.loader.unload_modules(self._config.modules)
        self._host.loader.unload_modules(CORE_MODULES)
        self._transition(LifecyclePhase.ENDED)

    def _teardown_listeners(self) -> None:
        bus = self._host.bus
        if self._waiting_for_browser_ready:
            bus.unsubscribe(BROWSER_READY, self.observe)
            self._waiting_for_browser_ready = False
        if self._waiting_for_session_restore:
            bus.unsubscribe(SESSION_RESTORED, self.observe)
            self._waiting_for_session_restore = False
        self.bridge.stop()
        self.tracker.uninit()


__all__ = ["CORE_MODULES", "LifecyclePhase", "StudyOrchestrator"]
