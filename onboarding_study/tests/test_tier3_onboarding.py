"""Tests for tier3_onboarding modules (tours, bridge, lifecycle)."""
from __future__ import annotations

import pytest

from onboarding_study.tier0_core.config import ExperimentConfig, WeightedVariation
from onboarding_study.tier0_core.errors import ConfigurationError, LifecycleError, ValidationError
from onboarding_study.tier0_core.reasons import LifecycleReason
from onboarding_study.tier1_runtime.messages import (
    CONTENT_MESSAGE,
    LOGIN_STATUS_RESPONSE,
    ContentMessage,
    InMemoryMessageManager,
    RecordingTarget,
)
from onboarding_study.tier1_runtime.observers import BROWSER_READY, LOGIN, SESSION_RESTORED
from onboarding_study.tier1_runtime.prefs import InMemoryPreferenceStore, PreferenceGateway
from onboarding_study.tier2_study.accounts import (
    SYNC_TOUR_COMPLETED_PREF,
    MockAccountsProvider,
    SyncTourChecker,
)
from onboarding_study.tier3_onboarding.bridge import ContentMessageBridge
from onboarding_study.tier3_onboarding.context import in_memory_host
from onboarding_study.tier3_onboarding.lifecycle import (
    CORE_MODULES,
    LifecyclePhase,
    StudyOrchestrator,
)
from onboarding_study.tier3_onboarding.tours import (
    DEFAULT_TOURS,
    FRAME_SCRIPT_URL,
    TourPreferenceSet,
    apply_fresh_install_preferences,
    tour_preferences_for,
)

FORCED_VAR4 = ExperimentConfig(
    study_name="onboarding-tour-study",
    fixed_variation="var4",
    modules=("json",),
)


# ── tours ──────────────────────────────────────────────────────────────────

class TestTours:
    def test_var4_row(self):
        tours = tour_preferences_for("var4")
        assert tours == TourPreferenceSet(
            tour_order=("private", "default", "addons", "customize", "search", "sync"),
            max_impressions_per_tour=2,
            max_lifetime_per_tour_ms=21600000,
            first_session_mute_ms=60000,
        )
        assert tours.tour_order_pref == "private,default,addons,customize,search,sync"

    @pytest.mark.parametrize("name", ["control", "", "VAR1", "default"])
    def test_unknown_variation_gets_default_row(self, name):
        assert tour_preferences_for(name) == DEFAULT_TOURS
        assert DEFAULT_TOURS.max_lifetime_per_tour_ms == 86400000
        assert DEFAULT_TOURS.first_session_mute_ms == 300000

    def test_var2_order(self):
        assert tour_preferences_for("var2").tour_order_pref == "private,search,addons,customize,default,sync"

    def test_fresh_install_prefs_replace_stale_branch(self):
        store = InMemoryPreferenceStore({
            "browser.onboarding.notification.prompt-count": 9,
            "browser.onboarding.tour.onboarding-tour-sync.completed": True,
            "browser.startup.homepage": "about:home",
        })
        apply_fresh_install_preferences(store, tour_preferences_for("var1"))
        assert store.snapshot() == {
            "browser.startup.homepage": "about:home",
            "browser.onboarding.enabled": True,
            "browser.onboarding.tourset-version": 1,
            "browser.onboarding.hidden": False,
            "browser.onboarding.notification.finished": False,
            "browser.onboarding.updatetour": "",
            "extensions.screenshots.disabled": False,
            "browser.onboarding.notification.mute-duration-on-first-session-ms": 120000,
            "browser.onboarding.notification.max-life-time-per-tour-ms": 43200000,
            "browser.onboarding.notification.max-prompt-count-per-tour": 4,
            "browser.onboarding.newtour": "private,addons,customize,search,default,sync",
        }


# ── bridge ─────────────────────────────────────────────────────────────────

@pytest.fixture
def bridge_parts(prefs, bus):
    messages = InMemoryMessageManager()
    tracker = SyncTourChecker(prefs, bus, MockAccountsProvider(None))
    bridge = ContentMessageBridge(messages, PreferenceGateway(prefs), tracker)
    bridge.start()
    return messages, tracker, bridge


def _message(data):
    return ContentMessage(name=CONTENT_MESSAGE, data=data, target=RecordingTarget())


class TestContentMessageBridge:
    @pytest.mark.asyncio
    async def test_set_prefs_forwards_to_gateway(self, prefs, bridge_parts):
        messages, _, _ = bridge_parts
        msg = _message({
            "action": "set-prefs",
            "params": [
                {"name": "browser.onboarding.notification.finished", "value": True},
                {"name": "browser.onboarding.enabled.not-listed", "value": False},
            ],
        })
        await messages.dispatch(msg)
        assert prefs.snapshot() == {"browser.onboarding.notification.finished": True}
        assert msg.target.sent == []

    @pytest.mark.asyncio
    async def test_get_login_status_replies(self, bus, bridge_parts):
        messages, tracker, _ = bridge_parts
        msg = _message({"action": "get-login-status"})
        await messages.dispatch(msg)
        assert msg.target.sent == [(LOGIN_STATUS_RESPONSE, {"isLoggedIn": False})]

        tracker.register()
        await bus.notify(LOGIN)
        await messages.dispatch(msg)
        assert msg.target.sent[-1] == (LOGIN_STATUS_RESPONSE, {"isLoggedIn": True})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [{"action": "reset-everything"}, {}, "set-prefs", None])
    async def test_unknown_messages_ignored(self, prefs, bridge_parts, data):
        messages, _, _ = bridge_parts
        msg = _message(data)
        await messages.dispatch(msg)
        assert prefs.snapshot() == {}
        assert msg.target.sent == []

    @pytest.mark.asyncio
    async def test_malformed_set_prefs_raises(self, bridge_parts):
        messages, _, _ = bridge_parts
        with pytest.raises(ValidationError):
            await messages.dispatch(_message({"action": "set-prefs", "params": 5}))

    def test_start_stop_idempotent(self, bridge_parts):
        messages, _, bridge = bridge_parts
        bridge.start()
        assert messages.listener_count(CONTENT_MESSAGE) == 1
        bridge.stop()
        bridge.stop()
        assert messages.listener_count(CONTENT_MESSAGE) == 0
        assert not bridge.listening


# ── lifecycle ──────────────────────────────────────────────────────────────

def _wire_uninstall(orchestrator, host, addon):
    """Make the in-memory host answer an ending by uninstalling the add-on."""
    async def _uninstall():
        await orchestrator.shutdown(addon, LifecycleReason.ADDON_UNINSTALL)

    host.study_utils.on_uninstall = _uninstall


class TestStartup:
    @pytest.mark.asyncio
    async def test_fresh_install_late_attach(self, host, addon):
        orchestrator = StudyOrchestrator(FORCED_VAR4, host)
        await orchestrator.startup(addon, LifecycleReason.ADDON_INSTALL)

        assert orchestrator.phase is LifecyclePhase.RUNNING
        assert orchestrator.variation.name == "var4"
        assert host.study_utils.variation == orchestrator.variation
        assert host.study_utils.study_setup.addon_id == addon.id
        assert [p.kind for p in host.study_utils.pings] == ["enter", "install"]
        assert host.loader.imported == ["json"]
        assert host.prefs.get("browser.onboarding.newtour") == "private,default,addons,customize,search,sync"
        assert host.prefs.get("browser.onboarding.notification.max-prompt-count-per-tour") == 2
        assert host.prefs.get("browser.onboarding.enabled") is True
        assert host.tours.checks == 1
        assert host.messages.frame_scripts == [(FRAME_SCRIPT_URL, True)]
        assert orchestrator.bridge.listening
        assert orchestrator.tracker.registered

    @pytest.mark.asyncio
    async def test_app_startup_writes_no_prefs(self, host, addon):
        host.prefs.set_int("browser.onboarding.notification.prompt-count", 3)
        orchestrator = StudyOrchestrator(FORCED_VAR4, host)
        await orchestrator.startup(addon, LifecycleReason.APP_STARTUP)
        assert host.prefs.snapshot() == {"browser.onboarding.notification.prompt-count": 3}
        assert [p.kind for p in host.study_utils.pings] == ["active"]
        assert orchestrator.phase is LifecyclePhase.RUNNING

    @pytest.mark.asyncio
    async def test_study_utils_logging_level_from_settings(self, host, addon, monkeypatch):
        from onboarding_study.tier0_core.config import StudySettings

        monkeypatch.setenv("STUDY_UTILS_LOG_LEVEL", "error")
        orchestrator = StudyOrchestrator(FORCED_VAR4, host, StudySettings())
        await orchestrator.startup(addon, LifecycleReason.APP_STARTUP)
        assert host.study_utils.logging_level == "ERROR"

    @pytest.mark.asyncio
    async def test_weighted_assignment_used_when_not_forced(self, experiment_config, host, addon):
        orchestrator = StudyOrchestrator(experiment_config, host)
        await orchestrator.startup(addon, LifecycleReason.ADDON_INSTALL)
        assert orchestrator.variation.name in {"var1", "var4"}
        assert orchestrator.tour_preferences == tour_preferences_for(orchestrator.variation.name)

    @pytest.mark.asyncio
    async def test_bad_table_is_fatal_at_startup(self, host, addon):
        config = ExperimentConfig(
            study_name="broken",
            weighted_variations=(WeightedVariation(name="A", weight=0),),
        )
        orchestrator = StudyOrchestrator(config, host)
        with pytest.raises(ConfigurationError):
            await orchestrator.startup(addon, LifecycleReason.ADDON_INSTALL)
        assert host.prefs.snapshot() == {}
        assert host.study_utils.pings == []

    @pytest.mark.asyncio
    async def test_startup_twice_rejected(self, host, addon):
        orchestrator = StudyOrchestrator(FORCED_VAR4, host)
        await orchestrator.startup(addon, LifecycleReason.APP_STARTUP)
        with pytest.raises(LifecycleError):
            await orchestrator.startup(addon, LifecycleReason.APP_STARTUP)

    @pytest.mark.asyncio
    async def test_collaborator_failure_propagates(self, host, addon):
        async def boom(reason):
            raise RuntimeError("telemetry down")

        host.study_utils.startup = boom
        orchestrator = StudyOrchestrator(FORCED_VAR4, host)
        with pytest.raises(RuntimeError, match="telemetry down"):
            await orchestrator.startup(addon, LifecycleReason.ADDON_INSTALL)
        assert host.prefs.snapshot() == {}


class TestIneligible:
    @pytest.mark.asyncio
    async def test_ineligible_install_ends_study_and_halts(self, addon):
        host = in_memory_host(eligible=False, client_id="x")
        orchestrator = StudyOrchestrator(FORCED_VAR4, host)
        _wire_uninstall(orchestrator, host, addon)

        await orchestrator.startup(addon, LifecycleReason.ADDON_INSTALL)

        assert host.study_utils.endings == ["ineligible"]
        assert orchestrator.phase is LifecyclePhase.ENDED
        assert host.prefs.snapshot() == {}
        assert host.tours.checks == 0
        assert host.messages.frame_scripts == []
        assert "install" not in [p.kind for p in host.study_utils.pings]
        assert host.loader.unloaded == ["json", *CORE_MODULES]

    @pytest.mark.asyncio
    async def test_eligibility_not_checked_on_app_startup(self, addon):
        host = in_memory_host(eligible=False)
        orchestrator = StudyOrchestrator(FORCED_VAR4, host)
        await orchestrator.startup(addon, LifecycleReason.APP_STARTUP)
        assert host.study_utils.endings == []
        assert orchestrator.phase is LifecyclePhase.RUNNING


class TestDeferredStartup:
    @pytest.mark.asyncio
    async def test_waits_for_browser_ready(self, addon):
        host = in_memory_host(starting_up=True)
        orchestrator = StudyOrchestrator(FORCED_VAR4, host)
        await orchestrator.startup(addon, LifecycleReason.ADDON_INSTALL)

        assert orchestrator.phase is LifecyclePhase.WAITING_FOR_BROWSER_READY
        assert orchestrator.waiting_for_browser_ready
        assert host.tours.checks == 0
        assert not orchestrator.tracker.registered
        # Prefs are written before onboarding starts.
        assert host.prefs.get("browser.onboarding.newtour") is not None

        await host.bus.notify(BROWSER_READY)
        assert orchestrator.phase is LifecyclePhase.RUNNING
        assert not host.bus.is_subscribed(BROWSER_READY, orchestrator.observe)
        assert host.messages.listener_count(CONTENT_MESSAGE) == 1
        assert not orchestrator.tracker.registered

        await host.bus.notify(SESSION_RESTORED)
        assert orchestrator.tracker.registered
        assert not host.bus.is_subscribed(SESSION_RESTORED, orchestrator.observe)

    @pytest.mark.asyncio
    async def test_session_restore_picks_up_existing_login(self, addon):
        host = in_memory_host(starting_up=True, signed_in_user={"uid": "u1"})
        orchestrator = StudyOrchestrator(FORCED_VAR4, host)
        await orchestrator.startup(addon, LifecycleReason.APP_STARTUP)
        await host.bus.notify(SESSION_RESTORED)
        assert orchestrator.tracker.is_logged_in()
        assert host.prefs.get(SYNC_TOUR_COMPLETED_PREF) is True

    @pytest.mark.asyncio
    async def test_shutdown_before_browser_ready_removes_listeners(self, addon):
        host = in_memory_host(starting_up=True)
        orchestrator = StudyOrchestrator(FORCED_VAR4, host)
        await orchestrator.startup(addon, LifecycleReason.APP_STARTUP)
        await orchestrator.shutdown(addon, LifecycleReason.APP_SHUTDOWN)

        assert host.bus.subscriber_count(BROWSER_READY) == 0
        assert host.bus.subscriber_count(SESSION_RESTORED) == 0
        assert not orchestrator.waiting_for_browser_ready
        await host.bus.notify(BROWSER_READY)
        assert host.tours.checks == 0


class TestShutdown:
    @pytest.mark.asyncio
    async def test_user_disable_ends_once_and_unloads_once(self, host, addon):
        orchestrator = StudyOrchestrator(FORCED_VAR4, host)
        _wire_uninstall(orchestrator, host, addon)
        await orchestrator.startup(addon, LifecycleReason.ADDON_INSTALL)

        await orchestrator.shutdown(addon, LifecycleReason.ADDON_DISABLE)

        assert host.study_utils.endings == ["user-disable"]
        assert host.loader.unload_calls == 2
        assert host.loader.unloaded == ["json", *CORE_MODULES]
        assert orchestrator.phase is LifecyclePhase.ENDED
        assert not orchestrator.tracker.registered
        assert not orchestrator.bridge.listening

    @pytest.mark.asyncio
    async def test_first_terminating_call_does_not_unload(self, host, addon):
        orchestrator = StudyOrchestrator(FORCED_VAR4, host)
        await orchestrator.startup(addon, LifecycleReason.APP_STARTUP)

        await orchestrator.shutdown(addon, LifecycleReason.ADDON_UNINSTALL)
        assert orchestrator.phase is LifecyclePhase.ENDING
        assert host.loader.unloaded == []
        assert not orchestrator.tracker.registered

        # The host's own teardown call.
        await orchestrator.shutdown(addon, LifecycleReason.ADDON_UNINSTALL)
        assert orchestrator.phase is LifecyclePhase.ENDED
        assert host.loader.unloaded == ["json", *CORE_MODULES]

        # Any further call is a no-op for telemetry and unloading.
        await orchestrator.shutdown(addon, LifecycleReason.ADDON_UNINSTALL)
        assert host.study_utils.endings == ["user-disable"]
        assert host.loader.unload_calls == 2

    @pytest.mark.asyncio
    async def test_end_study_twice_reports_once(self, host, addon):
        orchestrator = StudyOrchestrator(FORCED_VAR4, host)
        _wire_uninstall(orchestrator, host, addon)
        await orchestrator.startup(addon, LifecycleReason.APP_STARTUP)

        await orchestrator.end_study("expired")
        await orchestrator.end_study("expired")

        assert host.study_utils.endings == ["expired"]
        assert host.loader.unload_calls == 2

    @pytest.mark.asyncio
    async def test_end_study_passes_configured_ending(self, experiment_config, host, addon):
        orchestrator = StudyOrchestrator(experiment_config, host)
        await orchestrator.startup(addon, LifecycleReason.APP_STARTUP)
        await orchestrator.shutdown(addon, LifecycleReason.ADDON_DISABLE)
        ending = host.study_utils.pings[-2]
        assert ending.kind == "ending"
        assert ending.data["url"] == "https://example.com/survey"

    @pytest.mark.asyncio
    async def test_app_shutdown_keeps_study_active(self, host, addon):
        orchestrator = StudyOrchestrator(FORCED_VAR4, host)
        await orchestrator.startup(addon, LifecycleReason.APP_STARTUP)
        await orchestrator.shutdown(addon, LifecycleReason.APP_SHUTDOWN)

        assert orchestrator.phase is LifecyclePhase.RUNNING
        assert host.study_utils.endings == []
        assert host.loader.unloaded == []
        assert not orchestrator.tracker.registered
        assert not orchestrator.bridge.listening

    @pytest.mark.asyncio
    async def test_disable_during_deferred_startup(self, addon):
        host = in_memory_host(starting_up=True)
        orchestrator = StudyOrchestrator(FORCED_VAR4, host)
        _wire_uninstall(orchestrator, host, addon)
        await orchestrator.startup(addon, LifecycleReason.APP_STARTUP)

        await orchestrator.shutdown(addon, LifecycleReason.ADDON_DISABLE)
        await host.bus.notify(BROWSER_READY)
        await host.bus.notify(SESSION_RESTORED)

        assert orchestrator.phase is LifecyclePhase.ENDED
        assert host.tours.checks == 0
        assert not orchestrator.tracker.registered

    @pytest.mark.asyncio
    async def test_shutdown_racing_startup_blocks_pref_writes(self, addon):
        host = in_memory_host(client_id="x")
        orchestrator = StudyOrchestrator(FORCED_VAR4, host)

        async def disabled_mid_check() -> bool:
            await orchestrator.shutdown(addon, LifecycleReason.ADDON_DISABLE)
            return True

        host.is_eligible = disabled_mid_check
        await orchestrator.startup(addon, LifecycleReason.ADDON_INSTALL)

        assert host.study_utils.endings == ["user-disable"]
        assert host.prefs.snapshot() == {}
        assert host.tours.checks == 0
        assert orchestrator.phase is LifecyclePhase.ENDING
