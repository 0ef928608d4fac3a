"""
onboarding_study
────────────────
Stable top-level exports. Import from here, not from sub-modules directly.
Every name exported here is part of the public API and subject to semver.
"""
from onboarding_study.tier0_core.logging import get_logger
from onboarding_study.tier0_core.errors import (
    StudyError,
    ConfigurationError,
    PreferenceTypeError,
    ValidationError,
    LifecycleError,
)
from onboarding_study.tier0_core.config import (
    ExperimentConfig,
    StudySettings,
    WeightedVariation,
    get_settings,
    load_experiment_config,
)
from onboarding_study.tier0_core.reasons import LifecycleReason

from onboarding_study.tier1_runtime.prefs import PREF_WHITELIST, PreferenceGateway, PrefType
from onboarding_study.tier1_runtime.observers import InMemoryNotificationBus

from onboarding_study.tier2_study.sampling import choose_weighted, hash_fraction
from onboarding_study.tier2_study.variation import (
    VariationAssignment,
    VariationSource,
    choose_variation,
)
from onboarding_study.tier2_study.accounts import SyncTourChecker

from onboarding_study.tier3_onboarding.tours import TourPreferenceSet, tour_preferences_for
from onboarding_study.tier3_onboarding.bridge import ContentMessageBridge
from onboarding_study.tier3_onboarding.context import AddonData, HostContext, in_memory_host
from onboarding_study.tier3_onboarding.lifecycle import LifecyclePhase, StudyOrchestrator

__version__ = "0.1.0"
__all__ = [
    # logging
    "get_logger",
    # errors
    "StudyError", "ConfigurationError", "PreferenceTypeError",
    "ValidationError", "LifecycleError",
    # config
    "ExperimentConfig", "StudySettings", "WeightedVariation",
    "get_settings", "load_experiment_config",
    # reasons
    "LifecycleReason",
    # prefs
    "PREF_WHITELIST", "PreferenceGateway", "PrefType",
    # observers
    "InMemoryNotificationBus",
    # sampling / variation
    "choose_weighted", "hash_fraction",
    "VariationAssignment", "VariationSource", "choose_variation",
    # accounts
    "SyncTourChecker",
    # tours
    "TourPreferenceSet", "tour_preferences_for",
    # bridge
    "ContentMessageBridge",
    # lifecycle
    "AddonData", "HostContext", "in_memory_host",
    "LifecyclePhase", "StudyOrchestrator",
]
