"""
onboarding_study.tier2_study.variation
────────────────────────────────────────
Variation chooser. Assigns the client to one arm of the study, either the
arm forced by configuration or a hash-derived weighted pick seeded with
study name + telemetry client id (same client, same arm, every startup).
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from onboarding_study.tier0_core.config import ExperimentConfig
from onboarding_study.tier0_core.logging import get_logger
from onboarding_study.tier0_core.metrics import variation_assigned
from onboarding_study.tier2_study.sampling import DEFAULT_HASH_BITS, validate_table
from onboarding_study.tier2_study.telemetry import StudyUtils

log = get_logger(__name__)


class VariationSource(str, Enum):
    STARTUP_CONFIG = "startup-config"
    WEIGHTED = "weighted"


@dataclass(frozen=True)
class VariationAssignment:
    name: str
    source: VariationSource


async def choose_variation(
    config: ExperimentConfig, study_utils: StudyUtils
) -> VariationAssignment:
    if config.fixed_variation:
        assignment = VariationAssignment(
            name=config.fixed_variation, source=VariationSource.STARTUP_CONFIG
        )
    else:
        # Fail before touching the client id: a bad table must never pick a default arm.
        validate_table(config.weighted_variations)
        client_id = await study_utils.get_telemetry_id()
        fraction = await study_utils.sample.hash_fraction(
            config.study_name + client_id, DEFAULT_HASH_BITS
        )
        chosen = study_utils.sample.choose_weighted(config.weighted_variations, fraction)
        assignment = VariationAssignment(name=chosen.name, source=VariationSource.WEIGHTED)

    log.debug("variation.chosen", variation=assignment.name, source=assignment.source.value)
    variation_assigned(variation=assignment.name, source=assignment.source.value).inc()
    return assignment


__all__ = ["VariationSource", "VariationAssignment", "choose_variation"]
