"""
Research purpose profiles.

Each purpose bundles the thresholds and weights its methodology needs:

| Purpose               | Target | Quality gate | Distinctiveness | Neural T0/T1 |
|-----------------------|--------|--------------|-----------------|--------------|
| q_methodology         | 600    | 40 -> 20     | 0.10            | 0.40 / 0.25  |
| qualitative_analysis  | 100    | 60 -> 40     | 0.15            | 0.45 / 0.30  |
| literature_synthesis  | 450    | 70 -> 50     | 0.20            | 0.50 / 0.35  |
| hypothesis_generation | 150    | 60 -> 40     | 0.20            | 0.45 / 0.30  |
| survey_construction   | 150    | 60 -> 40     | 0.25            | 0.50 / 0.35  |

Breadth-oriented purposes (Q-methodology) use loose thresholds and zero
venue weight to avoid mainstream bias. Unknown purposes resolve to
literature_synthesis, the strictest general-purpose profile.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import structlog

from litrank.models.paper import ContentAvailability, Paper
from litrank.models.search import ResearchPurpose
from litrank.services.quality_scorer import QualityWeights

logger = structlog.get_logger()

DEFAULT_PURPOSE = ResearchPurpose.LITERATURE_SYNTHESIS

# Full text gives the embedding more signal, so slightly lower bars apply
FULL_TEXT_RELAXATION = 0.05

# Allowed range for any single quality component weight
WEIGHT_RANGE = (0.0, 0.6)


@dataclass(frozen=True)
class PurposeProfile:
    purpose: ResearchPurpose
    target_size: int
    quality_weights: QualityWeights
    quality_threshold: float
    quality_threshold_min: float
    min_distinctiveness: float
    neural_tier0: float
    neural_tier1: float

    def __post_init__(self) -> None:
        low, high = WEIGHT_RANGE
        for name in ("citation", "venue", "content", "recency"):
            value = getattr(self.quality_weights, name)
            if not low <= value <= high:
                raise ValueError(f"{self.purpose.value}: {name} weight {value} outside {WEIGHT_RANGE}")
        if not 0.0 < self.neural_tier1 <= self.neural_tier0 <= 1.0:
            raise ValueError(f"{self.purpose.value}: need 0 < tier1 <= tier0 <= 1")
        if self.quality_threshold_min > self.quality_threshold:
            raise ValueError(f"{self.purpose.value}: quality floor above initial threshold")

    @property
    def quality_relaxation_steps(self) -> Tuple[float, ...]:
        """Initial quality threshold stepping down by 5 to the floor."""
        steps = []
        threshold = self.quality_threshold
        while threshold > self.quality_threshold_min:
            steps.append(threshold)
            threshold -= 5.0
        steps.append(self.quality_threshold_min)
        return tuple(steps)

    def neural_threshold(self, tier: int, paper: Paper) -> float:
        """Tier 0 or 1 threshold for one paper, relaxed for full text."""
        base = self.neural_tier0 if tier == 0 else self.neural_tier1
        if paper.content_availability == ContentAvailability.FULL_TEXT:
            return max(0.0, base - FULL_TEXT_RELAXATION)
        return base


PURPOSE_PROFILES = {
    ResearchPurpose.Q_METHODOLOGY: PurposeProfile(
        purpose=ResearchPurpose.Q_METHODOLOGY,
        target_size=600,
        quality_weights=QualityWeights(citation=0.20, venue=0.0, content=0.50, recency=0.30),
        quality_threshold=40.0,
        quality_threshold_min=20.0,
        min_distinctiveness=0.10,
        neural_tier0=0.40,
        neural_tier1=0.25,
    ),
    ResearchPurpose.QUALITATIVE_ANALYSIS: PurposeProfile(
        purpose=ResearchPurpose.QUALITATIVE_ANALYSIS,
        target_size=100,
        quality_weights=QualityWeights(citation=0.25, venue=0.25, content=0.35, recency=0.15),
        quality_threshold=60.0,
        quality_threshold_min=40.0,
        min_distinctiveness=0.15,
        neural_tier0=0.45,
        neural_tier1=0.30,
    ),
    ResearchPurpose.LITERATURE_SYNTHESIS: PurposeProfile(
        purpose=ResearchPurpose.LITERATURE_SYNTHESIS,
        target_size=450,
        quality_weights=QualityWeights(),
        quality_threshold=70.0,
        quality_threshold_min=50.0,
        min_distinctiveness=0.20,
        neural_tier0=0.50,
        neural_tier1=0.35,
    ),
    ResearchPurpose.HYPOTHESIS_GENERATION: PurposeProfile(
        purpose=ResearchPurpose.HYPOTHESIS_GENERATION,
        target_size=150,
        quality_weights=QualityWeights(citation=0.25, venue=0.25, content=0.30, recency=0.20),
        quality_threshold=60.0,
        quality_threshold_min=40.0,
        min_distinctiveness=0.20,
        neural_tier0=0.45,
        neural_tier1=0.30,
    ),
    ResearchPurpose.SURVEY_CONSTRUCTION: PurposeProfile(
        purpose=ResearchPurpose.SURVEY_CONSTRUCTION,
        target_size=150,
        quality_weights=QualityWeights(citation=0.25, venue=0.30, content=0.30, recency=0.15),
        quality_threshold=60.0,
        quality_threshold_min=40.0,
        min_distinctiveness=0.25,
        neural_tier0=0.50,
        neural_tier1=0.35,
    ),
}


def resolve_purpose_profile(purpose: Optional[str]) -> PurposeProfile:
    """Profile for a purpose string.

    None means the caller stated no purpose and gets the default. An
    unrecognized value also gets the default, logged as a warning.
    """
    if purpose is None:
        logger.info("research_purpose_defaulted", purpose=DEFAULT_PURPOSE.value)
        return PURPOSE_PROFILES[DEFAULT_PURPOSE]
    try:
        return PURPOSE_PROFILES[ResearchPurpose(purpose.strip().lower())]
    except ValueError:
        logger.warning(
            "unknown_research_purpose",
            purpose=purpose,
            fallback=DEFAULT_PURPOSE.value,
            known=[p.value for p in ResearchPurpose],
        )
        return PURPOSE_PROFILES[DEFAULT_PURPOSE]
