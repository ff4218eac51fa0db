"""
Quality scoring for ranked papers.

Composite 0-100 score from four components, each scored 0-100:
- Citation impact, relative to the field's typical citations per year
- Venue prestige, from an externalized YAML table
- Content depth, from abstract length and structure
- Recency, exponential decay from the current year

Weights come from the research purpose profile.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import structlog
import yaml

from litrank.models.paper import ContentAvailability, Paper

logger = structlog.get_logger()

DEFAULT_REFERENCE_PATH = Path(__file__).parent.parent / "data" / "quality_reference.yaml"

MAX_VENUE_POINTS = 30.0
FALLBACK_VENUE_SCORE = 12
FALLBACK_FIELD_BASELINE = 3.0

# 100 * 2 ** (-10 / 4.4) ~= 20.7 for a ten year old paper
RECENCY_HALF_LIFE_YEARS = 4.4
RECENCY_FLOOR = 10.0
NEUTRAL_RECENCY = 50.0

# Citation age assumed when the year is unknown
UNKNOWN_YEAR_AGE = 5

# Abstract words for full length credit
FULL_ABSTRACT_WORDS = 200
_STRUCTURE_MARKERS = re.compile(
    r"\b(background|objective|aims?|methods?|methodology|results?|findings|"
    r"conclusions?|discussion|implications)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class QualityWeights:
    """Component weights; must sum to 1.0."""

    citation: float = 0.30
    venue: float = 0.35
    content: float = 0.17
    recency: float = 0.18

    def __post_init__(self) -> None:
        total = self.citation + self.venue + self.content + self.recency
        if not 0.99 <= total <= 1.01:
            raise ValueError(f"Weights must sum to 1.0, got {total}")


@dataclass(frozen=True)
class QualityReference:
    venues: Dict[str, int]
    default_venue_score: int
    field_baselines: Dict[str, float]
    default_field_baseline: float


def load_quality_reference(path: Optional[Path] = None) -> QualityReference:
    """Load venue scores and field baselines from YAML.

    Args:
        path: Path to the reference YAML. Uses the bundled file if None.

    Returns:
        QualityReference, with built-in fallbacks when the file is missing
        or malformed.
    """
    ref_path = path or DEFAULT_REFERENCE_PATH
    fallback = QualityReference({}, FALLBACK_VENUE_SCORE, {}, FALLBACK_FIELD_BASELINE)

    if not ref_path.exists():
        logger.warning("quality_reference_not_found", path=str(ref_path))
        return fallback

    try:
        with open(ref_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error("quality_reference_parse_error", path=str(ref_path), error=str(e))
        return fallback

    if not data:
        logger.warning("quality_reference_empty", path=str(ref_path))
        return fallback

    try:
        reference = QualityReference(
            venues={str(k).lower(): int(v) for k, v in (data.get("venues") or {}).items()},
            default_venue_score=int(data.get("default_venue_score", FALLBACK_VENUE_SCORE)),
            field_baselines={
                str(k).lower(): float(v)
                for k, v in (data.get("field_citation_baselines") or {}).items()
            },
            default_field_baseline=float(
                data.get("default_field_baseline", FALLBACK_FIELD_BASELINE)
            ),
        )
    except (ValueError, TypeError) as e:
        logger.error("quality_reference_value_error", path=str(ref_path), error=str(e))
        return fallback

    logger.info(
        "quality_reference_loaded",
        venues=len(reference.venues),
        fields=len(reference.field_baselines),
    )
    return reference


def current_year() -> int:
    return datetime.now(timezone.utc).year


class QualityScorer:
    """Calculate 0-100 quality scores for papers."""

    def __init__(
        self,
        weights: Optional[QualityWeights] = None,
        reference: Optional[QualityReference] = None,
        year: Optional[int] = None,
    ):
        """Initialize quality scorer.

        Args:
            weights: Component weights (purpose specific).
            reference: Venue and field tables; loaded from YAML if None.
            year: Year treated as "now"; defaults to the current UTC year.
        """
        self.weights = weights or QualityWeights()
        self.reference = reference or load_quality_reference()
        self.year = year or current_year()
        # Longest names first so "social science & medicine" beats "science"
        self._venue_patterns = [
            (re.compile(rf"\b{re.escape(name)}\b"), points)
            for name, points in sorted(
                self.reference.venues.items(), key=lambda kv: len(kv[0]), reverse=True
            )
        ]

    def with_weights(self, weights: QualityWeights) -> "QualityScorer":
        """Same tables and clock, different weights."""
        return QualityScorer(weights=weights, reference=self.reference, year=self.year)

    def score(self, paper: Paper) -> float:
        """Composite quality score (0-100), pure over enriched metadata."""
        components = self.components(paper)
        total = (
            components["citation"] * self.weights.citation
            + components["venue"] * self.weights.venue
            + components["content"] * self.weights.content
            + components["recency"] * self.weights.recency
        )
        return round(max(0.0, min(100.0, total)), 2)

    def components(self, paper: Paper) -> Dict[str, float]:
        return {
            "citation": self.citation_score(paper),
            "venue": self.venue_score(paper.venue),
            "content": self.content_score(paper),
            "recency": self.recency_score(paper.year),
        }

    def recency_score(self, year: Optional[int]) -> float:
        """Exponential decay by age.

        - Unknown year: exactly 50
        - Current or future year: 100
        - Older papers: halves every 4.4 years, floored at 10
        """
        if year is None:
            return NEUTRAL_RECENCY
        age = self.year - year
        if age <= 0:
            return 100.0
        return max(RECENCY_FLOOR, 100.0 * 2 ** (-age / RECENCY_HALF_LIFE_YEARS))

    def citations_per_year(self, paper: Paper) -> float:
        if paper.citations_per_year is not None:
            return paper.citations_per_year
        citations = paper.citation_count or 0
        age = self.year - paper.year if paper.year is not None else UNKNOWN_YEAR_AGE
        return citations / max(1, age)

    def citation_score(self, paper: Paper) -> float:
        """Citations per year relative to the field baseline, log scaled.

        - At the field baseline: 50
        - Three times the baseline or more: 100
        """
        per_year = self.citations_per_year(paper)
        if per_year <= 0:
            return 0.0
        baseline = self.reference.field_baselines.get(
            (paper.domain or "").lower(), self.reference.default_field_baseline
        )
        relative = per_year / baseline
        return min(100.0, 50.0 * math.log2(1 + relative))

    def venue_score(self, venue: Optional[str]) -> float:
        """Case-insensitive whole-word match against known venues."""
        name = (venue or "").lower().strip()
        points = self.reference.default_venue_score
        if name:
            for pattern, venue_points in self._venue_patterns:
                if pattern.search(name):
                    points = venue_points
                    break
        return min(100.0, points / MAX_VENUE_POINTS * 100.0)

    def content_score(self, paper: Paper) -> float:
        """Abstract length (up to 70) plus structure markers (up to 30)."""
        words = paper.abstract_word_count
        if words is None:
            words = len(paper.abstract.split()) if paper.abstract else 0

        length_points = min(1.0, words / FULL_ABSTRACT_WORDS) * 70.0
        markers = {m.lower() for m in _STRUCTURE_MARKERS.findall(paper.abstract or "")}
        structure_points = min(30.0, 10.0 * len(markers))
        if paper.content_availability == ContentAvailability.FULL_TEXT:
            structure_points = max(structure_points, 15.0)
        return min(100.0, length_points + structure_points)

    def score_all(self, papers: List[Paper]) -> List[Paper]:
        """Attach quality scores, keeping input order."""
        scored = [p.with_scores(quality_score=self.score(p)) for p in papers]
        if scored:
            values = [p.quality_score or 0.0 for p in scored]
            logger.info(
                "papers_quality_scored",
                total=len(scored),
                mean=round(sum(values) / len(values), 2),
                top=max(values),
                bottom=min(values),
            )
        return scored
