"""
Diversity-preserving selection of the final paper set.

Two guarantees:
- Quality mix: when there are more papers than the target, sample
  across quality bands instead of truncating to the top K.
- Provider balance: when at least three providers contributed, no
  provider holds more than its share of the output. The cap is enforced
  even when the input is already below the target.

The sampler never returns more papers than it was given.
"""

import math
import random
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import structlog

from litrank.models.config import SamplingConfig
from litrank.models.paper import Paper

logger = structlog.get_logger()

# Quality score bands, best first; paired with SamplingConfig.strata
QUALITY_BANDS: Tuple[Tuple[str, float, float], ...] = (
    ("top", 80.0, float("inf")),
    ("upper_mid", 60.0, 80.0),
    ("mid", 40.0, 60.0),
    ("lower", float("-inf"), 40.0),
)


def rank_key(paper: Paper) -> Tuple[float, float]:
    """Higher is better: relevance first, quality second."""
    return (paper.ranking_score, paper.quality_score or 0.0)


@dataclass(frozen=True)
class SamplingStats:
    input_count: int
    output_count: int
    stratified: bool
    band_counts: Dict[str, int]
    trimmed: Dict[str, int]
    backfilled: int


class DiversitySampler:
    """Trim a ranked candidate set to a target size with diversity."""

    def __init__(self, config: Optional[SamplingConfig] = None):
        self.config = config or SamplingConfig()
        self.last_stats: Optional[SamplingStats] = None

    def _rng(self) -> random.Random:
        return random.Random(self.config.seed)

    def sample(self, papers: List[Paper], target_size: int) -> List[Paper]:
        """Select at most `target_size` papers (never more than given)."""
        if target_size < 1:
            raise ValueError("target_size must be at least 1")
        if not papers:
            self.last_stats = SamplingStats(0, 0, False, {}, {}, 0)
            return []

        band_counts: Dict[str, int] = {}
        if len(papers) > target_size:
            selected = self._stratified(papers, target_size, band_counts)
            stratified = True
        else:
            selected = list(papers)
            stratified = False

        contributing = len({p.source_provider for p in papers})
        trimmed: Dict[str, int] = {}
        backfilled = 0
        if contributing >= self.config.min_providers_for_cap:
            selected, trimmed, backfilled = self._enforce_cap(papers, selected)

        self.last_stats = SamplingStats(
            input_count=len(papers),
            output_count=len(selected),
            stratified=stratified,
            band_counts=band_counts,
            trimmed=trimmed,
            backfilled=backfilled,
        )
        logger.info(
            "diversity_sampling_complete",
            input=len(papers),
            target=target_size,
            output=len(selected),
            stratified=stratified,
            providers=contributing,
            trimmed=trimmed,
            backfilled=backfilled,
        )
        return selected

    def _stratified(
        self, papers: List[Paper], target_size: int, band_counts: Dict[str, int]
    ) -> List[Paper]:
        """Seeded random sample per quality band, then best-quality fill."""
        rng = self._rng()
        chosen: set = set()

        for (label, low, high), share in zip(QUALITY_BANDS, self.config.strata):
            band = [i for i, p in enumerate(papers) if low <= (p.quality_score or 0.0) < high]
            quota = math.floor(target_size * share)
            picked = band if len(band) <= quota else rng.sample(band, quota)
            chosen.update(picked)
            band_counts[label] = len(picked)

        if len(chosen) < target_size:
            remaining = sorted(
                (i for i in range(len(papers)) if i not in chosen),
                key=lambda i: ((papers[i].quality_score or 0.0), papers[i].ranking_score),
                reverse=True,
            )
            filled = remaining[: target_size - len(chosen)]
            chosen.update(filled)
            band_counts["fill"] = len(filled)

        return [papers[i] for i in sorted(chosen)]

    def _enforce_cap(
        self, papers: List[Paper], selected: List[Paper]
    ) -> Tuple[List[Paper], Dict[str, int], int]:
        """Trim the most over-represented provider until every provider
        holds at most ceil(share * n) of the n selected papers.

        The cap rounds up and is never below one paper, so small outputs
        can exceed the configured share: with share 0.3 and n=4 the cap
        is 2, which is 50%.

        Each trimmed paper is replaced, where possible, by the best
        unselected paper from a provider with room under the cap.
        """
        share = self.config.max_provider_share
        selected = list(selected)
        selected_ids = {id(p) for p in selected}
        reserve = sorted(
            (p for p in papers if id(p) not in selected_ids), key=rank_key, reverse=True
        )
        trimmed: Counter = Counter()
        backfilled = 0

        while selected:
            counts = Counter(p.source_provider for p in selected)
            cap = max(1, math.ceil(share * len(selected)))
            provider, count = max(counts.items(), key=lambda kv: (kv[1], kv[0]))
            if count <= cap:
                break

            worst = min(
                (p for p in selected if p.source_provider == provider), key=rank_key
            )
            selected.remove(worst)
            trimmed[provider] += 1
            counts[provider] -= 1

            # A swap keeps n unchanged, so the cap stays the same
            for i, candidate in enumerate(reserve):
                if candidate.source_provider == provider:
                    continue
                if counts[candidate.source_provider] + 1 <= cap:
                    selected.append(reserve.pop(i))
                    backfilled += 1
                    break

        return selected, dict(trimmed), backfilled
