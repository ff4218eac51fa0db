"""Rule-based domain classification.

Keyword patterns are precompiled once. Confidence reflects how
unambiguous the signal is; the default label carries low confidence
and is never grounds for rejection on its own.
"""

import re
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Tuple

import structlog

from litrank.models.paper import Paper

logger = structlog.get_logger()

TOURISM = "tourism"
BIOLOGY = "biology"
SOCIAL_SCIENCE = "social science"
MEDICINE = "medicine"
ENVIRONMENTAL_SCIENCE = "environmental science"
NEUROSCIENCE = "neuroscience"

_TOURISM = re.compile(r"\b(tourism|tourist|travel|vacation|hospitality|visitor)s?\b")
_BIOLOGY = re.compile(r"\b(species|animal|organism|ecology|evolution|genetics|neuron)s?\b")
_SOCIAL = re.compile(r"\b(child|children|human|participant|patient|student)s?\b")
_ANIMAL_SUBJECT = re.compile(
    r"\b(animal|species|organism|fauna|wildlife|creature|primate|monkey|ape|chimpanzee)s?\b"
)

TOURISM_CONFIDENCE = 0.95
BIOLOGY_BASE_CONFIDENCE = 0.85
BIOLOGY_PER_MATCH = 0.05
SOCIAL_CONFIDENCE = 0.90
DEFAULT_CONFIDENCE = 0.60

# Fields a query about X may legitimately return
_EXPECTED = {
    BIOLOGY: frozenset({BIOLOGY, MEDICINE, ENVIRONMENTAL_SCIENCE, NEUROSCIENCE}),
    TOURISM: frozenset({TOURISM, SOCIAL_SCIENCE}),
    SOCIAL_SCIENCE: frozenset({SOCIAL_SCIENCE, MEDICINE}),
}


def classify_domain(text: str) -> Tuple[str, float]:
    """Return (domain, confidence) for a lowercase title + abstract."""
    text = text.lower()
    if _TOURISM.search(text):
        return TOURISM, TOURISM_CONFIDENCE

    bio_matches = len(_BIOLOGY.findall(text))
    if bio_matches >= 2:
        confidence = min(1.0, BIOLOGY_BASE_CONFIDENCE + bio_matches * BIOLOGY_PER_MATCH)
        return BIOLOGY, round(confidence, 2)

    if _SOCIAL.search(text) and "animal" not in text:
        return SOCIAL_SCIENCE, SOCIAL_CONFIDENCE

    return MEDICINE, DEFAULT_CONFIDENCE


def expected_domains(query: str) -> Optional[FrozenSet[str]]:
    """Fields the query is about, or None when the query gives no signal.

    A single keyword is enough for a query (queries are short), unlike
    papers, which need two biology terms.
    """
    q = query.lower()
    if _TOURISM.search(q):
        return _EXPECTED[TOURISM]
    if _BIOLOGY.search(q) or _ANIMAL_SUBJECT.search(q):
        return _EXPECTED[BIOLOGY]
    if _SOCIAL.search(q):
        return _EXPECTED[SOCIAL_SCIENCE]
    return None


@dataclass(frozen=True)
class DomainFilterResult:
    papers: List[Paper]
    expected: Optional[FrozenSet[str]]
    rejected: int


def domain_filter(
    papers: List[Paper], query: str, confidence_threshold: float = 0.80
) -> DomainFilterResult:
    """Classify every paper; reject confident out-of-field papers."""
    expected = expected_domains(query)
    kept = []
    rejected = 0
    for paper in papers:
        domain, confidence = classify_domain(paper.text)
        classified = paper.with_scores(domain=domain, domain_confidence=confidence)
        if expected is not None and domain not in expected and confidence >= confidence_threshold:
            rejected += 1
            continue
        kept.append(classified)

    logger.info(
        "domain_filter_applied",
        expected=sorted(expected) if expected else None,
        input=len(papers),
        rejected=rejected,
    )
    return DomainFilterResult(kept, expected, rejected)
