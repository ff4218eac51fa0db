"""Aspect extraction and filtering.

The query states constraints (animal subjects, empirical research rather
than tourism or applications, a behavior type); papers that contradict
them are rejected.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from litrank.models.paper import Paper

logger = structlog.get_logger()

_ANIMALS = re.compile(r"\b(animal|species|organism|fauna|wildlife|creature)s?\b")
_PRIMATES = re.compile(r"\b(primate|monkey|ape|chimpanzee|gorilla|orangutan)s?\b")
_HUMANS = re.compile(r"\b(human|child|children|patient|participant|people)s?\b")
_TOURISM = re.compile(r"\b(tourism|tourist|travel|vacation|hospitality|visitor)s?\b")
_REVIEW = re.compile(r"\b(review|survey|meta-analysis|systematic review)\b")
_APPLICATION = re.compile(r"\b(application|implement|deploy|practical|intervention)s?\b")

BEHAVIOR_PATTERNS = {
    "social": re.compile(r"\b(social|interaction|group|hierarchy|cooperation|communication)\b"),
    "cognitive": re.compile(r"\b(cognitive|cognition|learning|memory|intelligence|problem solving)\b"),
    "instinctual": re.compile(r"\b(aggression|mating|feeding|foraging|territorial)\b"),
}

_ANIMAL_QUERY_TERMS = ("animal", "species", "organism", "wildlife", "fauna", "creature")
_TOURISM_QUERY_TERMS = ("tourism", "tourist", "travel", "vacation", "hospitality")

# Paper types that contradict a query asking for research
NON_RESEARCH_TYPES = frozenset({"tourism", "application"})


@dataclass(frozen=True)
class QueryAspects:
    requires_animals: bool = False
    requires_research: bool = True
    behavior_type: Optional[str] = None


@dataclass(frozen=True)
class PaperAspects:
    subjects: List[str] = field(default_factory=list)
    type: str = "empirical_research"
    behaviors: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {"subjects": list(self.subjects), "type": self.type, "behaviors": list(self.behaviors)}


def parse_query_aspects(query: str) -> QueryAspects:
    q = query.lower()
    behavior = None
    for name, pattern in BEHAVIOR_PATTERNS.items():
        if pattern.search(q):
            behavior = name
            break
    return QueryAspects(
        requires_animals=any(term in q for term in _ANIMAL_QUERY_TERMS),
        requires_research=not (
            any(term in q for term in _TOURISM_QUERY_TERMS) or _APPLICATION.search(q)
        ),
        behavior_type=behavior,
    )


def extract_aspects(text: str) -> PaperAspects:
    text = text.lower()

    subjects = []
    if _ANIMALS.search(text):
        subjects.append("animals")
    if _PRIMATES.search(text):
        subjects.append("primates")
    if _HUMANS.search(text):
        subjects.append("humans")

    if _TOURISM.search(text):
        paper_type = "tourism"
    elif _REVIEW.search(text):
        paper_type = "review"
    elif _APPLICATION.search(text):
        paper_type = "application"
    else:
        paper_type = "empirical_research"

    behaviors = [name for name, pattern in BEHAVIOR_PATTERNS.items() if pattern.search(text)]
    return PaperAspects(subjects=subjects, type=paper_type, behaviors=behaviors)


def mismatch_reason(query_aspects: QueryAspects, aspects: PaperAspects) -> Optional[str]:
    """Why the paper contradicts the query, or None if it does not."""
    if query_aspects.requires_animals and not (
        "animals" in aspects.subjects or "primates" in aspects.subjects
    ):
        return "no animal subjects"
    if query_aspects.requires_research and aspects.type in NON_RESEARCH_TYPES:
        return f"{aspects.type} paper"
    if query_aspects.behavior_type and query_aspects.behavior_type not in aspects.behaviors:
        return f"no {query_aspects.behavior_type} behavior"
    return None


def aspect_filter(papers: List[Paper], query: str) -> List[Paper]:
    """Attach aspects to every kept paper; drop mismatches."""
    query_aspects = parse_query_aspects(query)
    kept = []
    reasons: Dict[str, int] = {}
    for paper in papers:
        aspects = extract_aspects(paper.text)
        reason = mismatch_reason(query_aspects, aspects)
        if reason is not None:
            reasons[reason] = reasons.get(reason, 0) + 1
            continue
        kept.append(paper.with_scores(aspects=aspects.as_dict()))

    logger.info(
        "aspect_filter_applied",
        requires_animals=query_aspects.requires_animals,
        requires_research=query_aspects.requires_research,
        behavior_type=query_aspects.behavior_type,
        input=len(papers),
        kept=len(kept),
        rejected=reasons,
    )
    return kept
