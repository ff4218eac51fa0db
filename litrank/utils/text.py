"""Text normalization helpers shared by dedup, scoring and classification."""

import re
from typing import List, Optional

_DOI_PREFIX = re.compile(
    r"^(?:https?://)?(?:dx\.)?(?:doi\.org/)?(?:doi:\s*)?", re.IGNORECASE
)
_TOKEN = re.compile(r"[a-z0-9]+")

# Kept small on purpose: BM25 idf already discounts frequent terms.
STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "in",
        "into", "is", "it", "of", "on", "or", "that", "the", "their", "this",
        "to", "was", "were", "with", "within", "how", "what", "which", "does",
        "do", "vs", "versus",
    }
)


def normalize_doi(doi: Optional[str]) -> Optional[str]:
    """Strip protocol/resolver prefixes and lowercase a DOI.

    >>> normalize_doi("https://doi.org/10.1000/ABC")
    '10.1000/abc'
    """
    if not doi:
        return None
    cleaned = _DOI_PREFIX.sub("", doi.strip()).strip().lower()
    return cleaned or None


def normalize_title(title: Optional[str]) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    if not title:
        return ""
    title = title.lower()
    title = re.sub(r"[^\w\s]", "", title)
    return " ".join(title.split())


def tokenize(text: Optional[str], drop_stopwords: bool = True) -> List[str]:
    """Lowercased alphanumeric tokens in document order."""
    if not text:
        return []
    tokens = _TOKEN.findall(text.lower())
    if drop_stopwords:
        return [t for t in tokens if t not in STOPWORDS]
    return tokens


def word_count(text: Optional[str]) -> int:
    if not text:
        return 0
    return len(text.split())
