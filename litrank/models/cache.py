"""Data models for the query result cache."""

from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from litrank.models.audit import SearchAuditReport
from litrank.models.paper import Paper


class CachedResult(BaseModel):
    """The full ranked list for a request; pages are cut from it."""

    model_config = ConfigDict(frozen=True)

    papers: List[Paper]
    metadata: SearchAuditReport
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CacheStats(BaseModel):
    """Cache statistics"""

    enabled: bool = True
    entries: int = 0
    hits: int = 0
    misses: int = 0
    max_entries: int = 0
    disk_mb: float = 0.0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate"""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total
