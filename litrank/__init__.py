"""litrank - concurrent multi-provider literature search and relevance ranking."""

__version__ = "0.1.0"
