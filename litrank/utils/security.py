import re
import structlog

logger = structlog.get_logger()

MAX_QUERY_LENGTH = 500

# Queries only travel as URL parameters; ";", "&" and "|" are ordinary text
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


class InputValidation:
    """Validation for user supplied search input"""

    @staticmethod
    def validate_query(query: str) -> str:
        """Trim and validate a free-text research query.

        Raises:
            ValueError: If the query is empty, too long, or contains
                control characters.
        """
        v = query.strip()

        if not v:
            raise ValueError("Query cannot be empty")

        if len(v) > MAX_QUERY_LENGTH:
            raise ValueError(
                f"Query must be at most {MAX_QUERY_LENGTH} characters, got {len(v)}"
            )

        if _CONTROL_CHARS.search(v):
            logger.warning("input_validation_failed", query=repr(v[:100]), reason="control characters")
            raise ValueError("Query contains control characters")

        return v
