"""Unit tests for query input validation."""

import pytest

from litrank.utils.security import MAX_QUERY_LENGTH, InputValidation


class TestValidateQuery:
    """Tests for InputValidation.validate_query."""

    def test_valid_query_is_trimmed(self):
        assert InputValidation.validate_query("  primate cognition ") == "primate cognition"

    def test_empty_query_rejected(self):
        with pytest.raises(ValueError, match="empty"):
            InputValidation.validate_query("   ")

    def test_length_limit(self):
        """Test the limit is inclusive."""
        assert InputValidation.validate_query("a" * MAX_QUERY_LENGTH)
        with pytest.raises(ValueError, match="at most"):
            InputValidation.validate_query("a" * (MAX_QUERY_LENGTH + 1))

    def test_control_characters_rejected(self):
        with pytest.raises(ValueError, match="control"):
            InputValidation.validate_query("bats\x00birds")

    @pytest.mark.parametrize(
        "query",
        [
            "stress; coping strategies in nurses",
            "R&D spending && firm growth",
            "work-life balance || burnout",
            "`R` packages for phylogenetics",
            "costs in $ (USD) of malaria control",
        ],
    )
    def test_research_punctuation_allowed(self, query):
        assert InputValidation.validate_query(query) == query

    def test_boolean_style_query_allowed(self):
        """Test ordinary research syntax passes."""
        query = '"social learning" AND (primates OR cetaceans)'
        assert InputValidation.validate_query(query) == query
