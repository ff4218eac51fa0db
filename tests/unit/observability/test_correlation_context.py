"""Unit tests for correlation ID context."""

import asyncio

import pytest

from litrank.observability.context import (
    clear_correlation_id,
    correlation_id_context,
    get_correlation_id,
    set_correlation_id,
)


class TestCorrelationId:
    def setup_method(self):
        clear_correlation_id()

    def test_set_generates_uuid(self):
        corr_id = set_correlation_id()
        assert len(corr_id) == 36
        assert get_correlation_id() == corr_id

    def test_set_explicit(self):
        set_correlation_id("search-1")
        assert get_correlation_id() == "search-1"

    def test_clear(self):
        set_correlation_id("search-1")
        clear_correlation_id()
        assert get_correlation_id() is None


class TestCorrelationIdContext:
    """Tests for the scoped context manager."""

    def setup_method(self):
        clear_correlation_id()

    def test_restores_previous_value(self):
        set_correlation_id("outer")
        with correlation_id_context("inner") as corr_id:
            assert corr_id == "inner"
            assert get_correlation_id() == "inner"
        assert get_correlation_id() == "outer"

    def test_restored_after_exception(self):
        with pytest.raises(ValueError):
            with correlation_id_context("inner"):
                raise ValueError("boom")
        assert get_correlation_id() is None

    @pytest.mark.asyncio
    async def test_visible_in_spawned_tasks(self):
        async def read():
            return get_correlation_id()

        with correlation_id_context() as corr_id:
            results = await asyncio.gather(read(), read())
        assert results == [corr_id, corr_id]
