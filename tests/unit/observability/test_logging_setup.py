"""Unit tests for structlog configuration."""

import json

import structlog

from litrank.observability.context import correlation_id_context
from litrank.observability.logging import (
    add_correlation_id_processor,
    configure_logging,
    get_logger,
)


class TestCorrelationProcessor:
    def test_outside_search(self):
        event = add_correlation_id_processor(None, "info", {"event": "x"})
        assert event["correlation_id"] == "none"

    def test_inside_search(self):
        with correlation_id_context("search-42"):
            event = add_correlation_id_processor(None, "info", {"event": "x"})
        assert event["correlation_id"] == "search-42"


class TestConfigureLogging:
    """Output goes to stderr as JSON with the correlation id attached."""

    def teardown_method(self):
        structlog.reset_defaults()

    def test_json_to_stderr(self, capsys):
        configure_logging(level="INFO", json_output=True)
        with correlation_id_context("search-7"):
            get_logger("governor", provider="arxiv").info("call_started")

        captured = capsys.readouterr()
        assert captured.out == ""
        entry = json.loads(captured.err.strip().splitlines()[-1])
        assert entry["event"] == "call_started"
        assert entry["component"] == "governor"
        assert entry["provider"] == "arxiv"
        assert entry["correlation_id"] == "search-7"
        assert entry["level"] == "info"

    def test_level_filters_debug(self, capsys):
        configure_logging(level="WARNING", json_output=True)
        get_logger().info("quiet")
        get_logger().warning("loud")
        err = capsys.readouterr().err
        assert "quiet" not in err
        assert "loud" in err
