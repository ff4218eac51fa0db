"""Tests for the typer CLI."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from litrank.cli import app
from litrank.health.checks import HealthChecker
from litrank.models.paper import Paper
from litrank.models.provider import (
    OutcomeKind,
    PartialFailureReport,
    ProviderContribution,
    ProviderTier,
)
from litrank.services.result_assembler import ResultAssembler
from litrank.utils.exceptions import SearchCancelled, ValidationError

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "litrank.yaml"
    path.write_text("cache:\n  enabled: false\nlogging:\n  json_output: false\n")
    return path


def make_response():
    paper = Paper(
        paper_id="arxiv:1",
        title="Echolocation in bats",
        year=2021,
        source_provider="arxiv",
        quality_score=72.0,
    )
    assembler = ResultAssembler()
    failures = PartialFailureReport(
        contributions=(
            ProviderContribution(
                provider="arxiv", tier=ProviderTier.PREPRINT, outcome=OutcomeKind.OK, collected=1
            ),
            ProviderContribution(
                provider="crossref",
                tier=ProviderTier.AGGREGATOR,
                outcome=OutcomeKind.TIMEOUT,
                error="cut off by search deadline",
            ),
        )
    )
    report = assembler.build_report(
        query="bats",
        purpose="literature_synthesis",
        stages=[],
        failures=failures,
        deduplicated_count=1,
        final_papers=[paper],
        warnings=["crossref: timeout"],
    )
    return assembler.respond([paper], report, page=1, limit=20)


def mock_service(search):
    service = MagicMock()
    service.search = search
    return service


class TestSearchCommand:
    """litrank search."""

    def test_prints_ranked_page(self, config_file):
        service = mock_service(AsyncMock(return_value=make_response()))
        with patch(
            "litrank.cli.search.LiteratureSearchService.from_config", return_value=service
        ):
            result = runner.invoke(
                app,
                ["search", "bats", "--source", "arxiv", "--year-from", "2020", "-c", str(config_file)],
            )

        assert result.exit_code == 0
        assert "1 papers ranked" in result.output
        assert "Echolocation in bats (2021)" in result.output
        assert "crossref: timeout" in result.output
        payload = service.search.call_args.args[0]
        assert payload == {
            "query": "bats",
            "page": 1,
            "limit": 20,
            "sources": ["arxiv"],
            "year_from": 2020,
        }
        service.close.assert_called_once()

    def test_json_output(self, config_file):
        service = mock_service(AsyncMock(return_value=make_response()))
        with patch(
            "litrank.cli.search.LiteratureSearchService.from_config", return_value=service
        ):
            result = runner.invoke(app, ["search", "bats", "--json", "-c", str(config_file)])

        assert result.exit_code == 0
        assert '"total": 1' in result.output
        assert '"source_breakdown"' in result.output

    def test_invalid_request_exit_code(self, config_file):
        service = mock_service(AsyncMock(side_effect=ValidationError("query: too short")))
        with patch(
            "litrank.cli.search.LiteratureSearchService.from_config", return_value=service
        ):
            result = runner.invoke(app, ["search", "x", "-c", str(config_file)])

        assert result.exit_code == 2
        service.close.assert_called_once()

    def test_cancelled_exit_code(self, config_file):
        service = mock_service(AsyncMock(side_effect=SearchCancelled("interrupted")))
        with patch(
            "litrank.cli.search.LiteratureSearchService.from_config", return_value=service
        ):
            result = runner.invoke(app, ["search", "bats", "-c", str(config_file)])
        assert result.exit_code == 130

    def test_missing_config(self, tmp_path):
        result = runner.invoke(app, ["search", "bats", "-c", str(tmp_path / "missing.yaml")])
        assert result.exit_code == 1


class TestValidateCommand:
    def test_valid(self, config_file):
        result = runner.invoke(app, ["validate", str(config_file)])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "cache: disabled" in result.output

    def test_invalid(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("router:\n  global_timeout_seconds: -1\n")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1


class TestProvidersCommand:
    def test_lists_default_providers(self, config_file):
        result = runner.invoke(app, ["providers", "-c", str(config_file)])
        assert result.exit_code == 0
        for pid in ("semantic_scholar", "arxiv", "openalex", "crossref"):
            assert pid in result.output


class TestHealthCommand:
    def test_reports_checks(self, config_file):
        def checker(**kwargs):
            return HealthChecker(disk_threshold_gb=0.0, disk_warning_gb=0.0, **kwargs)

        with patch("litrank.cli.health.HealthChecker", side_effect=checker):
            result = runner.invoke(app, ["health", "-c", str(config_file)])

        assert result.exit_code == 0
        assert "disk_space" in result.output
        assert "Overall: healthy" in result.output
