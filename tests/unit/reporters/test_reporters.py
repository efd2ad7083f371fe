"""Tests for end-of-run reporters."""

import json
from datetime import datetime, timedelta
from io import StringIO
from pathlib import Path

import pytest

from sytest.reporters import (
    ConsoleReporter,
    JSONReporter,
    SuiteReport,
    create_reporter,
    get_registry,
)
from sytest.reporters.registry import ReporterNotFoundError, ReporterRegistry
from sytest.runner.models import SuiteResult, TestOutcome, TestResult


@pytest.fixture
def suite_result() -> SuiteResult:
    start = datetime(2024, 1, 1, 12, 0, 0)
    return SuiteResult(
        tests=[
            TestResult(
                name="A room can be created",
                file="10rooms.py",
                outcome=TestOutcome.PASS,
                check_attempts=1,
                start_time=start,
                end_time=start + timedelta(seconds=0.5),
            ),
            TestResult(
                name="A message is delivered",
                file="20messages.py",
                outcome=TestOutcome.FAIL,
                error="Test check function failed to return a true value\nmore",
                warnings=["Test failed to provide the 'x' environment as promised"],
            ),
            TestResult(
                name="Presence changes",
                file="30presence.py",
                outcome=TestOutcome.SKIP,
                missing_requirement="local_admin",
            ),
        ],
        start_time=start,
        end_time=start + timedelta(seconds=12.25),
    )


@pytest.fixture
def report(suite_result: SuiteResult) -> SuiteReport:
    return SuiteReport.from_suite_result(suite_result, servers=2, run_id="abc123")


class TestSuiteReport:
    """Tests for report construction."""

    def test_from_suite_result(self, report: SuiteReport) -> None:
        assert (report.passed, report.failed, report.skipped) == (1, 1, 1)
        assert report.total_tests == 3
        assert report.warned == 1
        assert report.run_id == "abc123"
        assert report.duration_seconds == 12.25
        assert report.tests[2].missing_requirement == "local_admin"
        assert not report.success

    def test_from_error(self) -> None:
        report = SuiteReport.from_error("Synapse server on port 8001 failed", 2)
        assert report.error == "Synapse server on port 8001 failed"
        assert report.total_tests == 0
        assert not report.success

    def test_success(self) -> None:
        assert SuiteReport.from_suite_result(SuiteResult(), servers=2).success


class TestConsoleReporter:
    """Tests for the console summary."""

    def test_summary(self, report: SuiteReport) -> None:
        output = StringIO()
        ConsoleReporter(output=output).report(report)
        text = output.getvalue()

        assert "Failed tests:" in text
        assert (
            "  A message is delivered (20messages.py): "
            "Test check function failed to return a true value\n"
        ) in text
        assert "1 passed, 1 failed, 1 skipped, 1 with warnings in 12.2s" in text
        assert "(2 servers)" in text
        assert "\033[" not in text

    def test_verbose_lists_skips_and_warnings(self, report: SuiteReport) -> None:
        output = StringIO()
        ConsoleReporter(output=output, verbose=True).report(report)
        text = output.getvalue()

        assert "SKIP Presence changes: missing local_admin" in text
        assert "WARN A message is delivered:" in text

    def test_setup_error(self) -> None:
        output = StringIO()
        ConsoleReporter(output=output).report(
            SuiteReport.from_error("Client for port 8002 failed to start", 2)
        )
        assert "Setup failed: Client for port 8002 failed to start" in output.getvalue()

    def test_stopped_early(self, suite_result: SuiteResult) -> None:
        suite_result.stopped_early = True
        output = StringIO()
        ConsoleReporter(output=output).report(
            SuiteReport.from_suite_result(suite_result, servers=2)
        )
        assert "--fail-fast" in output.getvalue()

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(None, "N/A"), (0.25, "250ms"), (3.0, "3.0s"), (125.0, "2m 5.0s")],
    )
    def test_format_duration(self, seconds, expected) -> None:
        assert ConsoleReporter(output=StringIO())._format_duration(seconds) == expected


class TestJSONReporter:
    """Tests for the JSON summary."""

    def test_stream_output(self, report: SuiteReport) -> None:
        output = StringIO()
        JSONReporter(output=output).report(report)
        data = json.loads(output.getvalue())

        assert data["version"] == "1.0"
        assert data["summary"]["failed"] == 1
        assert data["summary"]["success"] is False
        assert data["summary"]["servers"] == 2
        assert [t["outcome"] for t in data["tests"]] == ["PASS", "FAIL", "SKIP"]

    def test_file_output(self, report: SuiteReport, tmp_path: Path) -> None:
        path = tmp_path / "out" / "results.json"
        JSONReporter(output_file=path).report(report)
        data = json.loads(path.read_text())
        assert data["summary"]["run_id"] == "abc123"
        assert data["tests"][0]["check_attempts"] == 1


class TestReporterRegistry:
    """Tests for reporter lookup."""

    def test_builtin_reporters(self) -> None:
        assert ReporterRegistry().list_reporters() == ["console", "json"]

    def test_create_with_config(self, tmp_path: Path) -> None:
        reporter = create_reporter("json", {"output_file": tmp_path / "r.json"})
        assert isinstance(reporter, JSONReporter)
        assert reporter.name == "json"

    def test_shared_registry(self) -> None:
        assert get_registry() is get_registry()
        assert "json" in get_registry().list_reporters()

    def test_unknown_type(self) -> None:
        with pytest.raises(ReporterNotFoundError, match="junit"):
            create_reporter("junit")
