"""Base reporter interface and report models."""

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from sytest.runner.models import SuiteResult


class TestReport(BaseModel):
    """Report data for a single test."""

    __test__ = False

    name: str = Field(..., description="Test name")
    file: str = Field(..., description="File the test was declared in")
    outcome: str = Field(..., description="PASS, FAIL or SKIP")
    duration_seconds: float | None = Field(None, description="Test duration in seconds")
    error: str | None = Field(None, description="Error message if failed")
    warnings: list[str] = Field(default_factory=list, description="Warnings raised")
    missing_requirement: str | None = Field(
        None, description="Environment key whose absence caused a skip"
    )
    check_attempts: int = Field(default=0, description="Times check was invoked")


class SuiteReport(BaseModel):
    """Report data for a complete run."""

    run_id: str | None = Field(None, description="Run identifier")
    servers: int = Field(..., description="Number of homeservers booted")
    total_tests: int = Field(..., description="Number of tests reached")
    passed: int = Field(..., description="Number of passed tests")
    failed: int = Field(..., description="Number of failed tests")
    skipped: int = Field(..., description="Number of skipped tests")
    warned: int = Field(default=0, description="Tests that produced warnings")
    duration_seconds: float | None = Field(
        None, description="Total duration in seconds"
    )
    stopped_early: bool = Field(default=False, description="Stopped by fail-fast")
    tests: list[TestReport] = Field(default_factory=list, description="Test reports")
    error: str | None = Field(None, description="Setup-level error")

    @property
    def success(self) -> bool:
        return self.error is None and self.failed == 0

    @classmethod
    def from_suite_result(
        cls,
        result: SuiteResult,
        servers: int,
        run_id: str | None = None,
    ) -> "SuiteReport":
        """Create a SuiteReport from a SuiteResult."""
        return cls(
            run_id=run_id,
            servers=servers,
            total_tests=result.total_tests,
            passed=result.passed,
            failed=result.failed,
            skipped=result.skipped,
            warned=result.warned,
            duration_seconds=result.duration_seconds,
            stopped_early=result.stopped_early,
            tests=[
                TestReport(
                    name=t.name,
                    file=t.file,
                    outcome=t.outcome.value,
                    duration_seconds=t.duration_seconds,
                    error=t.error,
                    warnings=list(t.warnings),
                    missing_requirement=t.missing_requirement,
                    check_attempts=t.check_attempts,
                )
                for t in result.tests
            ],
        )

    @classmethod
    def from_error(
        cls, error: str, servers: int, run_id: str | None = None
    ) -> "SuiteReport":
        """Create a report for a run that failed during setup."""
        return cls(
            run_id=run_id,
            servers=servers,
            total_tests=0,
            passed=0,
            failed=0,
            skipped=0,
            error=error,
        )


class Reporter(ABC):
    """Base class for reporters."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the reporter name."""

    @abstractmethod
    def report(self, report: SuiteReport) -> None:
        """Generate and output the report."""

    def _format_duration(self, seconds: float | None) -> str:
        if seconds is None:
            return "N/A"
        if seconds < 1:
            return f"{seconds * 1000:.0f}ms"
        if seconds < 60:
            return f"{seconds:.1f}s"
        minutes = int(seconds // 60)
        return f"{minutes}m {seconds % 60:.1f}s"
