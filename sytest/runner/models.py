"""Data models for the test scheduler."""

from collections.abc import Callable
from dataclasses import field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field
from pydantic.dataclasses import dataclass


class TestOutcome(str, Enum):
    """Final outcome of one test."""

    __test__ = False

    PASS = "PASS"
    FAIL = "FAIL"
    SKIP = "SKIP"


class ProgressEventType(str, Enum):
    """Types of progress events."""

    SUITE_STARTED = "suite_started"
    SUITE_COMPLETED = "suite_completed"
    TEST_STARTED = "test_started"
    TEST_SKIPPED = "test_skipped"
    TEST_PASSED = "test_passed"
    TEST_FAILED = "test_failed"
    TEST_WARNING = "test_warning"
    CHECK_WAITING = "check_waiting"


class ProgressEvent(BaseModel):
    """Event emitted during test execution for progress tracking."""

    event_type: ProgressEventType = Field(..., description="Type of progress event")
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="Event timestamp",
    )

    # Context fields - not all are used for every event type
    test_name: str | None = Field(None, description="Test name")
    test_file: str | None = Field(None, description="File the test was declared in")
    total_tests: int | None = Field(None, description="Total number of tests")
    completed_tests: int | None = Field(None, description="Number of completed tests")

    # Outcome info
    success: bool | None = Field(None, description="Whether the test passed")
    error: str | None = Field(None, description="Error message if failed")
    message: str | None = Field(None, description="Warning text")
    missing_requirement: str | None = Field(
        None, description="Environment key whose absence caused a skip"
    )
    remaining_attempts: int | None = Field(
        None, description="Check attempts left when waiting"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific details",
    )


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class TestResult:
    """Result of one scheduled test."""

    __test__ = False

    name: str
    file: str
    outcome: TestOutcome
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    missing_requirement: str | None = None
    check_attempts: int = 0
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None

    @property
    def passed(self) -> bool:
        return self.outcome == TestOutcome.PASS

    @property
    def failed(self) -> bool:
        return self.outcome == TestOutcome.FAIL

    @property
    def skipped(self) -> bool:
        return self.outcome == TestOutcome.SKIP

    @property
    def duration_seconds(self) -> float | None:
        """Calculate test duration in seconds."""
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


@dataclass
class SuiteResult:
    """Result of running the whole ordered test list."""

    tests: list[TestResult] = field(default_factory=list)
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None
    stopped_early: bool = False

    @property
    def total_tests(self) -> int:
        return len(self.tests)

    @property
    def passed(self) -> int:
        return sum(1 for t in self.tests if t.passed)

    @property
    def failed(self) -> int:
        return sum(1 for t in self.tests if t.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for t in self.tests if t.skipped)

    @property
    def warned(self) -> int:
        """Number of tests that produced at least one warning."""
        return sum(1 for t in self.tests if t.warnings)

    @property
    def success(self) -> bool:
        """True when no test failed. Skips do not count as failures."""
        return self.failed == 0

    @property
    def duration_seconds(self) -> float | None:
        """Calculate total duration in seconds."""
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    def get(self, name: str) -> TestResult | None:
        """Return the result of the first test called ``name``."""
        return next((t for t in self.tests if t.name == name), None)
