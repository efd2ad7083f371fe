"""Test environment, scheduler and progress output."""

from sytest.runner.environment import TestContext, TestEnvironment
from sytest.runner.exceptions import (
    CheckFailedError,
    EnvironmentOverwriteError,
    MissingRequirementError,
    RunnerError,
)
from sytest.runner.models import (
    ProgressCallback,
    ProgressEvent,
    ProgressEventType,
    SuiteResult,
    TestOutcome,
    TestResult,
)
from sytest.runner.progress import ConsoleProgress
from sytest.runner.scheduler import TestScheduler

__all__ = [
    "CheckFailedError",
    "ConsoleProgress",
    "EnvironmentOverwriteError",
    "MissingRequirementError",
    "ProgressCallback",
    "ProgressEvent",
    "ProgressEventType",
    "RunnerError",
    "SuiteResult",
    "TestContext",
    "TestEnvironment",
    "TestOutcome",
    "TestResult",
    "TestScheduler",
]
