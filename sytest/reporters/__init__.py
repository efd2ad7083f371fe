"""Run reporters."""

from sytest.reporters.base import Reporter, SuiteReport, TestReport
from sytest.reporters.console import ConsoleReporter
from sytest.reporters.json_reporter import JSONReporter
from sytest.reporters.registry import (
    ReporterNotFoundError,
    ReporterRegistry,
    create_reporter,
    get_registry,
)

__all__ = [
    "ConsoleReporter",
    "JSONReporter",
    "Reporter",
    "ReporterNotFoundError",
    "ReporterRegistry",
    "SuiteReport",
    "TestReport",
    "create_reporter",
    "get_registry",
]
