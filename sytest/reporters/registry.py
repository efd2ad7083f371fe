"""Lookup of summary reporters by their ``--output`` name."""

from typing import Any

from sytest.reporters.base import Reporter
from sytest.reporters.console import ConsoleReporter
from sytest.reporters.json_reporter import JSONReporter

BUILTIN_REPORTERS: dict[str, type[Reporter]] = {
    "console": ConsoleReporter,
    "json": JSONReporter,
}


class ReporterNotFoundError(KeyError):
    """No reporter is registered under the requested name."""

    def __init__(self, reporter_type: str) -> None:
        self.reporter_type = reporter_type
        super().__init__(f"Reporter type not found: {reporter_type}")

    def __str__(self) -> str:
        return self.args[0]


class ReporterRegistry:
    """Maps ``--output`` names to reporter classes."""

    def __init__(self) -> None:
        self._reporters = dict(BUILTIN_REPORTERS)

    def register(self, reporter_type: str, reporter_class: type[Reporter]) -> None:
        self._reporters[reporter_type] = reporter_class

    def list_reporters(self) -> list[str]:
        return sorted(self._reporters)

    def create(
        self, reporter_type: str, config: dict[str, Any] | None = None
    ) -> Reporter:
        """Instantiate the reporter registered as ``reporter_type``.

        ``config`` is passed to the reporter's constructor as keyword
        arguments.

        Raises:
            ReporterNotFoundError: Nothing is registered under that name.
        """
        try:
            reporter_class = self._reporters[reporter_type]
        except KeyError:
            raise ReporterNotFoundError(reporter_type) from None
        return reporter_class(**(config or {}))


_registry = ReporterRegistry()


def get_registry() -> ReporterRegistry:
    return _registry


def create_reporter(
    reporter_type: str, config: dict[str, Any] | None = None
) -> Reporter:
    """Create a reporter from the shared registry."""
    return _registry.create(reporter_type, config)
