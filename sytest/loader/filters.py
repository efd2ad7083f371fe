"""Name filtering utilities for test selection."""

from collections.abc import Iterable, Sequence

from sytest.loader.models import TestCase


class NameFilter:
    """Filter for selecting tests by name.

    Matching is a case-insensitive substring search:
    - Include: --match=room,group (name contains room OR group)
    - Exclude: --match=!presence (name does not contain presence)
    - Combination: --match=room,!leave (contains room AND not leave)
    """

    def __init__(self, expressions: Sequence[str]) -> None:
        """Initialize name filter.

        Args:
            expressions: List of expressions (e.g., ["room", "!leave"])
        """
        self.include: list[str] = []
        self.exclude: list[str] = []

        for expr in expressions:
            expr = expr.strip().lower()
            if not expr:
                continue
            if expr.startswith("!"):
                if expr[1:]:
                    self.exclude.append(expr[1:])
            else:
                self.include.append(expr)

    def __bool__(self) -> bool:
        return bool(self.include or self.exclude)

    def matches(self, name: str) -> bool:
        """Check if a test name passes the filter."""
        lowered = name.lower()
        if any(pattern in lowered for pattern in self.exclude):
            return False
        if self.include:
            return any(pattern in lowered for pattern in self.include)
        return True

    def apply(self, tests: Iterable[TestCase]) -> list[TestCase]:
        """Return the matching tests, keeping their order."""
        return [test for test in tests if self.matches(test.name)]

    @classmethod
    def from_string(cls, expression: str) -> "NameFilter":
        """Create filter from comma-separated string.

        Args:
            expression: Comma-separated patterns (e.g., "room,!leave")
        """
        return cls(expression.split(","))
