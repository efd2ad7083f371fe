"""Test case declarations."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sytest.runner.environment import TestContext

Action = Callable[..., Awaitable[Any]]
"""Async callable taking a TestContext followed by the resolved requirements."""


@dataclass(frozen=True)
class TestCase:
    """
    One declared test.

    ``do`` performs the action under test and ``check`` asserts its
    effect; at least one of them is required. Both are awaited as
    ``action(ctx, *params)`` where ``params`` are the environment values
    of ``requires`` in order.
    """

    __test__ = False

    name: str
    file: str
    requires: tuple[str, ...] = ()
    provides: tuple[str, ...] = ()
    refreshes: tuple[str, ...] = ()
    do: Action | None = field(default=None, compare=False, repr=False)
    check: Action | None = field(default=None, compare=False, repr=False)
    wait_time: int = 0

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Test name must not be empty")
        if self.do is None and self.check is None:
            raise ValueError(f"Test '{self.name}' declares neither do nor check")
        if self.wait_time < 0:
            raise ValueError(
                f"Test '{self.name}' has negative wait_time {self.wait_time}"
            )

    @property
    def label(self) -> str:
        """Name and file as shown in progress output."""
        return f"{self.name} ({self.file})"

    @property
    def writes(self) -> tuple[str, ...]:
        """Every environment key this test may write."""
        return tuple(dict.fromkeys((*self.provides, *self.refreshes)))

    async def run_do(self, ctx: "TestContext", params: list[Any]) -> Any:
        assert self.do is not None
        return await self.do(ctx, *params)

    async def run_check(self, ctx: "TestContext", params: list[Any]) -> Any:
        assert self.check is not None
        return await self.check(ctx, *params)
