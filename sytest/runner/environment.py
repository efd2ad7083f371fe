"""Shared test environment and the per-test context passed to actions."""

from collections.abc import Iterable, Iterator
from typing import Any

import structlog

from sytest.core.async_utils import delay
from sytest.core.logging import get_logger
from sytest.core.settings import OverwritePolicy, SyTestSettings
from sytest.loader.models import TestCase
from sytest.runner.exceptions import EnvironmentOverwriteError, MissingRequirementError

logger = get_logger(__name__)


class TestEnvironment:
    """
    Named fixtures shared between tests of one run.

    Keys are only ever added or overwritten, never removed. A key whose
    stored value is None counts as absent when resolving requirements.
    """

    __test__ = False

    def __init__(
        self,
        policy: OverwritePolicy = OverwritePolicy.WARN,
        refreshable: Iterable[str] = (),
    ) -> None:
        """
        Args:
            policy: What to do when an existing key is provided again.
            refreshable: Keys that may always be overwritten; overwrites of
                these are logged at DEBUG only.
        """
        self.policy = OverwritePolicy(policy)
        self.refreshable = set(refreshable)
        self._values: dict[str, Any] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def keys(self) -> list[str]:
        return list(self._values)

    def provide(self, key: str, value: Any, provider: str | None = None) -> None:
        """
        Store ``value`` under ``key``.

        Raises:
            EnvironmentOverwriteError: The key exists and the policy is
                ``error``.
        """
        if key in self._values:
            if key in self.refreshable:
                logger.debug("refreshing_environment_key", key=key, provider=provider)
            elif self.policy == OverwritePolicy.ERROR:
                raise EnvironmentOverwriteError(key, test_name=provider)
            elif self.policy == OverwritePolicy.WARN:
                logger.warning(
                    "overwriting_environment_key", key=key, provider=provider
                )
        self._values[key] = value

    def lookup(self, key: str) -> Any:
        """Return the value for ``key``, or None if it was never provided."""
        return self._values.get(key)

    def resolve(
        self, requires: Iterable[str], test_name: str | None = None
    ) -> list[Any]:
        """
        Return the values for ``requires`` in order.

        Raises:
            MissingRequirementError: Naming the first absent key.
        """
        params = []
        for key in requires:
            value = self._values.get(key)
            if value is None:
                raise MissingRequirementError(key, test_name=test_name)
            params.append(value)
        return params


class TestContext:
    """
    Explicit context handed to a test's actions.

    Example:
        async def do(ctx, clients):
            room = await clients[0].create_room()
            ctx.provide("rooms", [room])
    """

    __test__ = False

    def __init__(
        self,
        test: TestCase,
        environment: TestEnvironment,
        settings: SyTestSettings | None = None,
    ) -> None:
        self.test = test
        self.environment = environment
        self.settings = settings
        self.logger: structlog.stdlib.BoundLogger = get_logger("sytest.tests").bind(
            test=test.name, file=test.file
        )

    def provide(self, key: str, value: Any) -> None:
        """Write ``key`` to the shared environment."""
        if key not in self.test.writes:
            self.logger.warning("undeclared_environment_key", key=key)
        self.environment.provide(key, value, provider=self.test.label)

    def lookup(self, key: str) -> Any:
        return self.environment.lookup(key)

    async def delay(self, seconds: float) -> None:
        await delay(seconds)
