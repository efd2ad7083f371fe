"""Sequential test scheduler."""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sytest.core.async_utils import delay
from sytest.core.logging import bind_context, get_logger
from sytest.core.settings import SyTestSettings
from sytest.loader.models import TestCase
from sytest.runner.environment import TestContext, TestEnvironment
from sytest.runner.exceptions import CheckFailedError, MissingRequirementError
from sytest.runner.models import (
    ProgressCallback,
    ProgressEvent,
    ProgressEventType,
    SuiteResult,
    TestOutcome,
    TestResult,
)

logger = logging.getLogger(__name__)
event_logger = get_logger(__name__)

CHECK_FAILED_MESSAGE = "Test check function failed to return a true value"


def _format_error(error: BaseException) -> str:
    text = str(error).rstrip("\n")
    return text or type(error).__name__


class TestScheduler:
    """
    Runs tests one at a time in declaration order.

    For each test the scheduler resolves its requirements from the shared
    environment (skipping it if any is missing), runs ``do``, polls
    ``check`` with bounded retry, and verifies that every promised key was
    provided. A failure never stops later tests unless ``fail_fast`` is
    set.
    """

    __test__ = False

    def __init__(
        self,
        environment: TestEnvironment,
        settings: SyTestSettings | None = None,
        progress_callback: ProgressCallback | None = None,
        poll_interval: float = 1.0,
        fail_fast: bool = False,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            environment: Environment shared by every test of the run.
            settings: Settings exposed to actions through their context.
            progress_callback: Optional callback for progress reporting.
            poll_interval: Seconds between check attempts.
            fail_fast: Stop after the first failing test if True.
        """
        self.environment = environment
        self.settings = settings
        self.progress_callback = progress_callback
        self.poll_interval = poll_interval
        self.fail_fast = fail_fast

    def _emit_progress(self, event: ProgressEvent) -> None:
        """Emit a progress event if callback is registered."""
        if self.progress_callback:
            try:
                self.progress_callback(event)
            except Exception as e:
                logger.warning("Progress callback failed: %s", e)

    def _emit(self, event_type: ProgressEventType, test: TestCase, **kw: Any) -> None:
        self._emit_progress(
            ProgressEvent(
                event_type=event_type, test_name=test.name, test_file=test.file, **kw
            )
        )

    async def run(self, tests: Sequence[TestCase]) -> SuiteResult:
        """
        Run ``tests`` in order.

        Returns:
            SuiteResult with one TestResult per test that was reached.
        """
        result = SuiteResult(start_time=datetime.now())
        self._emit_progress(
            ProgressEvent(
                event_type=ProgressEventType.SUITE_STARTED, total_tests=len(tests)
            )
        )

        for test in tests:
            with bind_context(test=test.name, file=test.file):
                test_result = await self.run_test(test)
            result.tests.append(test_result)

            if test_result.failed and self.fail_fast:
                event_logger.info("stopping_after_failure", test=test.name)
                result.stopped_early = True
                break

        result.end_time = datetime.now()
        self._emit_progress(
            ProgressEvent(
                event_type=ProgressEventType.SUITE_COMPLETED,
                total_tests=len(tests),
                completed_tests=len(result.tests),
                success=result.success,
                details={
                    "passed": result.passed,
                    "failed": result.failed,
                    "skipped": result.skipped,
                    "warned": result.warned,
                    "duration_seconds": result.duration_seconds,
                },
            )
        )
        return result

    async def run_test(self, test: TestCase) -> TestResult:
        """Run a single test against the environment."""
        start_time = datetime.now()

        try:
            params = self.environment.resolve(test.requires, test_name=test.name)
        except MissingRequirementError as e:
            event_logger.info("test_skipped", missing=e.key)
            self._emit(ProgressEventType.TEST_SKIPPED, test, missing_requirement=e.key)
            return TestResult(
                name=test.name,
                file=test.file,
                outcome=TestOutcome.SKIP,
                missing_requirement=e.key,
                start_time=start_time,
                end_time=datetime.now(),
            )

        self._emit(ProgressEventType.TEST_STARTED, test)
        ctx = TestContext(test, self.environment, self.settings)
        result = TestResult(
            name=test.name,
            file=test.file,
            outcome=TestOutcome.PASS,
            start_time=start_time,
        )

        try:
            await self._execute(test, ctx, params, result)
        except Exception as e:
            result.outcome = TestOutcome.FAIL
            result.error = _format_error(e)
            event_logger.debug("test_failed", error=result.error, exc_info=True)

        result.end_time = datetime.now()
        if result.passed:
            self._emit(ProgressEventType.TEST_PASSED, test, success=True)
        else:
            self._emit(
                ProgressEventType.TEST_FAILED, test, success=False, error=result.error
            )

        for key in test.provides:
            if key not in self.environment:
                self._warn(
                    test,
                    result,
                    f"Test failed to provide the '{key}' environment as promised",
                )
        return result

    async def _execute(
        self,
        test: TestCase,
        ctx: TestContext,
        params: list[Any],
        result: TestResult,
    ) -> None:
        if test.do is not None:
            if test.check is not None and await self._pre_check(test, ctx, params):
                self._warn(
                    test,
                    result,
                    f"{test.name} was already passing before we did anything",
                )
            await test.run_do(ctx, params)

        if test.check is not None:
            await self._poll_check(test, ctx, params, result)

    async def _pre_check(
        self, test: TestCase, ctx: TestContext, params: list[Any]
    ) -> bool:
        try:
            return bool(await test.run_check(ctx, params))
        except Exception as e:
            event_logger.debug("pre_check_failed", error=_format_error(e))
            return False

    async def _poll_check(
        self,
        test: TestCase,
        ctx: TestContext,
        params: list[Any],
        result: TestResult,
    ) -> None:
        """
        Invoke ``check`` until it returns a truthy value.

        ``check`` runs at most ``wait_time + 1`` times, ``poll_interval``
        apart.

        Raises:
            CheckFailedError: The check never returned a truthy value; its
                message is the last error raised by ``check``, if any.
        """
        attempts = test.wait_time
        while True:
            result.check_attempts += 1
            last_error: Exception | None = None
            try:
                if await test.run_check(ctx, params):
                    return
            except Exception as e:
                last_error = e

            if attempts <= 0:
                if last_error is None:
                    raise CheckFailedError(
                        CHECK_FAILED_MESSAGE,
                        test_name=test.name,
                        attempts=result.check_attempts,
                    )
                raise CheckFailedError(
                    _format_error(last_error),
                    test_name=test.name,
                    attempts=result.check_attempts,
                    cause=last_error,
                ) from last_error

            self._emit(
                ProgressEventType.CHECK_WAITING, test, remaining_attempts=attempts
            )
            await delay(self.poll_interval)
            attempts -= 1

    def _warn(self, test: TestCase, result: TestResult, message: str) -> None:
        result.warnings.append(message)
        event_logger.warning("test_warning", warning=message)
        self._emit(ProgressEventType.TEST_WARNING, test, message=message)
