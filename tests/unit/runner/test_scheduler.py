"""Tests for the sequential test scheduler."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, call

import pytest

from sytest.loader.models import TestCase
from sytest.runner.environment import TestContext, TestEnvironment
from sytest.runner.models import ProgressEvent, ProgressEventType, TestOutcome
from sytest.runner.scheduler import CHECK_FAILED_MESSAGE, TestScheduler


def _case(name: str, **kwargs: Any) -> TestCase:
    return TestCase(name=name, file="10tests.py", **kwargs)


class Recorder:
    """Progress callback collecting events."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def types(self) -> list[ProgressEventType]:
        return [event.event_type for event in self.events]


@pytest.fixture
def env() -> TestEnvironment:
    env = TestEnvironment()
    env.provide("clients", ["client-1", "client-2"])
    return env


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def scheduler(env: TestEnvironment, recorder: Recorder) -> TestScheduler:
    return TestScheduler(env, progress_callback=recorder, poll_interval=0)


class TestRequirements:
    """Tests for requirement resolution and skipping."""

    @pytest.mark.anyio
    async def test_missing_requirement_skips(
        self, scheduler: TestScheduler, recorder: Recorder
    ) -> None:
        do = MagicMock()
        result = await scheduler.run_test(_case("t", requires=("rooms",), do=do))

        assert result.outcome == TestOutcome.SKIP
        assert result.missing_requirement == "rooms"
        do.assert_not_called()
        assert recorder.types() == [ProgressEventType.TEST_SKIPPED]
        assert recorder.events[0].missing_requirement == "rooms"

    @pytest.mark.anyio
    async def test_params_passed_after_context(
        self, scheduler: TestScheduler, env: TestEnvironment
    ) -> None:
        received: list[Any] = []

        async def do(ctx: TestContext, clients: list[str]) -> None:
            received.extend([ctx, clients])

        await scheduler.run_test(_case("t", requires=("clients",), do=do))

        assert isinstance(received[0], TestContext)
        assert received[0].environment is env
        assert received[1] == ["client-1", "client-2"]


class TestDoAndCheck:
    """Tests for the do/check pipeline."""

    @pytest.mark.anyio
    async def test_do_only_passes(
        self, scheduler: TestScheduler, recorder: Recorder
    ) -> None:
        async def do(ctx: TestContext) -> None:
            return None

        result = await scheduler.run_test(_case("t", do=do))

        assert result.passed
        assert result.check_attempts == 0
        assert recorder.types() == [
            ProgressEventType.TEST_STARTED,
            ProgressEventType.TEST_PASSED,
        ]

    @pytest.mark.anyio
    async def test_do_error_fails_with_message(self, scheduler: TestScheduler) -> None:
        async def do(ctx: TestContext) -> None:
            raise RuntimeError("M_FORBIDDEN: not allowed\n")

        result = await scheduler.run_test(_case("t", do=do))

        assert result.failed
        assert result.error == "M_FORBIDDEN: not allowed"

    @pytest.mark.anyio
    async def test_error_without_message_uses_type(
        self, scheduler: TestScheduler
    ) -> None:
        async def do(ctx: TestContext) -> None:
            raise KeyError

        result = await scheduler.run_test(_case("t", do=do))
        assert result.error == "KeyError"

    @pytest.mark.anyio
    async def test_check_retried_until_true(
        self, scheduler: TestScheduler, recorder: Recorder
    ) -> None:
        outcomes = iter([False, False, True])

        async def check(ctx: TestContext) -> bool:
            return next(outcomes)

        result = await scheduler.run_test(_case("t", check=check, wait_time=5))

        assert result.passed
        assert result.check_attempts == 3
        waiting = [
            e
            for e in recorder.events
            if e.event_type == ProgressEventType.CHECK_WAITING
        ]
        assert [e.remaining_attempts for e in waiting] == [5, 4]

    @pytest.mark.anyio
    async def test_poll_interval_between_attempts(
        self, env: TestEnvironment, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        delay = AsyncMock()
        monkeypatch.setattr("sytest.runner.scheduler.delay", delay)
        outcomes = iter([False, False, True])

        async def check(ctx: TestContext) -> bool:
            return next(outcomes)

        scheduler = TestScheduler(env, poll_interval=0.25)
        result = await scheduler.run_test(_case("t", check=check, wait_time=5))

        assert result.passed
        assert delay.await_args_list == [call(0.25), call(0.25)]

    @pytest.mark.anyio
    async def test_check_runs_wait_time_plus_one_times(
        self, scheduler: TestScheduler
    ) -> None:
        calls: list[int] = []

        async def check(ctx: TestContext) -> bool:
            calls.append(1)
            return False

        result = await scheduler.run_test(_case("t", check=check, wait_time=3))

        assert result.failed
        assert len(calls) == 4
        assert result.check_attempts == 4
        assert result.error == CHECK_FAILED_MESSAGE

    @pytest.mark.anyio
    async def test_check_without_wait_time_runs_once(
        self, scheduler: TestScheduler
    ) -> None:
        check = MagicMock()

        async def falsy(ctx: TestContext) -> bool:
            check()
            return False

        result = await scheduler.run_test(_case("t", check=falsy))
        assert result.failed
        assert check.call_count == 1

    @pytest.mark.anyio
    async def test_last_check_error_reported(self, scheduler: TestScheduler) -> None:
        async def check(ctx: TestContext) -> bool:
            raise AssertionError("Expected 2 members, found 1")

        result = await scheduler.run_test(_case("t", check=check, wait_time=1))

        assert result.failed
        assert result.error == "Expected 2 members, found 1"

    @pytest.mark.anyio
    async def test_do_before_check(self, scheduler: TestScheduler) -> None:
        state = {"done": False}

        async def do(ctx: TestContext) -> None:
            state["done"] = True

        async def check(ctx: TestContext) -> bool:
            return state["done"]

        result = await scheduler.run_test(_case("t", do=do, check=check))

        assert result.passed
        assert result.warnings == []
        # One pre-check that failed, one check after do
        assert result.check_attempts == 1

    @pytest.mark.anyio
    async def test_already_passing_warns(
        self, scheduler: TestScheduler, recorder: Recorder
    ) -> None:
        async def do(ctx: TestContext) -> None:
            return None

        async def check(ctx: TestContext) -> bool:
            return True

        result = await scheduler.run_test(_case("Join works", do=do, check=check))

        assert result.passed
        assert result.warnings == [
            "Join works was already passing before we did anything"
        ]
        assert recorder.types() == [
            ProgressEventType.TEST_STARTED,
            ProgressEventType.TEST_WARNING,
            ProgressEventType.TEST_PASSED,
        ]

    @pytest.mark.anyio
    async def test_raising_pre_check_is_not_a_warning(
        self, scheduler: TestScheduler
    ) -> None:
        state = {"done": False}

        async def do(ctx: TestContext) -> None:
            state["done"] = True

        async def check(ctx: TestContext) -> bool:
            if not state["done"]:
                raise KeyError("rooms")
            return True

        result = await scheduler.run_test(_case("t", do=do, check=check))
        assert result.passed
        assert result.warnings == []


class TestProvides:
    """Tests for promised environment keys."""

    @pytest.mark.anyio
    async def test_provided_key_stored(
        self, scheduler: TestScheduler, env: TestEnvironment
    ) -> None:
        async def do(ctx: TestContext) -> None:
            ctx.provide("room_id", "!r:localhost:8001")

        result = await scheduler.run_test(_case("t", do=do, provides=("room_id",)))

        assert result.passed
        assert result.warnings == []
        assert env.lookup("room_id") == "!r:localhost:8001"

    @pytest.mark.anyio
    async def test_missing_provide_warns_without_failing(
        self, scheduler: TestScheduler, recorder: Recorder
    ) -> None:
        async def do(ctx: TestContext) -> None:
            return None

        result = await scheduler.run_test(_case("t", do=do, provides=("room_id",)))

        assert result.passed
        assert result.warnings == [
            "Test failed to provide the 'room_id' environment as promised"
        ]
        assert recorder.types()[-2:] == [
            ProgressEventType.TEST_PASSED,
            ProgressEventType.TEST_WARNING,
        ]

    @pytest.mark.anyio
    async def test_failed_test_still_checked_for_provides(
        self, scheduler: TestScheduler
    ) -> None:
        async def do(ctx: TestContext) -> None:
            raise RuntimeError("boom")

        result = await scheduler.run_test(_case("t", do=do, provides=("rooms",)))

        assert result.failed
        assert len(result.warnings) == 1


class TestRun:
    """Tests for running a list of tests."""

    @pytest.mark.anyio
    async def test_failure_does_not_stop_run(
        self, scheduler: TestScheduler, recorder: Recorder
    ) -> None:
        async def fail(ctx: TestContext) -> None:
            raise RuntimeError("boom")

        async def ok(ctx: TestContext) -> None:
            return None

        result = await scheduler.run(
            [_case("a", do=fail), _case("b", do=ok), _case("c", requires=("x",), do=ok)]
        )

        assert [t.outcome for t in result.tests] == [
            TestOutcome.FAIL,
            TestOutcome.PASS,
            TestOutcome.SKIP,
        ]
        assert (result.passed, result.failed, result.skipped) == (1, 1, 1)
        assert not result.success
        assert not result.stopped_early
        assert recorder.events[0].event_type == ProgressEventType.SUITE_STARTED
        assert recorder.events[0].total_tests == 3
        completed = recorder.events[-1]
        assert completed.event_type == ProgressEventType.SUITE_COMPLETED
        assert completed.details["failed"] == 1
        assert completed.success is False

    @pytest.mark.anyio
    async def test_later_test_sees_earlier_provides(
        self, scheduler: TestScheduler
    ) -> None:
        async def create(ctx: TestContext) -> None:
            ctx.provide("room_id", "!r")

        async def check(ctx: TestContext, room_id: str) -> bool:
            return room_id == "!r"

        result = await scheduler.run(
            [
                _case("create", do=create, provides=("room_id",)),
                _case("use", requires=("room_id",), check=check),
            ]
        )
        assert result.passed == 2

    @pytest.mark.anyio
    async def test_fail_fast(self, env: TestEnvironment) -> None:
        ran: list[str] = []

        async def fail(ctx: TestContext) -> None:
            ran.append("a")
            raise RuntimeError("boom")

        async def ok(ctx: TestContext) -> None:
            ran.append("b")

        scheduler = TestScheduler(env, poll_interval=0, fail_fast=True)
        result = await scheduler.run([_case("a", do=fail), _case("b", do=ok)])

        assert ran == ["a"]
        assert result.total_tests == 1
        assert result.stopped_early

    @pytest.mark.anyio
    async def test_skips_do_not_trigger_fail_fast(self, env: TestEnvironment) -> None:
        async def ok(ctx: TestContext) -> None:
            return None

        scheduler = TestScheduler(env, poll_interval=0, fail_fast=True)
        result = await scheduler.run(
            [_case("a", requires=("missing",), do=ok), _case("b", do=ok)]
        )
        assert result.total_tests == 2
        assert result.success

    @pytest.mark.anyio
    async def test_callback_errors_ignored(self, env: TestEnvironment) -> None:
        async def ok(ctx: TestContext) -> None:
            return None

        callback = MagicMock(side_effect=RuntimeError("display broke"))
        scheduler = TestScheduler(env, progress_callback=callback, poll_interval=0)
        result = await scheduler.run([_case("a", do=ok)])

        assert result.success
        assert callback.call_count == 4

    @pytest.mark.anyio
    async def test_settings_exposed_to_actions(self, env: TestEnvironment) -> None:
        settings = MagicMock()
        seen: list[Any] = []

        async def do(ctx: TestContext) -> None:
            seen.append(ctx.settings)

        await TestScheduler(env, settings=settings, poll_interval=0).run(
            [_case("a", do=do)]
        )
        assert seen == [settings]
