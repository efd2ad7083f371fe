"""Tests for the async coordination helpers."""

import asyncio

import pytest

from sytest.core.async_utils import (
    delay,
    detach,
    fail_after,
    log_on_done,
    needs_all,
    wait_any,
    with_timeout,
)
from sytest.core.exceptions import HarnessTimeoutError


async def _value_after(value: str, seconds: float) -> str:
    await asyncio.sleep(seconds)
    return value


async def _fail_after(message: str, seconds: float) -> None:
    await asyncio.sleep(seconds)
    raise RuntimeError(message)


class TestNeedsAll:
    """Tests for joining operations."""

    @pytest.mark.anyio
    async def test_results_in_input_order(self) -> None:
        results = await needs_all(
            _value_after("slow", 0.03),
            _value_after("fast", 0.0),
        )
        assert results == ["slow", "fast"]

    @pytest.mark.anyio
    async def test_empty(self) -> None:
        assert await needs_all() == []

    @pytest.mark.anyio
    async def test_first_failure_raised(self) -> None:
        with pytest.raises(RuntimeError, match="boom"):
            await needs_all(_value_after("ok", 0.01), _fail_after("boom", 0.0))

    @pytest.mark.anyio
    async def test_siblings_not_cancelled(self) -> None:
        finished: list[str] = []

        async def sibling() -> None:
            await asyncio.sleep(0.02)
            finished.append("sibling")

        with pytest.raises(RuntimeError):
            await needs_all(sibling(), _fail_after("boom", 0.0))

        await asyncio.sleep(0.05)
        assert finished == ["sibling"]


class TestWaitAny:
    """Tests for racing operations."""

    @pytest.mark.anyio
    async def test_first_result_wins(self) -> None:
        assert await wait_any(_value_after("a", 0.05), _value_after("b", 0.0)) == "b"

    @pytest.mark.anyio
    async def test_first_failure_wins(self) -> None:
        with pytest.raises(RuntimeError, match="early"):
            await wait_any(_value_after("late", 0.05), _fail_after("early", 0.0))

    @pytest.mark.anyio
    async def test_loser_keeps_running(self) -> None:
        finished: list[str] = []

        async def loser() -> str:
            await asyncio.sleep(0.02)
            finished.append("loser")
            return "loser"

        assert await wait_any(_value_after("winner", 0.0), loser()) == "winner"
        await asyncio.sleep(0.05)
        assert finished == ["loser"]

    @pytest.mark.anyio
    async def test_requires_an_awaitable(self) -> None:
        with pytest.raises(ValueError):
            await wait_any()


class TestTimeouts:
    """Tests for timeout races."""

    @pytest.mark.anyio
    async def test_fail_after_raises(self) -> None:
        with pytest.raises(HarnessTimeoutError, match="too slow") as exc_info:
            await fail_after(0.0, "too slow")
        assert exc_info.value.timeout_seconds == 0.0

    @pytest.mark.anyio
    async def test_with_timeout_returns_result(self) -> None:
        assert await with_timeout(_value_after("done", 0.0), 1.0, "late") == "done"

    @pytest.mark.anyio
    async def test_with_timeout_fails_with_message(self) -> None:
        with pytest.raises(
            HarnessTimeoutError, match="Synapse server on port 8001 failed to start"
        ):
            await with_timeout(
                _value_after("never", 1.0),
                0.01,
                "Synapse server on port 8001 failed to start",
            )

    @pytest.mark.anyio
    async def test_timed_out_operation_not_aborted(self) -> None:
        operation = asyncio.ensure_future(_value_after("eventually", 0.05))
        with pytest.raises(HarnessTimeoutError):
            await with_timeout(operation, 0.01, "timeout")
        assert not operation.cancelled()
        assert await operation == "eventually"


class TestDetach:
    """Tests for detached futures."""

    @pytest.mark.anyio
    async def test_failed_detached_future_does_not_raise(self) -> None:
        future = asyncio.ensure_future(_fail_after("ignored", 0.0))
        detach(future)
        await asyncio.sleep(0.01)
        assert future.done()


class TestLogOnDone:
    """Tests for log_on_done and delay."""

    @pytest.mark.anyio
    async def test_result_passed_through(self) -> None:
        assert await log_on_done(_value_after("x", 0.0), "Finished", step=1) == "x"

    @pytest.mark.anyio
    async def test_delay(self) -> None:
        loop = asyncio.get_running_loop()
        start = loop.time()
        await delay(0.01)
        assert loop.time() - start >= 0.009
