"""Async coordination primitives for the harness.

Every multi-step protocol flow in SyTest is a linear chain of awaits. The
helpers here cover the few shapes that are not:
- Joining independent operations (booting N servers, N clients)
- Racing an operation against a delay to bound an otherwise unbounded wait
- Logging the completion of a step that succeeded
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from sytest.core.exceptions import HarnessTimeoutError
from sytest.core.logging import get_logger

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Losing operations of wait_any keep running; hold references so the loop
# does not garbage-collect them mid-flight.
_detached: set[asyncio.Future[Any]] = set()


def _retrieve_detached(future: asyncio.Future[Any]) -> None:
    _detached.discard(future)
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.debug("Detached operation finished with error: %s", exc)


def detach(future: asyncio.Future[Any]) -> None:
    """Leave ``future`` running unobserved; its exception is logged, not raised."""
    if future.done():
        _retrieve_detached(future)
        return
    _detached.add(future)
    future.add_done_callback(_retrieve_detached)


async def needs_all(*aws: Awaitable[Any]) -> list[Any]:
    """
    Wait for every awaitable to complete.

    Results are returned in input order. The first failure is raised; the
    remaining operations are not cancelled, they run on detached.

    Args:
        *aws: Awaitables to join.

    Returns:
        List of results, one per input.
    """
    futures = [asyncio.ensure_future(aw) for aw in aws]
    if not futures:
        return []

    try:
        return list(await asyncio.gather(*futures))
    except BaseException:
        for future in futures:
            detach(future)
        raise


async def wait_any(*aws: Awaitable[T]) -> T:
    """
    Complete or fail with whichever awaitable finishes first.

    The losers are not cancelled; they are detached and left in whatever
    state they reach.

    Args:
        *aws: Awaitables to race.

    Returns:
        Result of the first awaitable to finish.

    Raises:
        Whatever the first awaitable to finish raised.
    """
    if not aws:
        raise ValueError("wait_any needs at least one awaitable")

    futures = [asyncio.ensure_future(aw) for aw in aws]
    try:
        done, pending = await asyncio.wait(
            futures, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        for future in futures:
            detach(future)
        raise

    for future in pending:
        detach(future)

    # Prefer input order when several finished in the same loop iteration
    winner = next(future for future in futures if future in done)
    for future in done:
        if future is not winner:
            detach(future)
    return winner.result()


async def delay(seconds: float) -> None:
    """Sleep for ``seconds`` on the event loop."""
    await asyncio.sleep(seconds)


async def fail_after(seconds: float, message: str) -> Any:
    """
    Fail with ``message`` once ``seconds`` have elapsed.

    Raises:
        HarnessTimeoutError: Always, after the delay.
    """
    await asyncio.sleep(seconds)
    raise HarnessTimeoutError(message, timeout_seconds=seconds)


async def with_timeout(aw: Awaitable[T], seconds: float, message: str) -> T:
    """
    Race ``aw`` against a delay that fails with ``message``.

    On timeout the original operation is detached, not aborted.
    """
    return await wait_any(aw, fail_after(seconds, message))


async def log_on_done(aw: Awaitable[T], message: str, **fields: Any) -> T:
    """Await ``aw`` and log ``message`` if it succeeds."""
    result = await aw
    get_logger(__name__).info(message, **fields)
    return result
