"""Shared pytest fixtures for SyTest tests."""

from collections.abc import Iterator
from pathlib import Path

import pytest

from sytest.core.logging import reset_logging
from sytest.core.settings import SyTestSettings
from tests.fixtures.fake_homeserver import FakeFederation


@pytest.fixture
def anyio_backend() -> str:
    """The harness is built on asyncio subprocesses and tasks."""
    return "asyncio"


@pytest.fixture(autouse=True)
def clean_logging() -> Iterator[None]:
    """Reset structlog and stdlib logging around every test."""
    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to the fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def federation() -> FakeFederation:
    """An empty in-memory federation of fake homeservers."""
    return FakeFederation()


@pytest.fixture
def fast_settings() -> SyTestSettings:
    """Settings tuned for the fake federation: short timers, plain HTTP."""
    return SyTestSettings(
        _skip_file_loading=True,
        servers=2,
        base_port=8000,
        client={"use_ssl": False, "sync_timeout_ms": 50},
        runner={
            "poll_interval": 0.05,
            "flush_delay": 0.05,
            "convergence_attempts": 20,
        },
    )
