"""Tests for SyTest structured logging."""

import logging
from typing import Any

import pytest
import structlog

from sytest import __version__
from sytest.core.logging import (
    add_bound_context,
    add_common_fields,
    add_run_id,
    bind_context,
    clear_module_log_levels,
    configure_logging,
    configure_logging_from_settings,
    filter_by_module_level,
    generate_run_id,
    get_logger,
    get_run_id,
    redact_sensitive_data,
    run_context,
    sanitize_event,
    set_module_log_level,
    set_run_id,
)
from sytest.core.settings import SyTestSettings


class TestRunId:
    """Tests for run ID generation and propagation."""

    def test_generate_run_id_unique(self) -> None:
        ids = {generate_run_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(len(run_id) == 12 for run_id in ids)

    def test_get_set_run_id(self) -> None:
        assert get_run_id() is None
        set_run_id("abc")
        assert get_run_id() == "abc"
        set_run_id(None)
        assert get_run_id() is None

    def test_run_context_sets_and_restores(self) -> None:
        with run_context("outer") as run_id:
            assert run_id == "outer"
            assert get_run_id() == "outer"
        assert get_run_id() is None

    def test_run_context_generates_id(self) -> None:
        with run_context() as run_id:
            assert get_run_id() == run_id
            assert len(run_id) == 12

    @pytest.mark.anyio
    async def test_async_run_context(self) -> None:
        async with run_context("async-run"):
            assert get_run_id() == "async-run"
        assert get_run_id() is None


class TestBindContext:
    """Tests for bound log context."""

    def test_bound_values_added(self) -> None:
        with bind_context(test="A room can be created", file="10rooms.py"):
            event = add_bound_context(None, "info", {"event": "x"})
        assert event["test"] == "A room can be created"
        assert event["file"] == "10rooms.py"

    def test_nested_contexts_merge(self) -> None:
        with bind_context(test="outer"), bind_context(attempt=2):
            event = add_bound_context(None, "info", {"event": "x"})
        assert event == {"event": "x", "test": "outer", "attempt": 2}

    def test_explicit_values_win(self) -> None:
        with bind_context(test="bound"):
            event = add_bound_context(None, "info", {"test": "explicit"})
        assert event["test"] == "explicit"

    def test_context_removed_on_exit(self) -> None:
        with bind_context(test="gone"):
            pass
        assert add_bound_context(None, "info", {}) == {}


class TestProcessors:
    """Tests for the individual structlog processors."""

    def test_add_run_id_only_when_set(self) -> None:
        assert "run_id" not in add_run_id(None, "info", {})
        with run_context("r1"):
            assert add_run_id(None, "info", {})["run_id"] == "r1"

    def test_add_common_fields(self) -> None:
        event = add_common_fields(None, "info", {})
        assert event["sytest_version"] == __version__

    def test_sensitive_keys_redacted(self) -> None:
        event = redact_sensitive_data(
            None,
            "info",
            {"event": "registered", "password": "f00b4r", "access_token": "abc"},
        )
        assert event["password"] == "[REDACTED]"
        assert event["access_token"] == "[REDACTED]"
        assert event["event"] == "registered"

    def test_nested_bodies_redacted(self) -> None:
        body: dict[str, Any] = {"auth": {"type": "m.login.dummy"}, "password": "x"}
        event = redact_sensitive_data(None, "info", {"body": body})
        assert event["body"] == {
            "auth": {"type": "m.login.dummy"},
            "password": "[REDACTED]",
        }

    def test_secrets_in_text_redacted(self) -> None:
        event = redact_sensitive_data(
            None, "info", {"url": "/sync?access_token=secret123&timeout=0"}
        )
        assert "secret123" not in event["url"]

    def test_sanitize_event_escapes_newlines(self) -> None:
        event = sanitize_event(None, "info", {"event": "line one\nline two"})
        assert event["event"] == "line one\\nline two"


class TestModuleLevels:
    """Tests for per-module level overrides."""

    def test_clear(self) -> None:
        set_module_log_level("sytest.client.http", "warning")
        with pytest.raises(structlog.DropEvent):
            filter_by_module_level(None, "info", {"logger": "sytest.client.http"})
        clear_module_log_levels()
        event = {"logger": "sytest.client.http"}
        assert filter_by_module_level(None, "info", event) is event

    def test_event_below_threshold_dropped(self) -> None:
        set_module_log_level("sytest.client", logging.WARNING)
        with pytest.raises(structlog.DropEvent):
            filter_by_module_level(None, "info", {"logger": "sytest.client.http"})

    def test_most_specific_prefix_wins(self) -> None:
        set_module_log_level("sytest", logging.ERROR)
        set_module_log_level("sytest.server.output", logging.DEBUG)
        event = {"logger": "sytest.server.output"}
        assert filter_by_module_level(None, "debug", event) is event

    def test_unrelated_logger_passes(self) -> None:
        set_module_log_level("sytest.client", logging.ERROR)
        event = {"logger": "sytest.runner"}
        assert filter_by_module_level(None, "info", event) is event


class TestConfigureLogging:
    """Tests for logging configuration."""

    def test_single_console_handler(self) -> None:
        configure_logging(level="DEBUG", json_output=True)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], logging.StreamHandler)

    def test_log_file(self, tmp_path) -> None:
        log_file = tmp_path / "sytest.log"
        configure_logging(json_output=True, log_file=str(log_file))
        get_logger("sytest.test").info("written_to_file", port=8001)
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "written_to_file" in log_file.read_text()

    def test_traffic_loggers_quiet_by_default(self) -> None:
        configure_logging_from_settings(SyTestSettings(_skip_file_loading=True))
        for name in ("sytest.client.http", "sytest.server.output"):
            with pytest.raises(structlog.DropEvent):
                filter_by_module_level(None, "info", {"logger": name})
            event = {"logger": name}
            assert filter_by_module_level(None, "warning", event) is event

    def test_traffic_loggers_enabled(self) -> None:
        settings = SyTestSettings(
            _skip_file_loading=True,
            client={"log_traffic": True},
            server={"print_output": True},
        )
        configure_logging_from_settings(settings)
        for name in ("sytest.client.http", "sytest.server.output"):
            event = {"logger": name}
            assert filter_by_module_level(None, "debug", event) is event
