"""Structured logging for SyTest.

Every harness module logs through structlog, which is routed into the
stdlib ``logging`` tree so that library loggers (httpx, asyncio) share the
same handlers. Log lines go to stderr; stdout is reserved for the
scheduler's PASS/FAIL output.

Each event is enriched with:
- ``run_id``: one identifier per harness invocation (see ``run_context``)
- the bound test context (``test`` and ``file`` while a test runs)
- ``sytest_version``

Passwords and access tokens are redacted before rendering. The client
traffic (``sytest.client.http``) and homeserver output
(``sytest.server.output``) loggers are held at WARNING unless ``-C`` or
``-S`` is given.

Example usage:
    from sytest.core.logging import configure_logging, get_logger, run_context

    configure_logging()
    logger = get_logger(__name__)

    with run_context():
        logger.info("servers_booting", count=2)
"""

import logging
import sys
import uuid
from contextvars import ContextVar, Token
from typing import Any, TextIO

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from sytest import __version__
from sytest.core.security import redact_secrets, sanitize_log_message

CLIENT_TRAFFIC_LOGGER = "sytest.client.http"
SERVER_OUTPUT_LOGGER = "sytest.server.output"

REDACTED = "[REDACTED]"

# Substrings marking a field whose value is never logged
SENSITIVE_KEY_PATTERNS = ("password", "passwd", "secret", "token", "authorization")

_run_id: ContextVar[str | None] = ContextVar("sytest_run_id", default=None)
_test_context: ContextVar[dict[str, Any]] = ContextVar(
    "sytest_test_context", default={}
)

# Logger name prefix -> lowest level let through
_module_log_levels: dict[str, int] = {}


def generate_run_id() -> str:
    """Return a short random identifier for one harness run."""
    return uuid.uuid4().hex[:12]


def get_run_id() -> str | None:
    return _run_id.get()


def set_run_id(run_id: str | None) -> None:
    _run_id.set(run_id)


class run_context:
    """Establish the run ID for everything logged inside the block.

    Usable with both ``with`` and ``async with``; the run ID is the value
    bound by ``as``.
    """

    def __init__(self, run_id: str | None = None) -> None:
        self.run_id = run_id or generate_run_id()
        self._token: Token[str | None] | None = None

    def __enter__(self) -> str:
        self._token = _run_id.set(self.run_id)
        return self.run_id

    def __exit__(self, *exc_info: Any) -> None:
        if self._token is not None:
            _run_id.reset(self._token)
            self._token = None

    async def __aenter__(self) -> str:
        return self.__enter__()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.__exit__(*exc_info)


class bind_context:
    """Add fields to every event logged inside the block.

    Nested blocks merge; the inner value wins for a repeated field.

    Example:
        with bind_context(test="Add remote group users"):
            logger.info("check_attempt")
    """

    def __init__(self, **fields: Any) -> None:
        self.fields = fields
        self._token: Token[dict[str, Any]] | None = None

    def __enter__(self) -> "bind_context":
        self._token = _test_context.set({**_test_context.get(), **self.fields})
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._token is not None:
            _test_context.reset(self._token)
            self._token = None


# Processors


def add_run_id(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    run_id = _run_id.get()
    if run_id is not None:
        event_dict["run_id"] = run_id
    return event_dict


def add_bound_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Merge in ``bind_context`` fields without overriding explicit ones."""
    for key, value in _test_context.get().items():
        event_dict.setdefault(key, value)
    return event_dict


def add_common_fields(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("sytest_version", __version__)
    return event_dict


def _is_sensitive(key: Any) -> bool:
    lowered = str(key).lower()
    return any(pattern in lowered for pattern in SENSITIVE_KEY_PATTERNS)


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return redact_secrets(value)
    if isinstance(value, dict):
        return {
            k: REDACTED if _is_sensitive(k) else _scrub(v) for k, v in value.items()
        }
    if isinstance(value, list):
        return [_scrub(item) for item in value]
    return value


def redact_sensitive_data(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Blank sensitive fields and scrub secrets out of everything else.

    Request and response bodies are walked, so a ``password`` inside a
    register body is redacted as well.
    """
    return {
        key: REDACTED if _is_sensitive(key) else _scrub(value)
        for key, value in event_dict.items()
    }


def sanitize_event(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Escape control characters in the event name."""
    event = event_dict.get("event")
    if isinstance(event, str):
        event_dict["event"] = sanitize_log_message(event)
    return event_dict


def _threshold_for(logger_name: str) -> int | None:
    best: str | None = None
    for prefix in _module_log_levels:
        if logger_name == prefix or logger_name.startswith(prefix + "."):
            if best is None or len(prefix) > len(best):
                best = prefix
    return None if best is None else _module_log_levels[best]


def _method_level(method_name: str) -> int:
    if method_name == "exception":
        return logging.ERROR
    return logging.getLevelNamesMapping().get(method_name.upper(), logging.INFO)


def filter_by_module_level(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Drop events below the override of the most specific matching prefix."""
    logger_name = event_dict.get("logger")
    if not _module_log_levels or not logger_name:
        return event_dict

    threshold = _threshold_for(logger_name)
    if threshold is not None and _method_level(method_name) < threshold:
        raise structlog.DropEvent
    return event_dict


def set_module_log_level(module: str, level: int | str) -> None:
    """Override the level for ``module`` and every logger below it."""
    if isinstance(level, str):
        level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)
    _module_log_levels[module] = level


def clear_module_log_levels() -> None:
    _module_log_levels.clear()


# Configuration

PRE_CHAIN: tuple[Processor, ...] = (
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    add_run_id,
    add_bound_context,
    add_common_fields,
    filter_by_module_level,
    redact_sensitive_data,
    sanitize_event,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
)


def _formatter(json_output: bool) -> structlog.stdlib.ProcessorFormatter:
    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    # DropEvent is only honoured on the structlog side of the chain
    foreign = [p for p in PRE_CHAIN if p is not filter_by_module_level]
    return structlog.stdlib.ProcessorFormatter(
        processor=renderer, foreign_pre_chain=foreign
    )


def _install_handler(
    handler: logging.Handler,
    level: int,
    formatter: logging.Formatter,
) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    logging.getLogger().addHandler(handler)


def _clear_root_handlers() -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


def configure_logging(
    level: str | int = logging.INFO,
    json_output: bool | None = None,
    log_file: str | None = None,
    module_levels: dict[str, str | int] | None = None,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Global log level.
        json_output: Render JSON lines. Defaults to True when stderr is not
            a terminal.
        log_file: Also write every log line to this file.
        module_levels: Per-logger level overrides.
        stream: Console stream; stderr by default.
    """
    stream = stream or sys.stderr
    if json_output is None:
        json_output = not stream.isatty()
    if isinstance(level, str):
        level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    for module, module_level in (module_levels or {}).items():
        set_module_log_level(module, module_level)

    structlog.configure(
        processors=[*PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = _formatter(json_output)
    _clear_root_handlers()
    logging.getLogger().setLevel(level)
    _install_handler(logging.StreamHandler(stream), level, formatter)
    if log_file:
        _install_handler(logging.FileHandler(log_file), level, formatter)


def configure_logging_from_settings(settings: Any | None = None) -> None:
    """Configure logging from the ``logging`` section of the settings.

    The traffic loggers stay at WARNING unless ``client.log_traffic`` or
    ``server.print_output`` turns them on.
    """
    from sytest.core.settings import get_cached_settings

    settings = settings or get_cached_settings()

    quiet: dict[str, str | int] = {}
    if not settings.client.log_traffic:
        quiet[CLIENT_TRAFFIC_LOGGER] = logging.WARNING
    if not settings.server.print_output:
        quiet[SERVER_OUTPUT_LOGGER] = logging.WARNING

    configure_logging(
        level=settings.logging.level,
        json_output=settings.logging.json_output,
        log_file=settings.logging.file,
        module_levels=quiet,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)


def reset_logging() -> None:
    """Return logging to its unconfigured state; used between tests."""
    clear_module_log_levels()
    _run_id.set(None)
    _test_context.set({})
    structlog.reset_defaults()
    _clear_root_handlers()
    logging.getLogger().setLevel(logging.WARNING)
