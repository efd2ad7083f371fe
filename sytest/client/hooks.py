"""Interceptor hooks for the protocol client.

Hooks are passed to :class:`~sytest.client.matrix.MatrixClient` at
construction time. Request and response hooks are installed as httpx
``event_hooks``; event and error hooks are invoked by the client itself.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from sytest.core.logging import get_logger
from sytest.core.security import redact_dict_secrets, redact_secrets

if TYPE_CHECKING:
    from sytest.client.exceptions import ClientError
    from sytest.client.matrix import MatrixClient

RequestHook = Callable[[httpx.Request], Awaitable[None]]
ResponseHook = Callable[[httpx.Response], Awaitable[None]]
EventHook = Callable[["MatrixClient", dict[str, Any]], None]
ErrorHook = Callable[["ClientError"], None]

http_logger = get_logger("sytest.client.http")

# Long-poll endpoints are far too chatty to log
DEFAULT_SKIP_SUFFIXES = ("/sync", "/events")


@dataclass
class ClientHooks:
    """Collection of hooks observing one client's traffic."""

    on_request: list[RequestHook] = field(default_factory=list)
    on_response: list[ResponseHook] = field(default_factory=list)
    on_event: list[EventHook] = field(default_factory=list)
    on_error: list[ErrorHook] = field(default_factory=list)

    def httpx_event_hooks(self) -> dict[str, list[Callable[..., Any]]]:
        """Return the hooks in the shape ``httpx.AsyncClient`` expects."""
        return {
            "request": list(self.on_request),
            "response": list(self.on_response),
        }

    def emit_event(self, client: MatrixClient, event: dict[str, Any]) -> None:
        """Invoke every event hook for an event received from the stream."""
        for hook in self.on_event:
            hook(client, event)

    def emit_error(self, error: ClientError) -> None:
        """Invoke every error hook before the error is raised to the caller."""
        for hook in self.on_error:
            hook(error)


def _body_for_log(content: bytes) -> Any:
    if not content:
        return None
    try:
        return redact_dict_secrets(json.loads(content))
    except (json.JSONDecodeError, UnicodeDecodeError):
        return redact_secrets(content.decode("utf-8", errors="replace"))


def _skipped(url: httpx.URL, skip_suffixes: Iterable[str]) -> bool:
    return any(url.path.endswith(suffix) for suffix in skip_suffixes)


def logging_hooks(skip_suffixes: Iterable[str] = DEFAULT_SKIP_SUFFIXES) -> ClientHooks:
    """
    Build hooks that log client traffic to ``sytest.client.http``.

    Args:
        skip_suffixes: URL path suffixes whose requests and responses are not
            logged (the long-poll endpoints by default).

    Returns:
        ClientHooks logging requests, responses, received events and errors.
    """
    skip = tuple(skip_suffixes)

    async def log_request(request: httpx.Request) -> None:
        if _skipped(request.url, skip):
            return
        http_logger.info(
            "requesting",
            method=request.method,
            url=redact_secrets(str(request.url)),
            body=_body_for_log(request.content),
        )

    async def log_response(response: httpx.Response) -> None:
        if _skipped(response.request.url, skip):
            return
        await response.aread()
        http_logger.info(
            "response",
            status=response.status_code,
            url=redact_secrets(str(response.request.url)),
            body=_body_for_log(response.content),
        )

    def log_event(client: MatrixClient, event: dict[str, Any]) -> None:
        http_logger.info(
            "received_event",
            server=client.server_name,
            event_type=event.get("type"),
            event=redact_dict_secrets(event),
        )

    def log_error(error: ClientError) -> None:
        body = getattr(error, "body", None)
        http_logger.error(
            "request_failed",
            server=error.server,
            error=str(error),
            body=redact_dict_secrets(body) if body else "No response",
        )

    return ClientHooks(
        on_request=[log_request],
        on_response=[log_response],
        on_event=[log_event],
        on_error=[log_error],
    )
