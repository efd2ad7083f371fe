"""httpx-based protocol client for one homeserver."""

import asyncio
import itertools
import logging
import time
import uuid
from collections.abc import Callable
from typing import Any
from urllib.parse import quote

import httpx

from sytest.client.exceptions import (
    ClientConnectionError,
    ClientError,
    MatrixRequestError,
)
from sytest.client.hooks import ClientHooks
from sytest.client.models import Changes, User
from sytest.client.room import Room

logger = logging.getLogger(__name__)

CLIENT_PREFIX = "/_matrix/client/r0"

# Pause before retrying a failed long-poll
SYNC_RETRY_DELAY = 1.0

InviteCallback = Callable[[str, list[dict[str, Any]]], None]
RoomCallback = Callable[[Room], None]
UserPresenceCallback = Callable[[User, Changes], None]


class MatrixClient:
    """
    Client session against one homeserver.

    Requests are plain coroutines. After :meth:`start`, a background task
    long-polls ``/sync`` and dispatches push events to the rooms and
    callbacks of this client, in the order the server returns them.

    Example:
        async with MatrixClient("localhost", 8001) as client:
            await client.register("u-8001", "f00b4r")
            await client.start()
            room = await client.create_room()
    """

    def __init__(
        self,
        host: str,
        port: int,
        *,
        use_ssl: bool = True,
        verify_ssl: bool = False,
        request_timeout: float = 30.0,
        sync_timeout_ms: int = 30000,
        hooks: ClientHooks | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            host: Homeserver host name.
            port: Homeserver client port.
            use_ssl: Connect over HTTPS.
            verify_ssl: Verify the server certificate.
            request_timeout: Timeout for ordinary requests in seconds.
            sync_timeout_ms: Long-poll timeout passed to /sync.
            hooks: Interceptor hooks observing this client's traffic.
            transport: Optional httpx transport, e.g. a MockTransport.
        """
        self.host = host
        self.port = port
        self.request_timeout = request_timeout
        self.sync_timeout_ms = sync_timeout_ms
        self.hooks = hooks or ClientHooks()

        scheme = "https" if use_ssl else "http"
        self.base_url = f"{scheme}://{host}:{port}"

        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(request_timeout),
            verify=verify_ssl,
            event_hooks=self.hooks.httpx_event_hooks(),
            transport=transport,
        )

        self.user_id: str | None = None
        self.access_token: str | None = None
        self.rooms: dict[str, Room] = {}
        self.users: dict[str, User] = {}

        self._next_batch: str | None = None
        self._sync_task: asyncio.Task[None] | None = None
        self._running = False
        self._txn_ids = itertools.count(int(time.time() * 1000))

        self._on_invite: InviteCallback | None = None
        self._on_room_new: RoomCallback | None = None
        self._on_presence: UserPresenceCallback | None = None

    def __repr__(self) -> str:
        return f"MatrixClient({self.server_name!r}, user_id={self.user_id!r})"

    @property
    def server_name(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def is_running(self) -> bool:
        task = self._sync_task
        return self._running and task is not None and not task.done()

    @staticmethod
    def quote(part: str) -> str:
        """Escape one path segment."""
        return quote(part, safe="")

    def configure(
        self,
        on_invite: InviteCallback | None = None,
        on_room_new: RoomCallback | None = None,
        on_presence: UserPresenceCallback | None = None,
    ) -> None:
        """Register client-level push callbacks."""
        if on_invite is not None:
            self._on_invite = on_invite
        if on_room_new is not None:
            self._on_room_new = on_room_new
        if on_presence is not None:
            self._on_presence = on_presence

    def get_user(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            user = User(user_id=user_id)
            self.users[user_id] = user
        return user

    def get_room(self, room_id: str) -> Room:
        """Return the handle for ``room_id``, creating it on first use."""
        room = self.rooms.get(room_id)
        if room is None:
            room = Room(self, room_id)
            self.rooms[room_id] = room
            if self._on_room_new is not None:
                self._on_room_new(room)
        return room

    # =========================================================================
    # Transport
    # =========================================================================

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
        authenticated: bool = True,
    ) -> dict[str, Any]:
        """
        Send one client-API request and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Path below the client API prefix.
            json: Optional JSON request body.
            params: Optional query parameters.
            timeout: Override of the request timeout in seconds.
            authenticated: Send the access token if one is held.

        Raises:
            MatrixRequestError: The server answered with an error status.
            ClientConnectionError: No response was received.
        """
        full_path = CLIENT_PREFIX + path
        headers = {}
        if authenticated and self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        try:
            response = await self._http.request(
                method,
                full_path,
                json=json,
                params=params,
                headers=headers,
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.HTTPError as e:
            error: ClientError = ClientConnectionError(
                f"{method} {full_path} failed: {e!r}",
                server=self.server_name,
                method=method,
                path=full_path,
                cause=e,
            )
            self.hooks.emit_error(error)
            raise error from e

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {"error": response.text}
        if not isinstance(body, dict):
            body = {"result": body}

        if response.status_code >= 400:
            error = MatrixRequestError(
                response.status_code,
                errcode=body.get("errcode"),
                error=body.get("error"),
                method=method,
                path=full_path,
                body=body,
                server=self.server_name,
            )
            self.hooks.emit_error(error)
            raise error

        return body

    # =========================================================================
    # Session
    # =========================================================================

    async def register(self, localpart: str, password: str) -> str:
        """
        Register a new user and adopt its session.

        The server may answer the first attempt with a 401 carrying a
        user-interactive auth session; the request is then repeated with
        the dummy auth stage.

        Returns:
            The registered user ID.
        """
        payload: dict[str, Any] = {
            "username": localpart,
            "password": password,
            "auth": {"type": "m.login.dummy"},
        }
        try:
            body = await self.request(
                "POST", "/register", json=payload, authenticated=False
            )
        except MatrixRequestError as e:
            session = e.body.get("session")
            if e.status_code != 401 or not session:
                raise
            payload["auth"] = {"type": "m.login.dummy", "session": session}
            body = await self.request(
                "POST", "/register", json=payload, authenticated=False
            )

        self._adopt_session(body)
        logger.debug("Registered %s on %s", self.user_id, self.server_name)
        return self.user_id or ""

    async def login(self, localpart: str, password: str) -> str:
        """Log in with a password and adopt the session."""
        body = await self.request(
            "POST",
            "/login",
            json={
                "type": "m.login.password",
                "identifier": {"type": "m.id.user", "user": localpart},
                "password": password,
            },
            authenticated=False,
        )
        self._adopt_session(body)
        return self.user_id or ""

    def _adopt_session(self, body: dict[str, Any]) -> None:
        user_id, access_token = body.get("user_id"), body.get("access_token")
        if not user_id or not access_token:
            raise ClientError(
                "Session response lacks user_id or access_token", self.server_name
            )
        self.user_id = user_id
        self.access_token = access_token

    async def start(self) -> None:
        """
        Perform the initial sync and start the event stream.

        Returns once the initial sync has been applied; events after that
        point are delivered by a background task until :meth:`stop`.
        """
        if self._running:
            return
        if self.access_token is None:
            raise ClientError(
                "Cannot start a client without a session", self.server_name
            )

        body = await self.request("GET", "/sync", params={"timeout": 0})
        self._process_sync(body)

        self._running = True
        self._sync_task = asyncio.create_task(
            self._sync_loop(), name=f"sync-{self.server_name}"
        )

    async def stop(self) -> None:
        """Stop the event stream and close the HTTP session. Idempotent."""
        self._running = False
        task, self._sync_task = self._sync_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        elif task is not None and not task.cancelled() and task.exception():
            logger.error(
                "Event stream on %s had stopped: %r",
                self.server_name,
                task.exception(),
            )
        if not self._http.is_closed:
            await self._http.aclose()

    async def __aenter__(self) -> "MatrixClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()

    async def _sync_loop(self) -> None:
        long_poll_timeout = self.request_timeout + self.sync_timeout_ms / 1000
        while self._running:
            params: dict[str, Any] = {"timeout": self.sync_timeout_ms}
            if self._next_batch:
                params["since"] = self._next_batch
            try:
                body = await self.request(
                    "GET", "/sync", params=params, timeout=long_poll_timeout
                )
            except ClientError as e:
                if not self._running:
                    break
                logger.warning("Sync failed on %s: %s", self.server_name, e)
                await asyncio.sleep(SYNC_RETRY_DELAY)
                continue
            try:
                self._process_sync(body)
            except Exception:
                logger.exception("Bad sync response on %s", self.server_name)

    # =========================================================================
    # Event dispatch
    # =========================================================================

    def _process_sync(self, body: dict[str, Any]) -> None:
        self._next_batch = body.get("next_batch", self._next_batch)

        for event in body.get("presence", {}).get("events", []):
            self._deliver(self._handle_presence, event)

        rooms = body.get("rooms", {})
        for room_id, data in rooms.get("join", {}).items():
            self._dispatch_room_events(room_id, data)

        for room_id, data in rooms.get("invite", {}).items():
            events = data.get("invite_state", {}).get("events", [])
            for event in events:
                self._deliver(self.hooks.emit_event, self, event)
            if self._on_invite is not None:
                self._deliver(self._on_invite, room_id, events)

        for room_id, data in rooms.get("leave", {}).items():
            if room_id in self.rooms:
                self._dispatch_room_events(room_id, data)

    def _dispatch_room_events(self, room_id: str, data: dict[str, Any]) -> None:
        room = self.get_room(room_id)
        events = [
            *data.get("state", {}).get("events", []),
            *data.get("timeline", {}).get("events", []),
        ]
        for event in events:
            self._deliver(self.hooks.emit_event, self, event)
            self._deliver(room.handle_event, event)

    def _handle_presence(self, event: dict[str, Any]) -> None:
        self._deliver(self.hooks.emit_event, self, event)
        sender = event.get("sender")
        if not sender:
            return
        user = self.get_user(sender)
        changes = user.update_presence(event.get("content", {}))
        if not changes:
            return
        if self._on_presence is not None:
            self._deliver(self._on_presence, user, changes)
        for room in self.rooms.values():
            self._deliver(room.handle_presence, user, changes)

    def _deliver(self, callback: Callable[..., Any], *args: Any) -> None:
        """Run one event callback; a failure is logged and the stream goes on."""
        try:
            callback(*args)
        except Exception:
            logger.exception(
                "Event callback %r failed on %s", callback, self.server_name
            )

    # =========================================================================
    # Rooms
    # =========================================================================

    async def create_room(
        self,
        visibility: str = "private",
        room_alias_name: str | None = None,
        invite: list[str] | None = None,
    ) -> Room:
        payload: dict[str, Any] = {"visibility": visibility}
        if room_alias_name:
            payload["room_alias_name"] = room_alias_name
        if invite:
            payload["invite"] = invite
        body = await self.request("POST", "/createRoom", json=payload)
        return self.get_room(body["room_id"])

    async def join_room(self, room_id_or_alias: str) -> Room:
        body = await self.request(
            "POST", f"/join/{self.quote(room_id_or_alias)}", json={}
        )
        return self.get_room(body["room_id"])

    async def accept_invite(self, room_id: str) -> Room:
        return await self.join_room(room_id)

    async def invite_user(self, room_id: str, user_id: str) -> None:
        await self.request(
            "POST",
            f"/rooms/{self.quote(room_id)}/invite",
            json={"user_id": user_id},
        )

    async def leave_room(self, room_id: str) -> None:
        await self.request("POST", f"/rooms/{self.quote(room_id)}/leave", json={})

    async def send_message(
        self,
        room_id: str,
        content: dict[str, Any] | str,
        msgtype: str = "m.text",
    ) -> str:
        """Send an m.room.message event; plain text is wrapped as ``msgtype``."""
        if isinstance(content, str):
            content = {"msgtype": msgtype, "body": content}
        txn_id = f"sytest{next(self._txn_ids)}"
        body = await self.request(
            "PUT",
            f"/rooms/{self.quote(room_id)}/send/m.room.message/{txn_id}",
            json=content,
        )
        return body.get("event_id", "")

    # =========================================================================
    # Presence and profile
    # =========================================================================

    def _require_user_id(self) -> str:
        if self.user_id is None:
            raise ClientError("Client has no session", self.server_name)
        return self.user_id

    async def set_presence(self, state: str, status_msg: str | None = None) -> None:
        payload: dict[str, Any] = {"presence": state}
        if status_msg is not None:
            payload["status_msg"] = status_msg
        user_id = self._require_user_id()
        await self.request(
            "PUT", f"/presence/{self.quote(user_id)}/status", json=payload
        )

    async def set_displayname(self, name: str) -> None:
        user_id = self._require_user_id()
        await self.request(
            "PUT",
            f"/profile/{self.quote(user_id)}/displayname",
            json={"displayname": name},
        )

    async def get_displayname(self, user_id: str | None = None) -> str | None:
        user_id = user_id or self._require_user_id()
        body = await self.request(
            "GET", f"/profile/{self.quote(user_id)}/displayname"
        )
        return body.get("displayname")

    # =========================================================================
    # Groups
    # =========================================================================

    async def create_group(
        self, localpart: str | None = None, name: str | None = None
    ) -> str:
        """Create a group; a random localpart is chosen if none is given."""
        localpart = localpart or f"g{uuid.uuid4().hex[:10]}"
        body = await self.request(
            "POST",
            "/create_group",
            json={"localpart": localpart, "profile": {"name": name or localpart}},
        )
        return body["group_id"]

    async def invite_group_user(self, group_id: str, user_id: str) -> None:
        await self.request(
            "PUT",
            f"/groups/{self.quote(group_id)}/admin/users/invite/{self.quote(user_id)}",
            json={},
        )

    async def accept_group_invite(self, group_id: str) -> None:
        await self.request(
            "PUT", f"/groups/{self.quote(group_id)}/self/accept_invite", json={}
        )

    async def leave_group(self, group_id: str) -> None:
        await self.request(
            "PUT", f"/groups/{self.quote(group_id)}/self/leave", json={}
        )

    async def get_joined_groups(self) -> dict[str, Any]:
        """Return the ``/joined_groups`` body; group IDs are under ``groups``."""
        return await self.request("GET", "/joined_groups")
