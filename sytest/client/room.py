"""Room handle with a live membership projection and message buffer."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from sytest.client.models import Changes, Member, User

if TYPE_CHECKING:
    from sytest.client.matrix import MatrixClient

logger = logging.getLogger(__name__)

MembershipCallback = Callable[
    ["Room", Member | None, dict[str, Any], Member, Changes], None
]
PresenceCallback = Callable[["Room", Member, Changes], None]
MessageCallback = Callable[
    ["Room", Member | None, dict[str, Any], dict[str, Any]], None
]


class Room:
    """
    One client's view of a room.

    The membership projection and message buffer are kept current by the
    owning client's event stream. They only reflect events observed since
    the stream started unless :meth:`initial_sync` has been awaited.
    """

    def __init__(self, client: MatrixClient, room_id: str) -> None:
        self.client = client
        self.room_id = room_id
        self._members: dict[str, Member] = {}
        self._messages: list[dict[str, Any]] = []
        self._seen_event_ids: set[str] = set()
        self._on_membership: MembershipCallback | None = None
        self._on_presence: PresenceCallback | None = None
        self._on_message: MessageCallback | None = None

    def __repr__(self) -> str:
        return f"Room({self.room_id!r}, server={self.client.server_name!r})"

    def configure(
        self,
        on_membership: MembershipCallback | None = None,
        on_presence: PresenceCallback | None = None,
        on_message: MessageCallback | None = None,
    ) -> None:
        """Register push-event callbacks. Passing None keeps the current one."""
        if on_membership is not None:
            self._on_membership = on_membership
        if on_presence is not None:
            self._on_presence = on_presence
        if on_message is not None:
            self._on_message = on_message

    @property
    def members(self) -> list[Member]:
        """Every member in the projection, whatever their membership."""
        return list(self._members.values())

    @property
    def messages(self) -> list[dict[str, Any]]:
        """Contents of the m.room.message events received, in order."""
        return list(self._messages)

    def get_member(self, user_id: str) -> Member | None:
        return self._members.get(user_id)

    def membership_of(self, user_id: str) -> str | None:
        member = self._members.get(user_id)
        return member.membership if member else None

    def joined_user_ids(self) -> set[str]:
        return {
            user_id
            for user_id, member in self._members.items()
            if member.membership == "join"
        }

    def membership_map(self) -> dict[str, str | None]:
        """Mapping of user ID to membership state."""
        return {user_id: m.membership for user_id, m in self._members.items()}

    async def initial_sync(self) -> None:
        """Fetch the current member list into the projection.

        Members learned this way are backfilled silently: no membership
        callbacks fire for them.
        """
        body = await self.client.request(
            "GET", f"/rooms/{self.client.quote(self.room_id)}/members"
        )
        for event in body.get("chunk", []):
            self._apply_member_event(event, notify=False)

    async def send_message(
        self, content: dict[str, Any] | str, msgtype: str = "m.text"
    ) -> str:
        return await self.client.send_message(self.room_id, content, msgtype=msgtype)

    async def invite(self, user_id: str) -> None:
        await self.client.invite_user(self.room_id, user_id)

    async def leave(self) -> None:
        await self.client.leave_room(self.room_id)

    # Push-event dispatch, driven by the owning client

    def handle_event(self, event: dict[str, Any]) -> None:
        event_type = event.get("type")
        if event_type == "m.room.member":
            self._apply_member_event(event, notify=True)
        elif event_type == "m.room.message":
            self._apply_message_event(event)

    def handle_presence(self, user: User, changes: Changes) -> None:
        member = self._members.get(user.user_id)
        if member is None or not changes:
            return
        if self._on_presence is not None:
            self._on_presence(self, member, changes)

    def _member_for(self, user_id: str) -> Member:
        member = self._members.get(user_id)
        if member is None:
            member = Member(user=self.client.get_user(user_id))
            self._members[user_id] = member
        return member

    def _apply_member_event(self, event: dict[str, Any], notify: bool) -> None:
        user_id = event.get("state_key")
        if not user_id:
            logger.debug("Ignoring member event without state_key in %s", self.room_id)
            return

        subject = self._member_for(user_id)
        changes = subject.update(event.get("content", {}))
        if subject.displayname and not subject.user.displayname:
            subject.user.displayname = subject.displayname

        if not notify or not changes or self._on_membership is None:
            return
        sender = self._members.get(event.get("sender", ""))
        self._on_membership(self, sender, event, subject, changes)

    def _apply_message_event(self, event: dict[str, Any]) -> None:
        event_id = event.get("event_id")
        if event_id:
            if event_id in self._seen_event_ids:
                return
            self._seen_event_ids.add(event_id)

        content = event.get("content", {})
        self._messages.append(content)

        if self._on_message is not None:
            sender = self._members.get(event.get("sender", ""))
            self._on_message(self, sender, content, event)
