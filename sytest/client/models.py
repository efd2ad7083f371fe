"""Users and room members as seen by one client."""

import time
from dataclasses import dataclass
from typing import Any

Changes = dict[str, tuple[Any, Any]]


@dataclass
class User:
    """A user whose presence this client has observed."""

    user_id: str
    displayname: str | None = None
    presence: str | None = None
    status_msg: str | None = None
    last_active: float | None = None

    def update_presence(self, content: dict[str, Any]) -> Changes:
        """Apply an m.presence event's content and return what changed."""
        changes: Changes = {}

        presence = content.get("presence")
        if presence is not None and presence != self.presence:
            changes["presence"] = (self.presence, presence)
            self.presence = presence

        status_msg = content.get("status_msg")
        if status_msg != self.status_msg and "status_msg" in content:
            changes["status_msg"] = (self.status_msg, status_msg)
            self.status_msg = status_msg

        displayname = content.get("displayname")
        if displayname is not None and displayname != self.displayname:
            changes["displayname"] = (self.displayname, displayname)
            self.displayname = displayname

        last_active_ago = content.get("last_active_ago")
        if last_active_ago is not None:
            last_active = time.time() - last_active_ago / 1000
            changes["last_active"] = (self.last_active, last_active)
            self.last_active = last_active

        return changes


@dataclass
class Member:
    """A user's membership of one room."""

    user: User
    membership: str | None = None
    displayname: str | None = None

    @property
    def user_id(self) -> str:
        return self.user.user_id

    def update(self, content: dict[str, Any]) -> Changes:
        """Apply an m.room.member event's content and return what changed."""
        changes: Changes = {}

        membership = content.get("membership")
        if membership != self.membership:
            changes["membership"] = (self.membership, membership)
            self.membership = membership

        displayname = content.get("displayname")
        if displayname != self.displayname:
            changes["displayname"] = (self.displayname, displayname)
            self.displayname = displayname

        return changes
