"""Protocol client used by the harness and the test corpus."""

from sytest.client.exceptions import (
    ClientConnectionError,
    ClientError,
    MatrixRequestError,
)
from sytest.client.hooks import ClientHooks, logging_hooks
from sytest.client.matrix import MatrixClient
from sytest.client.models import Changes, Member, User
from sytest.client.room import Room

__all__ = [
    "Changes",
    "ClientConnectionError",
    "ClientError",
    "ClientHooks",
    "MatrixClient",
    "MatrixRequestError",
    "Member",
    "Room",
    "User",
    "logging_hooks",
]
