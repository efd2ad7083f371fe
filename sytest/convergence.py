"""Cross-client room membership convergence.

After the test corpus has run, every client's view of the shared room is
watched: membership and presence changes are printed as they arrive, and
the run's final check asserts that every client sees every user joined.
"""

import sys
import time
from typing import Any, TextIO

from sytest.client import Changes, MatrixClient, Member, Room
from sytest.core.async_utils import delay
from sytest.core.logging import get_logger
from sytest.loader.models import TestCase
from sytest.runner.environment import TestContext

logger = get_logger(__name__)

CONVERGENCE_TEST_NAME = "Room membership converges across all clients"
CONVERGENCE_FILE = "<harness>"

PORT_COLOR = "\033[1;36m"
RESET = "\033[m"


class RoomWatcher:
    """
    Tracks, per client, the membership of the shared room.

    ``members_by_port[port][user_id]`` holds the latest membership seen
    by the client on ``port``.
    """

    def __init__(
        self,
        flush_delay: float = 3.0,
        output: TextIO | None = None,
        use_colors: bool = True,
    ) -> None:
        self.flush_delay = flush_delay
        self.output = output or sys.stdout
        self.use_colors = use_colors and getattr(self.output, "isatty", lambda: False)()
        self.members_by_port: dict[int, dict[str, str | None]] = {}

    def _write(self, port: int, text: str) -> None:
        prefix = f"[{port}]"
        if self.use_colors:
            prefix = f"{PORT_COLOR}{prefix}{RESET}"
        self.output.write(f"{prefix} >> {text}\n")
        self.output.flush()

    def on_room_member(
        self, port: int, room: Room, member: Member, changes: Changes
    ) -> None:
        """Record ``member``'s state and print what changed."""
        user = member.user
        self.members_by_port.setdefault(port, {})[member.user_id] = member.membership

        name = member.displayname or user.displayname or member.user_id
        if "membership" in changes:
            self._write(
                port,
                f'"{name}" in "{room.room_id}" membership state '
                f"{member.membership} (was {changes['membership'][0]})",
            )
        if "presence" in changes:
            self._write(
                port,
                f'"{name}" in "{room.room_id}" presence state '
                f"{user.presence} (was {changes['presence'][0]})",
            )
        if "last_active" in changes and user.last_active is not None:
            last_active = time.strftime(
                "%Y/%m/%d %H:%M:%S", time.localtime(user.last_active)
            )
            self._write(port, f'"{name}" was last active at {last_active}')

    async def attach(
        self, ctx: TestContext, clients: list[MatrixClient], rooms: list[Room]
    ) -> None:
        """Subscribe to every client's room and backfill its members."""
        for client, room in zip(clients, rooms, strict=False):
            port = client.port

            def on_membership(
                room: Room,
                sender: Member | None,
                event: dict[str, Any],
                subject: Member,
                changes: Changes,
                port: int = port,
            ) -> None:
                self.on_room_member(port, room, subject, changes)

            def on_presence(
                room: Room, member: Member, changes: Changes, port: int = port
            ) -> None:
                self.on_room_member(port, room, member, changes)

            room.configure(on_membership=on_membership, on_presence=on_presence)
            await room.initial_sync()

            for member in room.members:
                self.on_room_member(
                    port, room, member, {"membership": (None, member.membership)}
                )

        ctx.logger.info("Waiting %s seconds for messages to flush", self.flush_delay)
        await delay(self.flush_delay)

    def mismatches(self, ports: list[int], expected: set[str]) -> list[str]:
        """Describe every client whose view differs from all of ``expected`` joined."""
        problems = []
        for port in ports:
            seen = self.members_by_port.get(port, {})
            joined = {user_id for user_id, m in seen.items() if m == "join"}
            if joined != expected:
                missing = sorted(expected - joined)
                extra = sorted(joined - expected)
                problems.append(f"[{port}] missing={missing} unexpected={extra}")
            not_joined = {u: m for u, m in seen.items() if m != "join"}
            if not_joined:
                problems.append(f"[{port}] not joined: {not_joined}")
        return problems

    async def converged(
        self, ctx: TestContext, clients: list[MatrixClient], rooms: list[Room]
    ) -> bool:
        """Assert that every client sees exactly every client's user joined.

        Raises:
            AssertionError: Describing each client's divergent view.
        """
        expected = {client.user_id for client in clients if client.user_id}
        ports = [client.port for client in clients]
        problems = self.mismatches(ports, expected)
        if problems:
            raise AssertionError(
                "Room membership has not converged:\n" + "\n".join(problems)
            )
        return True


def convergence_test(watcher: RoomWatcher, attempts: int = 10) -> TestCase:
    """Build the final test checking membership convergence on ``rooms``."""
    return TestCase(
        name=CONVERGENCE_TEST_NAME,
        file=CONVERGENCE_FILE,
        requires=("clients", "rooms"),
        do=watcher.attach,
        check=watcher.converged,
        wait_time=attempts,
    )
