"""Registry of the homeservers booted for a run."""

import atexit
import signal
from pathlib import Path
from typing import Any

from sytest.core.async_utils import needs_all, with_timeout
from sytest.core.exceptions import HarnessTimeoutError, ServerStartError
from sytest.core.logging import get_logger
from sytest.core.settings import PostgresSettings, ServerSettings
from sytest.server.database import write_database_config
from sytest.server.process import HomeserverProcess

logger = get_logger(__name__)


class ServerRegistry:
    """
    Owns every homeserver process of a run, keyed by port.

    Use as an async context manager: processes are signalled and reaped on
    every exit path. An ``atexit`` hook sends a final SIGINT to anything
    still alive if the interpreter exits without the context being left.

    Example:
        async with ServerRegistry(settings.server) as servers:
            await servers.boot([8001, 8002])
    """

    def __init__(
        self,
        settings: ServerSettings,
        postgres: PostgresSettings | None = None,
        host: str = "localhost",
    ) -> None:
        self.settings = settings
        self.postgres = postgres or PostgresSettings()
        self.host = host
        self.servers: dict[int, HomeserverProcess] = {}
        self._atexit_registered = False

    def __len__(self) -> int:
        return len(self.servers)

    def __contains__(self, port: object) -> bool:
        return port in self.servers

    def get(self, port: int) -> HomeserverProcess | None:
        return self.servers.get(port)

    def data_dir(self, port: int) -> Path:
        return Path(self.settings.output_dir) / f"{self.host}-{port}"

    def create(self, port: int, index: int) -> HomeserverProcess:
        """
        Create (but do not start) the server for ``port``.

        Args:
            port: Port the server listens on.
            index: 1-based position in boot order, used for database config.
        """
        data_dir = self.data_dir(port)
        write_database_config(data_dir, index, self.postgres)

        server = HomeserverProcess(
            port=port,
            server_dir=self.settings.server_dir,
            command=self.settings.command,
            ready_pattern=self.settings.ready_pattern,
            print_output=self.settings.print_output,
            data_dir=data_dir,
            server_name=f"{self.host}:{port}",
            kill_timeout=self.settings.kill_timeout,
        )
        self.servers[port] = server
        self._register_atexit()
        return server

    async def boot(self, ports: list[int]) -> list[int]:
        """
        Start one server per port and wait until all are listening.

        Each server is raced against ``start_timeout``; boot fails with the
        first server that does not come up.

        Raises:
            ServerStartError: A server failed to spawn, exited early, or
                did not report readiness in time.
        """
        servers = [self.create(port, index) for index, port in enumerate(ports, 1)]
        return await needs_all(*(self._boot_one(server) for server in servers))

    async def _boot_one(self, server: HomeserverProcess) -> int:
        started = await server.start()
        try:
            port = await with_timeout(
                started,
                self.settings.start_timeout,
                f"Synapse server on port {server.port} failed to start",
            )
        except HarnessTimeoutError as e:
            raise ServerStartError(str(e), port=server.port) from e

        logger.info("server_listening", port=port, pid=server.pid)
        return port

    def kill_all(self, sig: int = signal.SIGINT) -> list[int]:
        """Signal every live server. Returns the pids signalled."""
        killed = []
        for server in self.servers.values():
            if server.kill(sig) and server.pid is not None:
                killed.append(server.pid)
        if killed:
            logger.info("servers_killed", pids=killed)
        return killed

    async def shutdown(self) -> None:
        """Signal every server and wait for all of them to exit."""
        self.kill_all()
        await needs_all(*(server.wait() for server in self.servers.values()))
        self._unregister_atexit()

    def _kill_at_exit(self) -> None:
        for server in self.servers.values():
            server.kill()

    def _register_atexit(self) -> None:
        if not self._atexit_registered:
            atexit.register(self._kill_at_exit)
            self._atexit_registered = True

    def _unregister_atexit(self) -> None:
        if self._atexit_registered:
            atexit.unregister(self._kill_at_exit)
            self._atexit_registered = False

    async def __aenter__(self) -> "ServerRegistry":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.shutdown()
