"""Homeserver subprocess management."""

import asyncio
import logging
import re
import signal
from pathlib import Path

from sytest.core.exceptions import ServerStartError
from sytest.core.logging import get_logger

logger = logging.getLogger(__name__)
output_logger = get_logger("sytest.server.output")


class HomeserverProcess:
    """
    One homeserver running as a child process.

    The process output (stdout and stderr combined) is read line by line.
    The ``started`` future resolves with the port once a line matches
    ``ready_pattern``, or fails with ServerStartError if the process exits
    first.
    """

    def __init__(
        self,
        port: int,
        server_dir: Path,
        command: list[str],
        ready_pattern: str = r"Synapse now listening on port (\d+)",
        print_output: bool = False,
        data_dir: Path | None = None,
        server_name: str | None = None,
        kill_timeout: float = 5.0,
    ) -> None:
        self.port = port
        self.server_dir = Path(server_dir)
        self.command = command
        self.ready_pattern = re.compile(ready_pattern)
        self.print_output = print_output
        self.data_dir = Path(data_dir) if data_dir else Path(f"localhost-{port}")
        self.server_name = server_name or f"localhost:{port}"
        self.kill_timeout = kill_timeout

        self.started: asyncio.Future[int] | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._reader: asyncio.Task[None] | None = None
        self._killed = False

    def __repr__(self) -> str:
        return f"HomeserverProcess(port={self.port}, pid={self.pid})"

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process else None

    def argv(self) -> list[str]:
        """Expand the command template for this server."""
        return [
            part.format(
                port=self.port,
                data_dir=self.data_dir.resolve(),
                server_name=self.server_name,
            )
            for part in self.command
        ]

    async def start(self) -> asyncio.Future[int]:
        """
        Spawn the process and start scanning its output.

        Returns:
            The ``started`` future.

        Raises:
            ServerStartError: The process could not be spawned.
        """
        if self.started is not None:
            return self.started

        loop = asyncio.get_running_loop()
        self.started = loop.create_future()
        self.data_dir.mkdir(parents=True, exist_ok=True)

        argv = self.argv()
        try:
            self._process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=self.server_dir,
            )
        except OSError as e:
            error = ServerStartError(
                f"Failed to spawn homeserver on port {self.port}: {e}",
                port=self.port,
            )
            self.started.set_exception(error)
            # Observed by the caller through the raise below
            self.started.exception()
            raise error from e

        logger.debug("Spawned homeserver pid=%s port=%d: %s", self.pid, self.port, argv)
        self._reader = asyncio.create_task(
            self._read_output(), name=f"homeserver-output-{self.port}"
        )
        return self.started

    async def _read_output(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        stream = self._process.stdout

        while True:
            raw = await stream.readline()
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if self.print_output:
                output_logger.info(line, port=self.port)
            else:
                output_logger.debug(line, port=self.port)

            if self.started is not None and not self.started.done():
                if self.ready_pattern.search(line):
                    self.started.set_result(self.port)

        returncode = await self._process.wait()
        if self.started is not None and not self.started.done():
            self.started.set_exception(
                ServerStartError(
                    f"Homeserver on port {self.port} exited with code "
                    f"{returncode} before it was ready",
                    port=self.port,
                )
            )
        elif not self._killed:
            logger.warning(
                "Homeserver on port %d exited unexpectedly with code %s",
                self.port,
                returncode,
            )

    def kill(self, sig: int = signal.SIGINT) -> bool:
        """
        Signal the process. Idempotent.

        Returns:
            True if a signal was sent by this call.
        """
        if self._killed or not self.is_running:
            return False
        self._killed = True
        assert self._process is not None
        try:
            self._process.send_signal(sig)
        except ProcessLookupError:
            return False
        return True

    async def wait(self) -> int | None:
        """
        Wait for the process to exit.

        A process still alive after ``kill_timeout`` is killed outright.

        Returns:
            The exit code, or None if the process was never started.
        """
        if self._process is None:
            return None
        try:
            await asyncio.wait_for(self._process.wait(), timeout=self.kill_timeout)
        except TimeoutError:
            logger.warning(
                "Homeserver on port %d ignored the signal; killing", self.port
            )
            try:
                self._process.kill()
            except ProcessLookupError:
                pass
            await self._process.wait()

        if self._reader is not None:
            await self._reader
        return self._process.returncode
