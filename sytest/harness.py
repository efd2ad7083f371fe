"""Top-level driver: boot servers and clients, run the tests, tear down."""

import sys
from collections.abc import Sequence
from contextlib import AsyncExitStack
from typing import TextIO

import httpx

from sytest.client import ClientHooks, MatrixClient, logging_hooks
from sytest.convergence import RoomWatcher, convergence_test
from sytest.core.async_utils import log_on_done, needs_all
from sytest.core.exceptions import ClientSetupError
from sytest.core.logging import get_logger, run_context
from sytest.core.settings import SyTestSettings
from sytest.loader.models import TestCase
from sytest.runner.environment import TestEnvironment
from sytest.runner.models import ProgressCallback, SuiteResult
from sytest.runner.scheduler import TestScheduler
from sytest.server.registry import ServerRegistry

logger = get_logger(__name__)

# Environment keys provided by the harness itself
RESERVED_KEYS = ("clients",)


class Harness:
    """
    Runs one complete session.

    1. Boot one homeserver per port, each raced against the start timeout.
    2. Register one user per server and start its event stream.
    3. Provide ``clients`` and run the tests in order.
    4. Check that every client's view of the shared room converged.

    Servers are signalled and clients stopped on every exit path.

    Example:
        harness = Harness(settings, tests, progress_callback=progress.on_progress)
        result = await harness.run()
    """

    def __init__(
        self,
        settings: SyTestSettings,
        tests: Sequence[TestCase],
        progress_callback: ProgressCallback | None = None,
        start_servers: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
        check_convergence: bool = True,
        output: TextIO | None = None,
    ) -> None:
        """
        Initialize the harness.

        Args:
            settings: Run configuration.
            tests: Tests in run order.
            progress_callback: Optional callback for progress reporting.
            start_servers: Spawn homeserver processes; when False the
                clients connect to servers that are already listening.
            transport: Optional httpx transport shared by every client.
            check_convergence: Append the final membership convergence test.
            output: Stream for convergence progress lines.
        """
        self.settings = settings
        self.tests = list(tests)
        self.progress_callback = progress_callback
        self.start_servers = start_servers
        self.transport = transport
        self.check_convergence = check_convergence
        self.output = output or sys.stdout

        self.clients: list[MatrixClient] = []
        self.run_id: str | None = None
        self.environment = TestEnvironment(policy=settings.runner.overwrite_policy)

    async def run(self) -> SuiteResult:
        """
        Run the session.

        Returns:
            SuiteResult of every test reached.

        Raises:
            ServerStartError: A homeserver did not come up.
            ClientSetupError: A client failed to register or start.
        """
        with run_context() as run_id:
            self.run_id = run_id
            logger.info("run_started", run_id=run_id, ports=self.settings.ports)
            logger.debug("run_settings", settings=self.settings.to_dict())
            async with AsyncExitStack() as stack:
                if self.start_servers:
                    servers = ServerRegistry(
                        self.settings.server,
                        postgres=self.settings.postgres,
                        host=self.settings.client.host,
                    )
                    await stack.enter_async_context(servers)
                    await servers.boot(self.settings.ports)

                self.clients = await needs_all(
                    *(self._boot_client(port, stack) for port in self.settings.ports)
                )
                self.environment.provide("clients", self.clients, provider="<harness>")

                scheduler = TestScheduler(
                    self.environment,
                    settings=self.settings,
                    progress_callback=self.progress_callback,
                    poll_interval=self.settings.runner.poll_interval,
                    fail_fast=self.settings.runner.fail_fast,
                )
                return await scheduler.run(self._scheduled_tests())

    def _scheduled_tests(self) -> list[TestCase]:
        if not self.check_convergence:
            return self.tests
        watcher = RoomWatcher(
            flush_delay=self.settings.runner.flush_delay, output=self.output
        )
        return [
            *self.tests,
            convergence_test(
                watcher, attempts=self.settings.runner.convergence_attempts
            ),
        ]

    def _client_hooks(self) -> ClientHooks:
        traffic = logging_hooks()
        if self.settings.client.log_traffic:
            return traffic
        return ClientHooks(on_error=traffic.on_error)

    async def _boot_client(self, port: int, stack: AsyncExitStack) -> MatrixClient:
        client_settings = self.settings.client
        client = MatrixClient(
            client_settings.host,
            port,
            use_ssl=client_settings.use_ssl,
            verify_ssl=client_settings.verify_ssl,
            request_timeout=client_settings.request_timeout,
            sync_timeout_ms=client_settings.sync_timeout_ms,
            hooks=self._client_hooks(),
            transport=self.transport,
        )
        stack.push_async_callback(client.stop)

        localpart = f"{client_settings.user_prefix}{port}"
        password = client_settings.password.get_secret_value()
        try:
            await log_on_done(
                client.register(localpart, password),
                "Registered user",
                user=localpart,
            )
            await log_on_done(client.start(), "Started event stream", user=localpart)
        except Exception as e:
            raise ClientSetupError(
                f"Client for port {port} failed to start: {e}", port=port, cause=e
            ) from e
        return client
