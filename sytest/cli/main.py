"""Main CLI entry point for SyTest."""

import asyncio
import sys
from importlib.resources import files
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError

from sytest import __version__
from sytest.core.exceptions import ConfigurationError, LoaderError, SetupError
from sytest.core.logging import configure_logging_from_settings, get_logger
from sytest.core.settings import SyTestSettings, get_settings
from sytest.harness import RESERVED_KEYS, Harness
from sytest.loader import NameFilter, TestCase, TestLoader
from sytest.reporters import SuiteReport, create_reporter
from sytest.runner.progress import ConsoleProgress

# Exit codes
EXIT_SUCCESS = 0  # All tests passed
EXIT_FAILURE = 1  # Test failures detected, or bad command line
EXIT_ERROR = 2  # Setup error (servers, clients, test files, configuration)

logger = get_logger(__name__)


def builtin_tests_dir() -> Path:
    """Directory of the scenarios shipped with the package."""
    return Path(str(files("sytest") / "scenarios"))


class SyTestGroup(click.Group):
    """Command group whose usage errors exit with EXIT_FAILURE."""

    def make_context(self, *args: Any, **kwargs: Any) -> click.Context:
        try:
            return super().make_context(*args, **kwargs)
        except click.UsageError as e:
            e.exit_code = EXIT_FAILURE
            raise

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except click.UsageError as e:
            e.exit_code = EXIT_FAILURE
            raise


@click.group(cls=SyTestGroup)
@click.version_option(version=__version__, prog_name="sytest")
def cli() -> None:
    """SyTest - integration tests for federated homeservers.

    Boots a set of homeservers, registers one user on each, and runs the
    test corpus against them.

    Examples:

      # Run the built-in scenarios against two servers
      sytest run

      # Three servers, logging client traffic
      sytest run -N 3 -C

      # Only room tests, listed without running
      sytest run --match room --list-only
    """


@cli.command(name="version")
def version_cmd() -> None:
    """Show SyTest version information."""
    click.echo(f"SyTest v{__version__}")
    click.echo(f"Python: {sys.version.split()[0]}")
    click.echo(f"Platform: {sys.platform}")


def _build_overrides(
    number: int | None,
    client_log: int,
    server_log: int,
    base_port: int | None,
    server_dir: Path | None,
    start_timeout: float | None,
    poll_interval: float | None,
    fail_fast: bool,
) -> dict[str, Any]:
    """Turn command line flags into settings overrides; unset flags are omitted."""
    overrides: dict[str, Any] = {}
    if number is not None:
        overrides["servers"] = number
    if base_port is not None:
        overrides["base_port"] = base_port

    server: dict[str, Any] = {}
    if server_dir is not None:
        server["server_dir"] = server_dir
    if start_timeout is not None:
        server["start_timeout"] = start_timeout
    if server_log:
        server["print_output"] = True
    if server:
        overrides["server"] = server

    if client_log:
        overrides["client"] = {"log_traffic": True}

    runner: dict[str, Any] = {}
    if poll_interval is not None:
        runner["poll_interval"] = poll_interval
    if fail_fast:
        runner["fail_fast"] = True
    if runner:
        overrides["runner"] = runner

    return overrides


def load_tests(tests_dir: Path, match: str | None) -> list[TestCase]:
    """Load, validate and filter the test corpus.

    Raises:
        LoaderError: A test file failed to load, or two tests provide the
            same environment key.
    """
    loader = TestLoader()
    tests = loader.load_directory(tests_dir)
    loader.registry.validate(reserved=RESERVED_KEYS)
    if match:
        tests = NameFilter.from_string(match).apply(tests)
    return tests


@cli.command(name="run")
@click.argument(
    "tests_dir",
    required=False,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option(
    "-N",
    "--number",
    type=click.IntRange(1, 16),
    default=None,
    help="Number of homeservers to boot (default 2)",
)
@click.option(
    "-C",
    "--client-log",
    count=True,
    help="Log client requests, responses and received events",
)
@click.option(
    "-S",
    "--server-log",
    count=True,
    help="Log homeserver output",
)
@click.option(
    "--base-port",
    type=int,
    default=None,
    help="Servers listen on base-port+1 .. base-port+N (default 8000)",
)
@click.option(
    "--server-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory the homeserver is started from (default ../synapse)",
)
@click.option(
    "--start-timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds each homeserver has to start listening (default 10)",
)
@click.option(
    "--poll-interval",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds between check attempts (default 1)",
)
@click.option(
    "--match",
    type=str,
    help=(
        "Only run tests whose name contains one of these comma-separated "
        "substrings. Prefix with '!' to exclude. Examples: --match=room, "
        "--match=group,!remove"
    ),
)
@click.option(
    "--fail-fast",
    is_flag=True,
    help="Stop after the first failing test",
)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="List skipped tests and warnings in the console summary",
)
@click.option(
    "--list-only",
    is_flag=True,
    help="List matching tests without running them",
)
@click.option(
    "--output",
    type=click.Choice(["console", "json"]),
    default="console",
    help="Summary format",
)
@click.option(
    "--output-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the json summary to this file",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to sytest.config.yaml",
)
def run_cmd(
    tests_dir: Path | None,
    number: int | None,
    client_log: int,
    server_log: int,
    base_port: int | None,
    server_dir: Path | None,
    start_timeout: float | None,
    poll_interval: float | None,
    match: str | None,
    fail_fast: bool,
    list_only: bool,
    verbose: bool,
    output: str,
    output_file: Path | None,
    config_file: Path | None,
) -> None:
    """Boot homeservers and run the tests in TESTS_DIR.

    TESTS_DIR defaults to the configured tests_dir, or the built-in
    scenarios. Test files are Python modules named like 10rooms.py that
    define register(tests).
    """
    overrides = _build_overrides(
        number,
        client_log,
        server_log,
        base_port,
        server_dir,
        start_timeout,
        poll_interval,
        fail_fast,
    )
    try:
        settings = get_settings(config_file, **overrides)
    except ValidationError as e:
        click.echo(f"Error: invalid configuration:\n{e}", err=True)
        sys.exit(EXIT_ERROR)

    configure_logging_from_settings(settings)

    tests_dir = tests_dir or settings.tests_dir or builtin_tests_dir()
    try:
        tests = load_tests(tests_dir, match)
    except LoaderError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_ERROR)

    if list_only:
        click.echo(f"Tests ({len(tests)}):")
        for test in tests:
            requires = ", ".join(test.requires) or "-"
            click.echo(f"  {test.name} ({test.file}) [requires: {requires}]")
        return

    report = _run_session(settings, tests)

    reporter_config: dict[str, Any] = {}
    if output == "console" and verbose:
        reporter_config["verbose"] = True
    if output == "json" and output_file:
        reporter_config["output_file"] = output_file
    create_reporter(output, reporter_config).report(report)

    if report.error is not None:
        sys.exit(EXIT_ERROR)
    sys.exit(EXIT_SUCCESS if report.success else EXIT_FAILURE)


def _run_session(settings: SyTestSettings, tests: list[TestCase]) -> SuiteReport:
    progress = ConsoleProgress()
    harness = Harness(settings, tests, progress_callback=progress.on_progress)
    try:
        result = asyncio.run(harness.run())
    except (SetupError, ConfigurationError) as e:
        logger.error("setup_failed", error=str(e))
        return SuiteReport.from_error(str(e), servers=settings.servers)
    except KeyboardInterrupt:
        click.echo("Interrupted; servers were shut down", err=True)
        sys.exit(EXIT_FAILURE)

    return SuiteReport.from_suite_result(
        result, servers=settings.servers, run_id=harness.run_id
    )


def main() -> None:
    """Main entry point for the CLI."""
    cli(auto_envvar_prefix="SYTEST")


if __name__ == "__main__":
    main()
