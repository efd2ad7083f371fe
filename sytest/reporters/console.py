"""Console reporter printing the end-of-run summary."""

import sys
from typing import TextIO

from sytest.reporters.base import Reporter, SuiteReport


class ConsoleReporter(Reporter):
    """Prints final counts plus every failure, skip reason and warning.

    Per-test lines are printed live by the progress output; this reporter
    only summarises once the run is over.
    """

    def __init__(
        self,
        output: TextIO | None = None,
        use_colors: bool = True,
        verbose: bool = False,
    ) -> None:
        self._output = output or sys.stdout
        isatty = getattr(self._output, "isatty", lambda: False)
        self._use_colors = use_colors and isatty()
        self._verbose = verbose

    @property
    def name(self) -> str:
        return "console"

    def _color(self, text: str, color_code: str) -> str:
        if not self._use_colors:
            return text
        return f"\033[{color_code}m{text}\033[0m"

    def _write(self, line: str = "") -> None:
        self._output.write(line + "\n")

    def report(self, report: SuiteReport) -> None:
        self._write()
        self._write("=" * 60)

        if report.error is not None:
            self._write(self._color("Setup failed", "1;31") + f": {report.error}")
            self._write("=" * 60)
            self._output.flush()
            return

        failed = [t for t in report.tests if t.outcome == "FAIL"]
        if failed:
            self._write(self._color("Failed tests:", "1;31"))
            for test in failed:
                first_line = (test.error or "").split("\n", 1)[0]
                self._write(f"  {test.name} ({test.file}): {first_line}")

        if self._verbose:
            skipped = [t for t in report.tests if t.outcome == "SKIP"]
            for test in skipped:
                self._write(
                    f"  {self._color('SKIP', '1;33')} {test.name}: "
                    f"missing {test.missing_requirement}"
                )
            for test in report.tests:
                for warning in test.warnings:
                    self._write(
                        f"  {self._color('WARN', '1;31')} {test.name}: {warning}"
                    )

        summary = ", ".join(
            [
                self._color(f"{report.passed} passed", "32"),
                self._color(f"{report.failed} failed", "1;31"),
                self._color(f"{report.skipped} skipped", "1;33"),
            ]
        )
        if report.warned:
            summary += f", {report.warned} with warnings"
        self._write(
            f"{summary} in {self._format_duration(report.duration_seconds)} "
            f"({report.servers} servers)"
        )
        if report.stopped_early:
            self._write("Stopped after the first failure (--fail-fast)")
        self._write("=" * 60)
        self._output.flush()
