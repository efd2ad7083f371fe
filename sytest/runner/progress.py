"""Line-oriented console progress for a test run."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import TextIO

from sytest.runner.models import ProgressEvent, ProgressEventType

GREEN = "\033[32m"
RED = "\033[1;31m"
YELLOW = "\033[1;33m"
CYAN = "\033[36m"
RESET = "\033[m"

FAIL_FOOTER = " +----------------------"


@dataclass
class ConsoleProgress:
    """
    Print one status line per test as the scheduler reports progress.

    Output looks like::

        Testing if: Rooms can be created (tests/10rooms.py)... PASS
        SKIP Users can join (tests/10rooms.py) due to lack of rooms
        Testing if: Messages arrive (tests/20messages.py)... wait...
        FAIL:
         | Test check function failed to return a true value
         +----------------------

    Warnings raised while a test is running (the check already passing
    before ``do``) go to ``errors``; warnings after a test finished are
    printed inline as ``WARN``.
    """

    use_colors: bool = True
    output: TextIO = field(default_factory=lambda: sys.stdout)
    errors: TextIO = field(default_factory=lambda: sys.stderr)

    _in_test: bool = False

    def __post_init__(self) -> None:
        if self.use_colors and hasattr(self.output, "isatty"):
            self.use_colors = self.output.isatty()

    def _color(self, text: str, color: str) -> str:
        """Apply ANSI color if colors are enabled."""
        if self.use_colors:
            return f"{color}{text}{RESET}"
        return text

    def _write(self, text: str, stream: TextIO | None = None) -> None:
        stream = stream or self.output
        stream.write(text)
        stream.flush()

    def on_progress(self, event: ProgressEvent) -> None:
        """
        Handle a progress event.

        This method is designed to be used as a progress callback.
        """
        label = f"{event.test_name} ({event.test_file})"

        if event.event_type == ProgressEventType.TEST_SKIPPED:
            self._write(
                f"{self._color('SKIP', YELLOW)} {label} "
                f"due to lack of {event.missing_requirement}\n"
            )
        elif event.event_type == ProgressEventType.TEST_STARTED:
            self._in_test = True
            self._write(self._color(f"Testing if: {label}", CYAN) + "... ")
        elif event.event_type == ProgressEventType.CHECK_WAITING:
            self._write("wait...\n")
        elif event.event_type == ProgressEventType.TEST_PASSED:
            self._in_test = False
            self._write(self._color("PASS", GREEN) + "\n")
        elif event.event_type == ProgressEventType.TEST_FAILED:
            self._in_test = False
            lines = (event.error or "").split("\n")
            self._write(
                self._color("FAIL", RED)
                + ":\n"
                + "".join(f" | {line}\n" for line in lines)
                + FAIL_FOOTER
                + "\n"
            )
        elif event.event_type == ProgressEventType.TEST_WARNING:
            if self._in_test:
                self._write(f"Warning: {event.message}\n", self.errors)
            else:
                self._write(f"{self._color('WARN', RED)}: {event.message}\n")
