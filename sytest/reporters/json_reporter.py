"""Machine-readable run summary."""

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, TextIO

from sytest.reporters.base import Reporter, SuiteReport

# Bumped when the layout of the document changes
FORMAT_VERSION = "1.0"


class JSONReporter(Reporter):
    """
    Write the run as one JSON document.

    The document holds a ``summary`` object (counts, ``success``, run id,
    server count) and a ``tests`` list with one entry per test reached, in
    run order. CI jobs use it to collect the pass/fail matrix.
    """

    def __init__(
        self,
        output_file: Path | str | None = None,
        output: TextIO | None = None,
        indent: int | None = 2,
    ) -> None:
        self._output_file = Path(output_file) if output_file else None
        self._output = output
        self._indent = indent

    @property
    def name(self) -> str:
        return "json"

    def report(self, report: SuiteReport) -> None:
        text = json.dumps(self.document(report), indent=self._indent, default=str)
        if self._output_file is None:
            stream = self._output or sys.stdout
            stream.write(text + "\n")
            return
        self._output_file.parent.mkdir(parents=True, exist_ok=True)
        self._output_file.write_text(text + "\n")

    @staticmethod
    def document(report: SuiteReport) -> dict[str, Any]:
        summary = report.model_dump(mode="json", exclude={"tests"})
        summary["success"] = report.success
        if report.duration_seconds is not None:
            summary["duration_seconds"] = round(report.duration_seconds, 3)
        return {
            "version": FORMAT_VERSION,
            "generated_at": datetime.now().isoformat(),
            "summary": summary,
            "tests": [test.model_dump(mode="json") for test in report.tests],
        }
