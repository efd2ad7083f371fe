"""Test loader discovering and importing test definition files."""

import hashlib
import importlib.util
import os
import re
import sys
from pathlib import Path
from types import ModuleType

from sytest.core.exceptions import LoaderError
from sytest.core.logging import get_logger
from sytest.loader.models import TestCase
from sytest.loader.registry import TestRegistry

logger = get_logger(__name__)

TEST_FILE_PATTERN = re.compile(r"^\d+.*\.py$")

# Prefix of the private module names test files are imported under
MODULE_PREFIX = "_sytest_tests"


class TestLoader:
    """Load test declarations from Python files.

    A test file is a module whose base name starts with digits (e.g.
    ``10rooms.py``) and which defines ``register(tests)``. Files are
    loaded in sorted path order, so the numeric prefixes fix the run order.
    """

    __test__ = False

    def __init__(self, registry: TestRegistry | None = None) -> None:
        """Initialize test loader.

        Args:
            registry: Registry to declare tests into; a new one by default.
        """
        self.registry = registry or TestRegistry()

    def discover(self, directory: str | Path) -> list[Path]:
        """Return every test file under ``directory`` in load order.

        Raises:
            LoaderError: If the directory does not exist.
        """
        root = Path(directory)
        if not root.is_dir():
            raise LoaderError(f"Tests directory not found: {root}")

        found: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            dirnames[:] = [d for d in dirnames if not d.startswith((".", "__"))]
            for filename in sorted(filenames):
                if TEST_FILE_PATTERN.match(filename):
                    found.append(Path(dirpath) / filename)
        return found

    def load_directory(self, directory: str | Path) -> list[TestCase]:
        """Load every test file under ``directory``.

        Args:
            directory: Root of the test tree.

        Returns:
            All declared tests in file order.

        Raises:
            LoaderError: On the first file that fails to load.
        """
        root = Path(directory)
        for path in self.discover(root):
            self.load_file(path, display_name=self._display_name(path, root))
        return self.registry.tests

    def load_file(
        self, file_path: str | Path, display_name: str | None = None
    ) -> list[TestCase]:
        """Import one test file and register its tests.

        Args:
            file_path: Path to the test file.
            display_name: Name recorded as each test's file; the path as
                given by default.

        Returns:
            The tests declared by this file.

        Raises:
            LoaderError: The file cannot be imported, has no ``register``
                function, or its ``register`` raised.
        """
        path = Path(file_path)
        name = display_name or str(path)
        logger.info("Loading %s", name)

        module = self._import(path, name)
        register = getattr(module, "register", None)
        if not callable(register):
            raise LoaderError("Test file defines no register(tests) function", name)

        before = len(self.registry)
        self.registry.current_file = name
        try:
            register(self.registry)
        except LoaderError:
            raise
        except Exception as e:
            raise LoaderError(f"register() failed: {e}", name) from e
        finally:
            self.registry.current_file = "<unknown>"

        return self.registry.tests[before:]

    def _import(self, path: Path, name: str) -> ModuleType:
        digest = hashlib.sha1(str(path.resolve()).encode()).hexdigest()[:12]
        stem = re.sub(r"\W", "_", path.stem)
        module_name = f"{MODULE_PREFIX}_{stem}_{digest}"

        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise LoaderError("Cannot import test file", name)

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise LoaderError(f"Failed to import: {e}", name) from e
        return module

    @staticmethod
    def _display_name(path: Path, root: Path) -> str:
        try:
            return str(path.relative_to(root.parent))
        except ValueError:
            return str(path)
