"""Registry collecting test declarations in load order."""

from collections.abc import Iterable, Iterator, Sequence

from sytest.core.exceptions import LoaderError
from sytest.loader.models import Action, TestCase


class TestRegistry:
    """
    Ordered collection of declared tests.

    Test modules receive the registry in their ``register`` function and
    call :meth:`declare_test` once per test. The loader sets
    :attr:`current_file` while a module is being registered so each case
    records where it came from.
    """

    __test__ = False

    def __init__(self) -> None:
        self._tests: list[TestCase] = []
        self.current_file: str = "<unknown>"

    def __len__(self) -> int:
        return len(self._tests)

    def __iter__(self) -> Iterator[TestCase]:
        return iter(self._tests)

    @property
    def tests(self) -> list[TestCase]:
        return list(self._tests)

    def declare_test(
        self,
        name: str,
        *,
        requires: Sequence[str] = (),
        provides: Sequence[str] = (),
        do: Action | None = None,
        check: Action | None = None,
        wait_time: int = 0,
        refreshes: Sequence[str] = (),
    ) -> TestCase:
        """
        Declare a test and append it to the run order.

        Args:
            name: Human-readable test name.
            requires: Environment keys whose values are passed to the
                actions, in order.
            provides: Environment keys the test promises to set.
            do: Action performing the operation under test.
            check: Action asserting the outcome; retried up to
                ``wait_time`` extra times.
            wait_time: Extra check attempts allowed.
            refreshes: Keys this test intentionally overwrites.

        Returns:
            The declared TestCase.

        Raises:
            LoaderError: The declaration is invalid.
        """
        try:
            case = TestCase(
                name=name,
                file=self.current_file,
                requires=tuple(requires),
                provides=tuple(provides),
                refreshes=tuple(refreshes),
                do=do,
                check=check,
                wait_time=wait_time,
            )
        except ValueError as e:
            raise LoaderError(str(e), file_path=self.current_file) from e

        self._tests.append(case)
        return case

    def validate(self, reserved: Iterable[str] = ()) -> None:
        """
        Check that every environment key has a single writer.

        A key may be provided by only one test, and never by a test when
        the driver reserves it. A later writer is accepted only if it lists
        the key in ``refreshes``.

        Args:
            reserved: Keys the driver provides itself (e.g. ``clients``).

        Raises:
            LoaderError: Listing every conflicting key and its writers.
        """
        writers: dict[str, str] = {key: "<driver>" for key in reserved}
        conflicts: list[str] = []

        for case in self._tests:
            for key in case.writes:
                first = writers.get(key)
                if first is None:
                    writers[key] = case.label
                elif key not in case.refreshes:
                    conflicts.append(
                        f"'{key}' provided by {case.label} "
                        f"is already provided by {first}"
                    )

        if conflicts:
            raise LoaderError(
                "Conflicting environment providers:\n  " + "\n  ".join(conflicts)
            )
