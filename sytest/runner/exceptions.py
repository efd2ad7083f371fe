"""Runner-specific exceptions."""

from sytest.core.exceptions import SyTestError


class RunnerError(SyTestError):
    """Base exception for runner errors."""

    def __init__(
        self,
        message: str,
        test_name: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.test_name = test_name
        self.cause = cause
        super().__init__(message)


class MissingRequirementError(RunnerError):
    """Raised when a required environment key has no value."""

    def __init__(self, key: str, test_name: str | None = None) -> None:
        self.key = key
        super().__init__(f"Missing environment key '{key}'", test_name=test_name)


class CheckFailedError(RunnerError):
    """Raised when a check is still failing after all attempts."""

    def __init__(
        self,
        message: str = "Test check function failed to return a true value",
        test_name: str | None = None,
        attempts: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.attempts = attempts
        super().__init__(message, test_name=test_name, cause=cause)


class EnvironmentOverwriteError(RunnerError):
    """Raised when a key is provided twice under the ``error`` policy."""

    def __init__(self, key: str, test_name: str | None = None) -> None:
        self.key = key
        super().__init__(
            f"Environment key '{key}' is already provided", test_name=test_name
        )
