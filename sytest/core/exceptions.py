"""SyTest exceptions."""


class SyTestError(Exception):
    """Base exception for all SyTest errors."""


class LoaderError(SyTestError):
    """Raised when the test corpus cannot be loaded or is inconsistent."""

    def __init__(self, message: str, file_path: str | None = None) -> None:
        self.message = message
        self.file_path = file_path

        if file_path:
            full_message = f"File: {file_path}: {message}"
        else:
            full_message = message

        super().__init__(full_message)


class ConfigurationError(SyTestError):
    """Invalid or incomplete harness configuration."""


class SetupError(SyTestError):
    """Base exception for fatal failures while booting servers or clients."""


class ServerStartError(SetupError):
    """Raised when a homeserver fails to start."""

    def __init__(self, message: str, port: int | None = None) -> None:
        self.port = port
        super().__init__(message)


class ClientSetupError(SetupError):
    """Raised when a client fails to register or start its event stream."""

    def __init__(
        self,
        message: str,
        port: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.port = port
        self.cause = cause
        super().__init__(message)


class HarnessTimeoutError(SyTestError):
    """Raised by a delay future that lost a race against an operation."""

    def __init__(self, message: str, timeout_seconds: float | None = None) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(message)
