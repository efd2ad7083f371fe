"""Protocol client exceptions."""

from typing import Any

from sytest.core.exceptions import SyTestError


class ClientError(SyTestError):
    """Base exception for protocol client errors."""

    def __init__(
        self,
        message: str,
        server: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.server = server
        self.cause = cause
        super().__init__(message)


class ClientConnectionError(ClientError):
    """Raised when no response was received from the homeserver."""

    def __init__(
        self,
        message: str = "Connection failed",
        server: str | None = None,
        method: str | None = None,
        path: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.method = method
        self.path = path
        super().__init__(message, server=server, cause=cause)


class MatrixRequestError(ClientError):
    """Raised when the homeserver answers a request with an error status."""

    def __init__(
        self,
        status_code: int,
        errcode: str | None = None,
        error: str | None = None,
        method: str | None = None,
        path: str | None = None,
        body: dict[str, Any] | None = None,
        server: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.errcode = errcode
        self.error = error
        self.method = method
        self.path = path
        self.body = body or {}

        message = f"{method} {path} failed with HTTP {status_code}"
        if errcode:
            message += f" {errcode}"
        if error:
            message += f": {error}"
        super().__init__(message, server=server)
