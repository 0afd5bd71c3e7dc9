"""Failure types raised by the testkit."""

from __future__ import annotations

from typing import NoReturn


class GraphQLTestFailure(AssertionError):
    """Raised to abort the running test when a subscription or query contract is violated."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message} (caused by {self.cause!r})"


class TransportError(RuntimeError):
    """Raised by a subscription transport when the connection cannot be used."""

    def __init__(self, uri: str, reason: str) -> None:
        super().__init__(f"WebSocket transport for '{uri}' failed: {reason}")
        self.uri = uri
        self.reason = reason


def fail(message: str, cause: BaseException | None = None) -> NoReturn:
    """
    Abort the current test with ``message``.

    Parameters:
        message (str): Description of the violated expectation.
        cause (BaseException | None): Original error, chained to the failure when given.

    Raises:
        GraphQLTestFailure: Always.
    """
    raise GraphQLTestFailure(message, cause) from cause
