"""Exceptions raised to callers of session commands."""

from __future__ import annotations


class CommandError(RuntimeError):
    """The remote server rejected a request, or it could not be delivered."""

    def __init__(self, message: str, *, server: str = "", request: str = "") -> None:
        super().__init__(message)
        self.server = server
        self.request = request


class NotConnectedError(CommandError):
    """The session has no live transport to carry the request."""


class RequestTimeout(CommandError):
    """No correlated response arrived within the request timeout."""
