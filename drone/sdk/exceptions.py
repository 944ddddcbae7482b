"""Exception classes for the Drone SDK.

This module defines custom exceptions that can be raised by SDK operations,
providing more specific error handling than generic exceptions.
"""

from __future__ import annotations


class DroneError(Exception):
    """Base exception for all Drone SDK errors.

    All custom exceptions in the SDK inherit from this base class,
    allowing applications to catch all SDK-specific errors with a
    single except clause if desired.
    """

    pass


class HTTPError(DroneError):
    """Raised when an HTTP request returns a status code of 300 or above.

    The same instance is handed to the client's error sink (if one is
    installed) before it is raised.

    Attributes
    ----------
    status : int
        The HTTP status code (e.g., 302, 403, 404, 500)
    message : str
        The raw response body
    """

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"HTTP {status}: {message}")

    def to_dict(self) -> dict:
        """Return the failure as a ``{status, message}`` mapping."""
        return {"status": self.status, "message": self.message}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HTTPError):
            return NotImplemented
        return (self.status, self.message) == (other.status, other.message)

    __hash__ = DroneError.__hash__


class ConnectionError(DroneError):
    """Raised when unable to reach the Drone server.

    This typically indicates network issues, an incorrect server URL,
    or the server being unavailable. No status code was received.

    Attributes
    ----------
    url : str
        The URL that failed to connect
    original_error : Exception
        The underlying exception that caused the connection failure
    """

    def __init__(self, url: str, original_error: Exception):
        self.url = url
        self.original_error = original_error
        super().__init__(f"Failed to connect to {url}: {original_error}")


class ResponseDecodeError(DroneError, ValueError):
    """Raised when a response declared as JSON cannot be parsed."""

    def __init__(self, body: str, original_error: Exception):
        self.body = body
        self.original_error = original_error
        super().__init__(f"Invalid JSON response body: {original_error}")


class MessageDecodeError(DroneError, ValueError):
    """Raised when a pushed stream message is not a JSON document.

    Only the offending message is affected; the subscription keeps running
    unless the subscriber's error callback decides otherwise.
    """

    def __init__(self, data: str, original_error: Exception):
        self.data = data
        self.original_error = original_error
        super().__init__(f"Invalid JSON stream message: {original_error}")


class StreamError(DroneError):
    """Raised inside a subscription when its connection fails.

    Attributes
    ----------
    url : str
        The stream URL (without credentials)
    status : int or None
        HTTP status of the failed connect, if any
    retryable : bool
        False when the server rejected the connection outright
    """

    def __init__(
        self, url: str, message: str, status: int | None = None, retryable: bool = True
    ):
        self.url = url
        self.status = status
        self.retryable = retryable
        super().__init__(f"Stream {url} failed: {message}")
