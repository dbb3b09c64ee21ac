from typing import Any, Optional

# Exceptions
class HTTPConnectError(Exception):
    """Base exception for every failure raised by HTTPConnect."""
    def __init__(self, message: str, request: Optional[Any] = None,
                 response: Optional[Any] = None):
        super().__init__(message)
        self.request = request
        self.response = response

class EncodeError(HTTPConnectError):
    """Raised when a request body cannot be serialized."""
    pass

class InvalidURL(HTTPConnectError, ValueError):
    """Raised when an address does not parse into a usable URL."""
    pass

class MissingReplayCapability(HTTPConnectError):
    """Raised when a request with a body has no way to replay it on redirect."""
    pass

class TransportError(HTTPConnectError):
    """Raised when the underlying HTTP stack fails the round trip."""
    kind = "network"

class ConnectionFailed(TransportError):
    """Raised when a connection cannot be made or breaks mid-request."""
    kind = "network"

class RequestTimeout(TransportError):
    """Raised when the round trip exceeds the client timeout."""
    kind = "timeout"

class RequestCancelled(TransportError):
    """Raised when the bound cancel context fires before a response arrives."""
    kind = "cancelled"

class TooManyRedirects(TransportError):
    """Raised when the redirect limit is exhausted."""
    kind = "redirect"

class NilResponseError(HTTPConnectError):
    """Raised when a Response has no underlying wire response."""
    pass

class NilBodyError(HTTPConnectError):
    """Raised when the wire response carries no body stream."""
    pass

class BodyReadError(HTTPConnectError):
    """Raised when reading a body stream fails."""
    pass

class CloseError(HTTPConnectError):
    """Raised when closing the response stream fails after a successful read.

    The bytes that were read are still available on ``body``.
    """
    def __init__(self, message: str, body: bytes = b"", **kwargs):
        super().__init__(message, **kwargs)
        self.body = body

class DecodeError(HTTPConnectError, ValueError):
    """Raised when a response body cannot be decoded into the requested shape."""
    pass

class HTTPStatusError(HTTPConnectError):
    """Raised by Response.raise_for_status for 4xx and 5xx replies."""
    def __init__(self, message: str, status_code: int, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code
