from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, BinaryIO
from urllib.parse import ParseResult


class Method(str, Enum):
    """HTTP methods with first-class support; plain strings work too."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"

    def __str__(self) -> str:
        return self.value


@dataclass
class Cookie:
    """A cookie sent with a request. Attributes are kept but never put on the wire."""
    name: str
    value: str
    attributes: Dict[str, str] = field(default_factory=dict)

    def header_pair(self) -> str:
        return f"{self.name}={self.value}"


# Request/Response Models
@dataclass
class WireRequest:
    """Represents the request handed to the transport."""
    method: str
    url: ParseResult
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    content_length: int = 0
    body_factory: Optional[Callable[[], BinaryIO]] = None
    context: Optional[Any] = None

    @property
    def host(self) -> str:
        return self.url.netloc


@dataclass
class WireResponse:
    """Represents the response received from the transport.

    ``body`` is the live stream; it is read and closed by the wrapping Response.
    """
    status_code: int
    reason: str
    protocol: str
    headers: Dict[str, str]
    body: Optional[Any]
    url: str
    elapsed: float = 0.0

    @property
    def status(self) -> str:
        return f"{self.status_code} {self.reason}".strip()
