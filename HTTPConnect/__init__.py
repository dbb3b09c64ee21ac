"""HTTPConnect - A fluent request builder over Python's standard HTTP client."""

# Import key classes for easier access
from .top import Client, AsyncClient, Request, Response
from .base import CancelContext, Transport
from .codec import Body, BodyKind
from .models import Method, Cookie
from .client_factory import ClientConfig, create_client, create_async_client
from .middlewares import (
    BaseMiddleware,
    LoggingMiddleware,
    DebugLoggingMiddleware,
    UserAgentMiddleware,
)
from .exceptions import (
    HTTPConnectError,
    EncodeError,
    InvalidURL,
    MissingReplayCapability,
    TransportError,
    ConnectionFailed,
    RequestTimeout,
    RequestCancelled,
    TooManyRedirects,
    NilResponseError,
    NilBodyError,
    BodyReadError,
    CloseError,
    DecodeError,
    HTTPStatusError,
)
from .utils import JSON_CONTENT_TYPE, PLAIN_TEXT_TYPE, FORM_CONTENT_TYPE, XML_CONTENT_TYPE

__version__ = "1.0.0"
