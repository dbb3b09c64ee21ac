"""
Fluent request builder and clients.
Build a Request through a client, chain setters on it, then send it; the
Response reads its body lazily and decodes JSON on demand.
"""

import dataclasses
import http.client
import io
import json
import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .base import CancelContext, Transport, run_sync, DEFAULT_TIMEOUT, DEFAULT_MAX_REDIRECTS
from .codec import Body, BodyKind, NO_BODY, encode_body
from .exceptions import (
    BodyReadError, CloseError, DecodeError, HTTPStatusError, MissingReplayCapability,
    NilBodyError, NilResponseError,
)
from .middlewares import BaseMiddleware, DebugLoggingMiddleware, LoggingMiddleware, UserAgentMiddleware
from .models import Cookie, Method, WireRequest, WireResponse
from .utils import CONTENT_TYPE, FORM_CONTENT_TYPE, canonical_header_key, has_https_scheme, resolve_url

logger = logging.getLogger(__name__)


class Request:
    """A mutable, chainable HTTP request.

    Not thread-safe: build and send it from a single owner. A stream body is
    drained on the first send; set a fresh body before sending again.
    """

    def __init__(self, client: Optional["BaseClient"] = None,
                 method: Union[str, Method] = Method.GET, url: str = ""):
        self.client = client
        self.method = _method_name(method)
        self.url = url
        self.headers: Dict[str, str] = {}
        self.query_params: Dict[str, str] = {}
        self.form_data: List[Tuple[str, str]] = []
        self.cookies: List[Cookie] = []
        self.body: Body = NO_BODY
        self.use_ssl: Optional[bool] = None
        self.token: Optional[str] = None
        self.auth_scheme = "Bearer"
        self.sent_at: Optional[float] = None
        self._body_bytes: Optional[bytes] = None

    def __repr__(self) -> str:
        return f"<Request {self.method} {self.url!r}>"

    def set_method(self, method: Union[str, Method]) -> "Request":
        self.method = _method_name(method)
        return self

    def set_url(self, url: str) -> "Request":
        self.url = url
        return self

    def set_body(self, body: Any) -> "Request":
        """Attach a stream, bytes, str or JSON/XML-encodable value."""
        self.body = Body.of(body)
        self._body_bytes = None
        return self

    def set_header(self, header: str, value: str) -> "Request":
        self.headers[header] = value
        return self

    def add_headers(self, headers: Mapping) -> "Request":
        for key, value in headers.items():
            self.headers[key] = value
        return self

    def set_content_type(self, content_type: str) -> "Request":
        return self.set_header(CONTENT_TYPE, content_type)

    @property
    def content_type(self) -> Optional[str]:
        for key, value in self.headers.items():
            if key.lower() == 'content-type':
                return value
        return None

    def add_query_param(self, key: str, value: str) -> "Request":
        self.query_params[key] = value
        return self

    def add_query_params(self, params: Mapping) -> "Request":
        self.query_params.update(params)
        return self

    def add_form_field(self, key: str, value: str) -> "Request":
        self.form_data.append((key, value))
        self._body_bytes = None
        return self

    def add_form_data(self, data: Union[Mapping, Iterable[Tuple[str, str]]]) -> "Request":
        pairs = data.items() if isinstance(data, Mapping) else data
        for key, value in pairs:
            self.add_form_field(key, value)
        return self

    def add_cookie(self, cookie: Union[Cookie, str], value: Optional[str] = None) -> "Request":
        self.cookies.append(_as_cookie(cookie, value))
        return self

    def add_cookies(self, cookies: Iterable[Cookie]) -> "Request":
        self.cookies.extend(cookies)
        return self

    def set_ssl(self, use_ssl: bool) -> "Request":
        """Force https (True) or http (False) regardless of the URL's scheme."""
        self.use_ssl = use_ssl
        return self

    def set_auth_token(self, token: str, scheme: str = "Bearer") -> "Request":
        self.token = token
        self.auth_scheme = scheme
        return self

    def resolve_body(self) -> bytes:
        """Encode the body once; later calls return the same bytes."""
        if self._body_bytes is None:
            if self.body.kind is BodyKind.NONE and self.form_data and self.content_type is None:
                self.set_content_type(FORM_CONTENT_TYPE)
            self._body_bytes = encode_body(self.body, self.content_type, self.form_data)
        return self._body_bytes

    def send(self, context: Optional[CancelContext] = None):
        if self.client is None:
            raise RuntimeError("Request is not bound to a client; use client.send(request)")
        return self.client.send(self, context=context)


class Response:
    """Wraps a wire response; the body is read and cached on first access."""

    def __init__(self, wire: Optional[WireResponse], request: Optional[Request] = None,
                 received_at: Optional[float] = None):
        self.wire = wire
        self.request = request
        self.received_at = received_at if received_at is not None else time.time()
        self._body_bytes: Optional[bytes] = None

    def __repr__(self) -> str:
        return f"<Response [{self.status_code}]>"

    @property
    def status_code(self) -> Optional[int]:
        return self.wire.status_code if self.wire else None

    @property
    def status(self) -> str:
        return self.wire.status if self.wire else ""

    @property
    def reason(self) -> str:
        return self.wire.reason if self.wire else ""

    @property
    def protocol(self) -> str:
        return self.wire.protocol if self.wire else ""

    @property
    def headers(self) -> Dict[str, str]:
        return self.wire.headers if self.wire else {}

    @property
    def elapsed(self) -> float:
        return self.wire.elapsed if self.wire else 0.0

    @property
    def url(self) -> str:
        return self.wire.url if self.wire else ""

    def read_body(self) -> bytes:
        """Read the whole body, close the stream, and cache the bytes.

        Idempotent: later calls return the cached bytes without touching the stream.
        """
        if self._body_bytes is not None:
            return self._body_bytes
        if self.wire is None:
            raise NilResponseError("Response has no wire response", request=self.request)
        stream = self.wire.body
        if stream is None:
            raise NilBodyError("Wire response has no body", request=self.request, response=self)

        try:
            data = stream.read()
        except (OSError, ValueError, http.client.HTTPException) as e:
            try:
                stream.close()
            except OSError:
                logger.debug("Closing body stream after failed read also failed", exc_info=True)
            raise BodyReadError(f"Can't read response body: {e}", request=self.request, response=self) from e

        self._body_bytes = bytes(data or b"")
        try:
            stream.close()
        except OSError as e:
            raise CloseError(f"Can't close response body: {e}", body=self._body_bytes,
                             request=self.request, response=self) from e
        return self._body_bytes

    def text(self, encoding: str = "utf-8") -> str:
        return self.read_body().decode(encoding)

    def decode_into(self, shape: Any = None) -> Any:
        """Decode the JSON body.

        ``shape`` may be a dataclass type (built from a JSON object), a dict or
        list to fill in place, or any callable taking the decoded value.
        """
        body = self.read_body()
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"Response body is not valid JSON: {e}", request=self.request, response=self) from e

        if shape is None:
            return data
        try:
            if isinstance(shape, dict):
                if not isinstance(data, dict):
                    raise TypeError(f"expected a JSON object, got {type(data).__name__}")
                shape.update(data)
                return shape
            if isinstance(shape, list):
                if not isinstance(data, list):
                    raise TypeError(f"expected a JSON array, got {type(data).__name__}")
                shape.extend(data)
                return shape
            if dataclasses.is_dataclass(shape) and isinstance(shape, type):
                if not isinstance(data, dict):
                    raise TypeError(f"expected a JSON object, got {type(data).__name__}")
                return shape(**data)
            return shape(data)
        except (TypeError, ValueError) as e:
            raise DecodeError(f"Can't decode response into {shape!r}: {e}",
                              request=self.request, response=self) from e

    json = decode_into

    def raise_for_status(self) -> "Response":
        code = self.status_code
        if code is not None and code >= 400:
            kind = "Client" if code < 500 else "Server"
            raise HTTPStatusError(f"{kind} error {self.status} for url {self.url}",
                                  status_code=code, request=self.request, response=self)
        return self

    def close(self):
        """Release the stream without reading it. No-op once the body was read."""
        if self._body_bytes is None and self.wire is not None and self.wire.body is not None:
            self.wire.body.close()
            self._body_bytes = b""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


@dataclass
class SendExecutor:
    """
    Send logic shared between sync and async clients.
    Built per send from a snapshot of the client's configuration.
    """
    transport: Transport
    timeout: Optional[float] = DEFAULT_TIMEOUT
    cookies: List[Cookie] = field(default_factory=list)
    context: Optional[CancelContext] = None
    middleware: List[BaseMiddleware] = field(default_factory=list)

    def finalize(self, request: Request, body: bytes) -> WireRequest:
        """Build the wire request from a request whose body is already resolved."""
        request.sent_at = time.time()
        use_ssl = request.use_ssl if request.use_ssl is not None else has_https_scheme(request.url)
        url = resolve_url(request.url, use_ssl, request.query_params)

        headers: Dict[str, str] = {}
        for key, value in request.headers.items():
            headers[canonical_header_key(key)] = str(value)
        # the computed length below is authoritative
        headers.pop('Content-Length', None)

        if request.token and 'Authorization' not in headers:
            headers['Authorization'] = f"{request.auth_scheme} {request.token}"

        # client cookies go first
        pairs = [cookie.header_pair() for cookie in self.cookies]
        pairs += [cookie.header_pair() for cookie in request.cookies]
        if pairs:
            existing = headers.get('Cookie')
            headers['Cookie'] = "; ".join(([existing] if existing else []) + pairs)

        return WireRequest(
            method=request.method,
            url=url,
            headers=headers,
            body=body,
            content_length=len(body),
            body_factory=lambda: io.BytesIO(body),
            context=self.context,
        )

    async def execute(self, request: Request) -> Response:
        wire = None
        try:
            body = request.resolve_body()
            wire = self.finalize(request, body)

            for middleware in self.middleware:
                wire = await middleware.process_request(wire)

            if wire.content_length > 0 and wire.body_factory is None:
                raise MissingReplayCapability(
                    "Request body cannot be replayed: redirects would lose it", request=wire)

            wire_response = await self.transport.round_trip(wire, self.timeout)
            response = Response(wire_response, request, received_at=time.time())

            for middleware in reversed(self.middleware):
                response = await middleware.process_response(response)
            return response

        except Exception as error:
            for middleware in self.middleware:
                await middleware.process_error(error, wire)
            raise


class BaseClient:
    """Configuration shared by the sync and async clients.

    Setters are chainable and may be called while other threads send; each send
    works from a snapshot taken under the client's lock.
    """

    def __init__(self, timeout: Optional[float] = DEFAULT_TIMEOUT,
                 insecure_skip_verify: bool = False,
                 debug: bool = False,
                 follow_redirects: bool = True,
                 max_redirects: int = DEFAULT_MAX_REDIRECTS,
                 user_agent: Optional[str] = None,
                 context: Optional[CancelContext] = None,
                 cookies: Optional[Iterable[Cookie]] = None,
                 middleware: Optional[List[BaseMiddleware]] = None):
        self._lock = threading.Lock()
        self._timeout = timeout
        self._insecure_skip_verify = insecure_skip_verify
        self._debug = debug
        self._follow_redirects = follow_redirects
        self._max_redirects = max_redirects
        self._context = context
        self._cookies: List[Cookie] = list(cookies or [])

        # Create default middleware if none provided
        if middleware is None:
            middleware = [LoggingMiddleware()]
            if user_agent:
                middleware.insert(0, UserAgentMiddleware(user_agent))
        self._middleware = list(middleware)
        self._debug_middleware = [UserAgentMiddleware(), DebugLoggingMiddleware()]
        self._transport = self._build_transport()

    def _build_transport(self) -> Transport:
        return Transport(self._insecure_skip_verify, self._follow_redirects, self._max_redirects)

    @property
    def timeout(self) -> Optional[float]:
        return self._timeout

    @property
    def debug_mode(self) -> bool:
        return self._debug

    @property
    def insecure_skip_verify(self) -> bool:
        return self._insecure_skip_verify

    @property
    def context(self) -> Optional[CancelContext]:
        return self._context

    @property
    def cookies(self) -> List[Cookie]:
        with self._lock:
            return list(self._cookies)

    def set_timeout(self, seconds: Optional[float]):
        """Deadline for a whole round trip, redirects included. None or 0 disables it."""
        with self._lock:
            self._timeout = seconds
        return self

    def set_debug_mode(self, debug: bool):
        with self._lock:
            self._debug = debug
        return self

    def set_context(self, context: Optional[CancelContext]):
        with self._lock:
            self._context = context
        return self

    def add_cookie(self, cookie: Union[Cookie, str], value: Optional[str] = None):
        with self._lock:
            self._cookies.append(_as_cookie(cookie, value))
        return self

    def set_insecure_skip_verify(self, insecure: bool):
        """Opt in to skipping TLS certificate and hostname checks."""
        with self._lock:
            self._insecure_skip_verify = insecure
            self._transport = self._build_transport()
        return self

    def set_follow_redirects(self, follow: bool, max_redirects: Optional[int] = None):
        with self._lock:
            self._follow_redirects = follow
            if max_redirects is not None:
                self._max_redirects = max_redirects
            self._transport = self._build_transport()
        return self

    def new_request(self, method: Union[str, Method] = Method.GET, url: str = "") -> Request:
        return Request(self, method, url)

    def _executor(self, context: Optional[CancelContext]) -> SendExecutor:
        with self._lock:
            middleware = list(self._middleware)
            if self._debug:
                middleware += self._debug_middleware
            return SendExecutor(
                transport=self._transport,
                timeout=self._timeout,
                cookies=list(self._cookies),
                context=context if context is not None else self._context,
                middleware=middleware,
            )

    def _build(self, method, url, headers=None, params=None, body=None, content_type=None) -> Request:
        request = self.new_request(method, url)
        if headers:
            request.add_headers(headers)
        if params:
            request.add_query_params(params)
        if content_type:
            request.set_content_type(content_type)
        if body is not None:
            request.set_body(body)
        return request


# Synchronous Client
class Client(BaseClient):
    """Synchronous client."""

    def send(self, request: Request, context: Optional[CancelContext] = None) -> Response:
        """Send ``request``. ``context`` overrides the client's cancel context for this call."""
        return run_sync(self._executor(context).execute(request))

    def request(self, method: Union[str, Method], url: str, headers: Optional[Dict[str, str]] = None,
                params: Optional[Dict[str, str]] = None, body: Any = None,
                content_type: Optional[str] = None) -> Response:
        return self.send(self._build(method, url, headers, params, body, content_type))

    def get(self, url: str, **kwargs) -> Response:
        return self.request(Method.GET, url, **kwargs)

    def post(self, url: str, body: Any = None, **kwargs) -> Response:
        return self.request(Method.POST, url, body=body, **kwargs)


# Asynchronous Client
class AsyncClient(BaseClient):
    """Asynchronous client; same builder, ``await client.send(request)``."""

    async def send(self, request: Request, context: Optional[CancelContext] = None) -> Response:
        return await self._executor(context).execute(request)

    async def request(self, method: Union[str, Method], url: str, headers: Optional[Dict[str, str]] = None,
                      params: Optional[Dict[str, str]] = None, body: Any = None,
                      content_type: Optional[str] = None) -> Response:
        return await self.send(self._build(method, url, headers, params, body, content_type))

    async def get(self, url: str, **kwargs) -> Response:
        return await self.request(Method.GET, url, **kwargs)

    async def post(self, url: str, body: Any = None, **kwargs) -> Response:
        return await self.request(Method.POST, url, body=body, **kwargs)


def _method_name(method: Union[str, Method]) -> str:
    if isinstance(method, Method):
        return method.value
    return str(method).upper()


def _as_cookie(cookie: Union[Cookie, str], value: Optional[str]) -> Cookie:
    if isinstance(cookie, Cookie):
        return cookie
    return Cookie(cookie, value or "")
