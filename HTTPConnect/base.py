import asyncio, time, ssl, socket, http.client, threading
import logging
from typing import Callable, List, Optional
from urllib.parse import urljoin, urlparse, ParseResult

from .exceptions import (
    ConnectionFailed, MissingReplayCapability, RequestCancelled, RequestTimeout,
    TooManyRedirects, TransportError,
)
from .models import WireRequest, WireResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
DEFAULT_MAX_REDIRECTS = 10
# bounds connect() when the client has no timeout; a cancel cannot interrupt it
CONNECT_TIMEOUT = 30.0
REPLAY_REDIRECT_CODES = (301, 302, 307, 308)
SEE_OTHER = 303
# stripped when a redirect points at another host
SENSITIVE_HEADERS = ("Authorization", "Www-Authenticate", "Cookie", "Cookie2")
BODY_METHODS = ("POST", "PUT", "PATCH")


# Cancellation
class CancelContext:
    """Thread-safe cancel signal bound to requests.

    ``cancel()`` may be called from any thread; registered callbacks run once,
    on the cancelling thread.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self._timer: Optional[threading.Timer] = None
        self.reason: Optional[str] = None

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancelContext":
        """A context that cancels itself once ``seconds`` have passed."""
        context = cls()
        timer = threading.Timer(seconds, context.cancel, kwargs={"reason": "deadline exceeded"})
        timer.daemon = True
        context._timer = timer
        timer.start()
        return context

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "context cancelled"):
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it.

        Runs immediately when the context is already cancelled.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove_callback(callback)
        callback()
        return lambda: None

    def _remove_callback(self, callback: Callable[[], None]):
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class ResponseStream:
    """Body stream of a wire response; closing it also closes the connection."""

    def __init__(self, response: http.client.HTTPResponse, connection: http.client.HTTPConnection):
        self._response = response
        self._connection = connection

    def read(self, amt: Optional[int] = None) -> bytes:
        return self._response.read(amt)

    def close(self):
        try:
            self._response.close()
        finally:
            self._connection.close()


class _InFlight:
    """Tracks the connection of a running round trip so another thread can abort it."""

    def __init__(self):
        self._lock = threading.Lock()
        self._connection: Optional[http.client.HTTPConnection] = None
        self.aborted = False

    def attach(self, connection: http.client.HTTPConnection, request: Optional[WireRequest] = None):
        with self._lock:
            if self.aborted:
                connection.close()
                raise RequestCancelled("Request aborted before it was sent", request=request)
            self._connection = connection

    def abort(self):
        with self._lock:
            self.aborted = True
            connection = self._connection
        if connection is not None and connection.sock is not None:
            try:
                # unblocks a recv() stuck in another thread
                connection.sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            connection.close()


def _header(headers, name: str) -> Optional[str]:
    for key, value in headers.items():
        if key.lower() == name.lower():
            return value
    return None


def _discard_late_result(future: "asyncio.Future"):
    """Close a round trip that finished after its caller stopped waiting."""
    if future.cancelled():
        return
    if future.exception() is None:
        result = future.result()
        if result.body is not None:
            result.body.close()


# Core Request Execution Logic
class Transport:
    """
    Executes wire requests on the standard library HTTP stack.
    One connection per hop; follows redirects; enforces a single deadline over
    the whole round trip and aborts it when the bound cancel context fires.
    """

    def __init__(self, insecure_skip_verify: bool = False,
                 follow_redirects: bool = True,
                 max_redirects: int = DEFAULT_MAX_REDIRECTS):
        self.follow_redirects = follow_redirects
        self.max_redirects = max_redirects
        self.ssl_context = self._create_ssl_context(insecure_skip_verify)

    @staticmethod
    def _create_ssl_context(insecure_skip_verify: bool) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if insecure_skip_verify:
            logger.warning("TLS certificate verification is disabled")
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _create_connection(self, url: ParseResult, timeout: Optional[float]) -> http.client.HTTPConnection:
        """Create a new connection for the given URL."""
        if url.scheme == 'https':
            return http.client.HTTPSConnection(
                url.hostname, url.port, timeout=timeout, context=self.ssl_context
            )
        return http.client.HTTPConnection(url.hostname, url.port, timeout=timeout)

    async def round_trip(self, wire: WireRequest, timeout: Optional[float] = DEFAULT_TIMEOUT) -> WireResponse:
        """Send ``wire`` and return the final response of the redirect chain."""
        context = wire.context
        if context is not None and context.cancelled:
            raise RequestCancelled(f"Request cancelled before dispatch: {context.reason}")

        loop = asyncio.get_running_loop()
        inflight = _InFlight()
        timeout = timeout or None
        start_time = time.monotonic()

        work = loop.run_in_executor(None, self._follow, wire, inflight, timeout)
        waiters = {work}
        unregister = lambda: None
        cancelled = None
        if context is not None:
            cancelled = loop.create_future()

            def on_cancel():
                loop.call_soon_threadsafe(lambda: cancelled.done() or cancelled.set_result(None))

            unregister = context.add_callback(on_cancel)
            waiters.add(cancelled)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            unregister()
            if cancelled is not None and not cancelled.done():
                cancelled.cancel()

        if work in done:
            response = work.result()
            response.elapsed = time.monotonic() - start_time
            return response

        work.add_done_callback(_discard_late_result)
        inflight.abort()
        if cancelled is not None and cancelled in done:
            raise RequestCancelled(f"Request cancelled: {context.reason}", request=wire)
        raise RequestTimeout(f"Request timed out after {timeout} seconds", request=wire)

    def _follow(self, wire: WireRequest, inflight: _InFlight, timeout: Optional[float]) -> WireResponse:
        """Run the request and its redirect chain. Blocking; runs on a worker thread."""
        method = wire.method
        url = wire.url
        headers = dict(wire.headers)
        body = wire.body
        redirects = 0

        while True:
            response, stream = self._send_once(wire, method, url, headers, body, inflight, timeout)
            location = _header(response.headers, 'Location')
            redirectable = response.status_code in REPLAY_REDIRECT_CODES or response.status_code == SEE_OTHER
            if not (self.follow_redirects and redirectable and location):
                return response

            try:
                stream.read()
                stream.close()
            except (OSError, http.client.HTTPException) as e:
                raise ConnectionFailed(f"Could not read redirect response: {e}", request=wire) from e
            redirects += 1
            if redirects > self.max_redirects:
                raise TooManyRedirects(f"Stopped after {self.max_redirects} redirects", request=wire)

            next_url = urlparse(urljoin(url.geturl(), location))
            if next_url.scheme not in ('http', 'https') or not next_url.hostname:
                raise ConnectionFailed(f"Unsupported redirect location {location!r}", request=wire)
            logger.debug(f"Following {response.status_code} redirect from {url.geturl()} to {next_url.geturl()}")

            if response.status_code == SEE_OTHER:
                if method != 'HEAD':
                    method = 'GET'
                body = b""
                headers.pop('Content-Type', None)
            elif wire.content_length > 0:
                if wire.body_factory is None:
                    raise MissingReplayCapability(
                        "Cannot follow redirect: request body has no replay function", request=wire)
                body = wire.body_factory().read()

            if next_url.hostname != url.hostname:
                for name in SENSITIVE_HEADERS:
                    headers.pop(name, None)
            url = next_url

    def _send_once(self, wire: WireRequest, method: str, url: ParseResult, headers, body: bytes,
                   inflight: _InFlight, timeout: Optional[float]):
        conn = self._create_connection(url, timeout or CONNECT_TIMEOUT)
        inflight.attach(conn, wire)
        target = url.path or '/'
        if url.query:
            target += '?' + url.query

        try:
            # connect first so an abort that raced the handshake is seen before sending
            conn.connect()
            if inflight.aborted:
                conn.close()
                raise RequestCancelled("Request aborted while connecting", request=wire)
            conn.sock.settimeout(timeout)

            # Send request with headers and body
            conn.putrequest(method, target, skip_host='Host' in headers, skip_accept_encoding=True)
            for header_name, header_value in headers.items():
                conn.putheader(header_name, header_value)
            if body or method in BODY_METHODS:
                conn.putheader('Content-Length', str(len(body)))
            conn.endheaders()
            if body:
                conn.send(body)

            response = conn.getresponse()
        except socket.timeout as e:
            conn.close()
            raise RequestTimeout(f"Request timed out after {timeout or CONNECT_TIMEOUT} seconds", request=wire) from e
        except (OSError, http.client.HTTPException) as e:
            conn.close()
            if inflight.aborted:
                raise RequestCancelled("Request aborted", request=wire) from e
            raise ConnectionFailed(f"Connection error: {str(e)}", request=wire) from e

        response_headers = {}
        for name, value in response.headers.items():
            response_headers[name] = f"{response_headers[name]}, {value}" if name in response_headers else value

        stream = ResponseStream(response, conn)
        wire_response = WireResponse(
            status_code=response.status,
            reason=response.reason,
            protocol="HTTP/1.1" if response.version == 11 else "HTTP/1.0",
            headers=response_headers,
            body=stream,
            url=url.geturl(),
        )
        return wire_response, stream


def run_sync(coro):
    """Run an async coroutine in sync context."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No event loop running, we can use asyncio.run
        return asyncio.run(coro)
    # Already inside an event loop: run on a fresh one in a helper thread
    import concurrent.futures
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, coro).result()


__all__ = ["CancelContext", "Transport", "ResponseStream", "TransportError", "run_sync",
           "DEFAULT_TIMEOUT", "DEFAULT_MAX_REDIRECTS", "CONNECT_TIMEOUT"]
