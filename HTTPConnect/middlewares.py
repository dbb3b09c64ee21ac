import asyncio
import json
import logging
from datetime import datetime
# Configure logging
logger = logging.getLogger(__name__)

from typing import Optional, TYPE_CHECKING

from .exceptions import CloseError
from .models import WireRequest
from .utils import debug_user_agent

if TYPE_CHECKING:
    from .top import Response

RULE = "=" * 78
THIN_RULE = "-" * 78


# Middleware System
class BaseMiddleware:
    """Base class for HTTP middleware."""

    async def process_request(self, request: WireRequest) -> WireRequest:
        """Process the wire request before it's sent."""
        return request

    async def process_response(self, response: "Response") -> "Response":
        """Process the response after it's received."""
        return response

    async def process_error(self, error: Exception, request: Optional[WireRequest]) -> Exception:
        """Observe an error raised while sending. Must return the same error."""
        return error

class LoggingMiddleware(BaseMiddleware):
    """Middleware for logging requests, responses and failures."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    async def process_request(self, request: WireRequest) -> WireRequest:
        self.logger.debug(f"Request: {request.method} {request.url.geturl()}")
        return request

    async def process_response(self, response: "Response") -> "Response":
        self.logger.debug(f"Response: {response.status_code} ({response.elapsed:.3f}s)")
        return response

    async def process_error(self, error: Exception, request: Optional[WireRequest]) -> Exception:
        if request is None:
            self.logger.error(f"Request failed before dispatch: {error}")
        else:
            self.logger.error(f"Request failed: {request.method} {request.url.geturl()} - {error}")
        return error

class DebugLoggingMiddleware(BaseMiddleware):
    """Dumps full requests and responses, bodies included.

    Reading the response body to log it means the body is materialized here,
    before the caller asks for it. The caller still gets the same bytes.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    async def process_request(self, request: WireRequest) -> WireRequest:
        self.logger.info(
            f"\n{RULE}\n"
            "~~~ HTTP REQUEST ~~~\n"
            f"{request.method}  {request.url.geturl()}\n"
            f"HOST   : {request.host}\n"
            f"HEADERS:\n{json.dumps(request.headers)}\n"
            f"BODY   :\n{request.body.decode('utf-8', errors='replace')}\n"
            f"{THIN_RULE}"
        )
        return request

    async def process_response(self, response: "Response") -> "Response":
        loop = asyncio.get_running_loop()
        try:
            body = await loop.run_in_executor(None, response.read_body)
        except CloseError as e:
            self.logger.warning(f"Response body read but stream did not close cleanly: {e}")
            body = e.body

        received_at = datetime.fromtimestamp(response.received_at)
        duration = response.received_at - response.request.sent_at
        self.logger.info(
            f"\n{RULE}\n"
            "~~~ HTTP RESPONSE ~~~\n"
            f"STATUS       : {response.status}\n"
            f"PROTO        : {response.protocol}\n"
            f"RECEIVED AT  : {received_at.isoformat()}\n"
            f"TIME DURATION: {duration:.6f}s\n"
            f"RESPONSE BODY: {body.decode('utf-8', errors='replace')}\n"
            f"HEADERS:\n{json.dumps(response.headers)}\n"
            f"{THIN_RULE}"
        )
        return response

class UserAgentMiddleware(BaseMiddleware):
    """Middleware for adding User-Agent header.

    Without an explicit value the debug agent string (client, platform, host) is used.
    """

    def __init__(self, user_agent: Optional[str] = None):
        self.user_agent = user_agent or debug_user_agent()

    async def process_request(self, request: WireRequest) -> WireRequest:
        if 'User-Agent' not in request.headers:
            request.headers['User-Agent'] = self.user_agent
        return request
