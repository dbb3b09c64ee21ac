import http.server
import time
from dataclasses import dataclass
from typing import Dict, List
from urllib.parse import parse_qs, urlparse


DESIRED_DATA = '{"success": true,"data": "done!"}'


@dataclass
class ReceivedRequest:
    method: str
    path: str
    query: Dict[str, List[str]]
    headers: Dict[str, str]
    body: bytes


class EchoServer(http.server.ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self):
        super().__init__(("127.0.0.1", 0), EchoHandler)
        self.received: List[ReceivedRequest] = []

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.server_address[1]}"

    def handle_error(self, request, client_address):
        # clients in the cancellation tests hang up mid-request
        pass


class EchoHandler(http.server.BaseHTTPRequestHandler):
    """Echoes the request body back; /redirect, /sleep and /status/<code> change that."""
    protocol_version = "HTTP/1.1"

    def log_message(self, format, *args):
        pass

    def handle_request(self):
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        parsed = urlparse(self.path)
        query = parse_qs(parsed.query)
        self.server.received.append(ReceivedRequest(
            method=self.command,
            path=parsed.path,
            query=query,
            headers={k: v for k, v in self.headers.items()},
            body=body,
        ))

        if parsed.path == "/redirect":
            self.send_response(int(query.get("code", ["302"])[0]))
            self.send_header("Location", query["to"][0])
            self.send_header("Content-Length", "14")
            self.send_header("Connection", "close")
            self.end_headers()
            self.wfile.write(b"Redirecting...")
            return

        status = 200
        if parsed.path == "/sleep":
            time.sleep(float(query.get("seconds", ["2"])[0]))
        elif parsed.path.startswith("/status/"):
            status = int(parsed.path.rsplit("/", 1)[1])

        self.send_response(status)
        self.send_header("Content-Type", self.headers.get("Content-Type") or "application/octet-stream")
        self.send_header("X-Echo-Method", self.command)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    do_GET = do_POST = do_PUT = do_PATCH = do_DELETE = do_HEAD = do_OPTIONS = handle_request


class FakeStream:
    """Body stream double that counts reads and closes."""

    def __init__(self, data: bytes = b"", read_error: Exception = None, close_error: Exception = None):
        self.data = data
        self.read_error = read_error
        self.close_error = close_error
        self.reads = 0
        self.closes = 0

    def read(self, amt=None):
        self.reads += 1
        if self.read_error:
            raise self.read_error
        data, self.data = self.data, b""
        return data

    def close(self):
        self.closes += 1
        if self.close_error:
            raise self.close_error
