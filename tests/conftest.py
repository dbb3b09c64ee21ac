import threading

import pytest

from HTTPConnect import Client
from tests.utils import EchoServer


@pytest.fixture
def server():
    echo = EchoServer()
    thread = threading.Thread(target=echo.serve_forever, daemon=True)
    thread.start()
    yield echo
    echo.shutdown()
    echo.server_close()


@pytest.fixture
def client() -> Client:
    return Client(timeout=30)
