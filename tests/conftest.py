"""Pytest configuration and fixtures."""
import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from hyperliquid_sdk.api.http_client import HttpClient
from hyperliquid_sdk.config import RetryPolicy
from hyperliquid_sdk.security.request_signer import RequestSigner

TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
TEST_REST_URL = "https://api.test.local"
TEST_WS_URL = "wss://api.test.local/ws"

ResponseSpec = Union[Tuple[int, str], BaseException]


class FakeResponse:
    """Minimal stand-in for ``aiohttp.ClientResponse``."""

    def __init__(self, status: int, text: str):
        self.status = status
        self._text = text

    async def text(self) -> str:
        return self._text

    async def __aenter__(self) -> 'FakeResponse':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        return False


class FakeSession:
    """Records POSTs and replays canned responses.

    ``responses`` is consumed in order and the last entry repeats forever.
    A ``handler(url, body)`` may be given instead to answer per request.
    """

    def __init__(self, responses: Optional[List[ResponseSpec]] = None,
                 handler: Optional[Callable[[str, Any], ResponseSpec]] = None):
        self.responses = list(responses or [])
        self.handler = handler
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def post(self, url: str, data: str = None, headers: Dict[str, str] = None) -> FakeResponse:
        body = json.loads(data)
        self.calls.append({"url": url, "body": body, "headers": headers})
        if self.handler is not None:
            item = self.handler(url, body)
        elif len(self.responses) > 1:
            item = self.responses.pop(0)
        else:
            item = self.responses[0]
        if isinstance(item, BaseException):
            raise item
        return FakeResponse(*item)

    async def close(self) -> None:
        self.closed = True


class FakeWebSocket:
    """Queue-backed WebSocket connection."""

    def __init__(self):
        self.sent: List[str] = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(message)

    async def recv(self) -> str:
        item = await self.incoming.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True
        self.incoming.put_nowait(ConnectionClosedOK(None, None))

    def feed(self, message: Any) -> None:
        self.incoming.put_nowait(message if isinstance(message, (str, bytes)) else json.dumps(message))

    def drop(self) -> None:
        """Simulate the server going away."""
        self.closed = True
        self.incoming.put_nowait(ConnectionClosedError(None, None))

    @property
    def sent_json(self) -> List[Dict[str, Any]]:
        return [json.loads(m) for m in self.sent]


class FakeConnector:
    """Connect factory handing out FakeWebSockets.

    Once ``max_connections`` sockets have been opened, further attempts fail.
    """

    def __init__(self, max_connections: Optional[int] = None):
        self.max_connections = max_connections
        self.sockets: List[FakeWebSocket] = []
        self.calls = 0

    async def __call__(self, url: str) -> FakeWebSocket:
        self.calls += 1
        if self.max_connections is not None and len(self.sockets) >= self.max_connections:
            raise OSError("Connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws


class SleepRecorder:
    """Replacement for ``asyncio.sleep`` that records delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def signer() -> RequestSigner:
    return RequestSigner(TEST_PRIVATE_KEY, is_mainnet=True)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_http_client(sleep_recorder):
    """Build an HttpClient over a FakeSession."""

    def _make(responses=None, handler=None, signer=None, retry_policy=None):
        session = FakeSession(responses, handler)
        client = HttpClient(
            TEST_REST_URL,
            signer=signer,
            retry_policy=retry_policy or RetryPolicy(),
            session=session,
            sleep=sleep_recorder,
        )
        return client, session

    return _make


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()
