"""
HTTP client for making asynchronous requests to the Hyperliquid REST API.
"""
import asyncio
import json
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Tuple

import aiohttp
from pydantic import TypeAdapter, ValidationError

from ..config import RetryPolicy
from ..exceptions import (
    DecodeError,
    ExchangeAPIError,
    InvalidCredentialError,
    RequestCancelledError,
    TransportError,
)
from ..security.request_signer import RequestSigner, SignedRequest


class RateLimiter:
    """Sliding-window cap on how many requests may start per window."""

    def __init__(self, max_requests: int, window: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window = window
        self._clock = clock
        self._starts: Deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def in_window(self) -> int:
        """Requests started within the current window."""
        self._evict(self._clock())
        return len(self._starts)

    def _evict(self, now: float) -> None:
        while self._starts and now - self._starts[0] >= self.window:
            self._starts.popleft()

    async def acquire(self) -> None:
        """Wait until a request may start, then record it."""
        async with self._lock:
            now = self._clock()
            self._evict(now)
            while len(self._starts) >= self.max_requests:
                await asyncio.sleep(self._starts[0] + self.window - now)
                now = self._clock()
                self._evict(now)
            self._starts.append(now)


class HttpClient:
    """Asynchronous POST dispatcher with signing and bounded retries."""

    def __init__(
        self,
        base_url: str,
        signer: Optional[RequestSigner] = None,
        retry_policy: Optional[RetryPolicy] = None,
        rate_limit: int = 1200,
        rate_window: float = 60.0,
        timeout: float = 30,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the HTTP client.

        Args:
            base_url: Base URL for the API
            signer: Signer for authenticated actions; None allows only unsigned calls
            retry_policy: Attempt bound and backoff delays for transient failures
            rate_limit: Maximum number of requests per rate window
            rate_window: Rate window in seconds
            timeout: Request timeout in seconds
            session: Pre-built session (not closed by ``close()``)
            sleep: Coroutine used for backoff waits
        """
        self.base_url = base_url.rstrip('/')
        self.signer = signer
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.rate_limiter = RateLimiter(rate_limit, rate_window)
        self.session = session
        self._owns_session = session is None
        self._sleep = sleep
        self._adapters: Dict[Any, TypeAdapter] = {}
        self._logger = logging.getLogger(self.__class__.__name__)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create an aiohttp client session."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=self.timeout,
                json_serialize=json.dumps
            )
            self._owns_session = True
        return self.session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._owns_session and self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    async def post(self, endpoint: str, body: Any, response_model: Any = None) -> Any:
        """
        POST a JSON body, retrying transport failures and 5xx responses.

        Args:
            endpoint: API endpoint, e.g. ``/info``
            body: JSON-serialisable request body
            response_model: pydantic model or type to decode into; None returns raw JSON

        Returns:
            Decoded response

        Raises:
            TransportError: If every attempt failed at the network level or with a 5xx
            ExchangeAPIError: On a 4xx response or an error status in the body
            DecodeError: If the body is not JSON or does not match ``response_model``
            RequestCancelledError: If the awaiting task is cancelled
        """
        url = f"{self.base_url}{endpoint}"
        data = json.dumps(body)
        max_attempts = self.retry_policy.max_attempts
        last_exc: Optional[BaseException] = None
        last_message = ""
        last_status: Optional[int] = None

        try:
            for attempt in range(max_attempts):
                await self.rate_limiter.acquire()
                self._logger.debug("POST %s (attempt %d/%d)", url, attempt + 1, max_attempts)

                try:
                    status, text = await self._send(url, data)
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    last_exc, last_status = e, None
                    last_message = f"Request failed: {e}"
                    self._logger.warning("POST %s failed: %s", url, e)
                else:
                    if status < 400:
                        return self._decode(text, response_model)
                    if status < 500:
                        self._logger.error("HTTP %d: %s", status, text[:200])
                        raise ExchangeAPIError(status, text[:200], body=text)

                    last_exc, last_status = None, status
                    last_message = f"HTTP {status}: {text[:200]}"
                    self._logger.warning("POST %s returned HTTP %d", url, status)

                if attempt < max_attempts - 1:
                    backoff = self.retry_policy.delay(attempt)
                    self._logger.info("Retrying %s in %.2fs", url, backoff)
                    await self._sleep(backoff)

        except asyncio.CancelledError as e:
            self._logger.info("POST %s cancelled", url)
            raise RequestCancelledError(f"Request to {endpoint} was cancelled") from e

        self._logger.error("POST %s failed after %d attempts", url, max_attempts)
        raise TransportError(last_message, attempts=max_attempts, status=last_status) from last_exc

    def require_signer(self) -> RequestSigner:
        if self.signer is None:
            raise InvalidCredentialError("No private key configured; signed actions are unavailable")
        return self.signer

    def sign(self, action: Dict[str, Any], nonce: Optional[int] = None) -> SignedRequest:
        """Sign an action with the configured signer."""
        return self.require_signer().sign(action, nonce)

    async def signed_post(self, endpoint: str, action: Dict[str, Any],
                          response_model: Any = None, nonce: Optional[int] = None) -> Any:
        """Sign an action, then dispatch it. Signing errors are raised before any I/O."""
        signed = self.sign(action, nonce)
        return await self.post(endpoint, signed.to_payload(), response_model)

    async def signed_user_post(self, endpoint: str, action: Dict[str, Any],
                               payload_types: List[Dict[str, str]], primary_type: str,
                               response_model: Any = None) -> Any:
        """Sign a user action (EIP-712 on the action itself), then dispatch it."""
        signed = self.require_signer().sign_user_action(action, payload_types, primary_type)
        return await self.post(endpoint, signed.to_payload(), response_model)

    async def _send(self, url: str, data: str) -> Tuple[int, str]:
        session = await self._get_session()
        async with session.post(
            url,
            data=data,
            headers={"Content-Type": "application/json"}
        ) as response:
            text = await response.text()
            return response.status, text

    def _adapter(self, response_model: Any) -> TypeAdapter:
        adapter = self._adapters.get(response_model)
        if adapter is None:
            adapter = TypeAdapter(response_model)
            self._adapters[response_model] = adapter
        return adapter

    def _decode(self, text: str, response_model: Any) -> Any:
        try:
            data = json.loads(text) if text else None
        except json.JSONDecodeError as e:
            raise DecodeError(f"Response is not valid JSON: {text[:200]}", body=text) from e

        if isinstance(data, dict) and data.get("status") == "err":
            raise ExchangeAPIError(200, str(data.get("response")), body=data)

        if response_model is None:
            return data

        try:
            return self._adapter(response_model).validate_python(data)
        except ValidationError as e:
            raise DecodeError(
                f"Response does not match {getattr(response_model, '__name__', response_model)}: {e}",
                body=data
            ) from e
