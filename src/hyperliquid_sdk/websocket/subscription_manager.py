"""WebSocket subscription manager: one socket, many topic callbacks."""

import asyncio
import functools
import inspect
import itertools
import json
import logging
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config import RetryPolicy
from ..exceptions import StreamClosedError, WebSocketConnectionError

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Any], Union[None, Awaitable[None]]]
StatusCallback = Callable[["ConnectionState", Optional[Exception]], None]

# Channels consumed by the manager itself
CONTROL_CHANNELS = {"pong", "subscriptionResponse", "error"}


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class Subscription:
    """A callback registered for one topic."""
    id: int
    topic: str
    request: Dict[str, Any]
    callback: MessageCallback


def subscription_topic(subscription: Dict[str, Any]) -> str:
    """Topic key for an outbound subscription request."""
    sub_type = subscription["type"]
    if sub_type in ("l2Book", "trades", "bbo"):
        return f"{sub_type}:{subscription['coin'].lower()}"
    if sub_type == "candle":
        return f"candle:{subscription['coin'].lower()},{subscription['interval']}"
    if sub_type in ("userFills", "userFundings"):
        return f"{sub_type}:{subscription['user'].lower()}"
    return sub_type


def message_topic(message: Dict[str, Any]) -> Optional[str]:
    """Topic key for an inbound message, matching ``subscription_topic``."""
    channel = message.get("channel")
    data = message.get("data")
    if channel in ("l2Book", "bbo"):
        return f"{channel}:{data['coin'].lower()}"
    if channel == "trades":
        if not data:
            return None
        return f"trades:{data[0]['coin'].lower()}"
    if channel == "candle":
        return f"candle:{data['s'].lower()},{data['i']}"
    if channel in ("userFills", "userFundings"):
        return f"{channel}:{data['user'].lower()}"
    if channel == "user":
        return "userEvents"
    return channel


class SubscriptionManager:
    """Owns a single WebSocket and fans inbound messages out to callbacks.

    Subscriptions survive disconnects: they are re-sent on every successful
    (re)connect. An unexpected close triggers reconnect attempts with the
    retry policy's backoff; when those run out, status observers receive a
    ``StreamClosedError`` and the manager stays disconnected.
    """

    def __init__(
        self,
        url: str,
        retry_policy: Optional[RetryPolicy] = None,
        ping_interval: float = 50.0,
        open_timeout: float = 10.0,
        connect_factory: Optional[Callable[[str], Awaitable[Any]]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            url: WebSocket URL
            retry_policy: Reconnect bound and backoff delays
            ping_interval: Seconds between keep-alive pings
            open_timeout: Handshake timeout in seconds
            connect_factory: Coroutine function opening the socket for a URL
            sleep: Coroutine used for reconnect backoff waits
        """
        self.url = url
        self.retry_policy = retry_policy or RetryPolicy()
        self.ping_interval = ping_interval
        self._connect_factory = connect_factory or functools.partial(
            websockets.connect,
            ping_interval=None,  # keep-alive is sent as an application message
            open_timeout=open_timeout,
            close_timeout=1,
            max_size=None,
        )
        self._sleep = sleep

        self._ws: Any = None
        self._state = ConnectionState.DISCONNECTED
        self._lock = asyncio.Lock()
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._by_id: Dict[int, Subscription] = {}
        self._active: Set[str] = set()
        self._ids = itertools.count(1)
        self._status_callbacks: List[StatusCallback] = []
        self._reader_task: Optional[asyncio.Task] = None
        self._ping_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self.reconnect_count = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def topics(self) -> List[str]:
        """Registered topics, in first-subscription order."""
        return list(self._subscriptions)

    def on_status(self, callback: StatusCallback) -> None:
        """Register an observer for connection state changes and terminal errors."""
        self._status_callbacks.append(callback)

    def stats(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "reconnects": self.reconnect_count,
            "topics": len(self._subscriptions),
            "subscriptions": len(self._by_id),
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the socket and re-send every registered subscription.

        No-op while connecting or connected.

        Raises:
            WebSocketConnectionError: If the handshake fails
        """
        async with self._lock:
            if self._state is not ConnectionState.DISCONNECTED:
                return

            self._set_state(ConnectionState.CONNECTING)
            try:
                await self._open()
            except WebSocketConnectionError as e:
                self._set_state(ConnectionState.DISCONNECTED, e)
                raise

    async def disconnect(self) -> None:
        """Close the socket. Registered subscriptions are kept for the next connect."""
        reconnect = self._reconnect_task
        self._reconnect_task = None
        if reconnect and not reconnect.done() and reconnect is not asyncio.current_task():
            reconnect.cancel()
            with suppress(asyncio.CancelledError):
                await reconnect

        async with self._lock:
            if self._state is ConnectionState.DISCONNECTED and self._ws is None:
                return
            await self._close_socket()
            self._set_state(ConnectionState.DISCONNECTED)
            logger.info("WebSocket disconnected")

    async def _open(self) -> None:
        logger.info(f"Connecting to WebSocket at {self.url}")
        try:
            ws = await self._connect_factory(self.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise WebSocketConnectionError(f"Failed to connect to {self.url}: {e}") from e

        self._ws = ws
        self._active.clear()
        self._reader_task = asyncio.create_task(self._reader(ws))
        self._ping_task = asyncio.create_task(self._ping_loop(ws))
        self._set_state(ConnectionState.CONNECTED)
        logger.info("WebSocket connected successfully")
        await self._resubscribe()

    async def _close_socket(self) -> None:
        ws, self._ws = self._ws, None
        self._active.clear()

        current = asyncio.current_task()
        for task in (self._ping_task, self._reader_task):
            if task and not task.done() and task is not current:
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        self._ping_task = None
        self._reader_task = None

        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException) as e:
                logger.warning(f"Error closing WebSocket: {e}")

    async def _reader(self, ws: Any) -> None:
        """Process incoming WebSocket messages until the socket closes."""
        try:
            while True:
                message = await ws.recv()
                await self._handle_message(message)
        except (ConnectionClosed, OSError) as e:
            if ws is not self._ws:
                return
            logger.warning(f"WebSocket connection closed: {e}")
        except Exception as e:
            if ws is not self._ws:
                return
            logger.error(f"WebSocket reader failed: {e}", exc_info=True)
        self._reconnect_task = asyncio.create_task(self._reconnect(ws))

    async def _ping_loop(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self.ping_interval)
            try:
                await ws.send(json.dumps({"method": "ping"}))
            except (ConnectionClosed, OSError) as e:
                logger.debug(f"Ping failed: {e}")
                return

    async def _reconnect(self, dead_ws: Any) -> None:
        async with self._lock:
            if self._ws is not dead_ws:
                return
            await self._close_socket()
            self._set_state(ConnectionState.CONNECTING)

        policy = self.retry_policy
        last_error: Optional[Exception] = None
        for attempt in range(policy.max_attempts):
            wait_time = policy.delay(attempt)
            logger.info(
                f"Attempting to reconnect in {wait_time} seconds "
                f"(attempt {attempt + 1}/{policy.max_attempts})"
            )
            await self._sleep(wait_time)

            async with self._lock:
                if self._state is not ConnectionState.CONNECTING:
                    return
                try:
                    await self._open()
                except WebSocketConnectionError as e:
                    last_error = e
                    logger.warning(f"Reconnect failed: {e}")
                    continue
                self.reconnect_count += 1
                logger.info("Reconnected successfully")
                return

        logger.error("Max reconnection attempts reached, giving up")
        error = StreamClosedError(
            f"Stream closed and {policy.max_attempts} reconnect attempts failed: {last_error}",
            attempts=policy.max_attempts,
        )
        async with self._lock:
            if self._state is ConnectionState.CONNECTING:
                self._set_state(ConnectionState.DISCONNECTED, error)

    def _set_state(self, state: ConnectionState, error: Optional[Exception] = None) -> None:
        if state is self._state and error is None:
            return
        self._state = state
        for callback in list(self._status_callbacks):
            try:
                callback(state, error)
            except Exception as e:
                logger.error(f"Error in status callback: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe(self, subscription: Union[str, Dict[str, Any]], callback: MessageCallback) -> int:
        """Register a callback for a topic.

        Args:
            subscription: Topic name, or a subscription request such as
                ``{"type": "l2Book", "coin": "BTC"}``
            callback: Called with each matching message's ``data``; may be a
                coroutine function

        Returns:
            Subscription id for ``unsubscribe``

        Raises:
            ValueError: If a channel that does not name the user in its
                messages is already subscribed for a different user
        """
        request = {"type": subscription} if isinstance(subscription, str) else dict(subscription)
        topic = subscription_topic(request)
        self._check_single_user(topic, request)
        sub = Subscription(id=next(self._ids), topic=topic, request=request, callback=callback)

        self._subscriptions.setdefault(topic, []).append(sub)
        self._by_id[sub.id] = sub

        if self._state is ConnectionState.CONNECTED:
            if topic not in self._active:
                try:
                    await self._send_subscribe(topic, request)
                except WebSocketConnectionError as e:
                    # Stays registered; the reconnect re-sends it
                    logger.warning(f"Subscription to {topic} queued, send failed: {e}")
        else:
            logger.debug(f"Queued subscription to {topic} until connected")
        return sub.id

    async def unsubscribe(self, subscription_id: int) -> bool:
        """Remove a callback; the topic is unsubscribed once it has none left."""
        sub = self._by_id.pop(subscription_id, None)
        if sub is None:
            return False

        callbacks = self._subscriptions.get(sub.topic, [])
        callbacks.remove(sub)
        if not callbacks:
            del self._subscriptions[sub.topic]
            if self._state is ConnectionState.CONNECTED and sub.topic in self._active:
                self._active.discard(sub.topic)
                try:
                    await self._send({"method": "unsubscribe", "subscription": sub.request})
                except WebSocketConnectionError as e:
                    logger.warning(f"Unsubscribe from {sub.topic} not sent: {e}")
        return True

    def _check_single_user(self, topic: str, request: Dict[str, Any]) -> None:
        """Reject a second user on a channel whose messages do not name the user."""
        user = request.get("user")
        if user is None:
            return
        for existing in self._subscriptions.get(topic, ()):
            other = existing.request.get("user")
            if other is not None and other.lower() != user.lower():
                raise ValueError(
                    f"Cannot subscribe to {request['type']} for {user}: "
                    f"already subscribed for {other} on this connection"
                )

    async def _send_subscribe(self, topic: str, request: Dict[str, Any]) -> None:
        self._active.add(topic)
        try:
            await self._send({"method": "subscribe", "subscription": request})
        except WebSocketConnectionError:
            self._active.discard(topic)
            raise

    async def _send(self, payload: Dict[str, Any]) -> None:
        ws = self._ws
        if ws is None:
            raise WebSocketConnectionError("WebSocket is not connected")
        try:
            await ws.send(json.dumps(payload))
        except (ConnectionClosed, OSError) as e:
            raise WebSocketConnectionError(f"Send failed: {e}") from e

    async def _resubscribe(self) -> None:
        """Send every registered topic not yet active on this connection."""
        if not self._subscriptions:
            return

        logger.info(f"Subscribing to {len(self._subscriptions)} topics")
        for topic, subs in list(self._subscriptions.items()):
            if topic in self._active or not subs:
                continue
            try:
                await self._send_subscribe(topic, subs[0].request)
            except WebSocketConnectionError as e:
                # The reader sees the same closure and schedules the reconnect
                logger.error(f"Failed to resubscribe to {topic}: {e}")
                return

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _handle_message(self, raw: Union[str, bytes]) -> None:
        try:
            if isinstance(raw, bytes):
                raw = raw.decode('utf-8')
            message = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning(f"Failed to parse message as JSON: {raw[:200]}")
            return
        if not isinstance(message, dict):
            return

        channel = message.get("channel")
        if channel in CONTROL_CHANNELS:
            if channel == "error":
                logger.error(f"WebSocket error: {message.get('data')}")
            else:
                logger.debug(f"Control message: {channel}")
            return

        try:
            topic = message_topic(message)
        except (KeyError, TypeError, IndexError, AttributeError):
            logger.warning(f"Malformed {channel} message: {raw[:200]}")
            return

        subs = list(self._subscriptions.get(topic, ()))
        if not subs:
            logger.debug(f"No handler for topic: {topic}")
            return

        data = message.get("data")
        for sub in subs:
            await self._run_callback(sub, data)

    async def _run_callback(self, sub: Subscription, data: Any) -> None:
        """Run a callback, isolating its failures from the others."""
        try:
            result = sub.callback(data)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error in callback for {sub.topic}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Typed subscriptions
    # ------------------------------------------------------------------

    async def all_mids(self, callback: MessageCallback) -> int:
        return await self.subscribe({"type": "allMids"}, callback)

    async def l2_book(self, coin: str, callback: MessageCallback) -> int:
        return await self.subscribe({"type": "l2Book", "coin": coin}, callback)

    async def trades(self, coin: str, callback: MessageCallback) -> int:
        return await self.subscribe({"type": "trades", "coin": coin}, callback)

    async def bbo(self, coin: str, callback: MessageCallback) -> int:
        return await self.subscribe({"type": "bbo", "coin": coin}, callback)

    async def candle(self, coin: str, interval: str, callback: MessageCallback) -> int:
        return await self.subscribe({"type": "candle", "coin": coin, "interval": interval}, callback)

    async def user_events(self, user: str, callback: MessageCallback) -> int:
        return await self.subscribe({"type": "userEvents", "user": user}, callback)

    async def user_fills(self, user: str, callback: MessageCallback) -> int:
        return await self.subscribe({"type": "userFills", "user": user}, callback)

    async def order_updates(self, user: str, callback: MessageCallback) -> int:
        return await self.subscribe({"type": "orderUpdates", "user": user}, callback)

    async def user_fundings(self, user: str, callback: MessageCallback) -> int:
        return await self.subscribe({"type": "userFundings", "user": user}, callback)
