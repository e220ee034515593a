"""
Gateway WebSocket connection for Mission Control.

Owns the single socket to the local gateway daemon and provides:
- connect/disconnect/send with fire-and-forget semantics
- exponential backoff reconnection with jitter
- ping/pong heartbeat to detect stale connections
- typed event fan-out through an EventRouter

Nothing here raises across an asynchronous boundary; every failure is
reported through emitted events that observers opt into.
"""

import asyncio
import json
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

import websockets
from websockets.exceptions import ConnectionClosed

from ..config import (
    DEFAULT_GATEWAY_URL,
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_HEARTBEAT_TIMEOUT,
    DEFAULT_MAX_RECONNECT_ATTEMPTS,
    DEFAULT_RECONNECT_BASE_DELAY,
    DEFAULT_RECONNECT_JITTER,
    DEFAULT_RECONNECT_MAX_DELAY,
    Settings,
)
from ..models.schemas import WireModel
from .events import LOCAL_EVENT_NAMES, PING_TYPE, PONG_TYPE, EventType, parse_envelope
from .router import EventKey, EventRouter, Listener, Subscription

logger = logging.getLogger(__name__)

# Close codes
NORMAL_CLOSURE = 1000
HEARTBEAT_CLOSE_CODE = 1001
ABNORMAL_CLOSURE = 1006

ConnectFactory = Callable[[str], Awaitable[Any]]


class ConnectionState(Enum):
    """Connection state machine values"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class ConnectionStatus:
    """Immutable snapshot returned by GatewayConnection.get_status()"""
    state: ConnectionState
    connected: bool
    reconnect_attempts: int
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "connected": self.connected,
            "reconnectAttempts": self.reconnect_attempts,
            "url": self.url,
        }


def compute_backoff_delay(
    attempt: int,
    base_delay: float = DEFAULT_RECONNECT_BASE_DELAY,
    max_delay: float = DEFAULT_RECONNECT_MAX_DELAY,
    jitter: float = DEFAULT_RECONNECT_JITTER,
    uniform: Callable[[float, float], float] = random.uniform,
) -> float:
    """
    Delay before reconnect attempt ``attempt`` (1-indexed), in seconds.

    min(base * 2^(attempt-1), max) plus uniform jitter in [0, jitter].
    """
    exponent = max(attempt - 1, 0)
    backoff = min(base_delay * (2 ** exponent), max_delay)
    return backoff + (uniform(0.0, jitter) if jitter > 0 else 0.0)


def _default_connect(url: str) -> Awaitable[Any]:
    # Liveness is handled at the application level, not by protocol pings
    return websockets.connect(url, ping_interval=None)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_default(value: Any) -> Any:
    if isinstance(value, WireModel):
        return value.to_wire()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class GatewayConnection:
    """
    Long-lived connection to the gateway daemon.

    Constructed once by the application's composition root and shared by
    reference. Must be driven from a single asyncio event loop.
    """

    def __init__(
        self,
        url: str = DEFAULT_GATEWAY_URL,
        max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
        reconnect_base_delay: float = DEFAULT_RECONNECT_BASE_DELAY,
        reconnect_max_delay: float = DEFAULT_RECONNECT_MAX_DELAY,
        reconnect_jitter: float = DEFAULT_RECONNECT_JITTER,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        heartbeat_timeout: float = DEFAULT_HEARTBEAT_TIMEOUT,
        connect_factory: Optional[ConnectFactory] = None,
        uniform: Callable[[float, float], float] = random.uniform,
    ):
        """
        Initialize the connection. No socket is opened until connect().

        Args:
            url: Gateway WebSocket address
            max_reconnect_attempts: Attempts per failure episode before giving up
            reconnect_base_delay: First backoff delay in seconds
            reconnect_max_delay: Backoff cap in seconds (before jitter)
            reconnect_jitter: Upper bound of the random jitter in seconds
            heartbeat_interval: Seconds between pings while connected
            heartbeat_timeout: Seconds to wait for a pong after each ping
            connect_factory: Coroutine factory returning an open socket
            uniform: Jitter source, random.uniform by default
        """
        self.url = url
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_base_delay = reconnect_base_delay
        self.reconnect_max_delay = reconnect_max_delay
        self.reconnect_jitter = reconnect_jitter
        self.heartbeat_interval = heartbeat_interval
        self.heartbeat_timeout = heartbeat_timeout
        self.router = EventRouter()

        self._connect_factory = connect_factory or _default_connect
        self._uniform = uniform
        self._state = ConnectionState.DISCONNECTED
        self._reconnect_attempts = 0
        self._intentional_disconnect = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ws: Any = None
        self._socket_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._heartbeat_timeout_handle: Optional[asyncio.TimerHandle] = None
        self._local_close: Optional[tuple] = None
        self._background: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "GatewayConnection":
        return cls(
            url=settings.gateway_url,
            max_reconnect_attempts=settings.max_reconnect_attempts,
            reconnect_base_delay=settings.reconnect_base_delay,
            reconnect_max_delay=settings.reconnect_max_delay,
            reconnect_jitter=settings.reconnect_jitter,
            heartbeat_interval=settings.heartbeat_interval,
            heartbeat_timeout=settings.heartbeat_timeout,
            **kwargs,
        )

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    def connect(self) -> None:
        """
        Open the connection. No-op if already connecting or connected.

        The reconnect attempt counter is only reset by a successful open. After
        ``reconnect_failed`` a manual connect() gets a single try, and a
        failure reports ``reconnect_failed`` again instead of starting a new
        backoff sequence.
        """
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("connect() called without a running event loop; ignoring")
            return

        self._intentional_disconnect = False
        self._clear_reconnect_timer()
        self._open_socket()

    def disconnect(self) -> None:
        """Close the connection and suppress automatic reconnection."""
        self._intentional_disconnect = True
        self._clear_reconnect_timer()
        self._stop_heartbeat()

        ws, self._ws = self._ws, None
        task, self._socket_task = self._socket_task, None
        if task is not None and not task.done():
            task.cancel()

        self._set_state(ConnectionState.DISCONNECTED)
        if ws is not None:
            self._close_in_background(ws, NORMAL_CLOSURE, "Client disconnecting")
        logger.info(f"Disconnected from gateway {self.url}")
        self._emit(EventType.DISCONNECT, {"intentional": True})

    def send(self, type: str, payload: Any = None) -> bool:
        """
        Send an envelope to the gateway.

        Logs a warning instead of raising when the socket is not connected,
        so callers need not guard every call.

        Returns:
            True if the frame was handed to the socket for transmission
        """
        if self._state is not ConnectionState.CONNECTED or self._ws is None:
            logger.warning(
                f"Cannot send '{type}': socket is not connected (state: {self._state.value})"
            )
            return False

        frame = {"type": type, "payload": payload, "timestamp": _utc_now()}
        try:
            text = json.dumps(frame, default=_json_default)
        except (TypeError, ValueError) as e:
            logger.error(f"Cannot serialize '{type}' for the gateway: {e}")
            return False

        self._spawn(self._transmit(self._ws, text, type))
        return True

    def on(self, event: EventKey, callback: Listener) -> Subscription:
        """Register a listener for the raw payload of an event."""
        return self.router.on(event, callback)

    def on_event(self, event_type: EventType, callback: Listener) -> Subscription:
        """Register a listener receiving the payload decoded into its model."""
        return self.router.on_event(event_type, callback)

    def off(self, event: EventKey, callback: Listener) -> bool:
        return self.router.off(event, callback)

    def get_status(self) -> ConnectionStatus:
        return ConnectionStatus(
            state=self._state,
            connected=self._state is ConnectionState.CONNECTED,
            reconnect_attempts=self._reconnect_attempts,
            url=self.url,
        )

    async def shutdown(self) -> None:
        """Disconnect and wait for pending socket work to finish."""
        pending = [task for task in (self._socket_task, self._heartbeat_task) if task is not None]
        self.disconnect()
        pending.extend(self._background)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ========================================================================
    # SOCKET LIFECYCLE
    # ========================================================================

    def _open_socket(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        self._local_close = None
        logger.info(f"Connecting to gateway {self.url}")
        self._socket_task = self._loop.create_task(self._run_socket())

    async def _run_socket(self) -> None:
        task = asyncio.current_task()
        try:
            ws = await self._connect_factory(self.url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._socket_task is task:
                self._handle_open_failure(e)
            return

        if self._socket_task is not task:
            # disconnect() won the race against the handshake
            self._close_in_background(ws, NORMAL_CLOSURE, "Client disconnecting")
            return

        self._ws = ws
        self._handle_open()

        failure: Optional[BaseException] = None
        try:
            async for message in ws:
                self._handle_message(message)
        except ConnectionClosed:
            pass
        except asyncio.CancelledError:
            raise
        except Exception as e:
            failure = e

        if self._ws is not ws:
            return
        if failure is not None:
            logger.error(f"Gateway socket error: {failure!r}")
            was_connected = self._state is ConnectionState.CONNECTED
            self._set_state(ConnectionState.ERROR)
            self._emit(EventType.ERROR, {"error": failure})
            if self._socket_task is not task:
                # An error listener already opened a replacement socket
                self._stop_heartbeat()
                self._ws = None
                self._close_in_background(ws, NORMAL_CLOSURE, "Superseded")
                return
            self._handle_close(ws, was_connected)
        else:
            self._handle_close(ws, self._state is ConnectionState.CONNECTED)

    def _handle_open(self) -> None:
        self._reconnect_attempts = 0
        self._set_state(ConnectionState.CONNECTED)
        self._start_heartbeat()
        logger.info(f"Connected to gateway {self.url}")
        self._emit(EventType.CONNECT, {"url": self.url})

    def _handle_open_failure(self, error: BaseException) -> None:
        self._socket_task = None
        logger.warning(f"Gateway connection to {self.url} failed: {error!r}")
        self._set_state(ConnectionState.ERROR)
        self._emit(EventType.ERROR, {"error": error})
        if not self._intentional_disconnect:
            self._schedule_reconnect()

    def _handle_close(self, ws: Any, was_connected: bool) -> None:
        self._stop_heartbeat()
        self._ws = None
        self._socket_task = None

        if self._local_close is not None:
            code, reason = self._local_close
        else:
            code = getattr(ws, "close_code", None) or ABNORMAL_CLOSURE
            reason = getattr(ws, "close_reason", None) or ""

        self._set_state(ConnectionState.DISCONNECTED)
        logger.info(f"Gateway connection closed (code={code}, reason={reason!r})")
        self._emit(EventType.DISCONNECT, {
            "intentional": self._intentional_disconnect,
            "code": code,
            "reason": reason,
            "wasConnected": was_connected,
        })
        if not self._intentional_disconnect:
            self._schedule_reconnect()

    def _handle_message(self, data: Union[str, bytes]) -> None:
        envelope = parse_envelope(data)
        if envelope is None:
            self._emit(EventType.RAW_MESSAGE, {"data": data})
            return

        if envelope.type == PONG_TYPE:
            self._clear_heartbeat_timeout()
            return

        if envelope.type in LOCAL_EVENT_NAMES:
            logger.debug(f"Wire frame uses reserved event name '{envelope.type}'; not dispatched by type")
        else:
            self.router.emit(envelope.type, envelope.payload)
        self._emit(EventType.MESSAGE, envelope)

    # ========================================================================
    # RECONNECTION
    # ========================================================================

    def _schedule_reconnect(self) -> None:
        # A listener may already have called connect() from the disconnect event
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return
        if self._reconnect_attempts >= self.max_reconnect_attempts:
            logger.error(
                f"Giving up on gateway {self.url} after {self._reconnect_attempts} attempts"
            )
            self._emit(EventType.RECONNECT_FAILED, {"attempts": self._reconnect_attempts})
            return

        self._clear_reconnect_timer()
        self._reconnect_attempts += 1
        delay = compute_backoff_delay(
            self._reconnect_attempts,
            self.reconnect_base_delay,
            self.reconnect_max_delay,
            self.reconnect_jitter,
            self._uniform,
        )
        logger.info(f"Reconnecting in {delay:.2f}s (attempt {self._reconnect_attempts})")
        self._emit(EventType.RECONNECTING, {"attempt": self._reconnect_attempts, "delay": delay})
        self._reconnect_handle = self._loop.call_later(delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        self._reconnect_handle = None
        if self._intentional_disconnect:
            return
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return
        self._open_socket()

    def _clear_reconnect_timer(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    # ========================================================================
    # HEARTBEAT
    # ========================================================================

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = self._loop.create_task(self._heartbeat_loop(self._ws))

    async def _heartbeat_loop(self, ws: Any) -> None:
        ping = json.dumps({"type": PING_TYPE})
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if self._ws is not ws or self._state is not ConnectionState.CONNECTED:
                return
            try:
                await ws.send(ping)
            except Exception as e:
                logger.debug(f"Heartbeat ping failed: {e!r}")
                continue
            # An unanswered earlier ping keeps its own deadline
            if self._heartbeat_timeout_handle is not None:
                continue
            self._heartbeat_timeout_handle = self._loop.call_later(
                self.heartbeat_timeout, self._on_heartbeat_timeout, ws
            )

    def _on_heartbeat_timeout(self, ws: Any) -> None:
        self._heartbeat_timeout_handle = None
        if self._ws is not ws:
            return
        logger.warning(f"No pong from gateway within {self.heartbeat_timeout}s; closing stale socket")
        self._stop_heartbeat()
        self._emit(EventType.HEARTBEAT_TIMEOUT, {})
        self._local_close = (HEARTBEAT_CLOSE_CODE, "Heartbeat timeout")
        self._close_in_background(ws, HEARTBEAT_CLOSE_CODE, "Heartbeat timeout")

    def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        self._clear_heartbeat_timeout()

    def _clear_heartbeat_timeout(self) -> None:
        if self._heartbeat_timeout_handle is not None:
            self._heartbeat_timeout_handle.cancel()
            self._heartbeat_timeout_handle = None

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        self._emit(EventType.STATE_CHANGE, {"state": state.value})

    def _emit(self, event: EventType, payload: Any) -> None:
        self.router.emit(event, payload)

    def _spawn(self, coro) -> None:
        task = self._loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _close_in_background(self, ws: Any, code: int, reason: str) -> None:
        self._spawn(self._close_socket(ws, code, reason))

    async def _close_socket(self, ws: Any, code: int, reason: str) -> None:
        try:
            await ws.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"Error while closing gateway socket: {e!r}")

    async def _transmit(self, ws: Any, text: str, type: str) -> None:
        try:
            await ws.send(text)
        except Exception as e:
            logger.warning(f"Failed to send '{type}' to gateway: {e!r}")
