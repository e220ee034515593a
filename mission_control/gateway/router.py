"""
Typed event router for the gateway connection.

Maps event-type strings to ordered listener registrations and fans events out
with per-listener exception isolation. A failing listener is logged and never
affects other listeners or the socket handling path.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Union

from .events import EventType, decode_payload

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Any]
EventKey = Union[str, EventType]


def _key(event: EventKey) -> str:
    return event.value if isinstance(event, EventType) else event


class _Registration:
    """One listener entry. Identity, not the callback, is what gets removed."""

    __slots__ = ("callback", "original")

    def __init__(self, callback: Listener, original: Listener):
        self.callback = callback
        self.original = original


class Subscription:
    """
    Handle for a single listener registration.

    close() removes exactly this registration and is safe to call repeatedly.
    Usable as a context manager so the listener is released on every exit path.
    """

    def __init__(self, router: "EventRouter", event: str, registration: _Registration):
        self._router = router
        self._registration: Optional[_Registration] = registration
        self.event = event

    @property
    def active(self) -> bool:
        return self._registration is not None

    def close(self) -> None:
        if self._registration is None:
            return
        self._router._remove(self.event, self._registration)
        self._registration = None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "active" if self.active else "closed"
        return f"<Subscription {self.event} {state}>"


class EventRouter:
    """Demultiplexes events by type string into listener sets"""

    def __init__(self):
        self._listeners: Dict[str, List[_Registration]] = {}
        self._pending: Set[asyncio.Future] = set()

    def on(self, event: EventKey, callback: Listener) -> Subscription:
        """
        Register a listener for the raw payload of ``event``.

        Args:
            event: Event type string or EventType member
            callback: Called with the payload; may be a coroutine function

        Returns:
            Subscription handle
        """
        return self._add(_key(event), callback, callback)

    def on_event(self, event_type: EventType, callback: Listener) -> Subscription:
        """
        Register a listener that receives the payload decoded into its model.

        Payloads that fail validation are reported like any other listener error.
        """
        def typed(payload: Any) -> Any:
            return callback(decode_payload(event_type, payload))

        return self._add(event_type.value, typed, callback)

    def off(self, event: EventKey, callback: Listener) -> bool:
        """Remove the earliest registration of ``callback`` for ``event``."""
        key = _key(event)
        for registration in self._listeners.get(key, []):
            if registration.original is callback:
                self._remove(key, registration)
                return True
        return False

    def emit(self, event: EventKey, payload: Any = None) -> int:
        """
        Invoke every listener of ``event`` in registration order.

        Returns:
            Number of listeners that completed without raising
        """
        key = _key(event)
        registrations = list(self._listeners.get(key, ()))
        delivered = 0
        for registration in registrations:
            try:
                result = registration.callback(payload)
                if inspect.isawaitable(result):
                    self._schedule(key, result)
                delivered += 1
            except Exception:
                logger.exception(f"Listener error for event '{key}'")
        return delivered

    def listener_count(self, event: Optional[EventKey] = None) -> int:
        if event is None:
            return sum(len(regs) for regs in self._listeners.values())
        return len(self._listeners.get(_key(event), ()))

    def clear(self) -> None:
        self._listeners.clear()

    def _add(self, key: str, callback: Listener, original: Listener) -> Subscription:
        registration = _Registration(callback, original)
        self._listeners.setdefault(key, []).append(registration)
        return Subscription(self, key, registration)

    def _remove(self, key: str, registration: _Registration) -> None:
        registrations = self._listeners.get(key)
        if not registrations:
            return
        for index, candidate in enumerate(registrations):
            if candidate is registration:
                del registrations[index]
                break
        if not registrations:
            del self._listeners[key]

    def _schedule(self, key: str, awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
            future = asyncio.ensure_future(awaitable, loop=loop)
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning(f"Dropped async listener for '{key}': no running event loop")
            return

        self._pending.add(future)

        def _done(fut: asyncio.Future) -> None:
            self._pending.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.error(f"Async listener error for event '{key}': {exc!r}")

        future.add_done_callback(_done)
