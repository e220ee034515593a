"""
Observer feeds over the shared gateway connection.

Small helpers the dashboard surfaces build on: a live connection status
view, a bounded history of one event type, a bounded message log, and the
chat send helper. Each feed owns its subscriptions and releases them on
close(); none of them ever closes the connection itself.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, List, Optional

from ..gateway.connection import ConnectionStatus, GatewayConnection
from ..gateway.events import EventType
from ..gateway.router import Subscription
from ..models.schemas import Envelope

logger = logging.getLogger(__name__)

MAX_FEED_EVENTS = 200

CHAT_EVENT = "chat"

STATUS_EVENTS = (
    EventType.CONNECT,
    EventType.DISCONNECT,
    EventType.RECONNECTING,
    EventType.RECONNECT_FAILED,
    EventType.STATE_CHANGE,
    EventType.ERROR,
)


class _Feed:
    """Base class holding the subscriptions of one feed"""

    def __init__(self, connection: GatewayConnection):
        self.connection = connection
        self._subscriptions: List[Subscription] = []

    @property
    def active(self) -> bool:
        return bool(self._subscriptions)

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ConnectionMonitor(_Feed):
    """Keeps an up-to-date ConnectionStatus for the shared connection."""

    def __init__(self, connection: GatewayConnection):
        super().__init__(connection)
        self.status: ConnectionStatus = connection.get_status()
        self._subscriptions = [connection.on(event, self._refresh) for event in STATUS_EVENTS]

    def _refresh(self, _payload: Any) -> None:
        self.status = self.connection.get_status()

    @property
    def connected(self) -> bool:
        return self.status.connected

    def connect(self) -> None:
        self.connection.connect()

    def disconnect(self) -> None:
        self.connection.disconnect()


class EventHistory(_Feed):
    """
    Most recent payloads of one event type, newest first.

    Args:
        connection: Shared gateway connection
        event_type: Event name to record
        max_events: History bound; oldest entries fall off
    """

    def __init__(self, connection: GatewayConnection, event_type: str, max_events: int = MAX_FEED_EVENTS):
        super().__init__(connection)
        self.event_type = event_type
        self._events: Deque[Any] = deque(maxlen=max_events)
        self.last_event: Optional[Any] = None
        self._subscriptions = [connection.on(event_type, self._record)]

    def _record(self, payload: Any) -> None:
        self.last_event = payload
        self._events.appendleft(payload)

    @property
    def events(self) -> List[Any]:
        return list(self._events)

    def clear(self) -> None:
        self._events.clear()
        self.last_event = None


class MessageLog(_Feed):
    """
    Bounded log of inbound envelopes, newest first.

    Without a filter every parsed envelope is kept. With ``filter_type`` only
    that event type is kept, wrapped into an Envelope stamped at receipt.
    """

    def __init__(
        self,
        connection: GatewayConnection,
        filter_type: Optional[str] = None,
        max_messages: int = MAX_FEED_EVENTS,
    ):
        super().__init__(connection)
        self.filter_type = filter_type
        self._messages: Deque[Envelope] = deque(maxlen=max_messages)
        if filter_type:
            self._subscriptions = [connection.on(filter_type, self._record_filtered)]
        else:
            self._subscriptions = [connection.on(EventType.MESSAGE, self._record)]

    def _record(self, envelope: Envelope) -> None:
        self._messages.appendleft(envelope)

    def _record_filtered(self, payload: Any) -> None:
        self._messages.appendleft(Envelope(
            type=self.filter_type,
            payload=payload,
            timestamp=datetime.now(timezone.utc).isoformat(),
        ))

    @property
    def messages(self) -> List[Envelope]:
        return list(self._messages)

    def clear(self) -> None:
        self._messages.clear()


def send_chat(connection: GatewayConnection, agent_id: str, message: str) -> bool:
    """Send a chat message to one agent through the gateway."""
    return connection.send(CHAT_EVENT, {"agentId": agent_id, "message": message})
