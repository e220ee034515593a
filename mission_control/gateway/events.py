"""
Gateway event catalogue.

Defines the closed set of event kinds the dashboard understands, the payload
model attached to each kind, and the decoding of raw wire frames into
envelopes and typed events. Wire types outside the catalogue decode to
UnknownEvent so newer gateways do not break older dashboards.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Type, Union

from ..models.schemas import (
    AgentStatusPayload,
    ConnectPayload,
    CostUpdatePayload,
    CronTriggeredPayload,
    DisconnectPayload,
    Envelope,
    ErrorPayload,
    EventPayload,
    HeartbeatTimeoutPayload,
    LogEntryPayload,
    RawMessagePayload,
    ReconnectFailedPayload,
    ReconnectingPayload,
    SessionEndPayload,
    SessionStartPayload,
    StateChangePayload,
    TaskCreatedPayload,
    TaskUpdatedPayload,
    WireModel,
)

logger = logging.getLogger(__name__)

# Liveness frames, handled by the connection itself
PING_TYPE = "ping"
PONG_TYPE = "pong"


class EventType(Enum):
    """Every event a listener can subscribe to"""
    # Domain events (from the wire)
    AGENT_STATUS = "agent.status"
    TASK_CREATED = "task.created"
    TASK_UPDATED = "task.updated"
    LOG_ENTRY = "log.entry"
    SESSION_START = "session.start"
    SESSION_END = "session.end"
    CRON_TRIGGERED = "cron.triggered"
    COST_UPDATE = "cost.update"

    # Lifecycle events (emitted locally)
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    RECONNECTING = "reconnecting"
    RECONNECT_FAILED = "reconnect_failed"
    HEARTBEAT_TIMEOUT = "heartbeat_timeout"
    STATE_CHANGE = "state_change"
    ERROR = "error"
    MESSAGE = "message"
    RAW_MESSAGE = "raw_message"


DOMAIN_EVENTS: FrozenSet[EventType] = frozenset({
    EventType.AGENT_STATUS,
    EventType.TASK_CREATED,
    EventType.TASK_UPDATED,
    EventType.LOG_ENTRY,
    EventType.SESSION_START,
    EventType.SESSION_END,
    EventType.CRON_TRIGGERED,
    EventType.COST_UPDATE,
})

PAYLOAD_TYPES: Dict[EventType, Type[WireModel]] = {
    EventType.AGENT_STATUS: AgentStatusPayload,
    EventType.TASK_CREATED: TaskCreatedPayload,
    EventType.TASK_UPDATED: TaskUpdatedPayload,
    EventType.LOG_ENTRY: LogEntryPayload,
    EventType.SESSION_START: SessionStartPayload,
    EventType.SESSION_END: SessionEndPayload,
    EventType.CRON_TRIGGERED: CronTriggeredPayload,
    EventType.COST_UPDATE: CostUpdatePayload,
    EventType.CONNECT: ConnectPayload,
    EventType.DISCONNECT: DisconnectPayload,
    EventType.RECONNECTING: ReconnectingPayload,
    EventType.RECONNECT_FAILED: ReconnectFailedPayload,
    EventType.HEARTBEAT_TIMEOUT: HeartbeatTimeoutPayload,
    EventType.STATE_CHANGE: StateChangePayload,
    EventType.ERROR: ErrorPayload,
    EventType.MESSAGE: Envelope,
    EventType.RAW_MESSAGE: RawMessagePayload,
}

# Names reserved for locally emitted events; never dispatched from wire frames
LOCAL_EVENT_NAMES: FrozenSet[str] = frozenset(
    kind.value for kind in EventType if kind not in DOMAIN_EVENTS
)

_DOMAIN_BY_VALUE: Dict[str, EventType] = {kind.value: kind for kind in DOMAIN_EVENTS}


@dataclass(frozen=True)
class DomainEvent:
    """A recognised wire event with its decoded payload."""
    kind: EventType
    payload: EventPayload
    timestamp: Optional[str] = None


@dataclass(frozen=True)
class UnknownEvent:
    """A wire event whose type is not in the catalogue; payload left untouched."""
    type: str
    payload: Any = None
    timestamp: Optional[str] = None


GatewayEvent = Union[DomainEvent, UnknownEvent]


def parse_envelope(data: Union[str, bytes]) -> Optional[Envelope]:
    """
    Parse a raw frame into an Envelope.

    Args:
        data: Text or binary frame as delivered by the socket

    Returns:
        Envelope, or None if the frame is not a JSON object with a string "type"
    """
    try:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        parsed = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError, TypeError):
        return None

    if not isinstance(parsed, dict) or not isinstance(parsed.get("type"), str):
        return None

    timestamp = parsed.get("timestamp")
    return Envelope(
        type=parsed["type"],
        payload=parsed.get("payload"),
        timestamp=timestamp if isinstance(timestamp, str) else None,
    )


def decode_payload(event_type: EventType, payload: Any) -> WireModel:
    """
    Validate an event payload into the model registered for ``event_type``.

    Raises:
        pydantic.ValidationError: If the payload does not match the model
    """
    model_cls = PAYLOAD_TYPES[event_type]
    if isinstance(payload, model_cls):
        return payload
    return model_cls.model_validate(payload if payload is not None else {})


def decode_event(envelope: Envelope) -> GatewayEvent:
    """Map an envelope onto the closed event set, falling back to UnknownEvent."""
    kind = _DOMAIN_BY_VALUE.get(envelope.type)
    if kind is None:
        logger.debug(f"Unrecognised gateway event type: {envelope.type}")
        return UnknownEvent(type=envelope.type, payload=envelope.payload, timestamp=envelope.timestamp)
    return DomainEvent(
        kind=kind,
        payload=decode_payload(kind, envelope.payload),
        timestamp=envelope.timestamp,
    )
