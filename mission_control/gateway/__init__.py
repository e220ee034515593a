"""
Gateway client for Mission Control
Persistent WebSocket connection to the local agent gateway and its event routing
"""

from .connection import (
    ConnectionState,
    ConnectionStatus,
    GatewayConnection,
    compute_backoff_delay,
)
from .events import (
    DOMAIN_EVENTS,
    DomainEvent,
    EventType,
    UnknownEvent,
    decode_event,
    decode_payload,
    parse_envelope,
)
from .probe import probe_gateway
from .router import EventRouter, Subscription

__all__ = [
    # Connection
    'ConnectionState',
    'ConnectionStatus',
    'GatewayConnection',
    'compute_backoff_delay',

    # Events
    'DOMAIN_EVENTS',
    'DomainEvent',
    'EventType',
    'UnknownEvent',
    'decode_event',
    'decode_payload',
    'parse_envelope',

    # Routing
    'EventRouter',
    'Subscription',

    # Probe
    'probe_gateway',
]
