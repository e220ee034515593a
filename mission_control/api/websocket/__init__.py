"""
WebSocket module for Mission Control
Real-time relay between the dashboard state and browser clients
"""

from .manager import (
    ClientConnection,
    ClientEventType,
    ClientManager,
)

from .handlers import (
    WebSocketEndpoint,
    websocket_route,
)

__all__ = [
    # Manager components
    'ClientConnection',
    'ClientEventType',
    'ClientManager',

    # Handler components
    'WebSocketEndpoint',
    'websocket_route',
]
