"""
Services for Mission Control
State container, event-to-state bridge, startup hydration and observer feeds
"""

from .bridge import StoreBridge
from .feeds import ConnectionMonitor, EventHistory, MessageLog, send_chat
from .hydration import hydrate_from_url, hydrate_store
from .store import SLICES, AppStore, UnknownSliceError

__all__ = [
    'AppStore',
    'SLICES',
    'UnknownSliceError',
    'StoreBridge',
    'hydrate_store',
    'hydrate_from_url',
    'ConnectionMonitor',
    'EventHistory',
    'MessageLog',
    'send_chat',
]
