"""
Mission Control
Gateway sync layer for the agent dashboard: a resilient WebSocket client,
typed event routing and a store that mirrors live gateway state.
"""

__version__ = "0.1.0"
