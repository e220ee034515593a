"""HTTP and WebSocket surface for Mission Control."""
