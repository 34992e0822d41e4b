"""Real-time broadcast channel: per-tenant rooms and the WebSocket endpoint."""
