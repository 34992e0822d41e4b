"""Dashboard-side notification client: HTTP API, WebSocket connection, feed state."""
