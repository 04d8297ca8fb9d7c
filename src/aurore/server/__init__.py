"""HTTP / WebSocket servers."""
