"""Wire formats: stdout framing, stream-json events, WebSocket frames."""
