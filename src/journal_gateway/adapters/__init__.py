"""Adapters — inbound (HTTP/WebSocket) and outbound (provider) implementations of the ports."""
