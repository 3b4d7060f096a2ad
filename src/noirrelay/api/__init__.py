"""Noir Relay HTTP and WebSocket API."""
