"""
Noir Relay

WebSocket bridge between a browser client and a generative-AI live streaming
endpoint, guarded by a shared-secret access check.
"""

__version__ = "0.1.0"
