"""
WebSocket API module.

Provides the WebSocket router for real-time conversation traffic.
"""
from .router import router

__all__ = ["router"]
