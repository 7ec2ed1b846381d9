"""
WebSocket Router - Real-time conversation endpoint

This is the thin routing layer that delegates to GatewayOrchestrator
for all connection management.
"""
from fastapi import APIRouter, WebSocket

from consultation.services.session import gateway_orchestrator

router = APIRouter()


@router.websocket("/ws")
async def ws_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time consultation traffic.

    Authentication:
        `?token=<jwt>` or `Authorization: Bearer <jwt>`. Failures close the
        socket with 1008 and one of: "Authentication required",
        "Invalid token", "Token expired", "User not found".

    Client frames (JSON): {"type", "request_id"?, "data"}
        - conversation:join / conversation:leave
        - message:send / message:read
        - typing:start / typing:stop
        - voice:call:initiate|accept|reject|end, voice:signal
        - heartbeat, ping

    Every event except heartbeat/ping is answered with an `ack` frame.
    """
    await gateway_orchestrator.handle_connection(websocket)
