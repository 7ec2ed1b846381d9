"""
Gateway Orchestrator - Real-time conversation gateway

Orchestrates the lifecycle of one WebSocket connection:
- Admission (bearer credential -> party), registration, `connected` ack
- Message loop: JSON frames dispatched to per-event handlers
- Cleanup on disconnect (registry + partner presence only)

Every handler runs in its own database session and is wrapped so that a
failure becomes a negative acknowledgment instead of closing the socket.
"""
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from consultation.api.deps import authenticate_websocket
from consultation.models import database
from consultation.models.database import utcnow
from consultation.schemas.websocket_events import (
    ClientFrame,
    ConversationEvent,
    SendMessageEvent,
    ReadEvent,
    CallEvent,
    SignalEvent,
)
from consultation.services.connection import (
    ClientConnection,
    ConnectionRegistry,
    connection_registry,
    conversation_room,
)
from consultation.services.conversation import messages
from consultation.services.conversation.dispatcher import MessageDispatcher
from consultation.services.conversation.exceptions import (
    AccessDeniedError,
    ConsultationError,
    ValidationError,
)
from consultation.services.conversation.parties import ConversationParty
from consultation.services.conversation.validators import get_participant_conversation
from consultation.services.metrics import active_connections_gauge, gateway_events, gateway_event_latency
from consultation.services.presence_service import PresenceService
from consultation.services.signaling import CallSignalingRelay, RELAYED_EVENTS

logger = logging.getLogger(__name__)

Handler = Callable[[AsyncSession, ClientConnection, ConversationParty, str, Dict[str, Any]], Awaitable[Dict[str, Any]]]


class GatewayOrchestrator:
    """
    Orchestrates real-time conversation connections.
    Handles:
    - Admission and connection registration
    - Room membership (join/leave)
    - Messages, read receipts and typing indicators
    - Call signaling relay
    - Heartbeats and cleanup on disconnect
    """

    def __init__(
        self,
        registry: Optional[ConnectionRegistry] = None,
        presence: Optional[PresenceService] = None,
        dispatcher: Optional[MessageDispatcher] = None,
        relay: Optional[CallSignalingRelay] = None,
    ):
        self.registry = registry or connection_registry
        self.presence = presence or PresenceService(self.registry)
        self.dispatcher = dispatcher or MessageDispatcher(self.registry)
        self.relay = relay or CallSignalingRelay(self.registry)

        self._handlers: Dict[str, Handler] = {
            "conversation:join": self._handle_join,
            "conversation:leave": self._handle_leave,
            "message:send": self._handle_send,
            "message:read": self._handle_read,
            "typing:start": self._handle_typing,
            "typing:stop": self._handle_typing,
        }
        for event in RELAYED_EVENTS:
            self._handlers[event] = self._handle_call_event

    async def handle_connection(self, websocket: WebSocket):
        """
        Main entry point for handling a WebSocket connection.
        """
        await websocket.accept()

        async with database.AsyncSessionLocal() as db:
            party = await authenticate_websocket(websocket, db)
        if party is None:
            return

        conn = await self._register_connection(websocket, party)
        await self._message_loop(conn, party)

    async def _register_connection(self, websocket: WebSocket, party: ConversationParty) -> ClientConnection:
        """
        Registers the connection, marks partners online and sends `connected`.
        """
        conn = ClientConnection(websocket, party.id, party.role)
        await self.registry.register(conn)
        active_connections_gauge.set(self.registry.get_total_connections())

        if party.tracks_presence:
            try:
                async with database.AsyncSessionLocal() as db:
                    await self.presence.mark_online(db, party.id)
            except Exception as e:
                logger.error(f"[Gateway] Failed to mark partner {party.id} online: {e}")

        await conn.emit("connected", {
            "identity_id": party.id,
            "role": party.role,
            "name": party.display_name,
            "connection_id": conn.connection_id,
            "timestamp": utcnow().isoformat(),
        })
        logger.info(f"[Gateway] {party.role} {party.id} connected")
        return conn

    async def _message_loop(self, conn: ClientConnection, party: ConversationParty):
        """
        Main message processing loop.
        """
        try:
            while True:
                text = await conn.websocket.receive_text()
                await self._handle_text_message(text, conn, party)

        except WebSocketDisconnect:
            logger.info(f"[Gateway] {party.role} {party.id} disconnected")

        except Exception as e:
            logger.error(f"[Gateway] Error during message loop for {party.id}: {e}")

        finally:
            await self._cleanup(conn, party)

    async def _handle_text_message(self, text: str, conn: ClientConnection, party: ConversationParty):
        """
        Parse one JSON frame and route it.
        """
        try:
            frame = ClientFrame.model_validate(json.loads(text))
        except (json.JSONDecodeError, PydanticValidationError):
            logger.warning(f"[Gateway] Malformed frame from {party.id}")
            await conn.send_json({
                "type": "ack",
                "request_id": None,
                "event": None,
                "success": False,
                "message": "Malformed frame",
                "code": "validation_error",
            })
            return

        if frame.type == "heartbeat":
            if party.tracks_presence:
                await self.presence.heartbeat(party.id)
            await conn.send_json({"type": "heartbeat_ack", "timestamp": utcnow().isoformat()})
            return

        if frame.type == "ping":
            await conn.send_json({"type": "pong"})
            return

        await conn.send_json(await self.dispatch(conn, party, frame))

    async def dispatch(self, conn: ClientConnection, party: ConversationParty, frame: ClientFrame) -> Dict[str, Any]:
        """
        Run the handler for one event and build its acknowledgment.
        Never raises.
        """
        ack = {"type": "ack", "request_id": frame.request_id, "event": frame.type}
        handler = self._handlers.get(frame.type)
        label = frame.type if handler else "unknown"
        try:
            if handler is None:
                raise ValidationError(f"Unknown event: {frame.type}")
            with gateway_event_latency.labels(event=label).time():
                async with database.AsyncSessionLocal() as db:
                    result = await handler(db, conn, party, frame.type, frame.data)
            ack.update({"success": True, **(result or {})})

        except PydanticValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            field = ".".join(str(p) for p in first.get("loc", ())) or "payload"
            ack.update({"success": False, "message": f"Invalid {field}", "code": "validation_error"})

        except ConsultationError as e:
            ack.update({"success": False, "message": e.message, "code": e.code})

        except Exception as e:
            logger.error(f"[Gateway] {frame.type} failed for {party.id}: {e}")
            ack.update({"success": False, "message": "Internal error", "code": "internal_error"})

        gateway_events.labels(event=label, status="success" if ack["success"] else "error").inc()
        return ack

    # === Event handlers ===

    async def _handle_join(self, db, conn, party, event_type, data):
        event = ConversationEvent.model_validate(data)
        conversation = await get_participant_conversation(db, party, event.conversation_id)
        room = conversation_room(conversation.id)

        marked = await messages.mark_read(db, party, conversation.id)
        await self.registry.join_room(room, conn)

        await self.registry.emit_to_room(room, "conversation:user:joined", {
            "conversation_id": conversation.id,
            "user": party.describe(),
        }, exclude_identity=party.id)
        if marked:
            await self._read_receipt(room, party, conversation.id, None)

        logger.info(f"[Gateway] {party.id} joined {room} ({marked} marked read)")
        return {
            "conversation": conversation.to_dict(include_context=party.sees_context),
            "marked_read": marked,
        }

    async def _handle_leave(self, db, conn, party, event_type, data):
        event = ConversationEvent.model_validate(data)
        room = conversation_room(event.conversation_id)
        await self.registry.leave_room(room, conn)
        await self.registry.emit_to_room(room, "conversation:user:left", {
            "conversation_id": event.conversation_id,
            "user": party.describe(),
        }, exclude_identity=party.id)
        return {"conversation_id": event.conversation_id}

    async def _handle_send(self, db, conn, party, event_type, data):
        event = SendMessageEvent.model_validate(data)
        message, conversation = await messages.send_message(
            db, party, event.conversation_id, event.content, event.message_type, event.media_url
        )
        delivered = await self.dispatcher.deliver(db, message, conversation, party)
        return {"message": message.to_dict(), "delivered": delivered}

    async def _handle_read(self, db, conn, party, event_type, data):
        event = ReadEvent.model_validate(data)
        marked = await messages.mark_read(db, party, event.conversation_id, event.message_ids)
        if marked:
            await self._read_receipt(conversation_room(event.conversation_id), party,
                                     event.conversation_id, event.message_ids)
        return {"conversation_id": event.conversation_id, "marked_read": marked}

    async def _handle_typing(self, db, conn, party, event_type, data):
        event = ConversationEvent.model_validate(data)
        room = conversation_room(event.conversation_id)
        if room not in conn.rooms:
            raise AccessDeniedError("Join the conversation first")
        await self.registry.emit_to_room(room, "typing:status", {
            "conversation_id": event.conversation_id,
            "identity_id": party.id,
            "role": party.role,
            "is_typing": event_type == "typing:start",
        }, exclude_identity=party.id)
        return {"conversation_id": event.conversation_id}

    async def _handle_call_event(self, db, conn, party, event_type, data):
        schema = SignalEvent if event_type == "voice:signal" else CallEvent
        event = schema.model_validate(data)
        return await self.relay.relay(db, party, event_type, event.model_dump())

    # === Helpers ===

    async def _read_receipt(self, room: str, party: ConversationParty, conversation_id: str, message_ids):
        await self.registry.emit_to_room(room, "message:read:receipt", {
            "conversation_id": conversation_id,
            "reader_id": party.id,
            "message_ids": message_ids,
            "read_at": utcnow().isoformat(),
        }, exclude_identity=party.id)

    async def _cleanup(self, conn: ClientConnection, party: ConversationParty):
        """
        Cleanup on disconnect. Only the registry and partner presence change;
        conversations and billing are untouched.
        """
        still_current = await self.registry.unregister(conn)
        active_connections_gauge.set(self.registry.get_total_connections())
        if not still_current or not party.tracks_presence:
            return
        try:
            async with database.AsyncSessionLocal() as db:
                await self.presence.mark_offline(db, party.id)
        except Exception as e:
            logger.error(f"[Gateway] Failed to mark partner {party.id} offline: {e}")
