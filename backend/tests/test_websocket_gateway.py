import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select
from starlette.websockets import WebSocketDisconnect

from consultation.models import database, Conversation, Partner, utcnow
from consultation.services.auth_service import create_access_token
from tests.helpers import create_user, create_partner, create_conversation, token_for


def seed(ws_client, status="accepted", **partner_kwargs):
    """Create a user, a partner and a conversation on the app's event loop."""
    async def _seed():
        async with database.AsyncSessionLocal() as db:
            user = await create_user(db)
            partner = await create_partner(db, **partner_kwargs)
            accepted_at = utcnow() if status != "pending" else None
            conversation = await create_conversation(db, user, partner, status=status, accepted_at=accepted_at)
            return user, partner, conversation
    return ws_client.portal.call(_seed)


def load(ws_client, model, record_id):
    async def _load():
        async with database.AsyncSessionLocal() as db:
            return (await db.execute(select(model).where(model.id == record_id))).scalar_one()
    return ws_client.portal.call(_load)


def receive_until(ws, event_type):
    while True:
        frame = ws.receive_json()
        if frame["type"] == event_type:
            return frame


def request(ws, event_type, data, request_id="r1"):
    ws.send_json({"type": event_type, "request_id": request_id, "data": data})
    return receive_until(ws, "ack")


def connect_url(record):
    return f"/ws?token={token_for(record)}"


def test_missing_credential_closes_with_reason(ws_client):
    with ws_client.websocket_connect("/ws") as ws:
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
    assert exc.value.code == 1008
    assert exc.value.reason == "Authentication required"


def test_invalid_and_expired_credentials(ws_client):
    user, _, _ = seed(ws_client)
    expired = token_for(user, expires_delta=timedelta(minutes=-1))

    for url, reason in (("/ws?token=junk", "Invalid token"), (f"/ws?token={expired}", "Token expired")):
        with ws_client.websocket_connect(url) as ws:
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
        assert exc.value.code == 1008
        assert exc.value.reason == reason


def test_unknown_identity_is_refused(ws_client):
    token = create_access_token(str(uuid.uuid4()), role="user")
    with ws_client.websocket_connect(f"/ws?token={token}") as ws:
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
    assert exc.value.code == 1008
    assert exc.value.reason == "User not found"


def test_connected_ack_with_header_credential(ws_client):
    user, _, _ = seed(ws_client)

    headers = {"Authorization": f"Bearer {token_for(user)}"}
    with ws_client.websocket_connect("/ws", headers=headers) as ws:
        frame = receive_until(ws, "connected")
        assert frame["data"]["identity_id"] == user.id
        assert frame["data"]["role"] == "user"
        assert frame["data"]["connection_id"]

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
        ws.send_json({"type": "heartbeat"})
        assert ws.receive_json()["type"] == "heartbeat_ack"


def test_bad_frames_get_negative_acks(ws_client):
    user, _, conversation = seed(ws_client)

    with ws_client.websocket_connect(connect_url(user)) as ws:
        receive_until(ws, "connected")

        ws.send_text("not json")
        ack = ws.receive_json()
        assert ack["success"] is False
        assert ack["code"] == "validation_error"

        ack = request(ws, "conversation:dance", {}, request_id="r9")
        assert ack["request_id"] == "r9"
        assert ack["success"] is False
        assert ack["code"] == "validation_error"

        ack = request(ws, "message:send", {"content": "no conversation"})
        assert ack["success"] is False
        assert ack["code"] == "validation_error"

        ack = request(ws, "typing:start", {"conversation_id": conversation.id})
        assert ack["success"] is False
        assert ack["code"] == "access_denied"


def test_chat_between_user_and_partner(ws_client):
    user, partner, conversation = seed(ws_client)
    cid = conversation.id

    with ws_client.websocket_connect(connect_url(user)) as user_ws:
        receive_until(user_ws, "connected")

        with ws_client.websocket_connect(connect_url(partner)) as partner_ws:
            status = receive_until(partner_ws, "partner:status:changed")
            assert status["data"]["status"] == "online"
            receive_until(partner_ws, "connected")
            assert receive_until(user_ws, "partner:status:changed")["data"]["partner_id"] == partner.id

            ack = request(user_ws, "conversation:join", {"conversation_id": cid})
            assert ack["success"] is True
            assert ack["event"] == "conversation:join"
            assert "user_astrology_data" not in ack["conversation"]

            ack = request(partner_ws, "conversation:join", {"conversation_id": cid})
            assert ack["success"] is True
            assert ack["conversation"]["user_astrology_data"] is not None
            joined = receive_until(user_ws, "conversation:user:joined")
            assert joined["data"]["user"]["id"] == partner.id

            user_ws.send_json({"type": "message:send", "request_id": "m1",
                               "data": {"conversation_id": cid, "content": "Hello"}})
            new = receive_until(user_ws, "message:new")
            assert new["data"]["message"]["content"] == "Hello"
            receipt = receive_until(user_ws, "message:delivered")
            ack = receive_until(user_ws, "ack")
            assert ack["request_id"] == "m1"
            assert ack["delivered"] is True
            assert receipt["data"]["message_id"] == ack["message"]["id"]

            incoming = receive_until(partner_ws, "message:new")
            assert incoming["data"]["message"]["sender_id"] == user.id
            note = receive_until(partner_ws, "notification:new:message")
            assert note["data"]["preview"] == "Hello"

            ack = request(partner_ws, "typing:start", {"conversation_id": cid})
            assert ack["success"] is True
            typing = receive_until(user_ws, "typing:status")
            assert typing["data"]["is_typing"] is True
            assert typing["data"]["identity_id"] == partner.id

            ack = request(partner_ws, "message:read", {"conversation_id": cid})
            assert ack["marked_read"] == 1
            read = receive_until(user_ws, "message:read:receipt")
            assert read["data"]["reader_id"] == partner.id

    stored = load(ws_client, Conversation, cid)
    assert stored.status == "active"
    assert stored.messages_count == 1
    assert stored.unread_partner == 0


def test_partner_presence_follows_connection(ws_client):
    user, partner, _ = seed(ws_client)

    with ws_client.websocket_connect(connect_url(user)) as user_ws:
        receive_until(user_ws, "connected")
        with ws_client.websocket_connect(connect_url(partner)) as partner_ws:
            receive_until(partner_ws, "connected")
            assert receive_until(user_ws, "partner:status:changed")["data"]["status"] == "online"
            assert load(ws_client, Partner, partner.id).online_status == "online"

        offline = receive_until(user_ws, "partner:status:changed")
        assert offline["data"]["status"] == "offline"

    assert load(ws_client, Partner, partner.id).online_status == "offline"


def test_partner_at_capacity_connects_busy(ws_client):
    _, partner, _ = seed(ws_client, max_conversations=1, active_conversations_count=1)

    with ws_client.websocket_connect(connect_url(partner)) as ws:
        status = receive_until(ws, "partner:status:changed")
        assert status["data"]["status"] == "busy"


def test_call_signaling_over_socket(ws_client):
    user, partner, conversation = seed(ws_client, status="active")

    with ws_client.websocket_connect(connect_url(user)) as user_ws:
        receive_until(user_ws, "connected")

        ack = request(user_ws, "voice:call:initiate", {"conversation_id": conversation.id, "call_type": "voice"})
        assert ack["success"] is False
        assert ack["code"] == "peer_offline"

        with ws_client.websocket_connect(connect_url(partner)) as partner_ws:
            receive_until(partner_ws, "connected")

            ack = request(user_ws, "voice:call:initiate",
                          {"conversation_id": conversation.id, "call_type": "voice", "sdp": "offer"})
            assert ack["success"] is True
            assert ack["relayed_as"] == "voice:call:incoming"

            incoming = receive_until(partner_ws, "voice:call:incoming")
            assert incoming["data"]["sdp"] == "offer"
            assert incoming["data"]["from"]["id"] == user.id

            ack = request(partner_ws, "voice:call:accept", {"conversation_id": conversation.id})
            assert ack["success"] is True
            assert receive_until(user_ws, "voice:call:accepted")["data"]["from"]["role"] == "partner"
