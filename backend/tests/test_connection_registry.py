import pytest

from consultation.services.connection import (
    ClientConnection,
    broadcast_partner_status,
    conversation_room,
    notify_conversation_event,
)
from tests.helpers import RecordingSocket


def make_conn(identity_id, role="user"):
    return ClientConnection(RecordingSocket(), identity_id, role)


class ClosedSocket:
    async def send_json(self, data):
        raise RuntimeError("socket closed")


@pytest.mark.asyncio
async def test_last_connection_wins(registry):
    first = make_conn("u1")
    second = make_conn("u1")
    room = conversation_room("c1")
    await registry.register(first)
    await registry.join_room(room, first)

    replaced = await registry.register(second)

    assert replaced is first
    assert registry.lookup("u1") is second
    assert registry.room_members(room) == []
    assert await registry.emit_to_identity("u1", "ping", {}) is True
    assert first.websocket.sent == []
    assert second.websocket.events("ping") == [{"type": "ping", "data": {}}]


@pytest.mark.asyncio
async def test_stale_unregister_keeps_newer_connection(registry):
    first = make_conn("u1")
    second = make_conn("u1")
    await registry.register(first)
    await registry.register(second)

    assert await registry.unregister(first) is False
    assert registry.is_connected("u1")
    assert await registry.unregister(second) is True
    assert not registry.is_connected("u1")
    assert registry.get_total_connections() == 0


@pytest.mark.asyncio
async def test_room_broadcast_with_exclusion(registry):
    alice, bob, carol = make_conn("a"), make_conn("b", "partner"), make_conn("c")
    room = conversation_room("c1")
    for conn in (alice, bob, carol):
        await registry.register(conn)
    await registry.join_room(room, alice)
    await registry.join_room(room, bob)

    sent = await registry.emit_to_room(room, "typing:status", {"is_typing": True}, exclude_identity="a")

    assert sent == 1
    assert bob.websocket.events("typing:status")
    assert alice.websocket.sent == []
    assert carol.websocket.sent == []
    assert registry.get_room_count() == 1

    await registry.leave_room(room, alice)
    await registry.leave_room(room, bob)
    assert registry.room_members(room) == []


@pytest.mark.asyncio
async def test_send_failure_is_reported_not_raised(registry):
    broken = ClientConnection(ClosedSocket(), "u1", "user")
    await registry.register(broken)

    assert await registry.emit_to_identity("u1", "ping", {}) is False
    assert await registry.emit_to_identity("nobody", "ping", {}) is False


@pytest.mark.asyncio
async def test_partner_status_reaches_everyone(registry):
    conns = [make_conn("u1"), make_conn("u2"), make_conn("p1", "partner")]
    for conn in conns:
        await registry.register(conn)

    sent = await broadcast_partner_status(registry, "p1", "busy", {"active_conversations_count": 3})

    assert sent == 3
    for conn in conns:
        [frame] = conn.websocket.events("partner:status:changed")
        assert frame["data"]["status"] == "busy"
        assert frame["data"]["active_conversations_count"] == 3


@pytest.mark.asyncio
async def test_conversation_event_targets_one_identity(registry):
    partner = make_conn("p1", "partner")
    await registry.register(partner)

    await notify_conversation_event(registry, "p1", "conversation:request:new", {"conversation_id": "c1"})
    await notify_conversation_event(registry, "offline", "conversation:request:new", {"conversation_id": "c2"})

    [frame] = partner.websocket.events("conversation:request:new")
    assert frame["data"] == {"conversation": {"conversation_id": "c1"}}
