import pytest
from sqlalchemy import select

from consultation.models import Partner, User, utcnow
from tests.helpers import auth_headers, create_user, create_partner, create_conversation


async def reload(db, model, record_id):
    result = await db.execute(
        select(model).where(model.id == record_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert "total_connections" in r.json()


@pytest.mark.asyncio
async def test_missing_and_invalid_credentials(client):
    r = await client.get("/api/chat/conversations")
    assert r.status_code == 401
    assert r.json() == {"success": False, "message": "Authentication required", "code": "missing_credential"}

    r = await client.get("/api/chat/conversations", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401
    assert r.json()["code"] == "invalid_credential"

    r = await client.get("/api/chat/conversations", headers={"Authorization": "Token abc"})
    assert r.status_code == 401
    assert r.json()["code"] == "invalid_credential"


@pytest.mark.asyncio
async def test_full_consultation_over_rest(client, db):
    user = await create_user(db, credit_balance=10)
    partner = await create_partner(db)

    r = await client.post("/api/chat/conversations", json={"partner_id": partner.id}, headers=auth_headers(user))
    assert r.status_code == 201
    body = r.json()
    assert body["success"] is True
    assert body["data"]["created"] is True
    conversation_id = body["data"]["conversation"]["conversation_id"]

    r = await client.post("/api/chat/conversations", json={"partner_id": partner.id}, headers=auth_headers(user))
    assert r.status_code == 200
    assert r.json()["data"]["conversation"]["conversation_id"] == conversation_id

    r = await client.get("/api/chat/partner/requests", headers=auth_headers(partner))
    assert r.json()["data"]["count"] == 1

    r = await client.get(f"/api/chat/conversation/{conversation_id}/astrology", headers=auth_headers(partner))
    assert r.json()["data"]["user_astrology_data"]["zodiac_sign"] == "Aries"

    r = await client.post(f"/api/chat/partner/requests/{conversation_id}/accept", headers=auth_headers(partner))
    assert r.status_code == 200
    assert r.json()["data"]["conversation"]["status"] == "accepted"

    r = await client.post(
        f"/api/chat/conversations/{conversation_id}/messages",
        json={"content": "Namaste"},
        headers=auth_headers(user),
    )
    assert r.status_code == 201
    assert r.json()["data"]["message"]["content"] == "Namaste"

    r = await client.get("/api/chat/unread-count", headers=auth_headers(partner))
    assert r.json()["data"]["total_unread"] == 1

    r = await client.get(f"/api/chat/conversations/{conversation_id}/messages", headers=auth_headers(partner))
    assert [m["content"] for m in r.json()["data"]["messages"]] == ["Namaste"]

    r = await client.patch(f"/api/chat/conversations/{conversation_id}/read", headers=auth_headers(partner))
    assert r.json()["data"]["marked_read"] == 1

    r = await client.patch(
        f"/api/chat/conversations/{conversation_id}/end",
        json={"stars": 5, "feedback": "Clear answers"},
        headers=auth_headers(user),
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["conversation"]["status"] == "ended"
    assert data["conversation"]["rating"]["user"]["stars"] == 5
    assert data["billing"]["billable_minutes"] >= 1
    assert data["billing"]["user_debited"] == min(10, data["billing"]["billable_minutes"] * 4)

    r = await client.patch(f"/api/chat/conversations/{conversation_id}/end", headers=auth_headers(partner))
    assert r.status_code == 409
    assert r.json()["code"] == "conflict"

    r = await client.get("/api/chat/billing/history", headers=auth_headers(partner))
    [entry] = r.json()["data"]["entries"]
    assert entry["conversation_id"] == conversation_id
    assert "credited" in entry

    stored_partner = await reload(db, Partner, partner.id)
    assert stored_partner.active_conversations_count == 0
    assert stored_partner.total_ratings == 1


@pytest.mark.asyncio
async def test_insufficient_credits_is_402(client, db):
    user = await create_user(db, credit_balance=0)
    partner = await create_partner(db)

    r = await client.post("/api/chat/conversations", json={"partner_id": partner.id}, headers=auth_headers(user))

    assert r.status_code == 402
    assert r.json()["code"] == "insufficient_credits"


@pytest.mark.asyncio
async def test_capacity_reached_is_409(client, db):
    user = await create_user(db)
    partner = await create_partner(db, max_conversations=1, active_conversations_count=1)
    conversation = await create_conversation(db, user, partner)

    r = await client.post(f"/api/chat/partner/requests/{conversation.id}/accept", headers=auth_headers(partner))

    assert r.status_code == 409
    assert r.json()["code"] == "capacity_reached"


@pytest.mark.asyncio
async def test_role_guards(client, db):
    user = await create_user(db)
    partner = await create_partner(db)
    conversation = await create_conversation(db, user, partner)

    r = await client.get("/api/chat/partner/requests", headers=auth_headers(user))
    assert r.status_code == 403
    assert r.json()["code"] == "access_denied"

    r = await client.post(f"/api/chat/partner/requests/{conversation.id}/accept", headers=auth_headers(user))
    assert r.status_code == 403

    r = await client.get("/api/chat/partners", headers=auth_headers(partner))
    assert r.status_code == 403

    r = await client.get(f"/api/chat/conversation/{conversation.id}/astrology", headers=auth_headers(user))
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_outsider_and_missing_conversation(client, db):
    user = await create_user(db)
    partner = await create_partner(db)
    outsider = await create_user(db)
    conversation = await create_conversation(db, user, partner, status="accepted", accepted_at=utcnow())

    r = await client.get(f"/api/chat/conversations/{conversation.id}/messages", headers=auth_headers(outsider))
    assert r.status_code == 403

    r = await client.get("/api/chat/conversations/nope/messages", headers=auth_headers(user))
    assert r.status_code == 404
    assert r.json() == {"success": False, "message": "Conversation not found", "code": "not_found"}


@pytest.mark.asyncio
async def test_reject_then_request_again(client, db):
    user = await create_user(db)
    partner = await create_partner(db)
    r = await client.post("/api/chat/conversations", json={"partner_id": partner.id}, headers=auth_headers(user))
    first_id = r.json()["data"]["conversation"]["conversation_id"]

    r = await client.post(
        f"/api/chat/partner/requests/{first_id}/reject",
        json={"reason": "Not my specialty"},
        headers=auth_headers(partner),
    )
    assert r.json()["data"]["conversation"]["status"] == "rejected"
    assert r.json()["data"]["conversation"]["rejection_reason"] == "Not my specialty"

    r = await client.post(
        f"/api/chat/conversations/{first_id}/messages", json={"content": "hello?"}, headers=auth_headers(user)
    )
    assert r.status_code == 409

    r = await client.post("/api/chat/conversations", json={"partner_id": partner.id}, headers=auth_headers(user))
    assert r.status_code == 201
    assert r.json()["data"]["conversation"]["conversation_id"] != first_id

    r = await client.get("/api/chat/conversations?status=rejected", headers=auth_headers(user))
    assert [c["conversation_id"] for c in r.json()["data"]["conversations"]] == [first_id]


@pytest.mark.asyncio
async def test_rating_and_message_delete_endpoints(client, db):
    user = await create_user(db)
    partner = await create_partner(db)
    conversation = await create_conversation(db, user, partner, status="accepted", accepted_at=utcnow())

    r = await client.post(
        f"/api/chat/conversations/{conversation.id}/messages", json={"content": "typo"}, headers=auth_headers(user)
    )
    message_id = r.json()["data"]["message"]["id"]

    r = await client.delete(
        f"/api/chat/conversations/{conversation.id}/messages/{message_id}", headers=auth_headers(partner)
    )
    assert r.status_code == 403
    r = await client.delete(
        f"/api/chat/conversations/{conversation.id}/messages/{message_id}", headers=auth_headers(user)
    )
    assert r.status_code == 200

    r = await client.post(
        f"/api/chat/conversations/{conversation.id}/rating", json={"stars": 4}, headers=auth_headers(user)
    )
    assert r.status_code == 409

    await client.patch(f"/api/chat/conversations/{conversation.id}/end", headers=auth_headers(partner))

    r = await client.post(
        f"/api/chat/conversations/{conversation.id}/rating", json={"stars": 7}, headers=auth_headers(user)
    )
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"

    r = await client.post(
        f"/api/chat/conversations/{conversation.id}/rating",
        json={"stars": 4, "satisfaction": "satisfied"},
        headers=auth_headers(partner),
    )
    assert r.status_code == 200
    assert r.json()["data"]["rating"]["satisfaction"] == "satisfied"


@pytest.mark.asyncio
async def test_partner_status_and_roster(client, db, fake_redis):
    user = await create_user(db)
    partner = await create_partner(db, name="Meera", rating=4.9)

    r = await client.patch("/api/chat/partner/status", json={"status": "online"}, headers=auth_headers(partner))
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "online"
    assert await fake_redis.get(f"presence:partner:{partner.id}") == "online"

    r = await client.patch("/api/chat/partner/status", json={"status": "asleep"}, headers=auth_headers(partner))
    assert r.status_code == 400

    r = await client.get("/api/chat/partner/status", headers=auth_headers(partner))
    assert r.json()["data"]["status"] == "online"

    r = await client.get("/api/chat/partners", headers=auth_headers(user))
    [listed] = r.json()["data"]["partners"]
    assert listed["name"] == "Meera"
    assert listed["status"] == "online"


@pytest.mark.asyncio
async def test_partner_can_open_conversation_with_user(client, db):
    user = await create_user(db, credit_balance=0)
    partner = await create_partner(db)

    r = await client.post("/api/chat/conversations", json={"user_id": user.id}, headers=auth_headers(partner))

    assert r.status_code == 201
    assert r.json()["data"]["conversation"]["initiated_by"] == "partner"
    assert (await reload(db, User, user.id)).credit_balance == 0


@pytest.mark.asyncio
async def test_metrics_are_exposed(client, db):
    user = await create_user(db)
    partner = await create_partner(db)
    await client.post("/api/chat/conversations", json={"partner_id": partner.id}, headers=auth_headers(user))

    r = await client.get("/metrics")

    assert r.status_code == 200
    assert 'conversation_transitions_total{status="pending"}' in r.text
    assert "gateway_active_connections" in r.text
