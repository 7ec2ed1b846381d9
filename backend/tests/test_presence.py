import pytest
from sqlalchemy import select

from consultation.models import Partner, utcnow
from consultation.services.conversation.exceptions import NotFoundError, ValidationError
from consultation.services.presence_service import PresenceService
from tests.helpers import create_user, create_partner, create_conversation, connect


@pytest.fixture
def presence(registry):
    return PresenceService(registry)


async def reload(db, partner_id):
    result = await db.execute(
        select(Partner).where(Partner.id == partner_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_status_change_is_persisted_mirrored_and_broadcast(db, presence, registry, fake_redis):
    partner = await create_partner(db)
    watcher = await connect(registry, await create_user(db))

    updated = await presence.set_partner_status(db, partner.id, "online")

    assert updated.online_status == "online"
    assert updated.last_online_at is not None
    assert await fake_redis.get(f"presence:partner:{partner.id}") == "online"
    assert await fake_redis.ttl(f"presence:partner:{partner.id}") > 0
    [frame] = watcher.websocket.events("partner:status:changed")
    assert frame["data"]["partner_id"] == partner.id
    assert frame["data"]["status"] == "online"
    assert frame["data"]["timestamp"]


@pytest.mark.asyncio
async def test_status_validation(db, presence):
    partner = await create_partner(db)

    with pytest.raises(ValidationError):
        await presence.set_partner_status(db, partner.id, "away")
    with pytest.raises(NotFoundError):
        await presence.set_partner_status(db, "missing", "online")


@pytest.mark.asyncio
async def test_partner_at_capacity_comes_online_busy(db, presence):
    partner = await create_partner(db, max_conversations=2, active_conversations_count=2)

    updated = await presence.mark_online(db, partner.id)

    assert updated.online_status == "busy"


@pytest.mark.asyncio
async def test_going_offline_drops_presence_key(db, presence, fake_redis):
    partner = await create_partner(db)
    await presence.mark_online(db, partner.id)

    await presence.mark_offline(db, partner.id)

    assert (await reload(db, partner.id)).online_status == "offline"
    assert await fake_redis.exists(f"presence:partner:{partner.id}") == 0
    assert await presence.is_present(partner.id) is False


@pytest.mark.asyncio
async def test_capacity_refresh_only_flips_online_and_busy(db, presence):
    partner = await create_partner(db, max_conversations=1, active_conversations_count=1, online_status="online")
    assert await presence.refresh_capacity_status(db, partner) == "busy"

    partner = await reload(db, partner.id)
    partner.active_conversations_count = 0
    await db.commit()
    assert await presence.refresh_capacity_status(db, partner) == "online"

    offline = await create_partner(db, max_conversations=1, active_conversations_count=1)
    assert await presence.refresh_capacity_status(db, offline) is None


@pytest.mark.asyncio
async def test_heartbeat_refreshes_ttl_and_activity(db, presence, fake_redis):
    partner = await create_partner(db)
    key = f"presence:partner:{partner.id}"

    await presence.heartbeat(partner.id)

    assert await fake_redis.get(key) == "online"
    assert 0 < await fake_redis.ttl(key) <= 60
    assert (await reload(db, partner.id)).last_active_at is not None


@pytest.mark.asyncio
async def test_cleanup_marks_partners_without_presence_offline(db, presence, registry, fake_redis):
    stale = await create_partner(db, online_status="online")
    alive = await create_partner(db, online_status="busy")
    connected = await create_partner(db, online_status="online")
    await fake_redis.set(f"presence:partner:{alive.id}", "busy", ex=60)
    await connect(registry, connected)
    watcher = await connect(registry, await create_user(db))

    marked = await presence.cleanup_stale_partners()

    assert marked == [stale.id]
    assert (await reload(db, stale.id)).online_status == "offline"
    assert (await reload(db, alive.id)).online_status == "busy"
    assert (await reload(db, connected.id)).online_status == "online"
    [frame] = watcher.websocket.events("partner:status:changed")
    assert frame["data"]["partner_id"] == stale.id
    assert frame["data"]["status"] == "offline"


@pytest.mark.asyncio
async def test_roster_lists_verified_partners_best_rated_first(db):
    await create_partner(db, name="Junior", rating=4.0, total_sessions=3)
    await create_partner(db, name="Senior", rating=4.8, total_sessions=50)
    await create_partner(db, name="Veteran", rating=4.0, total_sessions=90)
    await create_partner(db, name="Unverified", rating=5.0, is_verified=False)

    roster = await PresenceService.list_partners(db)

    assert [p["name"] for p in roster] == ["Senior", "Veteran", "Junior"]
    assert roster[0]["can_accept_conversation"] is True
    assert roster[0]["available_slots"] == 3


@pytest.mark.asyncio
async def test_status_view(db):
    partner = await create_partner(db, max_conversations=2, active_conversations_count=2, online_status="busy")

    view = PresenceService.status_view(partner)

    assert view["partner_id"] == partner.id
    assert view["status"] == "busy"
    assert view["can_accept_more"] is False


@pytest.mark.asyncio
async def test_reconcile_capacity_repairs_drifted_counter(db, presence):
    user = await create_user(db)
    drifted = await create_partner(db, max_conversations=2, active_conversations_count=2, online_status="busy")
    healthy = await create_partner(db, active_conversations_count=1)
    await create_conversation(db, user, drifted, status="active", accepted_at=utcnow())
    await create_conversation(db, user, healthy, status="accepted", accepted_at=utcnow())

    corrected = await presence.reconcile_capacity(db)

    assert corrected == {drifted.id: (2, 1)}
    stored = await reload(db, drifted.id)
    assert stored.active_conversations_count == 1
    assert stored.online_status == "online"
    assert (await reload(db, healthy.id)).active_conversations_count == 1
