import pytest
from sqlalchemy import select

from consultation.models import ConversationSession, Partner, utcnow
from consultation.services.conversation.exceptions import ConflictError, ValidationError
from consultation.services.conversation.service import ConversationService
from consultation.services.conversation.validators import validate_rating
from tests.helpers import create_user, create_partner, create_conversation, user_party, partner_party


@pytest.fixture
def service(registry):
    return ConversationService(registry=registry)


async def ended_conversation(db, service, partner=None):
    user = await create_user(db)
    partner = partner or await create_partner(db)
    conversation = await create_conversation(db, user, partner, status="accepted", accepted_at=utcnow())
    await service.end_conversation(db, user_party(user), conversation.id)
    return user, partner, conversation


def test_rating_validation():
    assert validate_rating(5, "great", "very_satisfied") == {
        "stars": 5, "feedback": "great", "satisfaction": "very_satisfied",
    }
    for stars in (0, 6, "5", True, None):
        with pytest.raises(ValidationError):
            validate_rating(stars, None, None)
    with pytest.raises(ValidationError):
        validate_rating(4, None, "ecstatic")
    with pytest.raises(ValidationError):
        validate_rating(4, "x" * 1001, None)


@pytest.mark.asyncio
async def test_rating_requires_ended_conversation(db, service):
    user = await create_user(db)
    partner = await create_partner(db)
    conversation = await create_conversation(db, user, partner, status="accepted", accepted_at=utcnow())

    with pytest.raises(ConflictError):
        await service.submit_rating(db, user_party(user), conversation.id, 5)


@pytest.mark.asyncio
async def test_user_ratings_feed_partner_aggregate(db, service):
    partner = await create_partner(db)
    first_user, _, first = await ended_conversation(db, service, partner)
    second_user, _, second = await ended_conversation(db, service, partner)

    await service.submit_rating(db, user_party(first_user), first.id, 5, "Very helpful", "very_satisfied")
    rated = await service.submit_rating(db, user_party(second_user), second.id, 3)

    assert rated.rating_by_user["stars"] == 3
    assert rated.rating_by_user["rated_at"]
    stored = (await db.execute(
        select(Partner).where(Partner.id == partner.id).execution_options(populate_existing=True)
    )).scalar_one()
    assert stored.total_ratings == 2
    assert stored.rating == 4.0

    record = (await db.execute(
        select(ConversationSession).where(ConversationSession.conversation_id == first.id)
    )).scalar_one()
    assert record.rating_by_user["stars"] == 5


@pytest.mark.asyncio
async def test_re_rating_replaces_previous_score(db, service):
    user, partner, conversation = await ended_conversation(db, service)

    await service.submit_rating(db, user_party(user), conversation.id, 2)
    await service.submit_rating(db, user_party(user), conversation.id, 4)

    stored = (await db.execute(
        select(Partner).where(Partner.id == partner.id).execution_options(populate_existing=True)
    )).scalar_one()
    assert stored.total_ratings == 1
    assert stored.rating == 4.0


@pytest.mark.asyncio
async def test_partner_rating_does_not_touch_aggregate(db, service):
    user, partner, conversation = await ended_conversation(db, service)

    rated = await service.submit_rating(db, partner_party(partner), conversation.id, 1, satisfaction="neutral")

    assert rated.rating_by_partner["stars"] == 1
    assert rated.rating_by_user is None
    stored = (await db.execute(
        select(Partner).where(Partner.id == partner.id).execution_options(populate_existing=True)
    )).scalar_one()
    assert stored.total_ratings == 0


@pytest.mark.asyncio
async def test_end_with_rating(db, service):
    user = await create_user(db)
    partner = await create_partner(db)
    conversation = await create_conversation(db, user, partner, status="accepted", accepted_at=utcnow())

    with pytest.raises(ValidationError):
        await service.end_conversation(db, user_party(user), conversation.id, rating={"stars": 9})

    ended, _ = await service.end_conversation(
        db, user_party(user), conversation.id, rating={"stars": 5, "feedback": "Thanks"}
    )

    assert ended.status == "ended"
    assert ended.rating_by_user["feedback"] == "Thanks"
    record = (await db.execute(
        select(ConversationSession).where(ConversationSession.conversation_id == conversation.id)
    )).scalar_one()
    assert record.rating_by_user["stars"] == 5
