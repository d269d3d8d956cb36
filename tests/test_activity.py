from uuid import uuid4

from app.infra.database import models
from app.infra.utils.time import now_utc
from tests.utils import count_rows


def make_envelope(user_id, message_id) -> dict:
    return {
        "event_type": "ProfileUpdated",
        "id": str(message_id),
        "aggregate_id": str(user_id),
        "version": "1",
        "occurred_at": now_utc().isoformat(),
        "payload": {"changed_fields": ["bio"], "bio": "Analyst"},
    }


async def test_duplicate_delivery_has_single_effect(activity_service, sessionmaker):
    user_id, message_id = uuid4(), uuid4()
    envelope = make_envelope(user_id, message_id)

    assert await activity_service.apply(envelope, message_id=message_id) is True
    assert await activity_service.apply(envelope, message_id=message_id) is False

    assert await count_rows(sessionmaker, models.ProfileActivity) == 1


async def test_recent_activity_lists_projected_events(activity_service):
    user_id = uuid4()
    for _ in range(3):
        message_id = uuid4()
        await activity_service.apply(
            make_envelope(user_id, message_id),
            message_id=message_id,
            correlation_id="corr-1",
        )
    await activity_service.apply(make_envelope(uuid4(), uuid4()), message_id=uuid4())

    entries = await activity_service.list_recent(user_id, limit=2)

    assert len(entries) == 2
    assert all(entry.event_type == "ProfileUpdated" for entry in entries)
    assert entries[0].changed_fields == ["bio"]
