from datetime import timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from app.domains.outbox import OutboxStatus
from app.infra.utils.time import now_utc
from app.schemas.profile import ProfileUpdateRequest
from app.services.outbox import OutboxService
from tests.utils import FakePublisher, create_user, fetch_outbox


async def update_bio(profile_service, user_id, bio: str):
    await profile_service.update_profile(
        user_id, ProfileUpdateRequest(bio=bio), correlation_id=f"corr-{bio}"
    )


async def test_pending_records_are_published(
    profile_service, make_dispatcher, publisher, sessionmaker, user
):
    await update_bio(profile_service, user.id, "one")
    dispatcher = make_dispatcher(publisher)

    assert await dispatcher.process_outbox_batch() == 1

    [record] = await fetch_outbox(sessionmaker)
    assert record.status == OutboxStatus.PUBLISHED
    assert record.attempts == 1
    assert record.published_at is not None
    assert record.claimed_by is None
    assert publisher.sent == [record.id]

    # Nothing left to do
    assert await dispatcher.process_outbox_batch() == 0
    assert len(publisher.calls) == 1


async def test_record_fails_after_max_attempts(
    profile_service, make_dispatcher, sessionmaker, user
):
    await update_bio(profile_service, user.id, "one")
    publisher = FakePublisher(fail=lambda dto: True)
    dispatcher = make_dispatcher(publisher, max_publish_attempts=5)

    for attempt in range(1, 5):
        assert await dispatcher.process_outbox_batch() == 1
        [record] = await fetch_outbox(sessionmaker)
        assert record.status == OutboxStatus.PENDING
        assert record.attempts == attempt

    assert await dispatcher.process_outbox_batch() == 1

    [record] = await fetch_outbox(sessionmaker)
    assert record.status == OutboxStatus.FAILED
    assert record.attempts == 5
    assert record.last_error
    assert record.claimed_by is None

    # FAILED is terminal for the dispatcher
    assert await dispatcher.process_outbox_batch() == 0
    assert len(publisher.calls) == 5


async def test_terminal_failure_is_alerted(
    profile_service, outbox_uow, sessionmaker, user
):
    await update_bio(profile_service, user.id, "one")
    logger = MagicMock()
    dispatcher = OutboxService(
        outbox_uow,
        FakePublisher(fail=lambda dto: True),
        logger=logger,
        worker_id="worker-1",
        max_publish_attempts=1,
        backoff_base=0.0,
    )

    await dispatcher.process_outbox_batch()

    [record] = await fetch_outbox(sessionmaker)
    assert record.status == OutboxStatus.FAILED
    logger.error.assert_called_once()
    assert str(record.id) in logger.error.call_args.args[0]


async def test_failed_publish_is_retried_after_backoff(
    profile_service, make_dispatcher, sessionmaker, user
):
    await update_bio(profile_service, user.id, "one")
    dispatcher = make_dispatcher(
        FakePublisher(fail=lambda dto: True), backoff_base=60.0
    )

    before = now_utc()
    await dispatcher.process_outbox_batch()

    [record] = await fetch_outbox(sessionmaker)
    assert record.status == OutboxStatus.PENDING
    assert record.last_error == "broker unavailable"
    next_attempt_at = record.next_attempt_at.replace(tzinfo=None)
    assert next_attempt_at >= (before + timedelta(seconds=59)).replace(tzinfo=None)

    # Not due yet
    assert await dispatcher.process_outbox_batch() == 0


def test_backoff_grows_exponentially_up_to_cap(make_dispatcher, publisher):
    dispatcher = make_dispatcher(publisher, backoff_base=1.0, backoff_max=10.0)

    assert [dispatcher.backoff(n).total_seconds() for n in range(1, 6)] == [
        1.0,
        2.0,
        4.0,
        8.0,
        10.0,
    ]


async def test_concurrent_claims_have_single_winner(
    profile_service, outbox_uow, user
):
    await update_bio(profile_service, user.id, "one")

    # Both dispatchers see the record as claimable before either claims it.
    async with outbox_uow.begin(with_tx=True) as ctx:
        seen_by_a = await ctx.outbox.select_claimable(10)
    async with outbox_uow.begin(with_tx=True) as ctx:
        seen_by_b = await ctx.outbox.select_claimable(10)
    assert seen_by_a == seen_by_b
    [record_id] = seen_by_a

    async with outbox_uow.begin(with_tx=True) as ctx:
        claimed_by_a = await ctx.outbox.try_claim(record_id, worker_id="a")
    async with outbox_uow.begin(with_tx=True) as ctx:
        claimed_by_b = await ctx.outbox.try_claim(record_id, worker_id="b")

    assert claimed_by_a is not None
    assert claimed_by_a.status == OutboxStatus.IN_PROGRESS
    assert claimed_by_b is None


async def test_second_dispatcher_skips_claimed_records(
    profile_service, make_dispatcher, user
):
    await update_bio(profile_service, user.id, "one")
    first = make_dispatcher(FakePublisher(), worker_id="a")
    second = make_dispatcher(FakePublisher(), worker_id="b")

    claimed = await first.claim_batch()

    assert len(claimed) == 1
    assert await second.claim_batch() == []


async def test_records_of_one_aggregate_are_published_in_order(
    profile_service, make_dispatcher, sessionmaker
):
    u1 = await create_user(sessionmaker)
    u2 = await create_user(sessionmaker, first_name="Grace")

    await update_bio(profile_service, u1.id, "t1")
    await update_bio(profile_service, u2.id, "other")
    await update_bio(profile_service, u1.id, "t2")

    records = {
        (r.aggregate_id, r.sequence): r.id for r in await fetch_outbox(sessionmaker)
    }
    u1_first, u1_second = records[(u1.id, 1)], records[(u1.id, 2)]

    # The first event of U1 fails once; the second must wait for it.
    failures = {u1_first: 1}

    def fail(dto):
        if failures.get(dto.id, 0) > 0:
            failures[dto.id] -= 1
            return True
        return False

    publisher = FakePublisher(fail=fail)
    dispatcher = make_dispatcher(publisher)

    for _ in range(5):
        await dispatcher.process_outbox_batch()

    u1_sent = [id for id in publisher.sent if id in (u1_first, u1_second)]
    assert u1_sent == [u1_first, u1_second]
    assert records[(u2.id, 1)] in publisher.sent
    assert all(
        r.status == OutboxStatus.PUBLISHED for r in await fetch_outbox(sessionmaker)
    )

    # At most one record of U1 was in flight per batch.
    for batch in publisher.calls:
        assert len([dto for dto in batch if dto.aggregate_id == u1.id]) <= 1


async def test_failed_record_does_not_block_later_records(
    profile_service, make_dispatcher, sessionmaker, user
):
    await update_bio(profile_service, user.id, "t1")
    await update_bio(profile_service, user.id, "t2")
    first, second = await fetch_outbox(sessionmaker)

    publisher = FakePublisher(fail=lambda dto: dto.id == first.id)
    dispatcher = make_dispatcher(publisher, max_publish_attempts=1)

    await dispatcher.process_outbox_batch()
    await dispatcher.process_outbox_batch()

    first, second = await fetch_outbox(sessionmaker)
    assert first.status == OutboxStatus.FAILED
    assert second.status == OutboxStatus.PUBLISHED


async def test_stale_claims_are_recovered(
    profile_service, outbox_uow, make_dispatcher, publisher, sessionmaker, user
):
    await update_bio(profile_service, user.id, "one")

    # A dispatcher claims the record and dies before reporting back.
    async with outbox_uow.begin(with_tx=True) as ctx:
        [record_id] = await ctx.outbox.select_claimable(10)
        assert await ctx.outbox.try_claim(record_id, worker_id="crashed")

    dispatcher = make_dispatcher(publisher, claim_timeout=60.0)
    assert await dispatcher.process_outbox_batch() == 0

    dispatcher = make_dispatcher(publisher, claim_timeout=0.0)
    assert await dispatcher.process_outbox_batch() == 1

    [record] = await fetch_outbox(sessionmaker)
    assert record.status == OutboxStatus.PUBLISHED
    assert publisher.sent == [record_id]


async def test_lost_claim_leaves_status_untouched(
    profile_service, outbox_uow, sessionmaker, user
):
    await update_bio(profile_service, user.id, "one")

    async with outbox_uow.begin(with_tx=True) as ctx:
        [record_id] = await ctx.outbox.select_claimable(10)
        await ctx.outbox.try_claim(record_id, worker_id="a")
    async with outbox_uow.begin(with_tx=True) as ctx:
        await ctx.outbox.release_stale(now_utc() + timedelta(seconds=1))
        await ctx.outbox.try_claim(record_id, worker_id="b")

    async with outbox_uow.begin(with_tx=True) as ctx:
        assert await ctx.outbox.mark_published(record_id, worker_id="a") is False

    [record] = await fetch_outbox(sessionmaker)
    assert record.status == OutboxStatus.IN_PROGRESS
    assert record.claimed_by == "b"


async def test_claims_are_released_when_publishing_crashes(
    profile_service, make_dispatcher, sessionmaker, user
):
    class CrashingPublisher(FakePublisher):
        async def publish_batch(self, dtos):
            raise RuntimeError("connection reset")

    await update_bio(profile_service, user.id, "one")
    dispatcher = make_dispatcher(CrashingPublisher())

    with pytest.raises(RuntimeError):
        await dispatcher.process_outbox_batch()

    [record] = await fetch_outbox(sessionmaker)
    assert record.status == OutboxStatus.PENDING
    assert record.attempts == 0
    assert record.claimed_by is None


async def test_replay_requeues_failed_records(
    profile_service, make_dispatcher, admin_service, sessionmaker, user
):
    await update_bio(profile_service, user.id, "one")
    await make_dispatcher(
        FakePublisher(fail=lambda dto: True), max_publish_attempts=1
    ).process_outbox_batch()
    [record] = await fetch_outbox(sessionmaker)
    assert record.status == OutboxStatus.FAILED

    assert await admin_service.replay_failed([record.id, uuid4()]) == 1

    [record] = await fetch_outbox(sessionmaker)
    assert record.status == OutboxStatus.PENDING
    assert record.attempts == 0
    assert record.last_error is None

    publisher = FakePublisher()
    await make_dispatcher(publisher).process_outbox_batch()
    assert publisher.sent == [record.id]


async def test_redelivery_is_deduplicated_by_record_id(
    profile_service, outbox_uow, make_dispatcher, sessionmaker, user
):
    await update_bio(profile_service, user.id, "one")
    publisher = FakePublisher()

    # Published, but the dispatcher dies before storing the outcome.
    claimed = await make_dispatcher(publisher, worker_id="crashed").claim_batch()
    await publisher.publish_batch(claimed)

    await make_dispatcher(publisher, claim_timeout=0.0).process_outbox_batch()

    [record] = await fetch_outbox(sessionmaker)
    assert publisher.sent == [record.id, record.id]
    assert list(publisher.delivered) == [record.id]
    assert record.status == OutboxStatus.PUBLISHED
