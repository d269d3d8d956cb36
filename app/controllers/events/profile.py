from logging import Logger
from typing import Any
from uuid import UUID

from dependency_injector.wiring import Provide, inject
from faststream.kafka import KafkaMessage, KafkaRouter
from pydantic import BaseModel
from sentry_sdk import start_transaction

from app.container import Container
from app.infra.config import settings
from app.infra.logging import log_context
from app.services.activity import ActivityService

router = KafkaRouter()


class EventEnvelope(BaseModel):
    event_type: str
    id: UUID
    aggregate_id: UUID
    version: str
    occurred_at: str
    payload: dict[str, Any]


def _get_message_id(envelope: EventEnvelope, message: KafkaMessage) -> UUID:
    header = message.headers.get("message_id")
    if header:
        return UUID(header)
    return envelope.id


@inject
def _get_logger(logger: Logger = Provide[Container.logger]):
    return logger


@router.subscriber(
    settings.kafka.profile_topic,
    group_id=settings.kafka.consumer_group,
    auto_commit=False,
)
async def handle_profile_event(envelope: EventEnvelope, message: KafkaMessage):
    message_id = _get_message_id(envelope, message)
    correlation_id = message.headers.get("correlation_id") or message.correlation_id

    logger = _get_logger()

    with (
        log_context(
            correlation_id=correlation_id,
            user_id=envelope.aggregate_id,
            action=f"CONSUME_{envelope.event_type.upper()}",
        ),
        start_transaction(
            op="queue.task", name=f"CONSUME {settings.kafka.profile_topic}"
        ) as tr,
    ):
        tr.set_tag("outbox_id", str(message_id))
        tr.set_tag("event_type", envelope.event_type)

        try:
            await handle_envelope(
                envelope.model_dump(mode="json"),
                message_id=message_id,
                correlation_id=correlation_id,
            )
        except Exception as e:
            logger.error(
                f"Error processing {envelope.event_type} [{message_id}] "
                f"for user [{envelope.aggregate_id}]: {e}",
                exc_info=True,
            )
            await message.nack()
        else:
            logger.info(
                f"Processed {envelope.event_type} [{message_id}] "
                f"for user [{envelope.aggregate_id}]"
            )


@inject
async def handle_envelope(
    envelope: dict[str, Any],
    *,
    message_id: UUID,
    correlation_id: str | None,
    svc: ActivityService = Provide[Container.activity_service],
):
    await svc.apply(envelope, message_id=message_id, correlation_id=correlation_id)
