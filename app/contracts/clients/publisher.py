from abc import ABC, abstractmethod

from app.schemas.outbox import OutboxDTO, OutboxPublishResult


class EventPublisher(ABC):
    @abstractmethod
    async def publish_batch(self, dtos: list[OutboxDTO]) -> list[OutboxPublishResult]:
        """
        Publish outbox records to the message broker.

        One result per record, in input order. Failures are reported in the
        result instead of being raised.

        Every message carries:
            - key: the record `aggregate_id`;
            - headers: `message_id` (record id, the consumer deduplication key),
              `correlation_id` and `event_type`.
        """
