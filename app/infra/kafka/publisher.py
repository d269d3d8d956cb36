import asyncio
from logging import Logger

from faststream.kafka import KafkaBroker
from sentry_sdk import start_span
from sentry_sdk.tracing import Span

from app.contracts.clients.publisher import EventPublisher
from app.infra.utils.retry import retry
from app.schemas.outbox import OutboxDTO, OutboxPublishResult


def build_headers(dto: OutboxDTO) -> dict[str, str]:
    return {
        "message_id": str(dto.id),
        "correlation_id": dto.correlation_id,
        "event_type": dto.event_type,
    }


class KafkaOutboxPublisher(EventPublisher):
    def __init__(
        self,
        broker: KafkaBroker,
        *,
        logger: Logger | None = None,
        timeout: float | None = None,
        max_attempts: int = 2,
    ):
        self._broker = broker
        self._logger = logger
        self._timeout = timeout
        self._max_attempts = max_attempts

    def _log(self, msg: str):
        if self._logger is not None:
            self._logger.debug(msg)

    async def publish_batch(self, dtos: list[OutboxDTO]) -> list[OutboxPublishResult]:
        with start_span(op="queue.submit", name="Publish outbox batch") as span:
            span.set_tag("outbox.count", len(dtos))

            return await asyncio.gather(
                *(self._publish(dto, parent_span=span) for dto in dtos)
            )

    async def _publish(self, dto: OutboxDTO, *, parent_span: Span) -> OutboxPublishResult:
        with parent_span.start_child(
            op="queue.submit", name="Publish outbox message"
        ) as span:
            span.set_tag("outbox.id", dto.id.hex)
            span.set_tag("outbox.event", dto.event_type)

            @retry(max_attempts=self._max_attempts, delay=0.2)
            async def _send():
                await asyncio.wait_for(
                    self._broker.publish(
                        dto.payload,
                        topic=dto.topic,
                        key=str(dto.aggregate_id).encode(),
                        headers=build_headers(dto),
                        correlation_id=dto.correlation_id,
                    ),
                    timeout=self._timeout,
                )

            try:
                await _send()
            except Exception as e:
                span.set_tag("outbox.error", str(e))
                return OutboxPublishResult(
                    record=dto,
                    success=False,
                    error=f"{type(e).__name__}: {e}",
                )

            self._log(f"Published outbox record [{dto.id}] to {dto.topic}")
            return OutboxPublishResult(
                record=dto,
                success=True,
                error=None,
            )
