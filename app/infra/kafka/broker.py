from logging import Logger

from faststream.kafka import KafkaBroker


async def get_kafka_broker(bootstrap_servers: str, *, logger: Logger | None = None):
    broker = KafkaBroker(
        bootstrap_servers,
        # Producer options
        acks="all",
        enable_idempotence=True,
        request_timeout_ms=10_000,
        logger=logger,
    )
    await broker.connect()
    try:
        yield broker
    finally:
        await broker.close()
