import asyncio
import inspect
from contextlib import asynccontextmanager
from logging import Logger

from dependency_injector.wiring import Provide, inject
from sentry_sdk import start_transaction

from app.container import Container
from app.services.outbox import OutboxService


async def run_dispatcher(
    svc: OutboxService,
    *,
    stop: asyncio.Event,
    poll_interval: float,
    logger: Logger,
):
    """
    Tick the dispatcher until `stop` is set.

    Between ticks the loop waits on `stop` with `poll_interval` as timeout, so
    a shutdown request is noticed without waiting out a full sleep. A
    non-empty batch is followed by an immediate next tick.
    """
    while not stop.is_set():
        try:
            with start_transaction(
                op="worker", name="WORK /outbox/process-outbox-batch"
            ) as tx:
                tx.set_tag("worker_id", svc.worker_id)
                result = await svc.process_outbox_batch()
                if result == 0:
                    tx.set_tag("empty_batch", "1")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.critical("Unhandled error occurred in outbox relay:", exc_info=True)
            result = 0

        if result > 0:
            continue

        try:
            await asyncio.wait_for(stop.wait(), timeout=poll_interval)
        except asyncio.TimeoutError:
            pass


@inject
async def _get_container(container: Container = Provide[Container]):
    return container


async def _maybe_future(value):
    if inspect.isawaitable(value):
        return await value
    return value


@asynccontextmanager
async def start_outbox_relay():
    container = await _get_container()
    logger: Logger = container.logger()
    svc: OutboxService = await _maybe_future(container.outbox_service())
    poll_interval: float = container.config.outbox.poll_interval()
    shutdown_grace: float = container.config.outbox.shutdown_grace()

    stop = asyncio.Event()
    task = asyncio.create_task(
        run_dispatcher(svc, stop=stop, poll_interval=poll_interval, logger=logger)
    )
    logger.info(f"Outbox relay [{svc.worker_id}] started")

    try:
        yield
    finally:
        stop.set()
        try:
            # Let the in-flight batch finish and store its results.
            await asyncio.wait_for(asyncio.shield(task), timeout=shutdown_grace)
        except asyncio.TimeoutError:
            logger.warning("Outbox relay did not stop in time; cancelling")
            task.cancel()
            try:
                await task  # Forward errors from task
            except asyncio.CancelledError:
                pass

        logger.info(f"Outbox relay [{svc.worker_id}] stopped")
