from contextlib import asynccontextmanager

from faststream import FastStream
from faststream.asgi import make_ping_asgi

from app.container import Container, EventsResource
from app.controllers.events import profile
from app.infra.config import settings
from app.infra.logging import logger
from app.infra.sentry import init_sentry


def create_lifespan(container: Container, app):
    async def _maybe_future(future):
        if future is not None:
            await future

    @asynccontextmanager
    async def lifespan():
        await _maybe_future(container.init_resources(EventsResource))

        broker = await container.events_kafka_broker()
        broker.include_router(profile.router)

        app.mount("/healthz", make_ping_asgi(broker, timeout=5.0))
        app.broker = broker

        yield

        await _maybe_future(container.shutdown_resources(EventsResource))

    return lifespan


def create_app():
    container = Container()
    container.config.from_pydantic(settings)
    container.wire(
        modules=[
            "app.controllers.events.profile",
        ]
    )

    init_sentry()

    app = FastStream(
        None,
        logger=logger,
        title="Profile events",
        version="",
        identifier="urn:events",
    ).as_asgi(
        asyncapi_path=None,
    )
    app.lifespan_context = create_lifespan(container, app)
    app.__dict__["container"] = container

    return app


app = create_app()
