from contextlib import asynccontextmanager
from typing import cast

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sentry_sdk.tracing import TransactionSource
from sentry_sdk.types import Event

from app.container import Container
from app.controllers.admin.main import register_admin
from app.controllers.api import profile
from app.controllers.api.context import CORRELATION_HEADER
from app.infra.config import settings
from app.infra.logging import logger
from app.infra.sentry import init_sentry
from app.services.exceptions.outbox import OutboxValidationError, PersistenceError
from app.services.exceptions.profile import StaleProfileError, UserNotFoundError


def before_send_transaction(event: Event, _):
    if tr_info := event.get("transaction_info"):
        source: TransactionSource = cast(TransactionSource, tr_info.get("source"))
        if source == TransactionSource.URL:
            return  # Cancel transactions for 404
    else:
        return

    return event


def traces_sampler(ctx: dict):
    scope: dict = ctx.get("asgi_scope") or {}
    path: str = scope.get("path", "")
    method: str = scope.get("method", "")

    if path.startswith("/admin") and not (
        path.startswith("/admin/outbox/action") and method == "GET"
    ):
        return 0.0
    if path == "/healthz":
        return 0.0

    return 1.0


def _error(request: Request, status_code: int, detail: str) -> JSONResponse:
    headers = {}
    if correlation_id := (request.headers.get(CORRELATION_HEADER) or "").strip():
        headers[CORRELATION_HEADER] = correlation_id
    return JSONResponse({"detail": detail}, status_code=status_code, headers=headers)


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(UserNotFoundError)
    async def user_not_found(request: Request, exc: UserNotFoundError):
        return _error(request, status.HTTP_404_NOT_FOUND, "User not found")

    @app.exception_handler(OutboxValidationError)
    async def invalid_event(request: Request, exc: OutboxValidationError):
        return _error(request, status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))

    @app.exception_handler(StaleProfileError)
    async def stale_profile(request: Request, exc: StaleProfileError):
        logger.warning(str(exc))
        return _error(
            request, status.HTTP_409_CONFLICT, "Profile was changed concurrently, retry"
        )

    @app.exception_handler(PersistenceError)
    async def persistence_failed(request: Request, exc: PersistenceError):
        logger.error(f"Persistence failure: {exc}")
        return _error(
            request,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "Profile could not be saved, try again later",
        )


def create_lifespan(container: Container):
    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        await container.tx_engine().dispose()
        await container.plain_engine().dispose()

    return lifespan


def create_app(container: Container | None = None) -> FastAPI:
    if container is None:
        container = Container()
        container.config.from_pydantic(settings)
    container.wire(
        modules=[
            "app.controllers.api.profile",
            "app.controllers.admin.main",
            "app.controllers.admin.views",
        ]
    )

    init_sentry(
        traces_sampler=traces_sampler, before_send_transaction=before_send_transaction
    )

    app = FastAPI(redoc_url=None, docs_url=None, lifespan=create_lifespan(container))
    app.__dict__["container"] = container

    app.include_router(profile.router)
    register_exception_handlers(app)

    register_admin(
        app,
        username=settings.admin.username,
        password=settings.admin.password,
        secret=settings.admin.secret,
    )

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    return app


app = create_app()
