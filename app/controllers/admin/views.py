from logging import Logger
from uuid import UUID

from dependency_injector.wiring import Provide, inject
from fastapi import Request
from fastapi.responses import RedirectResponse
from sentry_sdk import get_current_scope
from sqladmin import ModelView, action
from sqladmin.filters import StaticValuesFilter

from app.container import Container
from app.domains.outbox import OutboxStatus
from app.infra.database import models
from app.services.outbox import OutboxAdminService


class UserView(ModelView, model=models.User):
    name_plural = "Users"

    can_delete = False
    can_create = True
    can_edit = False
    can_export = True

    column_list = [
        models.User.id,
        models.User.first_name,
        models.User.last_name,
        models.User.version,
        models.User.updated_at,
    ]
    column_details_list = [
        *column_list,
        models.User.phone,
        models.User.location,
        models.User.bio,
        models.User.avatar_url,
        models.User.created_at,
    ]
    form_columns = [
        models.User.first_name,
        models.User.last_name,
        models.User.phone,
        models.User.location,
        models.User.bio,
        models.User.avatar_url,
    ]

    column_sortable_list = [models.User.updated_at]


class OutboxView(ModelView, model=models.Outbox):
    name_plural = "Outbox"

    can_delete = False
    can_create = False
    can_edit = False
    can_export = True

    column_list = [
        models.Outbox.id,
        models.Outbox.aggregate_id,
        models.Outbox.sequence,
        models.Outbox.event_type,
        models.Outbox.status,
        models.Outbox.attempts,
        models.Outbox.last_error,
        models.Outbox.created_at,
        models.Outbox.published_at,
    ]
    column_details_list = "__all__"

    column_sortable_list = [
        models.Outbox.created_at,
        models.Outbox.attempts,
    ]

    column_filters = [
        StaticValuesFilter(
            models.Outbox.status,
            [(status.name, status.name) for status in OutboxStatus],
        )
    ]

    @action(
        name="replay",
        label="Replay failed",
        confirmation_message="Requeue the selected FAILED records?",
        add_in_detail=True,
        add_in_list=True,
    )
    @inject
    async def replay(
        self,
        request: Request,
        svc: OutboxAdminService = Provide[Container.outbox_admin_service],
        logger: Logger = Provide[Container.logger],
    ):
        scope = get_current_scope()
        path_format, _, _ = request.scope["path"].rpartition("/")
        path_format += "/{action}"
        scope.set_transaction_name(f"{request.method} {path_format}")

        pks = request.query_params.get("pks", "")
        ids = [UUID(pk) for pk in pks.split(",") if pk]

        try:
            await svc.replay_failed(ids)
        except Exception:
            logger.error(f"Error occurred while replaying outbox records {pks}.")
            raise

        return RedirectResponse(request.url_for("admin:list", identity=self.identity))


class ProfileActivityView(ModelView, model=models.ProfileActivity):
    name_plural = "Profile Activity"

    can_delete = False
    can_create = False
    can_edit = False
    can_export = True

    column_list = "__all__"

    column_sortable_list = [
        models.ProfileActivity.occurred_at,
        models.ProfileActivity.received_at,
    ]
