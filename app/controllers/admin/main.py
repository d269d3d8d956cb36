from dependency_injector.wiring import Provide, inject
from fastapi import FastAPI
from sqladmin import Admin
from sqlalchemy.ext.asyncio import AsyncEngine

import app.controllers.admin.views as views
from app.container import Container
from app.controllers.admin.auth import AdminAuthenticationBackend


@inject
def register_admin(
    app: FastAPI,
    *,
    username: str,
    password: str,
    secret: str,
    engine: AsyncEngine = Provide[Container.tx_engine],
):
    authentication_backend = AdminAuthenticationBackend(
        secret, username=username, password=password
    )
    admin = Admin(
        app,
        engine,
        title="Profile panel",
        authentication_backend=authentication_backend,
        base_url="/admin",
    )

    admin.add_view(views.UserView)
    admin.add_view(views.OutboxView)
    admin.add_view(views.ProfileActivityView)
