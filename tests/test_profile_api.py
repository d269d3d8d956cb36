from uuid import uuid4

import pytest
from dependency_injector import providers
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from app.container import Container
from app.domains.outbox import OutboxStatus
from app.infra.config import settings
from app.infra.database.repositories.outbox import PgOutboxRepository
from app.infra.database.repositories.user import PgUserRepository
from tests.utils import fetch_outbox, fetch_user


@pytest.fixture
async def client(engine):
    from app.entrypoints.api import create_app

    container = Container()
    container.config.from_pydantic(settings)
    container.tx_engine.override(providers.Object(engine))
    container.plain_engine.override(providers.Object(engine))

    app = create_app(container)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    container.unwire()


def auth(user_id, **headers) -> dict:
    return {"X-User-Id": str(user_id), **headers}


async def test_get_profile(client, user):
    response = await client.get(
        "/api/v1/auth/profile", headers=auth(user.id, **{"X-Correlation-ID": "c-1"})
    )

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == str(user.id)
    assert body["firstName"] == "Ada"
    assert body["lastName"] == "Lovelace"
    assert response.headers["X-Correlation-ID"] == "c-1"


async def test_correlation_id_is_generated_when_missing(client, user):
    response = await client.get("/api/v1/auth/profile", headers=auth(user.id))

    assert response.status_code == 200
    assert response.headers["X-Correlation-ID"]


async def test_missing_or_invalid_user_header_is_unauthorized(client):
    assert (await client.get("/api/v1/auth/profile")).status_code == 401
    response = await client.get(
        "/api/v1/auth/profile", headers={"X-User-Id": "not-a-uuid"}
    )
    assert response.status_code == 401


async def test_unknown_user_is_not_found(client):
    response = await client.get("/api/v1/auth/profile", headers=auth(uuid4()))

    assert response.status_code == 404


async def test_update_profile_records_event(client, user, sessionmaker):
    response = await client.put(
        "/api/v1/auth/profile",
        json={"bio": "Analyst", "location": "London"},
        headers=auth(user.id, **{"X-Correlation-ID": "c-42"}),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["bio"] == "Analyst"
    assert body["location"] == "London"
    assert body["updatedAt"] is not None

    [record] = await fetch_outbox(sessionmaker)
    assert record.aggregate_id == user.id
    assert record.correlation_id == "c-42"
    assert record.status == OutboxStatus.PENDING


async def test_invalid_update_is_rejected(client, user, sessionmaker):
    response = await client.put(
        "/api/v1/auth/profile",
        json={"phone": "call me maybe"},
        headers=auth(user.id),
    )

    assert response.status_code == 422
    assert await fetch_outbox(sessionmaker) == []


async def test_update_avatar(client, user, sessionmaker):
    response = await client.post(
        "/api/v1/auth/profile/avatar",
        json={"avatarUrl": "https://cdn.example.com/ada.png"},
        headers=auth(user.id),
    )

    assert response.status_code == 200
    assert response.json() == {
        "message": "Avatar updated successfully",
        "avatarUrl": "https://cdn.example.com/ada.png",
    }

    stored = await fetch_user(sessionmaker, user.id)
    assert stored.avatar_url == "https://cdn.example.com/ada.png"
    [record] = await fetch_outbox(sessionmaker)
    assert record.payload["payload"]["changed_fields"] == ["avatar_url"]


async def test_activity_feed_starts_empty(client, user):
    response = await client.get("/api/v1/auth/profile/activity", headers=auth(user.id))

    assert response.status_code == 200
    assert response.json() == []


async def test_healthz(client):
    response = await client.get("/healthz")

    assert response.status_code == 200


async def test_blank_correlation_id_is_replaced(client, user, sessionmaker):
    response = await client.put(
        "/api/v1/auth/profile",
        json={"bio": "Analyst"},
        headers=auth(user.id, **{"X-Correlation-ID": "   "}),
    )

    assert response.status_code == 200
    correlation_id = response.headers["X-Correlation-ID"]
    assert correlation_id.strip()

    [record] = await fetch_outbox(sessionmaker)
    assert record.correlation_id == correlation_id


async def test_outbox_failure_is_unavailable(client, user, sessionmaker, monkeypatch):
    async def broken_insert(self, **kwargs):
        raise OperationalError("INSERT INTO outbox", {}, Exception("disk I/O error"))

    monkeypatch.setattr(PgOutboxRepository, "insert", broken_insert)

    response = await client.put(
        "/api/v1/auth/profile",
        json={"bio": "Analyst"},
        headers=auth(user.id, **{"X-Correlation-ID": "c-503"}),
    )

    assert response.status_code == 503
    assert response.headers["X-Correlation-ID"] == "c-503"

    stored = await fetch_user(sessionmaker, user.id)
    assert stored.bio is None
    assert stored.version == 0
    assert stored.updated_at is None
    assert await fetch_outbox(sessionmaker) == []


async def test_stale_save_is_conflict(client, user, sessionmaker, monkeypatch):
    async def lost_race(self, profile):
        return False

    monkeypatch.setattr(PgUserRepository, "save", lost_race)

    response = await client.put(
        "/api/v1/auth/profile", json={"bio": "Analyst"}, headers=auth(user.id)
    )

    assert response.status_code == 409
    assert await fetch_outbox(sessionmaker) == []
