from datetime import datetime
from typing import Any
from uuid import UUID

from app.domains.outbox import OutboxStatus
from app.schemas.base import BaseSchema


class OutboxDTO(BaseSchema):
    id: UUID
    aggregate_id: UUID
    sequence: int
    event_type: str
    topic: str
    payload: dict[str, Any]
    correlation_id: str
    status: OutboxStatus
    attempts: int
    last_error: str | None = None
    created_at: datetime


class OutboxPublishResult(BaseSchema):
    record: OutboxDTO
    success: bool
    error: str | None
