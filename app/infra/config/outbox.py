import socket
from uuid import uuid4

from pydantic import BaseModel, Field


def _default_worker_id() -> str:
    return f"{socket.gethostname()}-{uuid4()}"


class OutboxSettings(BaseModel):
    batch: int = Field(default=200, gt=0)
    max_attempts: int = Field(default=5, gt=0)
    backoff_base: float = Field(default=1.0, ge=0)  # seconds
    backoff_max: float = Field(default=300.0, ge=0)  # seconds
    poll_interval: float = Field(default=0.2, gt=0)  # seconds
    claim_timeout: float = Field(default=60.0, gt=0)  # seconds
    shutdown_grace: float = Field(default=10.0, ge=0)  # seconds
    publish_timeout: float | None = Field(default=None)
    worker_id: str = Field(default_factory=_default_worker_id)
