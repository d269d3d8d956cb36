from datetime import datetime
from typing import Annotated, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.domains.outbox import OutboxStatus
from app.infra.database import constraints
from app.infra.utils.time import now_utc

uuidpk = Annotated[UUID, mapped_column(Uuid(), primary_key=True, default=uuid4)]

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    id: Mapped[uuidpk]


class User(Base):
    """
    Profile part of the user account.

    Credentials and sessions are owned by the authentication service; this
    table only carries the fields the profile endpoints read and write.

    Attributes:
        version: Monotonic counter bumped on every effective profile change.
            Becomes the `version` of the emitted domain event.
    """

    __tablename__ = "users"

    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=now_utc,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __str__(self) -> str:
        name = " ".join(p for p in (self.first_name, self.last_name) if p)
        return name or str(self.id)


class Outbox(Base):
    """
    Canonical transactional-outbox event.

    Attributes:
        id: Stable identifier, equal to the domain event id.
            Used downstream as the deduplication key.
        aggregate_id: Id of the mutated entity, also the broker message key.
        sequence: Per-aggregate creation order.
        event_type: Domain event class name.
        topic: Broker destination.
        payload: Serialized event envelope.
        correlation_id: Correlation token of the request that caused the event.
        status: Lifecycle state, see `OutboxStatus`.
        attempts: Number of publish attempts performed so far.
        last_error: Error of the last failed attempt.
        next_attempt_at: When the next publish attempt is allowed.
        claimed_by: Dispatcher instance currently owning the record.
        claimed_at: When the current claim was taken.
        published_at: Timestamp of broker confirmation, else None.

    Indexes
    -------
    - `correlation_id` b-tree for tracing look-ups.
    - Partial index `ix_outbox_pending` on `status = 'PENDING'` ordered by
      `next_attempt_at` to feed the dispatcher efficiently.
    - `(aggregate_id, sequence)` unique.
    """

    __tablename__ = "outbox"

    aggregate_id: Mapped[UUID] = mapped_column(Uuid(), nullable=False)
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)
    event_type: Mapped[str] = mapped_column(String(255), nullable=False)
    topic: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    correlation_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,  # Look-ups by correlation key
    )

    status: Mapped[OutboxStatus] = mapped_column(
        Enum(OutboxStatus, name="outbox_status"),
        nullable=False,
        default=OutboxStatus.PENDING,
    )
    attempts: Mapped[int] = mapped_column(nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=now_utc,
    )
    next_attempt_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=now_utc,
    )
    claimed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        # Fast batch pick-up for dispatchers
        Index(
            "ix_outbox_pending",
            "next_attempt_at",
            postgresql_where=(
                Column("status", String) == OutboxStatus.PENDING.name
            ),  # Partial index
        ),
        constraints.outbox_aggregate_sequence_unique,
    )

    def __str__(self) -> str:
        return f"{self.event_type}_{self.aggregate_id}_{self.sequence}"


class ProfileActivity(Base):
    """
    Activity feed entry projected from a published profile event.

    The primary key is the outbox record id, so redelivered messages
    collapse into one row.
    """

    __tablename__ = "profile_activity"

    user_id: Mapped[UUID] = mapped_column(Uuid(), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(255), nullable=False)
    changed_fields: Mapped[list[str]] = mapped_column(JSONType, nullable=False)
    correlation_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=now_utc,
    )
