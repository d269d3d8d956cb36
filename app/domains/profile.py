from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar
from uuid import UUID

from app.domains.domain import BaseDomain
from app.domains.event import DomainEvent
from app.infra.utils.time import now_utc

PROFILE_FIELDS = (
    "first_name",
    "last_name",
    "phone",
    "location",
    "bio",
    "avatar_url",
)


@dataclass(frozen=True, slots=True)
class ProfileUpdated(DomainEvent):
    actor_id: UUID
    first_name: str | None
    last_name: str | None
    phone: str | None
    location: str | None
    bio: str | None
    avatar_url: str | None
    changed_fields: tuple[str, ...]
    updated_at: datetime

    topic: ClassVar[str | None] = "profile.events"

    @classmethod
    def _restore_payload(cls, payload: dict[str, Any]) -> dict[str, Any]:
        restored = dict(payload)
        restored["actor_id"] = UUID(payload["actor_id"])
        restored["changed_fields"] = tuple(payload["changed_fields"])
        restored["updated_at"] = datetime.fromisoformat(payload["updated_at"])
        return restored


@dataclass
class UserProfile(BaseDomain):
    id: UUID
    first_name: str | None
    last_name: str | None
    phone: str | None
    location: str | None
    bio: str | None
    avatar_url: str | None
    created_at: datetime | None
    updated_at: datetime | None
    version: int = field(default=0)

    def update(self, *, actor_id: UUID, **changes: str | None) -> tuple[str, ...]:
        """
        Copy every non-None value from `changes` onto the profile.

        Every call bumps `version`, stamps `updated_at` and emits
        `ProfileUpdated`, even when no value differs. Returns the names of
        the fields whose value changed.
        """
        unknown = set(changes) - set(PROFILE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")

        changed: list[str] = []
        for name in PROFILE_FIELDS:
            value = changes.get(name)
            if value is None or getattr(self, name) == value:
                continue
            setattr(self, name, value)
            changed.append(name)

        self.version += 1
        self.updated_at = now_utc()

        event = ProfileUpdated(
            aggregate_id=self.id,
            version=str(self.version),
            actor_id=actor_id,
            first_name=self.first_name,
            last_name=self.last_name,
            phone=self.phone,
            location=self.location,
            bio=self.bio,
            avatar_url=self.avatar_url,
            changed_fields=tuple(changed),
            updated_at=self.updated_at,
        )
        self._events.append(event)
        return event.changed_fields
