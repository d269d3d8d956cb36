from datetime import datetime

from pydantic import Field

from app.domains.profile import UserProfile
from app.schemas.base import CamelSchema


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class UserProfileResponse(CamelSchema):
    id: str
    user_id: str
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    location: str | None = None
    bio: str | None = None
    avatar_url: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_domain(cls, profile: UserProfile) -> "UserProfileResponse":
        return cls(
            id=str(profile.id),
            user_id=str(profile.id),
            first_name=profile.first_name,
            last_name=profile.last_name,
            phone=profile.phone,
            location=profile.location,
            bio=profile.bio,
            avatar_url=profile.avatar_url,
            created_at=_iso(profile.created_at),
            updated_at=_iso(profile.updated_at),
        )


class ProfileUpdateRequest(CamelSchema):
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    phone: str | None = Field(
        default=None, max_length=32, pattern=r"^\+?[0-9 ()\-]{3,32}$"
    )
    location: str | None = Field(default=None, max_length=255)
    bio: str | None = Field(default=None, max_length=2000)
    avatar_url: str | None = Field(default=None, max_length=2048)


class AvatarUpdateRequest(CamelSchema):
    avatar_url: str = Field(min_length=1, max_length=2048)


class AvatarUpdateResponse(CamelSchema):
    message: str
    avatar_url: str


class ActivityEntry(CamelSchema):
    id: str
    event_type: str
    changed_fields: list[str]
    occurred_at: str
