import json
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Self, Type, TypedDict, cast
from uuid import NAMESPACE_URL, UUID, uuid5


class EventEnvelope(TypedDict):
    """Wire form of an event, as stored in the outbox and sent to the broker."""

    event_type: str
    id: str
    aggregate_id: str
    version: str
    occurred_at: str
    payload: dict[str, Any]


_ENVELOPE_FIELDS = frozenset(EventEnvelope.__annotations__)


def _to_plain(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat(timespec="microseconds")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    return value


@dataclass(frozen=True, slots=True)
class DomainEvent:
    aggregate_id: UUID
    version: str

    # Internal fields
    id: UUID = field(init=False)  # Deterministic field
    occurred_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc), init=False
    )

    topic: ClassVar[str | None] = None
    _registry: ClassVar[dict[str, Type["DomainEvent"]]] = {}

    def __post_init__(self):
        object.__setattr__(  # workaround with frozen=True
            self,
            "id",
            uuid5(
                NAMESPACE_URL,
                f"{self.aggregate_id}:{self.version}:{self.__class__.__name__}",
            ),
        )

    def __init_subclass__(cls):
        DomainEvent._registry[cls.__name__] = cls

    def payload(self) -> dict[str, Any]:
        """Subclass fields as JSON-native values."""
        return {
            f.name: _to_plain(getattr(self, f.name))
            for f in fields(self)
            if f.name not in _ENVELOPE_FIELDS
        }

    def to_dict(self) -> EventEnvelope:
        return {
            "event_type": self.name,
            "id": str(self.id),
            "aggregate_id": str(self.aggregate_id),
            "version": self.version,
            "occurred_at": self.occurred_at.isoformat(timespec="microseconds"),
            "payload": self.payload(),
        }

    def serialize(self) -> str:
        """
        Canonical JSON form of the envelope.

        Keys are sorted so equal events always produce equal bytes.
        Raises `TypeError` / `ValueError` for values JSON can't represent.
        """
        return json.dumps(
            self.to_dict(), sort_keys=True, separators=(",", ":"), allow_nan=False
        )

    @classmethod
    def from_dict(cls: type[Self], data: dict[str, Any]) -> Self:
        name = data["event_type"]
        ev_cls = cast(type[Self], DomainEvent._registry[name])
        payload = data.get("payload", {})

        kwargs: dict[str, Any] = {
            "aggregate_id": UUID(data["aggregate_id"]),
            "version": data["version"],
            **ev_cls._restore_payload(payload),
        }

        obj: Self = ev_cls(**kwargs)
        object.__setattr__(obj, "id", UUID(data["id"]))
        object.__setattr__(
            obj, "occurred_at", datetime.fromisoformat(data["occurred_at"])
        )
        return obj

    @classmethod
    def _restore_payload(cls, payload: dict[str, Any]) -> dict[str, Any]:
        """Hook for subclasses whose payload holds non-JSON types."""
        return dict(payload)

    @property
    def name(self) -> str:
        return self.__class__.__name__
