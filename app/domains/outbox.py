from enum import StrEnum


class OutboxStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PUBLISHED = "published"
    FAILED = "failed"


# Records in these states keep later records of the same aggregate waiting.
BLOCKING_STATUSES = (OutboxStatus.PENDING, OutboxStatus.IN_PROGRESS)
