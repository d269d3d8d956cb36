from sqlalchemy import UniqueConstraint

outbox_aggregate_sequence_unique = UniqueConstraint(
    "aggregate_id",
    "sequence",
    name="uq_outbox_aggregate_sequence",
)
