from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class CamelSchema(BaseModel):
    """Schema exchanged with HTTP clients, which speak camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
