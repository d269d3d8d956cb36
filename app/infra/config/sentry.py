from pydantic import BaseModel, Field


class SentrySettings(BaseModel):
    dsn: str | None = Field(default=None)
