import os

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.infra.config.admin import AdminSettings
from app.infra.config.kafka import KafkaSettings
from app.infra.config.outbox import OutboxSettings
from app.infra.config.postgres import PostgreSQLSettings
from app.infra.config.sentry import SentrySettings


class Settings(BaseSettings):
    admin: AdminSettings
    postgres: PostgreSQLSettings = Field(default_factory=PostgreSQLSettings)
    kafka: KafkaSettings = Field(default_factory=KafkaSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)
    outbox: OutboxSettings = Field(default_factory=OutboxSettings)

    model_config = SettingsConfigDict(env_nested_delimiter="__")


def _generate_settings():
    load_dotenv(override=True, dotenv_path=os.getcwd() + "/.env")
    return Settings()  # type: ignore


settings = _generate_settings()
