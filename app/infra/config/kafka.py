from pydantic import BaseModel, Field


class KafkaSettings(BaseModel):
    bootstrap_servers: str = Field(default="localhost:9092")
    profile_topic: str = Field(default="profile.events")
    consumer_group: str = Field(default="profile-activity")
