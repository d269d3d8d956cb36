from app.infra.config.settings import settings

__all__ = ["settings"]
