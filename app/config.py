import os
from functools import lru_cache
from typing import List

from pydantic import BaseModel, Field


DEFAULT_ORIGINS = ["http://localhost:5173", "http://127.0.0.1:5173"]


def _split_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


class Settings(BaseModel):

    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "chat_app"
    allowed_origins: List[str] = Field(default_factory=lambda: list(DEFAULT_ORIGINS))
    api_prefix: str = "/api"
    log_level: str = "INFO"
    environment: str = "development"
    fallback_display_name: str = "You"
    fallback_avatar_url: str = ""
    message_preview_length: int = Field(200, ge=1)
    max_message_length: int = Field(4000, ge=1)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def load_settings() -> Settings:
    origins = _split_origins(os.getenv("ALLOWED_ORIGINS") or os.getenv("ALLOWED_ORIGIN") or "")
    values = {
        "mongodb_uri": os.getenv("MONGODB_URI"),
        "mongodb_db": os.getenv("MONGODB_DB"),
        "allowed_origins": origins or None,
        "api_prefix": os.getenv("API_PREFIX"),
        "log_level": os.getenv("LOG_LEVEL"),
        "environment": os.getenv("ENVIRONMENT"),
        "fallback_display_name": os.getenv("FALLBACK_DISPLAY_NAME"),
        "message_preview_length": os.getenv("MESSAGE_PREVIEW_LENGTH"),
        "max_message_length": os.getenv("MAX_MESSAGE_LENGTH"),
    }
    # unset variables fall back to the model defaults
    return Settings(**{k: v for k, v in values.items() if v is not None})


@lru_cache
def get_settings() -> Settings:
    return load_settings()
