import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):

    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db: str = "chatcache"
    redis_url: Optional[str] = None
    cache_max_messages_per_conversation: int = Field(default=100, ge=1)
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            mongodb_url=os.getenv("MONGODB_URL", "mongodb://localhost:27017"),
            mongodb_db=os.getenv("MONGODB_DB", "chatcache"),
            redis_url=os.getenv("REDIS_URL") or None,
            cache_max_messages_per_conversation=int(os.getenv("CACHE_MAX_MESSAGES_PER_CONVERSATION", "100")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_json=_env_flag("LOG_JSON"),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
