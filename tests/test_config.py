"""
Tests for environment settings and logging setup
"""

import json
import logging
from datetime import timezone

import pytest

from chatcache import config
from chatcache.database import connection
from chatcache.utils.logging_config import StructuredFormatter


@pytest.fixture(autouse=True)
def fresh_settings():
    config.get_settings.cache_clear()
    yield
    config.get_settings.cache_clear()


def test_defaults(monkeypatch):
    for name in ("MONGODB_URL", "MONGODB_DB", "REDIS_URL", "CACHE_MAX_MESSAGES_PER_CONVERSATION", "LOG_LEVEL", "LOG_JSON"):
        monkeypatch.delenv(name, raising=False)

    settings = config.get_settings()

    assert settings.mongodb_url == "mongodb://localhost:27017"
    assert settings.mongodb_db == "chatcache"
    assert settings.redis_url is None
    assert settings.cache_max_messages_per_conversation == 100
    assert settings.log_level == "INFO"
    assert settings.log_json is False


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
    monkeypatch.setenv("CACHE_MAX_MESSAGES_PER_CONVERSATION", "25")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("LOG_JSON", "yes")

    settings = config.get_settings()

    assert settings.redis_url == "redis://cache:6379/0"
    assert settings.cache_max_messages_per_conversation == 25
    assert settings.log_level == "DEBUG"
    assert settings.log_json is True


def test_cache_bound_must_be_positive(monkeypatch):
    monkeypatch.setenv("CACHE_MAX_MESSAGES_PER_CONVERSATION", "0")

    with pytest.raises(ValueError):
        config.get_settings()


def test_structured_formatter_includes_extra_fields():
    record = logging.LogRecord("chatcache.test", logging.INFO, __file__, 10, "cached %d", (3,), None)
    record.conversation_id = "c1"

    data = json.loads(StructuredFormatter().format(record))

    assert data["message"] == "cached 3"
    assert data["level"] == "INFO"
    assert data["extra"] == {"conversation_id": "c1"}


@pytest.mark.asyncio
async def test_mongo_client_returns_aware_datetimes(monkeypatch):
    created = {}

    class FakeClient:

        def __init__(self, url, **kwargs):
            created.update(url=url, **kwargs)

        def close(self):
            return

    monkeypatch.setattr(connection, "AsyncIOMotorClient", FakeClient)

    await connection.connect_to_mongo()
    await connection.close_mongo_connection()

    assert created["tz_aware"] is True
    assert created["tzinfo"] == timezone.utc
