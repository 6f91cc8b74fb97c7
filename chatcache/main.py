import asyncio
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from chatcache.config import get_settings
from chatcache.database.connection import close_mongo_connection, connect_to_mongo, get_database
from chatcache.repositories.conversation_repository import ConversationRepository
from chatcache.repositories.message_repository import MessageRepository
from chatcache.routers.conversations import router as conversations_router
from chatcache.routers.messages import router as messages_router
from chatcache.routers.session import router as session_router
from chatcache.services.cache_sync_service import CacheSyncService
from chatcache.services.message_cache_service import MessageCacheService
from chatcache.utils.logging_config import setup_logging
from chatcache.utils.realtime_bus import CACHE_EVENTS_CHANNEL, close_bus, get_bus


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    settings = get_settings()

    await connect_to_mongo()
    db = get_database()
    await MessageRepository(db).ensure_indexes()
    await ConversationRepository(db).ensure_indexes()

    app.state.cache = MessageCacheService(settings.cache_max_messages_per_conversation)
    app.state.cache_sync = CacheSyncService(app.state.cache, instance_id=uuid.uuid4().hex)
    app.state.bus = await get_bus()
    subscriber = await app.state.bus.subscribe(CACHE_EVENTS_CHANNEL, app.state.cache_sync.handle)
    sub_task = asyncio.create_task(subscriber.run())
    logger.info("Chat service started (instance %s)", app.state.cache_sync.instance_id)
    try:
        yield
    finally:
        await subscriber.cancel()
        sub_task.cancel()
        await close_bus()
        await close_mongo_connection()


app = FastAPI(title="Chat service with conversation cache", lifespan=lifespan)


app.include_router(conversations_router)
app.include_router(messages_router)
app.include_router(session_router)


@app.get("/")
async def root(request: Request):

    return {"status": "ok", "cache": request.app.state.cache.stats()}
