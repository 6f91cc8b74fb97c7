from fastapi import Depends, Header, HTTPException, Request, status

from chatcache.database.connection import mongo_db_dependency
from chatcache.repositories.conversation_repository import ConversationRepository
from chatcache.repositories.message_repository import MessageRepository
from chatcache.services.cache_sync_service import CacheSyncService
from chatcache.services.chat_service import ChatService
from chatcache.services.message_cache_service import MessageCacheService


def get_cache(request: Request) -> MessageCacheService:
    return request.app.state.cache


def get_cache_sync(request: Request) -> CacheSyncService:
    return request.app.state.cache_sync


def get_chat_service(
    request: Request,
    db=Depends(mongo_db_dependency),
    cache: MessageCacheService = Depends(get_cache),
    sync: CacheSyncService = Depends(get_cache_sync),
) -> ChatService:
    return ChatService(
        MessageRepository(db),
        ConversationRepository(db),
        cache,
        bus=getattr(request.app.state, "bus", None),
        sync=sync,
    )


async def get_current_user(x_user_id: str | None = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id.strip()
