from typing import Optional

from fastapi import APIRouter, Depends, Query

from chatcache.routers.errors import to_http_error
from chatcache.services.chat_service import ChatService, ChatServiceError
from chatcache.utils.dependencies import get_chat_service, get_current_user


router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("")
async def list_conversations(limit: int = Query(20, ge=1, le=100), force_refresh: bool = False, current_user: str = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    try:
        items = await service.get_conversations(current_user, limit=limit, force_refresh=force_refresh)
    except (ValueError, ChatServiceError) as exc:
        raise to_http_error(exc) from exc
    return {"items": [c.model_dump(mode="json") for c in items]}


@router.get("/{conversation_id}/messages")
async def list_messages(conversation_id: str, limit: int = Query(30, ge=1, le=100), before: Optional[str] = None, force_refresh: bool = False, current_user: str = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    try:
        messages = await service.get_messages(conversation_id, user_id=current_user, limit=limit, before_message_id=before, force_refresh=force_refresh)
    except (ValueError, ChatServiceError) as exc:
        raise to_http_error(exc) from exc
    next_cursor = messages[-1].id if len(messages) == limit else None
    return {"items": [m.model_dump(mode="json") for m in messages], "next_cursor": next_cursor}


@router.post("/{conversation_id}/read")
async def mark_read(conversation_id: str, current_user: str = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    try:
        count = await service.mark_read(conversation_id, current_user)
    except (ValueError, ChatServiceError) as exc:
        raise to_http_error(exc) from exc
    return {"updated": count}


@router.delete("/{conversation_id}")
async def delete_conversation(conversation_id: str, current_user: str = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    try:
        await service.delete_conversation(conversation_id, current_user)
    except (ValueError, ChatServiceError) as exc:
        raise to_http_error(exc) from exc
    return {"msg": "Conversation deleted"}
