from fastapi import APIRouter, Depends, status

from chatcache.routers.errors import to_http_error
from chatcache.schemas.message import MessageCreate, MessageEdit
from chatcache.services.chat_service import ChatService, ChatServiceError
from chatcache.utils.dependencies import get_chat_service, get_current_user


router = APIRouter(prefix="/messages", tags=["chat"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def send_message(body: MessageCreate, current_user: str = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    try:
        message = await service.send_message(
            current_user,
            body.receiver_id,
            body.content,
            message_type=body.type,
            media_path=body.media_path,
            metadata=body.metadata,
        )
    except (ValueError, ChatServiceError) as exc:
        raise to_http_error(exc) from exc
    return message.model_dump(mode="json")


@router.patch("/{message_id}")
async def edit_message(message_id: str, body: MessageEdit, current_user: str = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    try:
        message = await service.edit_message(message_id, current_user, body.content)
    except (ValueError, ChatServiceError) as exc:
        raise to_http_error(exc) from exc
    return message.model_dump(mode="json")


@router.delete("/{message_id}")
async def delete_message(message_id: str, for_everyone: bool = False, current_user: str = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    try:
        await service.delete_message(message_id, current_user, delete_for_everyone=for_everyone)
    except (ValueError, ChatServiceError) as exc:
        raise to_http_error(exc) from exc
    return {"msg": "Message deleted"}
