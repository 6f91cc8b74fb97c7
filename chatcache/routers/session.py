from fastapi import APIRouter, Depends

from chatcache.services.chat_service import ChatService
from chatcache.utils.dependencies import get_chat_service, get_current_user


router = APIRouter(prefix="/session", tags=["session"])


@router.post("/sign-out")
async def sign_out(current_user: str = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    service.sign_out(current_user)
    return {"msg": "Signed out"}
