from fastapi import HTTPException, status

from chatcache.services.chat_service import (
    ChatServiceError,
    ConversationNotFoundError,
    MessageNotFoundError,
    PermissionDeniedError,
)


def to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (MessageNotFoundError, ConversationNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, ChatServiceError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
