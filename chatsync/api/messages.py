"""
Message endpoints: send and fetch.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, status

from chatsync.api.deps import get_current_identity, get_messaging_service
from chatsync.core.logging import get_logger
from chatsync.schemas.conversation import ConversationRef
from chatsync.schemas.message import ErrorResponse, Message, MessagesListResponse, SendMessageRequest
from chatsync.services.messaging import MessagingService

logger = get_logger(__name__)

router = APIRouter(tags=["Messages"])


@router.post(
    "/messages",
    response_model=Message,
    status_code=status.HTTP_201_CREATED,
    responses={
        422: {"model": ErrorResponse, "description": "Invalid recipient or empty message"},
    },
    summary="Send a message",
    description="Send to an app identity or, via SMS fallback, to an E.164 number."
)
async def send_message(
    payload: SendMessageRequest,
    identity: Annotated[str, Depends(get_current_identity)],
    service: Annotated[MessagingService, Depends(get_messaging_service)],
) -> Message:
    """
    Send a message as the calling identity.

    - Recipients starting with **+** go to the SMS conversation for that number
    - Anything else is an app identity; the conversation is shared by both parties
    """
    return service.send_message(
        identity,
        payload.recipient,
        payload.content,
        payload.type,
        payload.media_ref,
        payload.contact_name,
    )


@router.get(
    "/conversations/{ref}/messages",
    response_model=MessagesListResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Not a member"},
        404: {"model": ErrorResponse, "description": "Unknown conversation"},
    },
    summary="List messages",
    description="Messages of one conversation, oldest first."
)
async def list_messages(
    ref: str,
    identity: Annotated[str, Depends(get_current_identity)],
    service: Annotated[MessagingService, Depends(get_messaging_service)],
) -> MessagesListResponse:
    messages = service.fetch_messages(ConversationRef.parse(ref), viewer=identity)

    logger.debug(
        "Listed messages",
        extra={"extra_data": {"conversation_id": ref, "returned": len(messages)}}
    )

    return MessagesListResponse(data=messages, total=len(messages))
