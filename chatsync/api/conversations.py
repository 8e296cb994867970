"""
Conversation list and read-state endpoints.
"""
from typing import Annotated

from fastapi import APIRouter, Depends

from chatsync.api.deps import get_current_identity, get_messaging_service
from chatsync.schemas.conversation import ConversationListResponse, ConversationRef, ReadResponse
from chatsync.schemas.message import ErrorResponse
from chatsync.services.messaging import MessagingService

router = APIRouter(prefix="/conversations", tags=["Conversations"])


@router.get(
    "",
    response_model=ConversationListResponse,
    summary="List conversations",
    description="App and SMS conversations of the caller, most recent first."
)
async def list_conversations(
    identity: Annotated[str, Depends(get_current_identity)],
    service: Annotated[MessagingService, Depends(get_messaging_service)],
) -> ConversationListResponse:
    conversations = service.list_conversations(identity)
    return ConversationListResponse(data=conversations, total=len(conversations))


@router.post(
    "/{ref}/read",
    response_model=ReadResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Not a member"},
        404: {"model": ErrorResponse, "description": "Unknown conversation"},
    },
    summary="Open a conversation",
    description="Mark every unread message addressed to the caller as read."
)
async def open_conversation(
    ref: str,
    identity: Annotated[str, Depends(get_current_identity)],
    service: Annotated[MessagingService, Depends(get_messaging_service)],
) -> ReadResponse:
    count = service.open_conversation(ConversationRef.parse(ref), identity)
    return ReadResponse(conversation_id=ref, marked_read=count)
