"""
Webhook endpoint for inbound SMS from the carrier gateway.
"""
import json
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from chatsync.api.deps import get_messaging_service
from chatsync.core.errors import DuplicateMessage
from chatsync.core.security import get_validated_body
from chatsync.core.logging import get_logger
from chatsync.schemas.message import ErrorResponse, InboundSmsRequest, WebhookResponse
from chatsync.services.messaging import MessagingService

logger = get_logger(__name__)

router = APIRouter(tags=["Webhook"])


@router.post(
    "/webhook/sms",
    response_model=WebhookResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid signature"},
        422: {"model": ErrorResponse, "description": "Validation error"},
    },
    summary="Ingest inbound SMS",
    description="Store an SMS received for one of our users. Requires valid HMAC-SHA256 signature."
)
async def ingest_sms(
    validated_body: Annotated[bytes, Depends(get_validated_body)],
    service: Annotated[MessagingService, Depends(get_messaging_service)],
) -> WebhookResponse:
    """
    Ingest an inbound SMS.

    - Validates HMAC-SHA256 signature (via dependency)
    - Validates message payload
    - Appends to the owner's SMS conversation; a repeated message_id returns ok
    """
    # Parse and validate the JSON body
    try:
        data = json.loads(validated_body)
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in webhook request: {e}")
        raise HTTPException(status_code=422, detail="Invalid JSON")

    # Validate with Pydantic
    try:
        sms = InboundSmsRequest.model_validate(data)
    except Exception as e:
        logger.warning(f"Validation error in webhook request: {e}")
        raise HTTPException(status_code=422, detail=str(e))

    try:
        message = service.receive_sms(sms.to, sms.from_, sms.text, external_id=sms.message_id)
    except DuplicateMessage:
        logger.info(
            "Duplicate SMS received, returning ok",
            extra={"extra_data": {"external_id": sms.message_id}}
        )
        return WebhookResponse(status="ok")

    logger.info(
        "SMS ingested successfully",
        extra={
            "extra_data": {
                "external_id": sms.message_id,
                "conversation_id": message.conversation_id,
            }
        }
    )
    return WebhookResponse(status="ok")
