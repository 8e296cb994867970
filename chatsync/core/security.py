"""
HMAC-SHA256 signature validation for the inbound SMS webhook.
"""
import hmac
import hashlib
from typing import Optional

from fastapi import Request, HTTPException, Depends

from chatsync.core.config import get_settings, Settings
from chatsync.core.logging import get_logger

logger = get_logger(__name__)


def compute_signature(secret: str, body: bytes) -> str:
    """
    Compute HMAC-SHA256 signature for the given body.

    Args:
        secret: The webhook secret key
        body: Raw request body bytes

    Returns:
        Hex-encoded HMAC-SHA256 signature
    """
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=body,
        digestmod=hashlib.sha256
    ).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """Verify HMAC-SHA256 signature using constant-time comparison."""
    expected_signature = compute_signature(secret, body)
    return hmac.compare_digest(expected_signature, signature)


async def get_validated_body(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> bytes:
    """
    Validate the X-Signature header against the request body.

    Returns:
        The raw request body bytes if valid

    Raises:
        HTTPException: 401 if signature is missing or invalid
    """
    signature: Optional[str] = request.headers.get("X-Signature")

    if not signature:
        logger.warning("Webhook request missing X-Signature header")
        raise HTTPException(status_code=401, detail="invalid signature")

    if not settings.is_webhook_secret_configured:
        logger.error("WEBHOOK_SECRET environment variable not configured")
        raise HTTPException(status_code=401, detail="invalid signature")

    body = await request.body()

    if not verify_signature(settings.webhook_secret, body, signature):
        logger.warning(
            "Webhook signature verification failed",
            extra={
                "extra_data": {
                    "received_signature": signature[:16] + "...",  # Log partial for debugging
                }
            }
        )
        raise HTTPException(status_code=401, detail="invalid signature")

    logger.debug("Webhook signature verified successfully")
    return body
