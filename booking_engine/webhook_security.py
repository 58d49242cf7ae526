"""
Webhook Security Module

Signature verification for the payment collaborator's status webhook:
- HMAC-SHA256 over the raw request body, hex encoded in ``X-Signature``
- Optional ``X-Timestamp`` (unix seconds) checked against a replay window
- Constant-time comparison
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300

SIGNATURE_HEADER = "X-Signature"
TIMESTAMP_HEADER = "X-Timestamp"


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_timestamp(
    timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS, now: Optional[float] = None
) -> bool:
    """
    Verify webhook timestamp is within acceptable range.
    Prevents replay attacks by rejecting old webhooks.

    Args:
        timestamp: Unix timestamp as string
        max_age: Maximum age in seconds
        now: Current unix time, defaults to time.time()

    Returns:
        True if timestamp is valid or absent, False otherwise
    """
    if not timestamp:
        return True  # Timestamp is optional

    try:
        webhook_time = int(timestamp)
    except (ValueError, TypeError):
        logger.warning(f"Invalid webhook timestamp format: {timestamp}")
        return False

    current_time = int(now if now is not None else time.time())
    age = abs(current_time - webhook_time)
    if age > max_age:
        logger.warning(f"Webhook timestamp too old: {age}s (max: {max_age}s)")
        return False

    return True


async def verify_payment_webhook(request: Request, secret: str) -> bytes:
    """
    Verify the payment webhook signature and return the raw body.

    Raises:
        HTTPException: 401 when the signature or timestamp is missing or wrong,
        503 when no webhook secret is configured
    """
    # Get raw body BEFORE any parsing
    raw_body = await request.body()

    if not secret:
        logger.error("PAYMENT_WEBHOOK_SECRET not configured, rejecting webhook")
        raise HTTPException(status_code=503, detail="Payment webhooks are not configured")

    signature = request.headers.get(SIGNATURE_HEADER, "")
    timestamp = request.headers.get(TIMESTAMP_HEADER)

    if not signature:
        logger.error("Missing payment webhook signature header")
        raise HTTPException(status_code=401, detail="Missing webhook signature")

    if not verify_timestamp(timestamp):
        raise HTTPException(status_code=401, detail="Webhook timestamp expired")

    expected = compute_hmac_sha256(secret, raw_body)
    if not constant_time_compare(expected, signature.strip().lower()):
        logger.warning(f"Payment webhook signature mismatch ({len(raw_body)} bytes)")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    return raw_body
