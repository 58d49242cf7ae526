"""Billing router - Payment collaborator webhook"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ...config import PAYMENT_WEBHOOK_SECRET
from ...database import get_db
from ...webhook_security import verify_payment_webhook
from .schemas import PaymentWebhookEvent, PaymentWebhookResponse
from .service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db)


def get_webhook_secret() -> str:
    """Overridable in tests"""
    return PAYMENT_WEBHOOK_SECRET


@router.post("/payment-webhook", response_model=PaymentWebhookResponse)
async def handle_payment_webhook(
    request: Request,
    secret: str = Depends(get_webhook_secret),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Apply a payment outcome reported by the payment collaborator.

    Headers:
      - 'X-Signature': hex(hmac_sha256(secret, raw body))
      - 'X-Timestamp': optional unix timestamp (seconds), rejected when older than 5 minutes
    """
    raw_body = await verify_payment_webhook(request, secret)

    try:
        event = PaymentWebhookEvent.model_validate_json(raw_body)
    except PydanticValidationError as e:
        logger.error(f"Invalid payment webhook payload: {e}")
        raise HTTPException(status_code=400, detail="Invalid webhook payload") from e

    logger.info(f"Payment webhook: appointment={event.appointment_id} outcome={event.outcome.value}")
    appointment = service.apply_payment_update(event.appointment_id, event.outcome, event.reference)

    return PaymentWebhookResponse(
        status="processed",
        appointment_id=appointment.id,
        appointment_status=appointment.status,
        payment_status=appointment.payment_status,
    )
