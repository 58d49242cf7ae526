"""Billing domain schemas - Pydantic models for charges and payment webhooks"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PaymentOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    EXPIRED = "expired"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class ChargeResponse(BaseModel):
    """What the client is charged and how it splits, in cents"""

    total: int
    platform_fee: int
    provider_payout: int
    base_price: int
    addon_total: int


class PaymentRequest(BaseModel):
    """Handed to the payment collaborator after a successful reservation"""

    appointment_id: int
    reservation_token: str
    total: int
    platform_fee: int
    provider_payout: int
    currency: str = "usd"


class PaymentWebhookEvent(BaseModel):
    appointment_id: int
    outcome: PaymentOutcome
    reference: Optional[str] = Field(default=None, max_length=255)


class PaymentWebhookResponse(BaseModel):
    status: str
    appointment_id: int
    appointment_status: str
    payment_status: str
