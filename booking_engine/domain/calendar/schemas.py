"""Calendar domain schemas - Pydantic models for calendar events"""

from datetime import datetime

from pydantic import BaseModel


class CalendarEventResponse(BaseModel):
    id: int
    public_id: str
    title: str  # "<service> - <counterparty>"
    start: datetime
    end: datetime
    temporal_status: str  # completed | missed | cancelled | past | upcoming | in_progress
    appointment_status: str
    payment_status: str
    service_name: str
    duration_minutes: int
    addon_names: list[str]
    # Prices captured at booking time, cents
    base_price: int
    addon_total: int
    total: int
    platform_fee: int
    provider_payout: int
    counterparty: str
    is_guest: bool
