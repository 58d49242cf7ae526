"""
Calendar Event Projector

Turns appointments into display-ready events. Nothing here is stored; events
are rebuilt on every read from the appointment rows and the prices captured
on them at booking time.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence

from ...models import Appointment, AppointmentStatus
from ...shared.errors import InvariantViolation

VIEWER_PROVIDER = "provider"
VIEWER_CLIENT = "client"

# Temporal statuses
COMPLETED = "completed"
MISSED = "missed"
CANCELLED = "cancelled"
PAST = "past"
UPCOMING = "upcoming"
IN_PROGRESS = "in_progress"

_CANCELLED_STATUSES = {
    AppointmentStatus.CANCELLED.value,
    AppointmentStatus.FAILED.value,
    AppointmentStatus.EXPIRED.value,
}


@dataclass(frozen=True)
class CalendarEvent:
    id: int
    public_id: str
    title: str
    start: datetime
    end: datetime
    temporal_status: str
    appointment_status: str
    payment_status: str
    service_name: str
    duration_minutes: int
    addon_names: tuple
    base_price: int
    addon_total: int
    total: int
    platform_fee: int
    provider_payout: int
    counterparty: str
    is_guest: bool

    def to_dict(self) -> dict:
        data = asdict(self)
        data["addon_names"] = list(self.addon_names)
        return data


def temporal_status(now: datetime, start: datetime, end: datetime, status: str) -> str:
    """Classify an appointment from its status and where ``now`` falls in [start, end)"""
    if status == AppointmentStatus.COMPLETED.value:
        return COMPLETED
    if status == AppointmentStatus.MISSED.value:
        return MISSED
    if status in _CANCELLED_STATUSES:
        return CANCELLED
    if now >= end:
        return PAST
    if start > now:
        return UPCOMING
    return IN_PROGRESS


def _counterparty(appointment: Appointment, viewer_role: str, clients: Mapping, providers: Mapping) -> str:
    if viewer_role == VIEWER_CLIENT:
        provider = providers.get(appointment.provider_id)
        return provider.display_name if provider else "Provider"

    if appointment.client_id:
        client = clients.get(appointment.client_id)
        if client and client.display_name:
            return client.display_name
    return appointment.guest_name or "Guest"


def project(
    appointments: Iterable[Appointment],
    services: Mapping[int, object],
    addons: Optional[Mapping[int, Sequence]],
    viewer_role: str,
    *,
    now: datetime,
    clients: Optional[Mapping[str, object]] = None,
    providers: Optional[Mapping[int, object]] = None,
) -> list[CalendarEvent]:
    """
    Project appointments into calendar events, ordered by start.

    Args:
        appointments: appointment rows
        services: service rows by id, for name and duration
        addons: captured add-on lines by appointment id; falls back to
            ``appointment.addons`` when None or missing
        viewer_role: "provider" (sees the client or guest) or "client" (sees the provider)
        now: current instant
        clients: client profiles by id, for provider viewers
        providers: providers by id, for client viewers
    """
    if viewer_role not in (VIEWER_PROVIDER, VIEWER_CLIENT):
        raise InvariantViolation(f"Unknown calendar viewer role: {viewer_role}")

    clients = clients or {}
    providers = providers or {}
    addons = addons or {}

    events = []
    for appointment in appointments:
        service = services.get(appointment.service_id)
        service_name = service.name if service else "Service"
        duration = int((appointment.end_time - appointment.start_time).total_seconds() // 60)

        lines = addons.get(appointment.id)
        if lines is None:
            lines = appointment.addons or []

        counterparty = _counterparty(appointment, viewer_role, clients, providers)
        events.append(
            CalendarEvent(
                id=appointment.id,
                public_id=appointment.public_id,
                title=f"{service_name} - {counterparty}",
                start=appointment.start_time,
                end=appointment.end_time,
                temporal_status=temporal_status(
                    now, appointment.start_time, appointment.end_time, appointment.status
                ),
                appointment_status=appointment.status,
                payment_status=appointment.payment_status,
                service_name=service_name,
                duration_minutes=duration,
                addon_names=tuple(line.name for line in lines),
                base_price=appointment.base_price,
                addon_total=sum(line.price_cents for line in lines),
                total=appointment.total,
                platform_fee=appointment.platform_fee,
                provider_payout=appointment.provider_payout,
                counterparty=counterparty,
                is_guest=appointment.is_guest,
            )
        )

    events.sort(key=lambda e: (e.start, e.id))
    return events
