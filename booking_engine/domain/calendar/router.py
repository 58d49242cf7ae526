"""Calendar router - Read-only calendar views for providers and clients"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_client_id, get_current_provider_id
from ...database import get_db
from ...shared.clock import Clock, get_clock
from ...shared.errors import PermissionDeniedError
from .schemas import CalendarEventResponse
from .service import CalendarService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["Calendar"])


def get_calendar_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> CalendarService:
    """Dependency injection for CalendarService"""
    return CalendarService(db, clock)


@router.get("/providers/{provider_id}", response_model=list[CalendarEventResponse])
async def provider_calendar(
    provider_id: int,
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    current_provider_id: int = Depends(get_current_provider_id),
    service: CalendarService = Depends(get_calendar_service),
):
    """Provider's own calendar; defaults to one week back and six weeks ahead"""
    if provider_id != current_provider_id:
        raise PermissionDeniedError("You can only view your own calendar", reason="not_owner")
    return [e.to_dict() for e in service.provider_calendar(provider_id, start, end)]


@router.get("/clients/me", response_model=list[CalendarEventResponse])
async def client_calendar(
    client_id: str = Depends(get_current_client_id),
    service: CalendarService = Depends(get_calendar_service),
):
    return [e.to_dict() for e in service.client_calendar(client_id)]
