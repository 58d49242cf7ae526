"""Catalog router - FastAPI endpoints for providers, services, add-ons and client profiles"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_admin_id, get_current_client_id, get_current_provider_id
from ...database import get_db
from .schemas import (
    AddOnCreate,
    AddOnResponse,
    AddOnUpdate,
    ClientProfileResponse,
    ClientProfileUpdate,
    OperatorFlagUpdate,
    ProviderCreate,
    ProviderResponse,
    ProviderUpdate,
    ServiceCreate,
    ServiceResponse,
    ServiceUpdate,
)
from .service import CatalogService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/catalog", tags=["Catalog"])


def get_catalog_service(db: Session = Depends(get_db)) -> CatalogService:
    """Dependency injection for CatalogService"""
    return CatalogService(db)


# ============================================================================
# PROVIDERS
# ============================================================================


@router.post("/providers", response_model=ProviderResponse, status_code=201)
async def create_provider(
    data: ProviderCreate,
    service: CatalogService = Depends(get_catalog_service),
):
    """Register a provider profile"""
    return service.create_provider(data)


@router.get("/providers/{provider_id}", response_model=ProviderResponse)
async def get_provider(
    provider_id: int,
    service: CatalogService = Depends(get_catalog_service),
):
    return service.get_provider(provider_id, active_only=True)


@router.patch("/providers/me", response_model=ProviderResponse)
async def update_my_provider(
    data: ProviderUpdate,
    provider_id: int = Depends(get_current_provider_id),
    service: CatalogService = Depends(get_catalog_service),
):
    """Update profile fields and booking restrictions"""
    return service.update_provider(provider_id, data)


@router.put("/providers/{provider_id}/operator", response_model=ProviderResponse)
async def set_operator_flag(
    provider_id: int,
    data: OperatorFlagUpdate,
    admin_id: str = Depends(get_current_admin_id),
    service: CatalogService = Depends(get_catalog_service),
):
    """Turn payment-free operator mode on or off (admin function)"""
    return service.set_operator(provider_id, data, admin_id)


# ============================================================================
# SERVICES & ADD-ONS
# ============================================================================


@router.get("/providers/{provider_id}/services", response_model=list[ServiceResponse])
async def list_services(
    provider_id: int,
    service: CatalogService = Depends(get_catalog_service),
):
    return service.list_services(provider_id)


@router.get("/providers/{provider_id}/addons", response_model=list[AddOnResponse])
async def list_addons(
    provider_id: int,
    service: CatalogService = Depends(get_catalog_service),
):
    return service.list_addons(provider_id)


@router.get("/services", response_model=list[ServiceResponse])
async def list_my_services(
    include_inactive: bool = Query(True),
    provider_id: int = Depends(get_current_provider_id),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.list_services(provider_id, include_inactive=include_inactive)


@router.post("/services", response_model=ServiceResponse, status_code=201)
async def create_service(
    data: ServiceCreate,
    provider_id: int = Depends(get_current_provider_id),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.create_service(provider_id, data)


@router.patch("/services/{service_id}", response_model=ServiceResponse)
async def update_service(
    service_id: int,
    data: ServiceUpdate,
    provider_id: int = Depends(get_current_provider_id),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.update_service(provider_id, service_id, data)


@router.post("/addons", response_model=AddOnResponse, status_code=201)
async def create_addon(
    data: AddOnCreate,
    provider_id: int = Depends(get_current_provider_id),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.create_addon(provider_id, data)


@router.patch("/addons/{addon_id}", response_model=AddOnResponse)
async def update_addon(
    addon_id: int,
    data: AddOnUpdate,
    provider_id: int = Depends(get_current_provider_id),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.update_addon(provider_id, addon_id, data)


# ============================================================================
# CLIENT PROFILE
# ============================================================================


@router.get("/clients/me", response_model=ClientProfileResponse)
async def get_my_profile(
    client_id: str = Depends(get_current_client_id),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.get_client_profile(client_id)


@router.put("/clients/me", response_model=ClientProfileResponse)
async def save_my_profile(
    data: ClientProfileUpdate,
    client_id: str = Depends(get_current_client_id),
    service: CatalogService = Depends(get_catalog_service),
):
    """Store the display data other parties see on calendars"""
    return service.save_client_profile(client_id, data)
