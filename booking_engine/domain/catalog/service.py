"""Catalog service - Business logic for providers, services and add-ons"""

import logging

from sqlalchemy.orm import Session

from ...config import STORE_TIMEOUT_SECONDS
from ...database import bounded_transaction
from ...models import AddOn, Client, Provider, Service
from ...shared.errors import NotFoundError
from .repository import ServiceCatalog
from .schemas import (
    AddOnCreate,
    AddOnUpdate,
    ClientProfileUpdate,
    OperatorFlagUpdate,
    ProviderCreate,
    ProviderUpdate,
    ServiceCreate,
    ServiceUpdate,
)

logger = logging.getLogger(__name__)

# Restrictions where None means "no limit"; every other field ignores an explicit null
NULLABLE_PROVIDER_FIELDS = {"max_bookings_per_day", "advance_booking_days"}


class CatalogService:
    """Service layer for the provider catalog"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ServiceCatalog()

    def get_provider(self, provider_id: int, active_only: bool = False) -> Provider:
        provider = self.repo.get_provider(self.db, provider_id)
        if not provider or (active_only and not provider.is_active):
            raise NotFoundError("Provider not found", reason="provider_not_found")
        return provider

    def create_provider(self, data: ProviderCreate) -> Provider:
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            provider = self.repo.create_provider(self.db, **data.model_dump())
        logger.info(f"Created provider {provider.id} ({provider.timezone})")
        return provider

    def update_provider(self, provider_id: int, data: ProviderUpdate) -> Provider:
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            provider = self.get_provider(provider_id)
            updates = {
                key: value
                for key, value in data.model_dump(exclude_unset=True).items()
                if value is not None or key in NULLABLE_PROVIDER_FIELDS
            }
            self.repo.update_provider(self.db, provider, **updates)
        return provider

    def set_operator(self, provider_id: int, data: OperatorFlagUpdate, admin_id: str) -> Provider:
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            provider = self.get_provider(provider_id)
            self.repo.update_provider(self.db, provider, is_operator=data.is_operator)
        logger.warning(f"Admin {admin_id} set is_operator={data.is_operator} on provider {provider_id}")
        return provider

    def list_services(self, provider_id: int, include_inactive: bool = False) -> list[Service]:
        self.get_provider(provider_id)
        return self.repo.list_services(self.db, provider_id, active_only=not include_inactive)

    def get_service(self, provider_id: int, service_id: int) -> Service:
        service = self.repo.get_service(self.db, provider_id, service_id)
        if not service:
            raise NotFoundError("Service not found", reason="service_not_found")
        return service

    def create_service(self, provider_id: int, data: ServiceCreate) -> Service:
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            self.get_provider(provider_id)
            service = self.repo.create_service(self.db, provider_id, **data.model_dump())
        logger.info(f"Provider {provider_id} added service {service.id}")
        return service

    def update_service(self, provider_id: int, service_id: int, data: ServiceUpdate) -> Service:
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            service = self.get_service(provider_id, service_id)
            self.repo.update_service(self.db, service, **data.model_dump(exclude_unset=True, exclude_none=True))
        return service

    def list_addons(self, provider_id: int, include_inactive: bool = False) -> list[AddOn]:
        self.get_provider(provider_id)
        return self.repo.list_addons(self.db, provider_id, active_only=not include_inactive)

    def create_addon(self, provider_id: int, data: AddOnCreate) -> AddOn:
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            self.get_provider(provider_id)
            addon = self.repo.create_addon(self.db, provider_id, **data.model_dump())
        return addon

    def update_addon(self, provider_id: int, addon_id: int, data: AddOnUpdate) -> AddOn:
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            addon = self.repo.get_addon(self.db, provider_id, addon_id)
            if not addon:
                raise NotFoundError("Add-on not found", reason="addon_not_found")
            self.repo.update_addon(self.db, addon, **data.model_dump(exclude_unset=True, exclude_none=True))
        return addon

    def get_client_profile(self, client_id: str) -> Client:
        client = self.repo.get_client(self.db, client_id)
        if not client:
            raise NotFoundError("Client profile not found", reason="client_not_found")
        return client

    def save_client_profile(self, client_id: str, data: ClientProfileUpdate) -> Client:
        with bounded_transaction(self.db, STORE_TIMEOUT_SECONDS):
            client = self.repo.upsert_client(self.db, client_id, **data.model_dump())
        return client
