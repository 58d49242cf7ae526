"""Service catalog repository - Database operations for providers, services, add-ons and clients"""

from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...models import AddOn, Client, Provider, Service


class ServiceCatalog:
    """Repository for catalog lookups. Callers own the transaction."""

    @staticmethod
    def get_provider(db: Session, provider_id: int) -> Optional[Provider]:
        return db.query(Provider).filter(Provider.id == provider_id).first()

    @staticmethod
    def get_providers(db: Session, provider_ids: Iterable[int]) -> dict[int, Provider]:
        ids = set(provider_ids)
        if not ids:
            return {}
        return {p.id: p for p in db.query(Provider).filter(Provider.id.in_(ids)).all()}

    @staticmethod
    def create_provider(db: Session, **values) -> Provider:
        provider = Provider(**values)
        db.add(provider)
        db.flush()
        return provider

    @staticmethod
    def update_provider(db: Session, provider: Provider, **updates) -> Provider:
        for key, value in updates.items():
            setattr(provider, key, value)
        db.flush()
        return provider

    @staticmethod
    def list_services(db: Session, provider_id: int, active_only: bool = True) -> list[Service]:
        query = db.query(Service).filter(Service.provider_id == provider_id)
        if active_only:
            query = query.filter(Service.is_active == True)  # noqa: E712
        return query.order_by(Service.name).all()

    @staticmethod
    def get_service(db: Session, provider_id: int, service_id: int) -> Optional[Service]:
        """Get a service only if it belongs to the provider"""
        return (
            db.query(Service)
            .filter(Service.id == service_id, Service.provider_id == provider_id)
            .first()
        )

    @staticmethod
    def get_services(db: Session, service_ids: Iterable[int]) -> dict[int, Service]:
        ids = set(service_ids)
        if not ids:
            return {}
        return {s.id: s for s in db.query(Service).filter(Service.id.in_(ids)).all()}

    @staticmethod
    def create_service(db: Session, provider_id: int, **values) -> Service:
        service = Service(provider_id=provider_id, **values)
        db.add(service)
        db.flush()
        return service

    @staticmethod
    def update_service(db: Session, service: Service, **updates) -> Service:
        for key, value in updates.items():
            setattr(service, key, value)
        db.flush()
        return service

    @staticmethod
    def list_addons(db: Session, provider_id: int, active_only: bool = True) -> list[AddOn]:
        query = db.query(AddOn).filter(AddOn.provider_id == provider_id)
        if active_only:
            query = query.filter(AddOn.is_active == True)  # noqa: E712
        return query.order_by(AddOn.name).all()

    @staticmethod
    def get_addons(db: Session, provider_id: int, addon_ids: Iterable[int]) -> list[AddOn]:
        """Get the requested add-ons that belong to the provider, in id order"""
        ids = set(addon_ids)
        if not ids:
            return []
        return (
            db.query(AddOn)
            .filter(AddOn.provider_id == provider_id, AddOn.id.in_(ids))
            .order_by(AddOn.id)
            .all()
        )

    @staticmethod
    def get_addon(db: Session, provider_id: int, addon_id: int) -> Optional[AddOn]:
        return db.query(AddOn).filter(AddOn.id == addon_id, AddOn.provider_id == provider_id).first()

    @staticmethod
    def create_addon(db: Session, provider_id: int, **values) -> AddOn:
        addon = AddOn(provider_id=provider_id, **values)
        db.add(addon)
        db.flush()
        return addon

    @staticmethod
    def update_addon(db: Session, addon: AddOn, **updates) -> AddOn:
        for key, value in updates.items():
            setattr(addon, key, value)
        db.flush()
        return addon

    @staticmethod
    def get_client(db: Session, client_id: str) -> Optional[Client]:
        return db.query(Client).filter(Client.id == client_id).first()

    @staticmethod
    def get_clients(db: Session, client_ids: Iterable[str]) -> dict[str, Client]:
        ids = {c for c in client_ids if c}
        if not ids:
            return {}
        return {c.id: c for c in db.query(Client).filter(Client.id.in_(ids)).all()}

    @staticmethod
    def upsert_client(db: Session, client_id: str, **values) -> Client:
        client = db.query(Client).filter(Client.id == client_id).first()
        if client is None:
            client = Client(id=client_id)
            db.add(client)
        for key, value in values.items():
            setattr(client, key, value)
        db.flush()
        return client
