import logging
from typing import Any, Dict, List

from ..document_store import SERVICES, DocumentStore
from ..errors import InputValidationError, InvalidAmountError, PermissionDeniedError
from ..models import Service, ServiceUpsertRequest
from ..seed_data import DEFAULT_SERVICES

logger = logging.getLogger(__name__)


class CatalogService:
    """Service catalog CRUD, the category tree and the default seed."""

    def __init__(self, store: DocumentStore):
        self.store = store

    @staticmethod
    def _require_admin(profile):
        if profile is not None and profile.role != "admin":
            raise PermissionDeniedError("Only admins can manage services.")

    def list_services(self) -> List[Service]:
        return [Service.model_validate(doc) for doc in self.store.query(SERVICES)]

    def get_service(self, service_id: str) -> Service:
        return Service.model_validate(self.store.require(SERVICES, service_id))

    def _check_parent(self, parent_id, service_id=None):
        if not parent_id:
            return
        if parent_id == service_id:
            raise InputValidationError("A service cannot be its own category.")
        parent = self.store.get(SERVICES, parent_id)
        if parent is None:
            raise InputValidationError(f"Parent category '{parent_id}' does not exist.")
        if parent.get("parent_id"):
            raise InputValidationError("Categories can only be one level deep.")

    @staticmethod
    def _check_rates(request: ServiceUpsertRequest):
        if request.is_variable or not (request.customer_rate or request.agent_rate):
            return
        for label, rate in (("Customer", request.customer_rate), ("Agent", request.agent_rate)):
            if rate < request.government_fee:
                raise InvalidAmountError(
                    f"{label} rate ₹{rate:.2f} is below the government fee ₹{request.government_fee:.2f}."
                )

    def add_service(self, request: ServiceUpsertRequest, admin=None) -> Service:
        self._require_admin(admin)
        self._check_parent(request.parent_id)
        self._check_rates(request)
        data = request.model_dump(mode="json")
        service_id = self.store.add(SERVICES, data)
        logger.info(f"[Catalog] added service {service_id} ({request.name})")
        return Service(id=service_id, **data)

    def update_service(self, service_id: str, request: ServiceUpsertRequest, admin=None) -> Service:
        self._require_admin(admin)
        self.get_service(service_id)
        self._check_parent(request.parent_id, service_id)
        self._check_rates(request)
        doc = self.store.update(SERVICES, service_id, request.model_dump(mode="json"))
        return Service.model_validate(doc)

    def delete_service(self, service_id: str, admin=None) -> bool:
        self._require_admin(admin)
        self.get_service(service_id)
        if self.store.query(SERVICES, parent_id=service_id):
            raise InputValidationError("Delete or move the sub-services of this category first.")
        return self.store.delete(SERVICES, service_id)

    def service_tree(self) -> List[Dict[str, Any]]:
        """Top-level services with their sub-services nested under `children`."""
        services = self.list_services()
        children: Dict[str, List[Service]] = {}
        for service in services:
            if service.parent_id:
                children.setdefault(service.parent_id, []).append(service)

        tree = []
        for service in services:
            if service.parent_id:
                continue
            node = service.model_dump()
            node["children"] = [child.model_dump() for child in children.get(service.id, [])]
            tree.append(node)
        return tree

    def seed_services(self, force: bool = False) -> Dict[str, int]:
        """Insert the default catalog; existing ids are left alone unless forced."""
        created = updated = skipped = 0
        with self.store.transaction():
            for item in DEFAULT_SERVICES:
                service = Service.model_validate(item)
                data = service.model_dump(mode="json", exclude={"id"})
                if self.store.get(SERVICES, service.id) is None:
                    self.store.set(SERVICES, service.id, data)
                    created += 1
                elif force:
                    self.store.set(SERVICES, service.id, data)
                    updated += 1
                else:
                    skipped += 1
        logger.info(f"[Catalog Seed] created={created} updated={updated} skipped={skipped}")
        return {"created": created, "updated": updated, "skipped": skipped}
