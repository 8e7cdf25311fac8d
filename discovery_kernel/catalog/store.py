"""
Service Catalog — the snapshot of service records the matcher runs over.

Loaded from: an external catalog (JSON file, API or database)
Queried by: Query Orchestrator, through the CatalogLookup protocol
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from pydantic import BaseModel, TypeAdapter

from discovery_kernel.errors import CatalogUnavailable
from discovery_kernel.models.service import ServiceCategory, ServiceRecord

logger = logging.getLogger(__name__)

_SERVICE_LIST = TypeAdapter(List[ServiceRecord])


class CatalogLookup(Protocol):
    """Protocol for catalog access — pluggable backend. Raises CatalogUnavailable."""

    def lookup(
        self, category: Optional[ServiceCategory], region: Optional[str]
    ) -> List[ServiceRecord]: ...


class InMemoryCatalog:
    """
    In-memory service catalog for the prototype.
    Production would read from the department's service registry.
    """

    def __init__(self, services: Optional[List[ServiceRecord]] = None):
        self._services: Dict[str, ServiceRecord] = {}
        for service in services or []:
            self.upsert_service(service)

    def upsert_service(self, service: ServiceRecord) -> None:
        """Insert or replace a service record."""
        self._services[service.id] = service

    def get_service(self, service_id: str) -> Optional[ServiceRecord]:
        return self._services.get(service_id)

    def remove_service(self, service_id: str) -> bool:
        if service_id in self._services:
            del self._services[service_id]
            return True
        return False

    def all_services(self) -> List[ServiceRecord]:
        """All services, ordered by id."""
        return [self._services[k] for k in sorted(self._services)]

    def count(self) -> int:
        return len(self._services)

    def lookup(
        self, category: Optional[ServiceCategory], region: Optional[str]
    ) -> List[ServiceRecord]:
        """
        Services serving the region. A concrete category narrows the result;
        None or OTHER returns every category.
        """
        return [
            s for s in self.all_services()
            if s.serves_region(region)
            and (category in (None, ServiceCategory.OTHER) or s.category == category)
        ]


def load_catalog(path: str) -> InMemoryCatalog:
    """Load a catalog from a JSON file holding a list of service records."""
    raw = Path(path).read_text(encoding="utf-8")
    services = _SERVICE_LIST.validate_json(raw)
    logger.info("Loaded %d services from %s", len(services), path)
    return InMemoryCatalog(services)


class CatalogSnapshot(BaseModel):
    """What the orchestrator gets back: the records and where they came from."""

    services: List[ServiceRecord] = []
    available: bool = True
    from_cache: bool = False
    fetched_at: Optional[datetime] = None


class CachedCatalog:
    """
    Wraps a CatalogLookup and remembers the last successful snapshot per
    (category, region). When the backend fails, the cached snapshot is served;
    with no snapshot the result is marked unavailable.
    """

    def __init__(self, backend: CatalogLookup):
        self.backend = backend
        self._snapshots: Dict[Tuple[Optional[str], str], CatalogSnapshot] = {}

    @staticmethod
    def _key(category: Optional[ServiceCategory], region: Optional[str]):
        return (category.value if category else None, (region or "").lower())

    def fetch(
        self, category: Optional[ServiceCategory], region: Optional[str]
    ) -> CatalogSnapshot:
        key = self._key(category, region)
        try:
            services = self.backend.lookup(category, region)
        except CatalogUnavailable as exc:
            logger.warning("Catalog unavailable: %s", exc)
            return self._fallback(key)
        except Exception:
            logger.exception("Catalog lookup failed")
            return self._fallback(key)

        snapshot = CatalogSnapshot(services=services, fetched_at=datetime.utcnow())
        self._snapshots[key] = snapshot
        return snapshot

    def _fallback(self, key) -> CatalogSnapshot:
        cached = self._snapshots.get(key)
        if cached is not None:
            logger.warning("Serving cached catalog snapshot for %s", key)
            return cached.model_copy(update={"from_cache": True})
        logger.error("No cached catalog snapshot for %s", key)
        return CatalogSnapshot(available=False)

    def clear(self) -> None:
        self._snapshots.clear()
