"""
Bazaar discovery catalog
Records payable resources seen in successful verifications so clients and
agents can browse them. The registry lives in memory and is rebuilt from
traffic after a restart.
"""

import threading
from typing import Any, Dict, List, Optional, Protocol

import structlog

from src.discovery.models import (
    AcceptedPayment,
    DiscoveredResource,
    DiscoveryListResponse,
    DiscoveryStats,
    Pagination,
    ResourceMetadata,
)
from src.payments.models import PaymentRequirements

logger = structlog.get_logger()

# Extension key that opts a resource into discovery
BAZAAR = "bazaar"

DEFAULT_TYPE = "http"
DEFAULT_LIMIT = 20
DEFAULT_OFFSET = 0


class ResourceStore(Protocol):
    """Storage for discovered resources, keyed by resource URL"""

    def merge(self, resource: DiscoveredResource) -> None:
        ...

    def list(self, type: Optional[str] = DEFAULT_TYPE, limit: int = DEFAULT_LIMIT,
             offset: int = DEFAULT_OFFSET) -> DiscoveryListResponse:
        ...

    def stats(self) -> DiscoveryStats:
        ...

    def get(self, resource_url: str) -> Optional[DiscoveredResource]:
        ...

    def remove(self, resource_url: str) -> bool:
        ...

    def clear(self) -> None:
        ...


class InMemoryResourceStore:
    """
    Process-local resource registry.

    A single lock serializes merges and snapshots, so a listing never
    observes a half-applied merge. Entries are copied on the way in and
    out; callers never hold references into the registry.
    """

    def __init__(self):
        self._resources: Dict[str, DiscoveredResource] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._resources)

    def merge(self, resource: DiscoveredResource) -> None:
        """Insert a resource, or fold it into the existing entry for its URL"""
        incoming = resource.model_copy(deep=True)

        with self._lock:
            existing = self._resources.get(incoming.resource)

            if existing is None:
                self._resources[incoming.resource] = incoming
            else:
                known = {(a.network, a.asset) for a in existing.accepts}
                for accept in incoming.accepts:
                    key = (accept.network, accept.asset)
                    if key not in known:
                        existing.accepts.append(accept)
                        known.add(key)

                existing.lastUpdated = incoming.lastUpdated
                existing.x402Version = max(existing.x402Version, incoming.x402Version)

                if incoming.metadata is not None:
                    merged = existing.metadata.model_dump(exclude_none=True) if existing.metadata else {}
                    merged.update(incoming.metadata.model_dump(exclude_none=True))
                    existing.metadata = ResourceMetadata(**merged)

        logger.info("discovery_resource_registered", resource=incoming.resource)

    def list(self, type: Optional[str] = DEFAULT_TYPE, limit: int = DEFAULT_LIMIT,
             offset: int = DEFAULT_OFFSET) -> DiscoveryListResponse:
        """Newest-first page of resources of one type, with the pre-slice total"""
        with self._lock:
            items = [r.model_copy(deep=True) for r in self._resources.values()]

        if type:
            items = [r for r in items if r.type == type]

        # Stable sort keeps insertion order for equal timestamps
        items.sort(key=lambda r: r.lastUpdated, reverse=True)

        total = len(items)
        page = items[offset:offset + limit]

        return DiscoveryListResponse(
            items=page,
            pagination=Pagination(limit=limit, offset=offset, total=total),
        )

    def stats(self) -> DiscoveryStats:
        with self._lock:
            networks: List[str] = []
            for resource in self._resources.values():
                for accept in resource.accepts:
                    if accept.network not in networks:
                        networks.append(accept.network)
            return DiscoveryStats(totalResources=len(self._resources), networks=networks)

    def get(self, resource_url: str) -> Optional[DiscoveredResource]:
        with self._lock:
            resource = self._resources.get(resource_url)
            return resource.model_copy(deep=True) if resource else None

    def remove(self, resource_url: str) -> bool:
        with self._lock:
            return self._resources.pop(resource_url, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._resources.clear()


def extract_discovery_info(
    x402_version: int,
    requirements: PaymentRequirements,
) -> Optional[DiscoveredResource]:
    """
    Build a catalog entry from payment requirements.

    Returns None unless the requirements carry the bazaar extension.
    """
    extensions = requirements.extensions or {}
    if BAZAAR not in extensions:
        return None
    bazaar = extensions[BAZAAR]
    if not isinstance(bazaar, dict):
        bazaar = {}

    info = bazaar.get("info") or {}
    output = info.get("output") or {}

    # bazaar.schema describes info; its input property describes the request
    schema = bazaar.get("schema")
    properties = schema.get("properties") if isinstance(schema, dict) else None
    input_schema = properties.get("input") if isinstance(properties, dict) else None

    metadata = None
    if info or requirements.description:
        metadata = ResourceMetadata(
            description=requirements.description or None,
            input=info.get("input"),
            inputSchema=input_schema,
            output=output.get("example"),
            outputSchema=schema if isinstance(schema, dict) else None,
        )

    return DiscoveredResource(
        resource=requirements.resource,
        type=DEFAULT_TYPE,
        x402Version=x402_version,
        accepts=[
            AcceptedPayment(
                scheme=requirements.scheme,
                network=requirements.network,
                amount=requirements.maxAmountRequired,
                asset=requirements.asset,
                payTo=requirements.payTo,
            )
        ],
        metadata=metadata,
    )


def catalog_from_payment(
    store: ResourceStore,
    x402_version: int,
    requirements: PaymentRequirements,
) -> Optional[DiscoveredResource]:
    """Catalog a resource after a successful verification, if it opted in"""
    resource = extract_discovery_info(x402_version, requirements)
    if resource is not None:
        store.merge(resource)
    return resource
