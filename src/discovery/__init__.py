"""
Bazaar discovery: catalog of payable resources seen by the facilitator
"""

from src.discovery.catalog import (
    BAZAAR,
    InMemoryResourceStore,
    ResourceStore,
    catalog_from_payment,
    extract_discovery_info,
)
from src.discovery.models import (
    AcceptedPayment,
    DiscoveredResource,
    DiscoveryListResponse,
    DiscoveryStats,
    ResourceMetadata,
)

__all__ = [
    "BAZAAR",
    "InMemoryResourceStore",
    "ResourceStore",
    "catalog_from_payment",
    "extract_discovery_info",
    "AcceptedPayment",
    "DiscoveredResource",
    "DiscoveryListResponse",
    "DiscoveryStats",
    "ResourceMetadata",
]
