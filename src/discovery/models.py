"""
Bazaar discovery models
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class AcceptedPayment(BaseModel):
    """One way a discovered resource can be paid for"""
    scheme: str
    network: str
    amount: str
    asset: Optional[str] = None
    payTo: str


class ResourceMetadata(BaseModel):
    description: Optional[str] = None
    input: Optional[Dict[str, Any]] = None
    inputSchema: Optional[Dict[str, Any]] = None
    output: Optional[Dict[str, Any]] = None
    outputSchema: Optional[Dict[str, Any]] = None


class DiscoveredResource(BaseModel):
    """A payable resource seen in a successful verification"""
    resource: str = Field(description="Resource URL, unique in the catalog")
    type: str = "http"
    x402Version: int
    accepts: List[AcceptedPayment]
    lastUpdated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Optional[ResourceMetadata] = None


class Pagination(BaseModel):
    limit: int
    offset: int
    total: int


class DiscoveryListResponse(BaseModel):
    x402Version: int = 2
    items: List[DiscoveredResource]
    pagination: Pagination


class DiscoveryStats(BaseModel):
    totalResources: int
    networks: List[str]
