from typing import Optional

from fastapi import APIRouter, Request

from src.discovery.catalog import DEFAULT_LIMIT, DEFAULT_OFFSET, DEFAULT_TYPE
from src.discovery.models import DiscoveryListResponse, DiscoveryStats
from src.facilitator.dependencies import get_payment_processor, limiter, rate_limit

router = APIRouter(prefix="/discovery", tags=["Discovery"])


def _parse_int(value: Optional[str], default: int, minimum: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= minimum else default


@router.get("/resources", response_model=DiscoveryListResponse, response_model_exclude_none=True)
@limiter.limit(rate_limit)
async def list_resources(
    request: Request,
    type: Optional[str] = None,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
):
    """
    Bazaar discovery: list cataloged x402 resources, newest first
    Unparseable paging values fall back to the defaults
    """
    store = get_payment_processor().store
    return store.list(
        type=type or DEFAULT_TYPE,
        limit=_parse_int(limit, DEFAULT_LIMIT, minimum=1),
        offset=_parse_int(offset, DEFAULT_OFFSET, minimum=0),
    )


@router.get("/stats", response_model=DiscoveryStats)
async def discovery_stats():
    """Discovery registry stats"""
    return get_payment_processor().store.stats()
