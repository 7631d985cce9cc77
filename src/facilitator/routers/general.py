from datetime import datetime, timezone

from fastapi import APIRouter, Request

from src.payments.models import SupportedResponse
from src.facilitator.dependencies import get_payment_processor, limiter, rate_limit

router = APIRouter(tags=["General"])


@router.get("/", tags=["Health"])
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "x402 Facilitator",
        "version": "0.1.0",
        "status": "operational",
        "supported": "/supported"
    }


@router.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/supported", response_model=SupportedResponse, response_model_exclude_none=True, tags=["Payments"])
@limiter.limit(rate_limit)
async def get_supported(request: Request):
    """
    Payment kinds this facilitator accepts
    Lists every version x scheme x network plus funding addresses per family
    """
    return get_payment_processor().supported()
