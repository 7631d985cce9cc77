from fastapi import APIRouter, Request, Response, status
from fastapi.responses import JSONResponse

from src.payments.models import (
    ErrorReason,
    SettleRequest,
    SettleResponse,
    VerifyRequest,
    VerifyResponse,
)
from src.facilitator.dependencies import get_payment_processor, limiter, logger, rate_limit

router = APIRouter(tags=["Payments"])


@router.post("/verify", response_model=VerifyResponse, response_model_exclude_none=True)
@limiter.limit(rate_limit)
async def verify_payment(request: Request, response: Response, body: VerifyRequest):
    """
    Verify a payment authorization without moving funds
    Returns 200 when valid, 400 otherwise
    """
    try:
        result = await get_payment_processor().verify(
            body.x402Version,
            body.paymentPayload,
            body.paymentRequirements,
        )
    except Exception as e:
        logger.error("verify_endpoint_failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"isValid": False, "invalidReason": ErrorReason.UNEXPECTED_ERROR.value},
        )

    response.status_code = status.HTTP_200_OK if result.isValid else status.HTTP_400_BAD_REQUEST
    return result


@router.post("/settle", response_model=SettleResponse, response_model_exclude_none=True)
@limiter.limit(rate_limit)
async def settle_payment(request: Request, response: Response, body: SettleRequest):
    """
    Settle a payment on-chain
    Returns 200 on success, 503 when the network's family has no funding key,
    400 for every other failure
    """
    processor = get_payment_processor()
    try:
        result = await processor.settle(
            body.x402Version,
            body.paymentPayload,
            body.paymentRequirements,
        )
    except Exception as e:
        logger.error("settle_endpoint_failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "errorReason": ErrorReason.UNEXPECTED_ERROR.value},
        )

    if result.success:
        response.status_code = status.HTTP_200_OK
    elif (
        result.errorReason == ErrorReason.SETTLEMENT_FAILED
        and result.network is not None
        and not processor.settlement_enabled(result.network)
    ):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        response.status_code = status.HTTP_400_BAD_REQUEST
    return result
