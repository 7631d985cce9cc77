"""
x402 Facilitator Server
FastAPI app exposing payment verification, settlement and Bazaar discovery
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import logging
import structlog

from src.config import FacilitatorConfig, get_facilitator_config
from src.payments.models import ErrorReason
from src.facilitator.banner import print_banner
from src.facilitator.dependencies import get_payment_processor, limiter
from src.facilitator.routers import discovery, general, payments

# Initialize structured logger
logger = structlog.get_logger()


def configure_logging(config: FacilitatorConfig) -> None:
    """Configure structlog rendering and level from configuration"""
    renderer = (
        structlog.processors.JSONRenderer()
        if config.log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            renderer
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.log_level)
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for the FastAPI app"""
    config = get_facilitator_config()
    configure_logging(config)
    processor = get_payment_processor()
    print_banner(config, processor)
    logger.info(
        "facilitator_starting",
        host=config.host,
        port=config.port,
        signers=processor.supported().signers
    )
    yield
    logger.info("facilitator_shutting_down")


# Initialize FastAPI app
app = FastAPI(
    title="x402 Facilitator",
    description="Self-hosted x402 payment verification and settlement for Base and Solana",
    version="0.1.0",
    lifespan=lifespan
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_facilitator_config().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def invalid_request_handler(request: Request, exc: RequestValidationError):
    """Malformed verify/settle bodies get a protocol response instead of a 422"""
    logger.warning("request_validation_failed", path=request.url.path, errors=len(exc.errors()))
    if request.url.path == "/verify":
        content = {"isValid": False, "invalidReason": ErrorReason.INVALID_PAYLOAD.value}
    elif request.url.path == "/settle":
        content = {"success": False, "errorReason": ErrorReason.INVALID_PAYLOAD.value}
    else:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": jsonable_encoder(exc.errors())},
        )
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Request logging"""
    logger.info("request_received", method=request.method, path=request.url.path)
    return await call_next(request)


app.include_router(general.router)
app.include_router(payments.router)
app.include_router(discovery.router)


if __name__ == "__main__":
    import uvicorn
    config = get_facilitator_config()

    uvicorn.run(
        "src.facilitator.server:app",
        host=config.host,
        port=config.port,
        reload=config.reload,
        log_level=config.log_level.lower()
    )
