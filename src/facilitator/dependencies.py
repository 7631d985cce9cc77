from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request
import structlog

from src.config import get_facilitator_config
from src.payments.processor import PaymentProcessor, build_payment_processor

logger = structlog.get_logger()


def get_client_key(request: Request) -> str:
    """Get client identifier for rate limiting - uses IP address"""
    return get_remote_address(request)


def rate_limit() -> str:
    """Per-client request budget from configuration"""
    return f"{get_facilitator_config().rate_limit}/minute"


limiter = Limiter(key_func=get_client_key)

# Singleton instance
_payment_processor: PaymentProcessor | None = None


def get_payment_processor() -> PaymentProcessor:
    """Get or create the payment processor singleton"""
    global _payment_processor
    if _payment_processor is None:
        _payment_processor = build_payment_processor(get_facilitator_config())
    return _payment_processor


def set_payment_processor(processor: PaymentProcessor | None) -> None:
    """Replace the processor singleton (used by tests and embedding apps)"""
    global _payment_processor
    _payment_processor = processor
