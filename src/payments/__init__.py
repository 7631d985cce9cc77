"""
Facilitator Payment Module
x402 verification and settlement for USDC on Base and Solana
"""

from src.payments.models import (
    ErrorReason,
    PaymentRequirements,
    EvmPaymentPayload,
    SolanaPaymentPayload,
    VerifyResponse,
    SettleResponse,
    SupportedResponse,
)
from src.payments.networks import ChainFamily, NetworkResolver, NETWORKS
from src.payments.evm import EvmBackend, USDC_DECIMALS
from src.payments.svm import SolanaBackend

__all__ = [
    "ErrorReason",
    "PaymentRequirements",
    "EvmPaymentPayload",
    "SolanaPaymentPayload",
    "VerifyResponse",
    "SettleResponse",
    "SupportedResponse",
    "ChainFamily",
    "NetworkResolver",
    "NETWORKS",
    "EvmBackend",
    "USDC_DECIMALS",
    "SolanaBackend",
]
