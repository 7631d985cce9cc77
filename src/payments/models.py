"""
x402-compliant payment models for the facilitator
Wire models follow the protocol's camelCase field names
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ErrorReason(str, Enum):
    """Closed set of failure tags surfaced in verify/settle responses"""
    INVALID_PAYLOAD = "invalid_payload"
    INVALID_SIGNATURE = "invalid_signature"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    AMOUNT_MISMATCH = "amount_mismatch"
    RECIPIENT_MISMATCH = "recipient_mismatch"
    PAYMENT_EXPIRED = "payment_expired"
    UNSUPPORTED_NETWORK = "unsupported_network"
    SETTLEMENT_FAILED = "settlement_failed"
    UNEXPECTED_ERROR = "unexpected_error"


class PaymentRequirements(BaseModel):
    """What a resource server demands for access to one resource"""
    model_config = ConfigDict(extra="ignore", frozen=True)

    scheme: str = Field(default="exact", description="Payment scheme")
    network: str = Field(description="Network identifier, legacy or CAIP-2")
    maxAmountRequired: str = Field(description="Amount in smallest unit (USDC has 6 decimals)")
    resource: str = Field(description="URL of the paid resource")
    payTo: str = Field(description="Recipient address")
    description: Optional[str] = None
    mimeType: Optional[str] = None
    asset: Optional[str] = None
    maxTimeoutSeconds: Optional[int] = None
    extra: Optional[Dict[str, Any]] = None
    extensions: Optional[Dict[str, Any]] = None


class EvmAuthorization(BaseModel):
    """EIP-3009 TransferWithAuthorization message"""
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    from_address: str = Field(alias="from")
    to: str
    value: str
    validAfter: str = "0"
    validBefore: str
    nonce: str

    @field_validator("nonce")
    @classmethod
    def validate_nonce(cls, v):
        # Signed message and authorizationState both use the full bytes32
        digits = v[2:] if v.startswith("0x") else v
        try:
            raw = bytes.fromhex(digits)
        except ValueError:
            raise ValueError("nonce must be hex")
        if len(raw) != 32:
            raise ValueError(f"nonce must be 32 bytes, got {len(raw)}")
        return f"0x{digits}"


class EvmPayload(BaseModel):
    signature: str
    authorization: EvmAuthorization


class EvmPaymentPayload(BaseModel):
    """Account-authorization payment submitted by the buyer"""
    x402Version: int = 1
    scheme: str = "exact"
    network: str
    payload: EvmPayload


class SolanaPayload(BaseModel):
    transaction: str = Field(description="Base64 encoded, already-signed transaction")


class SolanaPaymentPayload(BaseModel):
    """Signed-transaction payment submitted by the buyer"""
    x402Version: int = 1
    scheme: str = "exact"
    network: str
    payload: SolanaPayload


class VerifyRequest(BaseModel):
    """Body of POST /verify"""
    x402Version: int = 1
    paymentPayload: Optional[Dict[str, Any]] = None
    paymentRequirements: Optional[Dict[str, Any]] = None


class SettleRequest(VerifyRequest):
    """Body of POST /settle"""


class VerifyResponse(BaseModel):
    isValid: bool
    invalidReason: Optional[ErrorReason] = None
    payer: Optional[str] = None


class SettleResponse(BaseModel):
    success: bool
    transaction: Optional[str] = None
    network: Optional[str] = None
    errorReason: Optional[ErrorReason] = None
    payer: Optional[str] = None


class SupportedKind(BaseModel):
    x402Version: int
    scheme: str = "exact"
    network: str
    extra: Optional[Dict[str, Any]] = None


class SupportedResponse(BaseModel):
    kinds: List[SupportedKind]
    signers: Dict[str, List[str]]
