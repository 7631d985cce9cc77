"""
Payment processor for the x402 facilitator
Routes verify/settle calls to the backend for the payment's ledger family
and catalogs resources for discovery on successful verification
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ValidationError
import structlog

from src.config import FacilitatorConfig
from src.discovery.catalog import InMemoryResourceStore, ResourceStore, catalog_from_payment
from src.payments.backend import ChainBackend
from src.payments.evm import EvmBackend
from src.payments.models import (
    ErrorReason,
    EvmPaymentPayload,
    PaymentRequirements,
    SettleResponse,
    SolanaPaymentPayload,
    SupportedKind,
    SupportedResponse,
    VerifyResponse,
)
from src.payments.networks import ChainFamily, NetworkResolver
from src.payments.svm import SolanaBackend

logger = structlog.get_logger()

SUPPORTED_VERSIONS = (1, 2)
SUPPORTED_SCHEMES = ("exact",)

PAYLOAD_MODELS: Dict[ChainFamily, type[BaseModel]] = {
    ChainFamily.EVM: EvmPaymentPayload,
    ChainFamily.SOLANA: SolanaPaymentPayload,
}

SIGNER_KEYS: Dict[ChainFamily, str] = {
    ChainFamily.EVM: "eip155:*",
    ChainFamily.SOLANA: "solana:*",
}


class PaymentRejected(Exception):
    """A request that cannot reach a backend"""

    def __init__(self, reason: ErrorReason, network: Optional[str] = None):
        super().__init__(reason.value)
        self.reason = reason
        self.network = network


@dataclass
class PreparedPayment:
    network: str
    family: ChainFamily
    backend: ChainBackend
    payload: BaseModel
    requirements: PaymentRequirements


def extract_network(
    payment_payload: Optional[Dict[str, Any]],
    payment_requirements: Optional[Dict[str, Any]],
) -> Optional[str]:
    """
    Find the network for a request.

    v1 payloads carry it at the root, v2 payloads under accepted; the
    requirements are the last resort.
    """
    candidates = []
    if isinstance(payment_payload, dict):
        candidates.append(payment_payload.get("network"))
        accepted = payment_payload.get("accepted")
        if isinstance(accepted, dict):
            candidates.append(accepted.get("network"))
    if isinstance(payment_requirements, dict):
        candidates.append(payment_requirements.get("network"))

    for candidate in candidates:
        if candidate and isinstance(candidate, str):
            return candidate
    return None


class PaymentProcessor:
    """
    Verification and settlement entry point used by the HTTP layer.

    Never raises: every failure comes back as a VerifyResponse or
    SettleResponse carrying an ErrorReason.
    """

    def __init__(self, resolver: NetworkResolver, store: Optional[ResourceStore] = None):
        self.resolver = resolver
        self.store = store if store is not None else InMemoryResourceStore()

    def _prepare(
        self,
        payment_payload: Optional[Dict[str, Any]],
        payment_requirements: Optional[Dict[str, Any]],
    ) -> PreparedPayment:
        if not isinstance(payment_payload, dict) or not isinstance(payment_requirements, dict):
            raise PaymentRejected(ErrorReason.INVALID_PAYLOAD)

        network = extract_network(payment_payload, payment_requirements)
        if network is None:
            logger.warning("payment_network_missing")
            raise PaymentRejected(ErrorReason.INVALID_PAYLOAD)

        resolution = self.resolver.resolve(network)
        if resolution is None:
            logger.info("payment_network_unsupported", network=network)
            raise PaymentRejected(ErrorReason.UNSUPPORTED_NETWORK, network)

        payload_data = dict(payment_payload)
        if not payload_data.get("network"):
            payload_data["network"] = network

        try:
            payload = PAYLOAD_MODELS[resolution.family].model_validate(payload_data)
            requirements = PaymentRequirements.model_validate(payment_requirements)
        except ValidationError as e:
            logger.warning("payment_payload_malformed", network=network, errors=e.error_count())
            raise PaymentRejected(ErrorReason.INVALID_PAYLOAD, network)

        return PreparedPayment(
            network=network,
            family=resolution.family,
            backend=resolution.backend,
            payload=payload,
            requirements=requirements,
        )

    async def verify(
        self,
        x402_version: int,
        payment_payload: Optional[Dict[str, Any]],
        payment_requirements: Optional[Dict[str, Any]],
    ) -> VerifyResponse:
        """Verify a payment and, when valid, catalog its resource for discovery"""
        try:
            prepared = self._prepare(payment_payload, payment_requirements)
        except PaymentRejected as e:
            return VerifyResponse(isValid=False, invalidReason=e.reason)

        try:
            response = await prepared.backend.verify(prepared.payload, prepared.requirements)
        except Exception as e:
            logger.error("verify_failed", error=str(e), network=prepared.network)
            return VerifyResponse(isValid=False, invalidReason=ErrorReason.UNEXPECTED_ERROR)

        if response.isValid:
            try:
                catalog_from_payment(self.store, x402_version, prepared.requirements)
            except Exception as e:
                logger.error("discovery_catalog_failed", error=str(e), resource=prepared.requirements.resource)

        logger.info(
            "payment_verified",
            network=prepared.network,
            is_valid=response.isValid,
            reason=response.invalidReason.value if response.invalidReason else None,
            payer=response.payer,
        )
        return response

    async def settle(
        self,
        x402_version: int,
        payment_payload: Optional[Dict[str, Any]],
        payment_requirements: Optional[Dict[str, Any]],
    ) -> SettleResponse:
        """Settle a payment on its ledger; the backend re-verifies first"""
        try:
            prepared = self._prepare(payment_payload, payment_requirements)
        except PaymentRejected as e:
            return SettleResponse(success=False, errorReason=e.reason, network=e.network)

        try:
            response = await prepared.backend.settle(prepared.payload, prepared.requirements)
        except Exception as e:
            logger.error("settle_failed", error=str(e), network=prepared.network)
            return SettleResponse(success=False, errorReason=ErrorReason.UNEXPECTED_ERROR, network=prepared.network)

        logger.info(
            "payment_settled",
            network=prepared.network,
            x402_version=x402_version,
            success=response.success,
            reason=response.errorReason.value if response.errorReason else None,
            transaction=response.transaction,
            payer=response.payer,
        )
        return response

    def settlement_enabled(self, network: Optional[str]) -> bool:
        """Whether the backend for a network has a funding key"""
        resolution = self.resolver.resolve(network)
        return resolution is not None and resolution.backend.signer_address is not None

    def supported(self) -> SupportedResponse:
        """Every version x scheme x network combination plus funding addresses"""
        networks: List[str] = []
        signers: Dict[str, List[str]] = {}

        for family, backend in self.resolver.backends.items():
            networks.extend(backend.supported_networks())
            address = backend.signer_address
            signers[SIGNER_KEYS[family]] = [address] if address else []

        kinds = [
            SupportedKind(x402Version=version, scheme=scheme, network=network)
            for version in SUPPORTED_VERSIONS
            for scheme in SUPPORTED_SCHEMES
            for network in networks
        ]
        return SupportedResponse(kinds=kinds, signers=signers)


def build_payment_processor(
    config: FacilitatorConfig,
    store: Optional[ResourceStore] = None,
) -> PaymentProcessor:
    """Create backends from configuration and wire them into a processor"""
    resolver = NetworkResolver({
        ChainFamily.EVM: EvmBackend(
            rpc_url=config.base_rpc_url,
            private_key=config.base_private_key or None,
            receipt_timeout=config.base_receipt_timeout,
        ),
        ChainFamily.SOLANA: SolanaBackend(
            rpc_url=config.solana_rpc_url,
            private_key=config.solana_private_key or None,
        ),
    })
    return PaymentProcessor(resolver, store)
