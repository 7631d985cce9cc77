"""
Tests for the payment processor: network routing, payload parsing,
cataloging and the supported-kinds listing
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from src.payments.models import ErrorReason, SettleResponse, VerifyResponse
from src.payments.networks import ChainFamily, NetworkResolver
from src.payments.processor import PaymentProcessor, extract_network
from tests.factories import PaymentRequirementsFactory, build_evm_payload, build_solana_payload, USDC_SOLANA

BAZAAR_EXTENSIONS = {
    "bazaar": {
        "info": {
            "input": {"type": "http", "method": "GET", "queryParams": {"city": "Lisbon"}},
            "output": {"type": "json", "example": {"temperature": 21}},
        },
        "schema": {"type": "object", "properties": {"temperature": {"type": "number"}}},
    }
}


def requirements_dict(**kwargs) -> dict:
    return PaymentRequirementsFactory(**kwargs).model_dump(exclude_none=True)


class TestExtractNetwork:

    def test_v1_root_network(self):
        assert extract_network({"network": "base"}, {"network": "solana"}) == "base"

    def test_v2_accepted_network(self):
        assert extract_network({"accepted": {"network": "eip155:8453"}}, {"network": "solana"}) == "eip155:8453"

    def test_falls_back_to_requirements(self):
        assert extract_network({}, {"network": "solana-devnet"}) == "solana-devnet"

    def test_nothing_found(self):
        assert extract_network({"accepted": "base"}, {}) is None
        assert extract_network(None, None) is None


class TestProcessorVerify:

    @pytest.mark.asyncio
    async def test_evm_payment(self, processor, test_buyer_account, test_seller_account):
        requirements = requirements_dict(payTo=test_seller_account.address)
        payload = build_evm_payload(test_buyer_account, test_seller_account.address)

        result = await processor.verify(1, payload, requirements)

        assert result.isValid is True
        assert result.payer == test_buyer_account.address

    @pytest.mark.asyncio
    async def test_v2_payload_without_root_network(self, processor, test_buyer_account, test_seller_account):
        requirements = requirements_dict(network="eip155:8453", payTo=test_seller_account.address)
        payload = build_evm_payload(test_buyer_account, test_seller_account.address)
        del payload["network"]
        payload["x402Version"] = 2
        payload["accepted"] = {"scheme": "exact", "network": "eip155:8453"}

        result = await processor.verify(2, payload, requirements)

        assert result.isValid is True

    @pytest.mark.asyncio
    async def test_solana_payment(self, processor, solana_payer):
        requirements = requirements_dict(network="solana", asset=USDC_SOLANA)

        result = await processor.verify(1, build_solana_payload(solana_payer), requirements)

        assert result.isValid is True
        assert result.payer == str(solana_payer.pubkey())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("network", ["ethereum", "polygon-amoy", "base-solana"])
    async def test_unsupported_network(self, processor, network):
        result = await processor.verify(1, {"network": network}, requirements_dict(network=network))

        assert result.isValid is False
        assert result.invalidReason == ErrorReason.UNSUPPORTED_NETWORK
        assert result.payer is None

    @pytest.mark.asyncio
    async def test_missing_network(self, processor):
        requirements = requirements_dict()
        del requirements["network"]

        result = await processor.verify(1, {"payload": {}}, requirements)

        assert result.invalidReason == ErrorReason.INVALID_PAYLOAD

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload,requirements", [
        (None, {"network": "base"}),
        ({"network": "base"}, None),
        ("base", {"network": "base"}),
    ])
    async def test_missing_parts(self, processor, payload, requirements):
        result = await processor.verify(1, payload, requirements)

        assert result.invalidReason == ErrorReason.INVALID_PAYLOAD

    @pytest.mark.asyncio
    async def test_short_nonce_is_invalid_payload(self, processor, test_buyer_account, test_seller_account, mock_web3):
        requirements = requirements_dict(payTo=test_seller_account.address)
        payload = build_evm_payload(test_buyer_account, test_seller_account.address, nonce="0x01")

        result = await processor.verify(1, payload, requirements)

        assert result.isValid is False
        assert result.invalidReason == ErrorReason.INVALID_PAYLOAD
        mock_web3.eth.contract.return_value.functions.authorizationState.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_evm_payload(self, processor):
        payload = {"network": "base", "payload": {"signature": "0x00"}}

        result = await processor.verify(1, payload, requirements_dict())

        assert result.invalidReason == ErrorReason.INVALID_PAYLOAD

    @pytest.mark.asyncio
    async def test_malformed_requirements(self, processor, solana_payer):
        result = await processor.verify(1, build_solana_payload(solana_payer), {"network": "solana"})

        assert result.invalidReason == ErrorReason.INVALID_PAYLOAD

    @pytest.mark.asyncio
    async def test_backend_exception_becomes_unexpected_error(self):
        backend = MagicMock()
        backend.verify = AsyncMock(side_effect=RuntimeError("boom"))
        processor = PaymentProcessor(NetworkResolver({ChainFamily.SOLANA: backend}))
        payload = {"network": "solana", "payload": {"transaction": "AA=="}}

        result = await processor.verify(1, payload, requirements_dict(network="solana"))

        assert result.isValid is False
        assert result.invalidReason == ErrorReason.UNEXPECTED_ERROR


class TestProcessorCataloging:

    @pytest.mark.asyncio
    async def test_valid_payment_with_bazaar_is_cataloged(self, processor, resource_store, test_buyer_account, test_seller_account):
        requirements = requirements_dict(
            payTo=test_seller_account.address,
            resource="https://api.example.com/weather",
            extensions=BAZAAR_EXTENSIONS,
        )
        payload = build_evm_payload(test_buyer_account, test_seller_account.address)

        await processor.verify(2, payload, requirements)

        entry = resource_store.get("https://api.example.com/weather")
        assert entry is not None
        assert entry.x402Version == 2
        assert entry.accepts[0].network == "base"
        assert entry.accepts[0].amount == "1000000"
        assert entry.accepts[0].payTo == test_seller_account.address
        assert entry.metadata.description == "Weather forecast"
        assert entry.metadata.input["queryParams"] == {"city": "Lisbon"}
        assert entry.metadata.output == {"temperature": 21}
        assert entry.metadata.outputSchema["type"] == "object"

    @pytest.mark.asyncio
    async def test_without_bazaar_not_cataloged(self, processor, resource_store, test_buyer_account, test_seller_account):
        requirements = requirements_dict(payTo=test_seller_account.address)

        await processor.verify(1, build_evm_payload(test_buyer_account, test_seller_account.address), requirements)

        assert len(resource_store) == 0

    @pytest.mark.asyncio
    async def test_invalid_payment_not_cataloged(self, processor, resource_store, test_buyer_account, test_seller_account):
        requirements = requirements_dict(payTo=test_seller_account.address, extensions=BAZAAR_EXTENSIONS)
        payload = build_evm_payload(test_buyer_account, test_seller_account.address, value="1")

        result = await processor.verify(1, payload, requirements)

        assert result.invalidReason == ErrorReason.AMOUNT_MISMATCH
        assert len(resource_store) == 0

    @pytest.mark.asyncio
    async def test_settle_does_not_catalog(self, processor, resource_store, test_buyer_account, test_seller_account):
        requirements = requirements_dict(payTo=test_seller_account.address, extensions=BAZAAR_EXTENSIONS)
        payload = build_evm_payload(test_buyer_account, test_seller_account.address)

        result = await processor.settle(1, payload, requirements)

        assert result.success is True
        assert len(resource_store) == 0

    @pytest.mark.asyncio
    async def test_catalog_failure_does_not_fail_verification(self, processor, test_buyer_account, test_seller_account):
        processor.store = MagicMock()
        processor.store.merge.side_effect = RuntimeError("store unavailable")
        requirements = requirements_dict(payTo=test_seller_account.address, extensions=BAZAAR_EXTENSIONS)
        payload = build_evm_payload(test_buyer_account, test_seller_account.address)

        result = await processor.verify(1, payload, requirements)

        assert result.isValid is True


class TestProcessorSettle:

    @pytest.mark.asyncio
    async def test_settle_unsupported_network_reports_network(self, processor):
        result = await processor.settle(1, {"network": "polygon"}, requirements_dict(network="polygon"))

        assert result.success is False
        assert result.errorReason == ErrorReason.UNSUPPORTED_NETWORK
        assert result.network == "polygon"

    @pytest.mark.asyncio
    async def test_settle_routes_to_solana(self, processor, solana_payer):
        requirements = requirements_dict(network="solana-devnet")

        result = await processor.settle(1, build_solana_payload(solana_payer, network="solana-devnet"), requirements)

        assert result.success is True
        assert result.network == "solana-devnet"

    @pytest.mark.asyncio
    async def test_backend_exception_becomes_unexpected_error(self):
        backend = MagicMock()
        backend.settle = AsyncMock(side_effect=RuntimeError("boom"))
        processor = PaymentProcessor(NetworkResolver({ChainFamily.SOLANA: backend}))
        payload = {"network": "solana", "payload": {"transaction": "AA=="}}

        result = await processor.settle(1, payload, requirements_dict(network="solana"))

        assert result == SettleResponse(success=False, errorReason=ErrorReason.UNEXPECTED_ERROR, network="solana")


class TestSupported:

    def test_kinds_cover_every_version_and_network(self, processor):
        supported = processor.supported()

        assert len(supported.kinds) == 16
        pairs = {(k.x402Version, k.network) for k in supported.kinds}
        assert (1, "eip155:8453") in pairs
        assert (2, "base") in pairs
        assert (2, "solana:EtWTRABZaYq6iMfeYKouRu166VU2xqa1") in pairs
        assert all(k.scheme == "exact" for k in supported.kinds)

    def test_signers(self, processor, evm_backend, solana_funding_keypair):
        signers = processor.supported().signers

        assert signers["eip155:*"] == [evm_backend.signer_address]
        assert signers["solana:*"] == [str(solana_funding_keypair.pubkey())]

    def test_signers_empty_without_keys(self, evm_backend_verify_only, solana_backend_verify_only):
        processor = PaymentProcessor(NetworkResolver({
            ChainFamily.EVM: evm_backend_verify_only,
            ChainFamily.SOLANA: solana_backend_verify_only,
        }))

        assert processor.supported().signers == {"eip155:*": [], "solana:*": []}
        assert processor.settlement_enabled("base") is False
        assert processor.settlement_enabled("solana") is False

    def test_settlement_enabled(self, processor):
        assert processor.settlement_enabled("eip155:84532") is True
        assert processor.settlement_enabled("solana") is True
        assert processor.settlement_enabled("polygon") is False
        assert processor.settlement_enabled(None) is False


def test_verify_response_defaults():
    assert VerifyResponse(isValid=True).model_dump(exclude_none=True) == {"isValid": True}


def test_legacy_and_caip2_share_backend(processor):
    legacy = processor.resolver.resolve("base")
    caip2 = processor.resolver.resolve("eip155:8453")

    assert legacy.backend is caip2.backend
    assert legacy.backend.signer_address == caip2.backend.signer_address


@pytest.mark.asyncio
async def test_unknown_vocabulary_is_unsupported(processor):
    result = await processor.verify(1, {"network": "bitcoin"}, {"network": "bitcoin"})

    assert result.invalidReason == ErrorReason.UNSUPPORTED_NETWORK


def test_error_reasons_are_closed_set():
    assert {reason.value for reason in ErrorReason} == {
        "invalid_payload",
        "invalid_signature",
        "insufficient_funds",
        "amount_mismatch",
        "recipient_mismatch",
        "payment_expired",
        "unsupported_network",
        "settlement_failed",
        "unexpected_error",
    }
