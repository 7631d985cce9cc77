"""
Pytest configuration and shared fixtures
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from eth_account import Account
from fastapi.testclient import TestClient
from solders.keypair import Keypair

from src.payments.evm import EvmBackend
from src.payments.svm import SolanaBackend
from src.payments.networks import ChainFamily, NetworkResolver
from src.payments.processor import PaymentProcessor
from src.discovery.catalog import InMemoryResourceStore
from tests.factories import FACILITATOR_KEY, TX_HASH, TX_SIGNATURE


@pytest.fixture
def test_buyer_account():
    """Create a test buyer account"""
    return Account.from_key("0xabcdef1234567890abcdef1234567890abcdef1234567890abcdef1234567890")


@pytest.fixture
def test_seller_account():
    """Create a test seller (payTo) account"""
    return Account.from_key("0x1234567890abcdef1234567890abcdef1234567890abcdef1234567890abcdef")


@pytest.fixture
def mock_web3():
    """Mock Web3 instance with a funded buyer and a healthy chain"""
    w3 = MagicMock()

    mock_contract = MagicMock()
    mock_contract.functions.balanceOf.return_value.call.return_value = 10_000_000  # 10 USDC
    mock_contract.functions.authorizationState.return_value.call.return_value = False
    w3.eth.contract.return_value = mock_contract

    w3.eth.gas_price = 1_000_000_000
    w3.eth.get_balance.return_value = 10 ** 18
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.send_raw_transaction.return_value = TX_HASH
    w3.eth.wait_for_transaction_receipt.return_value = {"status": 1, "blockNumber": 123, "gasUsed": 60_000}
    return w3


@pytest.fixture
def evm_backend(mock_web3):
    """EVM backend with a funding key"""
    return EvmBackend(private_key=FACILITATOR_KEY, web3=mock_web3)


@pytest.fixture
def evm_backend_verify_only(mock_web3):
    """EVM backend without a funding key"""
    return EvmBackend(web3=mock_web3)


@pytest.fixture
def solana_payer():
    return Keypair()


@pytest.fixture
def solana_funding_keypair():
    return Keypair()


@pytest.fixture
def mock_solana_client():
    """Mock AsyncClient where the payer holds 5 USDC and transactions confirm"""
    client = AsyncMock()
    client.get_token_account_balance.return_value = MagicMock(value=MagicMock(amount="5000000"))
    client.send_raw_transaction.return_value = MagicMock(value=TX_SIGNATURE)
    client.confirm_transaction.return_value = MagicMock(value=[MagicMock(err=None)])
    return client


@pytest.fixture
def solana_backend(mock_solana_client, solana_funding_keypair):
    return SolanaBackend(private_key=str(solana_funding_keypair), client=mock_solana_client)


@pytest.fixture
def solana_backend_verify_only(mock_solana_client):
    return SolanaBackend(client=mock_solana_client)


@pytest.fixture
def resource_store():
    return InMemoryResourceStore()


@pytest.fixture
def processor(evm_backend, solana_backend, resource_store) -> PaymentProcessor:
    """Processor wired to mocked chains"""
    resolver = NetworkResolver({
        ChainFamily.EVM: evm_backend,
        ChainFamily.SOLANA: solana_backend,
    })
    return PaymentProcessor(resolver, resource_store)


@pytest.fixture
def client(processor) -> TestClient:
    """Create FastAPI test client (sync) backed by the mocked processor"""
    from src.facilitator.dependencies import set_payment_processor
    from src.facilitator.server import app

    set_payment_processor(processor)
    yield TestClient(app)
    set_payment_processor(None)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset rate limits and configuration between tests"""
    import src.config
    from src.facilitator.dependencies import limiter

    limiter.reset()
    src.config._facilitator_config = None
    yield
    limiter.reset()
    src.config._facilitator_config = None
