"""
Account-authorization backend for Base (EVM)
Verifies EIP-3009 authorizations and redeems them with transferWithAuthorization
"""

import asyncio
import time
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import Web3
import structlog

from src.payments.models import (
    ErrorReason,
    EvmAuthorization,
    EvmPaymentPayload,
    PaymentRequirements,
    SettleResponse,
    VerifyResponse,
)
from src.payments.networks import ChainFamily, NetworkInfo, get_network, network_identifiers

logger = structlog.get_logger()

# Minimal USDC ABI: balance, EIP-3009 redemption and nonce state
USDC_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    },
    {
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "validAfter", "type": "uint256"},
            {"name": "validBefore", "type": "uint256"},
            {"name": "nonce", "type": "bytes32"},
            {"name": "v", "type": "uint8"},
            {"name": "r", "type": "bytes32"},
            {"name": "s", "type": "bytes32"},
        ],
        "name": "transferWithAuthorization",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [
            {"name": "authorizer", "type": "address"},
            {"name": "nonce", "type": "bytes32"},
        ],
        "name": "authorizationState",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
]

# USDC has 6 decimals
USDC_DECIMALS = 6

# Approximate gas for transferWithAuthorization
SETTLEMENT_GAS_LIMIT = 100_000


def create_typed_data(chain_id: int, verifying_contract: str, authorization: EvmAuthorization) -> dict:
    """Create EIP-712 typed data for a TransferWithAuthorization message"""
    return {
        "types": {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "TransferWithAuthorization": [
                {"name": "from", "type": "address"},
                {"name": "to", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "validAfter", "type": "uint256"},
                {"name": "validBefore", "type": "uint256"},
                {"name": "nonce", "type": "bytes32"},
            ],
        },
        "primaryType": "TransferWithAuthorization",
        "domain": {
            "name": "USD Coin",
            "version": "2",
            "chainId": chain_id,
            "verifyingContract": Web3.to_checksum_address(verifying_contract),
        },
        "message": {
            "from": Web3.to_checksum_address(authorization.from_address),
            "to": Web3.to_checksum_address(authorization.to),
            "value": int(authorization.value),
            "validAfter": int(authorization.validAfter),
            "validBefore": int(authorization.validBefore),
            "nonce": nonce_to_bytes32(authorization.nonce),
        },
    }


def nonce_to_bytes32(nonce: str) -> bytes:
    """Decode a hex nonce into the left-padded bytes32 the contract expects"""
    nonce_bytes = bytes.fromhex(nonce[2:] if nonce.startswith("0x") else nonce)
    if len(nonce_bytes) > 32:
        raise ValueError(f"Nonce longer than 32 bytes: {len(nonce_bytes)}")
    return nonce_bytes.rjust(32, b"\x00")


def split_signature(signature: str) -> Tuple[int, bytes, bytes]:
    """Split a 65-byte signature into v, r, s components"""
    sig_bytes = bytes.fromhex(signature.replace("0x", ""))
    if len(sig_bytes) != 65:
        raise ValueError(f"Invalid signature length: {len(sig_bytes)}")

    r = sig_bytes[:32]
    s = sig_bytes[32:64]
    v = sig_bytes[64]

    # Some wallets return 0/1 instead of 27/28
    if v < 27:
        v += 27
    return v, r, s


def format_usdc(amount: int) -> str:
    return str(Decimal(amount) / Decimal(10 ** USDC_DECIMALS))


class EvmBackend:
    """
    Handles the account-authorization payment flow on Base:
    - verify: timing, amount, recipient, EIP-712 signature, balance, nonce
    - settle: re-verify, then relay transferWithAuthorization paying gas
      from the facilitator's funding key

    Settlement is disabled when no private key is configured; verification
    only needs the RPC endpoint.
    """

    def __init__(
        self,
        rpc_url: str = "https://mainnet.base.org",
        private_key: Optional[str] = None,
        receipt_timeout: int = 120,
        web3: Optional[Web3] = None,
    ):
        self.w3 = web3 if web3 is not None else Web3(Web3.HTTPProvider(rpc_url))
        self.account = Account.from_key(private_key) if private_key else None
        self.receipt_timeout = receipt_timeout
        self._contracts: Dict[int, object] = {}

        if self.account:
            logger.info("evm_backend_ready", signer=self.account.address)
        else:
            logger.info("evm_backend_verify_only", message="No funding key, settlement disabled")

    @property
    def signer_address(self) -> Optional[str]:
        return self.account.address if self.account else None

    def supported_networks(self) -> List[str]:
        return network_identifiers(ChainFamily.EVM)

    def _usdc(self, info: NetworkInfo):
        contract = self._contracts.get(info.chain_id)
        if contract is None:
            contract = self.w3.eth.contract(
                address=Web3.to_checksum_address(info.usdc_asset),
                abi=USDC_ABI,
            )
            self._contracts[info.chain_id] = contract
        return contract

    def _signature_matches(self, info: NetworkInfo, signature: str, authorization: EvmAuthorization) -> bool:
        typed_data = create_typed_data(info.chain_id, info.usdc_asset, authorization)
        try:
            encoded = encode_typed_data(full_message=typed_data)
            recovered = Account.recover_message(encoded, signature=signature)
        except Exception as e:
            logger.warning("evm_signature_unrecoverable", error=str(e))
            return False
        return recovered.lower() == authorization.from_address.lower()

    async def verify(
        self,
        payment_payload: EvmPaymentPayload,
        requirements: PaymentRequirements,
    ) -> VerifyResponse:
        """
        Verify an EIP-3009 payment authorization.

        Checks run in a fixed order and stop at the first failure:
        timing, amount, recipient, signature, balance, nonce.

        Args:
            payment_payload: The signed authorization from the buyer
            requirements: What the resource server demands

        Returns:
            VerifyResponse with the payer populated whenever it is known
        """
        try:
            authorization = payment_payload.payload.authorization
            payer = authorization.from_address

            info = get_network(payment_payload.network)
            if info is None or info.family != ChainFamily.EVM:
                return VerifyResponse(
                    isValid=False,
                    invalidReason=ErrorReason.UNSUPPORTED_NETWORK,
                    payer=payer,
                )

            # 1. Timing, inclusive at both ends
            now = int(time.time())
            if now < int(authorization.validAfter) or now > int(authorization.validBefore):
                return VerifyResponse(isValid=False, invalidReason=ErrorReason.PAYMENT_EXPIRED, payer=payer)

            # 2. Amount must match exactly
            if authorization.value != requirements.maxAmountRequired:
                return VerifyResponse(isValid=False, invalidReason=ErrorReason.AMOUNT_MISMATCH, payer=payer)

            # 3. Recipient
            if authorization.to.lower() != requirements.payTo.lower():
                return VerifyResponse(isValid=False, invalidReason=ErrorReason.RECIPIENT_MISMATCH, payer=payer)

            # 4. EIP-712 signature
            if not self._signature_matches(info, payment_payload.payload.signature, authorization):
                return VerifyResponse(isValid=False, invalidReason=ErrorReason.INVALID_SIGNATURE, payer=payer)

            usdc = self._usdc(info)
            payer_address = Web3.to_checksum_address(payer)

            # 5. Balance
            balance = await asyncio.to_thread(usdc.functions.balanceOf(payer_address).call)
            if balance < int(authorization.value):
                return VerifyResponse(isValid=False, invalidReason=ErrorReason.INSUFFICIENT_FUNDS, payer=payer)

            # 6. Replay: nonce already consumed
            nonce_used = await asyncio.to_thread(
                usdc.functions.authorizationState(payer_address, nonce_to_bytes32(authorization.nonce)).call
            )
            if nonce_used:
                return VerifyResponse(isValid=False, invalidReason=ErrorReason.INVALID_PAYLOAD, payer=payer)

            logger.info(
                "evm_verification_passed",
                payer=payer,
                network=payment_payload.network,
                amount_usdc=format_usdc(int(authorization.value)),
                balance_usdc=format_usdc(balance),
            )

            return VerifyResponse(isValid=True, payer=payer)

        except Exception as e:
            logger.error("evm_verification_failed", error=str(e), network=payment_payload.network)
            return VerifyResponse(isValid=False, invalidReason=ErrorReason.UNEXPECTED_ERROR)

    async def settle(
        self,
        payment_payload: EvmPaymentPayload,
        requirements: PaymentRequirements,
    ) -> SettleResponse:
        """
        Settle a payment by redeeming the buyer's authorization on-chain.

        Always re-runs verify first so settlement never proceeds on stale
        or already-consumed state.
        """
        network = payment_payload.network

        if self.account is None:
            logger.warning("evm_settlement_disabled", network=network)
            return SettleResponse(success=False, errorReason=ErrorReason.SETTLEMENT_FAILED, network=network)

        verification = await self.verify(payment_payload, requirements)
        if not verification.isValid:
            return SettleResponse(
                success=False,
                errorReason=verification.invalidReason,
                payer=verification.payer,
                network=network,
            )

        payer = verification.payer
        tx_hash: Optional[str] = None

        try:
            info = get_network(network)
            authorization = payment_payload.payload.authorization
            v, r, s = split_signature(payment_payload.payload.signature)

            # Funding account must cover gas
            gas_price = await asyncio.to_thread(lambda: self.w3.eth.gas_price)
            funding_balance = await asyncio.to_thread(self.w3.eth.get_balance, self.account.address)
            required_gas = SETTLEMENT_GAS_LIMIT * gas_price

            if funding_balance < required_gas:
                logger.error(
                    "evm_settlement_insufficient_gas",
                    balance=funding_balance,
                    required=required_gas,
                    network=network,
                )
                return SettleResponse(
                    success=False,
                    errorReason=ErrorReason.SETTLEMENT_FAILED,
                    network=network,
                    payer=payer,
                )

            tx_nonce = await asyncio.to_thread(self.w3.eth.get_transaction_count, self.account.address)

            tx = self._usdc(info).functions.transferWithAuthorization(
                Web3.to_checksum_address(authorization.from_address),
                Web3.to_checksum_address(authorization.to),
                int(authorization.value),
                int(authorization.validAfter),
                int(authorization.validBefore),
                nonce_to_bytes32(authorization.nonce),
                v,
                r,
                s,
            ).build_transaction({
                "from": self.account.address,
                "chainId": info.chain_id,
                "nonce": tx_nonce,
                "gas": SETTLEMENT_GAS_LIMIT,
                "gasPrice": gas_price,
            })

            signed_tx = self.w3.eth.account.sign_transaction(tx, self.account.key)
            raw_hash = await asyncio.to_thread(self.w3.eth.send_raw_transaction, signed_tx.raw_transaction)
            tx_hash = Web3.to_hex(raw_hash)

            logger.info(
                "transfer_with_authorization_sent",
                tx_hash=tx_hash,
                payer=payer,
                to=authorization.to,
                amount_usdc=format_usdc(int(authorization.value)),
                network=network,
            )

            receipt = await asyncio.to_thread(
                self.w3.eth.wait_for_transaction_receipt,
                raw_hash,
                timeout=self.receipt_timeout,
            )

            if receipt["status"] == 1:
                logger.info(
                    "transfer_with_authorization_confirmed",
                    tx_hash=tx_hash,
                    block_number=receipt.get("blockNumber"),
                    gas_used=receipt.get("gasUsed"),
                )
                return SettleResponse(success=True, transaction=tx_hash, network=network, payer=payer)

            logger.warning("transfer_with_authorization_reverted", tx_hash=tx_hash, network=network)
            return SettleResponse(
                success=False,
                errorReason=ErrorReason.SETTLEMENT_FAILED,
                transaction=tx_hash,
                network=network,
                payer=payer,
            )

        except Exception as e:
            logger.error("evm_settlement_failed", error=str(e), tx_hash=tx_hash, payer=payer)
            return SettleResponse(
                success=False,
                errorReason=ErrorReason.SETTLEMENT_FAILED,
                transaction=tx_hash,
                network=network,
                payer=payer,
            )
