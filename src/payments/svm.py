"""
Signed-transaction backend for Solana
The buyer supplies a fully signed transaction; the facilitator checks the
payer's USDC balance and broadcasts the transaction unchanged
"""

import base64
import json
from typing import List, Optional, Tuple

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction, VersionedTransaction
from spl.token.instructions import get_associated_token_address
import structlog

from src.payments.models import (
    ErrorReason,
    PaymentRequirements,
    SettleResponse,
    SolanaPaymentPayload,
    VerifyResponse,
)
from src.payments.networks import ChainFamily, get_network, network_identifiers

logger = structlog.get_logger()


def load_keypair(secret: str) -> Optional[Keypair]:
    """Parse a secret key given as a JSON byte array or as base58"""
    if not secret:
        return None
    try:
        if secret.strip().startswith("["):
            return Keypair.from_bytes(bytes(json.loads(secret)))
        return Keypair.from_base58_string(secret.strip())
    except (ValueError, TypeError) as e:
        logger.error("solana_private_key_invalid", error=str(e))
        return None


def decode_transaction(encoded: str) -> Optional[Tuple[bytes, str]]:
    """
    Decode a base64 transaction and return (raw bytes, fee payer).

    Tries the versioned format first, then the legacy format. Returns None
    when neither decodes.
    """
    try:
        raw = base64.b64decode(encoded, validate=True)
    except ValueError:
        return None

    try:
        versioned = VersionedTransaction.from_bytes(raw)
        return raw, str(versioned.message.account_keys[0])
    except Exception:
        pass

    try:
        legacy = Transaction.from_bytes(raw)
        return raw, str(legacy.message.account_keys[0])
    except Exception:
        return None


class SolanaBackend:
    """
    Handles the signed-transaction payment flow on Solana.

    Verification only establishes solvency: the payer's associated USDC
    account must hold at least maxAmountRequired. The transaction's own
    transfer instruction is not compared against the requirements.
    """

    def __init__(
        self,
        rpc_url: str = "https://api.mainnet-beta.solana.com",
        private_key: Optional[str] = None,
        client: Optional[AsyncClient] = None,
    ):
        self.client = client if client is not None else AsyncClient(rpc_url, commitment=Confirmed)
        self.keypair = load_keypair(private_key or "")

        if self.keypair:
            logger.info("solana_backend_ready", signer=str(self.keypair.pubkey()))
        else:
            logger.info("solana_backend_verify_only", message="No funding key, settlement disabled")

    @property
    def signer_address(self) -> Optional[str]:
        return str(self.keypair.pubkey()) if self.keypair else None

    def supported_networks(self) -> List[str]:
        return network_identifiers(ChainFamily.SOLANA)

    async def verify(
        self,
        payment_payload: SolanaPaymentPayload,
        requirements: PaymentRequirements,
    ) -> VerifyResponse:
        """Verify that the transaction decodes and its payer can cover the amount"""
        try:
            decoded = decode_transaction(payment_payload.payload.transaction)
            if decoded is None:
                return VerifyResponse(isValid=False, invalidReason=ErrorReason.INVALID_PAYLOAD)
            _, payer = decoded

            info = get_network(payment_payload.network)
            if info is None or info.family != ChainFamily.SOLANA:
                return VerifyResponse(isValid=False, invalidReason=ErrorReason.UNSUPPORTED_NETWORK, payer=payer)

            token_account = get_associated_token_address(
                Pubkey.from_string(payer),
                Pubkey.from_string(info.usdc_asset),
            )

            try:
                resp = await self.client.get_token_account_balance(token_account, commitment=Confirmed)
            except RPCException as e:
                # Token account does not exist
                logger.info("solana_token_account_missing", payer=payer, error=str(e))
                return VerifyResponse(isValid=False, invalidReason=ErrorReason.INSUFFICIENT_FUNDS, payer=payer)

            balance = int(resp.value.amount)
            if balance < int(requirements.maxAmountRequired):
                return VerifyResponse(isValid=False, invalidReason=ErrorReason.INSUFFICIENT_FUNDS, payer=payer)

            logger.info(
                "solana_verification_passed",
                payer=payer,
                network=payment_payload.network,
                amount_required=requirements.maxAmountRequired,
                balance=balance,
            )

            return VerifyResponse(isValid=True, payer=payer)

        except Exception as e:
            logger.error("solana_verification_failed", error=str(e), network=payment_payload.network)
            return VerifyResponse(isValid=False, invalidReason=ErrorReason.UNEXPECTED_ERROR)

    async def settle(
        self,
        payment_payload: SolanaPaymentPayload,
        requirements: PaymentRequirements,
    ) -> SettleResponse:
        """Re-verify, broadcast the pre-signed transaction and wait for confirmation"""
        network = payment_payload.network

        if self.keypair is None:
            logger.warning("solana_settlement_disabled", network=network)
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
        signature: Optional[str] = None

        try:
            raw = base64.b64decode(payment_payload.payload.transaction, validate=True)

            try:
                versioned = VersionedTransaction.from_bytes(raw)
            except Exception:
                versioned = None

            if versioned is not None:
                resp = await self.client.send_raw_transaction(
                    bytes(versioned),
                    opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed),
                )
            else:
                legacy = Transaction.from_bytes(raw)
                resp = await self.client.send_raw_transaction(
                    bytes(legacy),
                    opts=TxOpts(skip_confirmation=False, preflight_commitment=Confirmed),
                )

            tx_signature = resp.value
            signature = str(tx_signature)

            logger.info(
                "solana_transaction_sent",
                signature=signature,
                payer=payer,
                amount=requirements.maxAmountRequired,
                network=network,
            )

            confirmation = await self.client.confirm_transaction(tx_signature, commitment=Confirmed)
            status = confirmation.value[0] if confirmation.value else None

            if status is None or status.err is not None:
                logger.warning(
                    "solana_settlement_rejected",
                    signature=signature,
                    error=str(status.err) if status else "no status",
                )
                return SettleResponse(
                    success=False,
                    errorReason=ErrorReason.SETTLEMENT_FAILED,
                    transaction=signature,
                    network=network,
                    payer=payer,
                )

            logger.info("solana_settlement_confirmed", signature=signature, payer=payer)
            return SettleResponse(success=True, transaction=signature, network=network, payer=payer)

        except Exception as e:
            logger.error("solana_settlement_failed", error=str(e), signature=signature, payer=payer)
            return SettleResponse(
                success=False,
                errorReason=ErrorReason.SETTLEMENT_FAILED,
                transaction=signature,
                network=network,
                payer=payer,
            )
