"""
Capability interface implemented by each ledger family's backend
"""

from typing import Any, List, Optional, Protocol

from src.payments.models import PaymentRequirements, SettleResponse, VerifyResponse


class ChainBackend(Protocol):
    """Verifies and settles payments against one ledger family"""

    async def verify(self, payment_payload: Any, requirements: PaymentRequirements) -> VerifyResponse:
        ...

    async def settle(self, payment_payload: Any, requirements: PaymentRequirements) -> SettleResponse:
        ...

    @property
    def signer_address(self) -> Optional[str]:
        """Facilitator funding address, or None when settlement is disabled"""
        ...

    def supported_networks(self) -> List[str]:
        ...
