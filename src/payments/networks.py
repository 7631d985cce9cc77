"""
Supported networks and the resolver that routes a network identifier
to the backend for its ledger family
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from src.payments.backend import ChainBackend


class ChainFamily(str, Enum):
    """Ledger families the facilitator can settle on"""
    EVM = "evm"
    SOLANA = "solana"


@dataclass(frozen=True)
class NetworkInfo:
    """Configuration for one supported network."""
    name: str           # Legacy short name (x402 v1)
    caip2: str          # CAIP-2 identifier (x402 v2)
    family: ChainFamily
    usdc_asset: str     # Token contract (EVM) or mint (Solana)
    is_testnet: bool
    chain_id: Optional[int] = None


NETWORKS: List[NetworkInfo] = [
    NetworkInfo(
        name="base",
        caip2="eip155:8453",
        family=ChainFamily.EVM,
        usdc_asset="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        is_testnet=False,
        chain_id=8453,
    ),
    NetworkInfo(
        name="base-sepolia",
        caip2="eip155:84532",
        family=ChainFamily.EVM,
        usdc_asset="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        is_testnet=True,
        chain_id=84532,
    ),
    NetworkInfo(
        name="solana",
        caip2="solana:5eykt4UsFv8P8NJdTREpY1vzqKqZKvdp",
        family=ChainFamily.SOLANA,
        usdc_asset="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
        is_testnet=False,
    ),
    NetworkInfo(
        name="solana-devnet",
        caip2="solana:EtWTRABZaYq6iMfeYKouRu166VU2xqa1",
        family=ChainFamily.SOLANA,
        usdc_asset="4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU",
        is_testnet=True,
    ),
]

_BY_IDENTIFIER: Dict[str, NetworkInfo] = {}
for _info in NETWORKS:
    _BY_IDENTIFIER[_info.name] = _info
    _BY_IDENTIFIER[_info.caip2] = _info


def get_network(network: str) -> Optional[NetworkInfo]:
    """Look up a network by legacy name or CAIP-2 id"""
    return _BY_IDENTIFIER.get(network)


def network_identifiers(family: Optional[ChainFamily] = None) -> List[str]:
    """All identifiers (legacy first, then CAIP-2) optionally limited to one family"""
    infos = [n for n in NETWORKS if family is None or n.family == family]
    return [n.name for n in infos] + [n.caip2 for n in infos]


def detect_family(network) -> Optional[ChainFamily]:
    """
    Classify an identifier by vocabulary.

    EVM identifiers contain "base" or start with "eip155:"; Solana identifiers
    contain "solana". Anything matching both or neither is unsupported.
    """
    if not isinstance(network, str) or not network:
        return None

    is_evm = "base" in network or network.startswith("eip155:")
    is_solana = "solana" in network

    if is_evm and not is_solana:
        return ChainFamily.EVM
    if is_solana and not is_evm:
        return ChainFamily.SOLANA
    return None


@dataclass(frozen=True)
class Resolution:
    family: ChainFamily
    backend: ChainBackend


class NetworkResolver:
    """Maps network identifiers to the backend that handles them"""

    def __init__(self, backends: Dict[ChainFamily, ChainBackend]):
        self.backends = backends

    def resolve(self, network) -> Optional[Resolution]:
        """Return the family and backend for a network, or None if unsupported"""
        family = detect_family(network)
        if family is None:
            return None

        backend = self.backends.get(family)
        if backend is None:
            return None

        return Resolution(family=family, backend=backend)
