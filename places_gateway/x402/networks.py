# places_gateway/x402/networks.py
"""
Network profiles for the x402 "exact" scheme.

Each supported network maps to its chain id, the USDC contract used as the
payment asset, the EIP-712 domain defaults for that contract (all taken from
the x402 SDK chain tables), and the facilitator that verifies and settles
payments on it.

Base mainnet is bound to the hosted CDP facilitator embedded below; every
other network uses the facilitator URL from configuration (FACILITATOR_URL).
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from x402.chains import (
    get_default_token_address,
    get_token_decimals,
    get_token_name,
    get_token_version,
)
from x402.networks import EVM_NETWORK_TO_CHAIN_ID

from places_gateway.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Hosted facilitator trusted for Base mainnet
TRUSTED_FACILITATOR_URL = "https://api.cdp.coinbase.com/platform/v2/x402"

class Network(str, Enum):
    """Networks this gateway can accept payments on."""
    BASE = "base"
    BASE_SEPOLIA = "base-sepolia"
    AVALANCHE = "avalanche"
    AVALANCHE_FUJI = "avalanche-fuji"


class FacilitatorKind(str, Enum):
    TRUSTED = "trusted"
    URL = "url"


@dataclass(frozen=True)
class FacilitatorBinding:
    kind: FacilitatorKind
    url: str

    @property
    def is_trusted(self) -> bool:
        return self.kind is FacilitatorKind.TRUSTED

    def describe(self) -> str:
        """Human-readable label used in health and discovery output."""
        if self.is_trusted:
            return "CDP Official (mainnet)"
        return self.url


@dataclass(frozen=True)
class NetworkProfile:
    network: Network
    chain_id: int
    asset: str
    asset_decimals: int
    eip712_name: str
    eip712_version: str
    facilitator: FacilitatorBinding

    @property
    def extra(self) -> Dict[str, str]:
        """EIP-712 domain hints sent to payers in PaymentRequirement.extra."""
        return {"name": self.eip712_name, "version": self.eip712_version}


TRUSTED_NETWORKS = frozenset({Network.BASE})


def parse_network(network_id: str) -> Network:
    """
    Convert a configured network identifier into a Network.

    Raises:
        ConfigurationError: If the identifier is not supported
    """
    try:
        return Network(network_id)
    except ValueError:
        valid = ", ".join(n.value for n in Network)
        raise ConfigurationError(f"Invalid network: {network_id}. Valid: {valid}") from None


def resolve(network_id: str, facilitator_url: Optional[str] = None) -> NetworkProfile:
    """
    Resolve a network identifier to its immutable profile.

    Args:
        network_id: Configured network identifier (e.g. "base-sepolia")
        facilitator_url: URL of the facilitator for non-trusted networks

    Returns:
        NetworkProfile with chain parameters and facilitator binding

    Raises:
        ConfigurationError: If the network is unknown, or a URL-addressed
            facilitator is needed but none is configured
    """
    network = parse_network(network_id)
    chain_id = EVM_NETWORK_TO_CHAIN_ID[network.value]
    asset = get_default_token_address(str(chain_id), "usdc")

    if network in TRUSTED_NETWORKS:
        binding = FacilitatorBinding(FacilitatorKind.TRUSTED, TRUSTED_FACILITATOR_URL)
    else:
        if not facilitator_url:
            raise ConfigurationError(
                f"FACILITATOR_URL is required for network {network.value}"
            )
        binding = FacilitatorBinding(FacilitatorKind.URL, facilitator_url.rstrip("/"))

    logger.info(f"Resolved network {network.value}: chain_id={chain_id}, facilitator={binding.describe()}")

    return NetworkProfile(
        network=network,
        chain_id=chain_id,
        asset=asset,
        asset_decimals=get_token_decimals(str(chain_id), asset),
        eip712_name=get_token_name(str(chain_id), asset),
        eip712_version=get_token_version(str(chain_id), asset),
        facilitator=binding,
    )
