"""Static chain and token reference data.

Holds the token allow-list with its synonym table, the supported networks
and which automation each network can host.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class NetworkInfo:
    """A supported destination chain."""

    chain_id: int
    name: str
    currency: str
    dex: str
    testnet: bool = False

    @property
    def reactive_network(self) -> str:
        """Reactive Network currency that pays for the monitoring contract."""
        return "KOPLI" if self.testnet else "REACT"

    @property
    def reactive_chain_id(self) -> int:
        return 5318008 if self.testnet else 1597


ETHEREUM = NetworkInfo(
    chain_id=1,
    name="Ethereum Mainnet",
    currency="ETH",
    dex="Uniswap V2",
)
SEPOLIA = NetworkInfo(
    chain_id=11155111,
    name="Ethereum Sepolia",
    currency="ETH",
    dex="Uniswap V2",
    testnet=True,
)
AVALANCHE = NetworkInfo(
    chain_id=43114,
    name="Avalanche C-Chain",
    currency="AVAX",
    dex="Pangolin",
)

NETWORKS: dict[int, NetworkInfo] = {n.chain_id: n for n in (ETHEREUM, SEPOLIA, AVALANCHE)}

# Chains each automation can be deployed to
STOP_ORDER_CHAINS: tuple[int, ...] = (1, 43114, 11155111)
AAVE_PROTECTION_CHAINS: tuple[int, ...] = (11155111,)


# Known tokens (upper-case tickers)
SUPPORTED_TOKENS: tuple[str, ...] = ("ETH", "BTC", "USDC", "USDT", "DAI", "WBTC", "AVAX", "LINK")

# Full names and nicknames -> ticker. Multi-word entries first so they win.
TOKEN_SYNONYMS: dict[str, str] = {
    "wrapped bitcoin": "WBTC",
    "usd coin": "USDC",
    "ethereum": "ETH",
    "ether": "ETH",
    "bitcoin": "BTC",
    "tether": "USDT",
    "chainlink": "LINK",
}

# Assets the Aave protection flow can deposit or repay
AAVE_ASSETS: tuple[str, ...] = ("USDC", "USDT", "DAI", "WBTC", "ETH", "LINK")


def get_network(chain_id: Optional[int]) -> Optional[NetworkInfo]:
    """Look up a supported network by chain id."""
    if chain_id is None:
        return None
    return NETWORKS.get(chain_id)


def network_name(chain_id: Optional[int]) -> str:
    """Display name for a chain id, falling back to the raw id."""
    network = get_network(chain_id)
    return network.name if network else f"chain {chain_id}"
