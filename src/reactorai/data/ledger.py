"""Ledger-data client for reactorai.

Thin async client over the ledger-data HTTP service that answers the
questions the validation pipeline asks:
- Token balances for an account
- Trading pair resolution on a chain's DEX
- Pair price and pool liquidity
- Token contract verification for custom addresses
- Aave lending position health

Every failure surfaces as a LedgerError carrying a short reason string.
In demo mode the client answers from built-in sample data.
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from cachetools import TTLCache

from reactorai.config.settings import get_settings
from reactorai.security.credentials import CredentialManager
from reactorai.utils.errors import LedgerError, classify_error

logger = logging.getLogger(__name__)


@dataclass
class PairInfo:
    """A DEX trading pair."""

    address: str
    token0: str
    token1: str
    chain_id: int


@dataclass
class TokenInfo:
    """A verified token contract."""

    address: str
    symbol: str
    decimals: int
    chain_id: int


@dataclass
class LendingPosition:
    """Aave account summary."""

    account: str
    chain_id: int
    has_position: bool
    health_factor: Optional[float]
    total_collateral_usd: float = 0.0
    total_debt_usd: float = 0.0


# Mock data for demo mode
MOCK_USD_PRICES = {
    "ETH": 3000.0,
    "BTC": 60000.0,
    "WBTC": 60000.0,
    "USDC": 1.0,
    "USDT": 1.0,
    "DAI": 1.0,
    "AVAX": 35.0,
    "LINK": 15.0,
}

MOCK_BALANCES = {
    "ETH": 2.5,
    "WBTC": 0.15,
    "USDC": 5000.0,
    "USDT": 1200.0,
    "DAI": 800.0,
    "AVAX": 40.0,
    "LINK": 120.0,
}

# BTC is not an on-chain asset, so it never has a pool
MOCK_UNPAIRED = {"BTC"}

# Thin pools, in USD
MOCK_LIQUIDITY_OVERRIDES = {
    frozenset({"LINK", "DAI"}): 4200.0,
    frozenset({"AVAX", "DAI"}): 6500.0,
}
MOCK_DEFAULT_LIQUIDITY = 2_500_000.0

MOCK_TOKEN_CONTRACTS = {
    "0x1f9840a85d5af5bf1d1762f925bdaddc4201f984": ("UNI", 18),
    "0x6b175474e89094c44da98b954eedeac495271d0f": ("DAI", 18),
    "0x514910771af9ca656af840dff83e8264ecf986ca": ("LINK", 18),
}

MOCK_POSITION = {"health_factor": 1.85, "total_collateral_usd": 12500.0, "total_debt_usd": 5400.0}


def _mock_address(*parts: object) -> str:
    """Deterministic fake contract address."""
    digest = hashlib.sha256(":".join(str(p) for p in parts).encode()).hexdigest()
    return "0x" + digest[:40]


class LedgerClient:
    """Client for the ledger-data service.

    Pair and token-contract lookups are cached with a TTL since they do not
    change between turns. Balances, prices and liquidity are always live.
    """

    def __init__(self, api_key: Optional[str] = None):
        """Initialize the ledger client.

        Args:
            api_key: Ledger API key (if not provided, will try to get from keyring)
        """
        self.settings = get_settings()
        self._api_key = api_key
        self._client: Optional[httpx.AsyncClient] = None
        ttl = self.settings.ledger.cache_ttl
        self._pair_cache: TTLCache = TTLCache(maxsize=256, ttl=ttl)
        self._token_cache: TTLCache = TTLCache(maxsize=256, ttl=ttl)

    @property
    def api_key(self) -> Optional[str]:
        """Get the API key."""
        if self._api_key:
            return self._api_key
        return CredentialManager.get_ledger_key()

    @property
    def is_available(self) -> bool:
        """Whether live lookups are made (False in demo mode)."""
        return not self.settings.demo_mode

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.ledger.base_url,
                headers={"Authorization": f"Bearer {self.api_key}"} if self.api_key else {},
                timeout=self.settings.ledger.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, step: str, path: str, params: Optional[dict] = None) -> dict:
        """GET a JSON document, converting every failure into LedgerError."""
        client = await self._get_client()
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            reason = classify_error(e)
            logger.warning(f"Ledger {step} request failed: {reason}")
            raise LedgerError(reason, step, original=e) from e
        except ValueError as e:
            raise LedgerError("malformed response", step, original=e) from e

        if not isinstance(data, dict):
            raise LedgerError("malformed response", step)
        if data.get("error"):
            raise LedgerError(str(data["error"]), step)
        return data

    async def get_balance(self, account: str, token: str, chain_id: int) -> float:
        """Get an account's balance of a token.

        Args:
            account: Wallet address
            token: Ticker or token contract address
            chain_id: Destination chain

        Returns:
            Balance in whole token units
        """
        if not self.is_available:
            if token.startswith("0x"):
                return 1000.0
            if token.upper() not in MOCK_BALANCES:
                raise LedgerError("balance unavailable for asset", "balance")
            return MOCK_BALANCES[token.upper()]

        data = await self._request("balance", f"/chains/{chain_id}/accounts/{account}/balances/{token}")
        try:
            return float(data["balance"])
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerError("malformed response", "balance", original=e) from e

    async def find_pair(self, token_a: str, token_b: str, chain_id: int) -> PairInfo:
        """Resolve the DEX pair for two tokens.

        Args:
            token_a: First token (ticker or address)
            token_b: Second token (ticker or address)
            chain_id: Destination chain

        Returns:
            PairInfo with the pair address and its token ordering
        """
        key = (chain_id, frozenset({token_a.upper(), token_b.upper()}))
        if key in self._pair_cache:
            logger.debug(f"Pair cache hit for {token_a}/{token_b} on {chain_id}")
            return self._pair_cache[key]

        if not self.is_available:
            if token_a.upper() == token_b.upper() or MOCK_UNPAIRED & {token_a.upper(), token_b.upper()}:
                raise LedgerError("pair not found", "pair")
            token0, token1 = sorted([token_a.upper(), token_b.upper()])
            pair = PairInfo(
                address=_mock_address(chain_id, token0, token1),
                token0=token0,
                token1=token1,
                chain_id=chain_id,
            )
        else:
            data = await self._request(
                "pair", f"/chains/{chain_id}/pairs", params={"tokenA": token_a, "tokenB": token_b}
            )
            if not data.get("address"):
                raise LedgerError("pair not found", "pair")
            pair = PairInfo(
                address=data["address"],
                token0=str(data.get("token0", token_a)).upper(),
                token1=str(data.get("token1", token_b)).upper(),
                chain_id=chain_id,
            )

        self._pair_cache[key] = pair
        return pair

    async def get_price(self, pair: PairInfo, chain_id: int) -> float:
        """Get the price of the pair's token0 expressed in token1.

        Args:
            pair: Resolved pair
            chain_id: Destination chain

        Returns:
            Units of token1 per one token0
        """
        if not self.is_available:
            usd0 = MOCK_USD_PRICES.get(pair.token0, 1.0)
            usd1 = MOCK_USD_PRICES.get(pair.token1, 1.0)
            return usd0 / usd1

        data = await self._request("price", f"/chains/{chain_id}/pairs/{pair.address}/price")
        try:
            price = float(data["price0"])
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerError("malformed response", "price", original=e) from e
        if price <= 0:
            raise LedgerError("price unavailable", "price")
        return price

    async def check_liquidity(self, pair: PairInfo, chain_id: int) -> float:
        """Get a pair's pool liquidity in USD.

        Args:
            pair: Resolved pair
            chain_id: Destination chain

        Returns:
            Total value locked in the pool, in USD
        """
        if not self.is_available:
            return MOCK_LIQUIDITY_OVERRIDES.get(
                frozenset({pair.token0, pair.token1}), MOCK_DEFAULT_LIQUIDITY
            )

        data = await self._request("liquidity", f"/chains/{chain_id}/pairs/{pair.address}/liquidity")
        try:
            return float(data["liquidity_usd"])
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerError("malformed response", "liquidity", original=e) from e

    async def validate_token_contract(self, address: str, chain_id: int) -> TokenInfo:
        """Verify that an address is a token contract on a chain.

        Args:
            address: 0x-prefixed contract address
            chain_id: Destination chain

        Returns:
            TokenInfo with the resolved symbol
        """
        key = (chain_id, address.lower())
        if key in self._token_cache:
            return self._token_cache[key]

        if not self.is_available:
            known = MOCK_TOKEN_CONTRACTS.get(address.lower())
            if known is None:
                raise LedgerError("not a token contract", "token")
            symbol, decimals = known
        else:
            data = await self._request("token", f"/chains/{chain_id}/tokens/{address}")
            if not data.get("is_token", True) or not data.get("symbol"):
                raise LedgerError("not a token contract", "token")
            symbol, decimals = str(data["symbol"]), int(data.get("decimals", 18))

        info = TokenInfo(address=address, symbol=symbol.upper(), decimals=decimals, chain_id=chain_id)
        self._token_cache[key] = info
        return info

    async def get_lending_position(self, account: str, chain_id: int) -> LendingPosition:
        """Get an account's Aave position summary.

        Args:
            account: Wallet address
            chain_id: Chain hosting the Aave pool

        Returns:
            LendingPosition, with has_position False when there is no debt
        """
        if not self.is_available:
            return LendingPosition(account=account, chain_id=chain_id, has_position=True, **MOCK_POSITION)

        data = await self._request("position", f"/chains/{chain_id}/aave/accounts/{account}")
        try:
            debt = float(data.get("total_debt_usd", 0.0))
            hf = data.get("health_factor")
            return LendingPosition(
                account=account,
                chain_id=chain_id,
                has_position=debt > 0,
                health_factor=float(hf) if hf is not None else None,
                total_collateral_usd=float(data.get("total_collateral_usd", 0.0)),
                total_debt_usd=debt,
            )
        except (TypeError, ValueError) as e:
            raise LedgerError("malformed response", "position", original=e) from e
