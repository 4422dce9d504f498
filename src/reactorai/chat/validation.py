"""External validation pipeline for reactorai.

Resolves a task's derived fields through the ledger client in a fixed
order. Every resolved value is cached on the task data, so running the
pipeline again only issues lookups for fields that were cleared. A failed
lookup stops the pipeline at once with a typed ValidationOutcome; nothing
is retried here.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from reactorai.chat.context import AaveProtectionData, ConversationState, StopOrderData
from reactorai.config.settings import Settings, get_settings
from reactorai.data.ledger import LedgerClient, PairInfo, TokenInfo
from reactorai.data.networks import network_name
from reactorai.errors.translator import (
    OutcomeKind,
    ValidationOutcome,
    build_outcome,
    translate_failure,
)
from reactorai.utils.errors import LedgerError, StateError

logger = logging.getLogger(__name__)


class SoftWarning(str, Enum):
    """Risks that pause the flow for explicit confirmation."""

    LOW_LIQUIDITY = "low_liquidity"
    INSUFFICIENT_BALANCE = "insufficient_balance"


class PipelineFailure(Exception):
    """A validation step failed; carries the outcome to show the user."""

    def __init__(self, outcome: ValidationOutcome):
        self.outcome = outcome
        super().__init__(outcome.kind.value)


@dataclass
class PipelineResult:
    """Successful pipeline run."""

    warnings: list[SoftWarning] = field(default_factory=list)


def resolve_amount(amount: str, balance: float) -> float:
    """Turn an amount slot ("all", "25%", "1.5") into token units."""
    if amount == "all":
        return balance
    if amount.endswith("%"):
        return balance * float(amount[:-1]) / 100
    return float(amount)


def compute_trigger(current_price: float, drop_percentage: float, coefficient: int) -> tuple[float, int]:
    """Target price and on-chain threshold for a price drop.

    Returns:
        (target_price, threshold) where threshold = floor(target / current * coefficient)
    """
    target_price = current_price * (1 - drop_percentage / 100)
    threshold = math.floor(round(target_price / current_price * coefficient, 9))
    return target_price, threshold


class ValidationPipeline:
    """Runs ledger lookups for the active task."""

    def __init__(self, ledger: LedgerClient, settings: Optional[Settings] = None):
        self.ledger = ledger
        self.settings = settings or get_settings()

    async def run(self, state: ConversationState) -> PipelineResult:
        """Resolve derived fields for the active task.

        Args:
            state: Conversation with all raw slots collected

        Returns:
            PipelineResult listing soft warnings not yet accepted

        Raises:
            PipelineFailure: A lookup failed
            StateError: Required context is missing
        """
        if state.connected_account is None or state.selected_network is None:
            raise StateError("validation needs an account and a network")
        if isinstance(state.data, StopOrderData):
            return await self._run_stop_order(state, state.data)
        if isinstance(state.data, AaveProtectionData):
            return await self._run_aave(state, state.data)
        raise StateError("no active task to validate")

    # -- stop order ------------------------------------------------------------

    async def _run_stop_order(self, state: ConversationState, data: StopOrderData) -> PipelineResult:
        if not (data.token_to_sell and data.token_to_buy and data.amount and data.drop_percentage):
            raise StateError("stop order is missing raw slots")

        chain_id = state.selected_network
        account = state.connected_account
        sell_id = self.token_id(state, data.token_to_sell)
        buy_id = self.token_id(state, data.token_to_buy)
        context = {
            "sell": data.token_to_sell,
            "buy": data.token_to_buy,
            "network": network_name(chain_id),
            "token": data.token_to_sell,
        }

        # 1. balance of the token being sold
        if data.user_balance is None:
            try:
                data.user_balance = await self.ledger.get_balance(account, sell_id, chain_id)
            except LedgerError as e:
                raise PipelineFailure(translate_failure(e, **context)) from e
        else:
            logger.debug(f"Reusing cached balance for {state.id}")

        # 2. trading pair
        if data.pair_address is None or data.sell_token0 is None:
            try:
                pair = await self.ledger.find_pair(sell_id, buy_id, chain_id)
            except LedgerError as e:
                raise PipelineFailure(translate_failure(e, **context)) from e
            data.pair_address = pair.address
            data.sell_token0 = pair.token0.upper() == sell_id.upper()
        pair = self._pair(data, sell_id, buy_id, chain_id)

        # 3. price, quoted as token_to_buy per token_to_sell
        if data.current_price is None:
            try:
                price0 = await self.ledger.get_price(pair, chain_id)
            except LedgerError as e:
                raise PipelineFailure(translate_failure(e, **context)) from e
            data.current_price = price0 if data.sell_token0 else 1 / price0
        if data.target_price is None or data.threshold is None:
            data.target_price, data.threshold = compute_trigger(
                data.current_price, data.drop_percentage, self.settings.deployment.coefficient
            )

        # 4. pool liquidity
        if data.liquidity_usd is None:
            try:
                data.liquidity_usd = await self.ledger.check_liquidity(pair, chain_id)
            except LedgerError as e:
                raise PipelineFailure(translate_failure(e, **context)) from e
        if data.liquidity_usd <= 0:
            data.pair_address = None
            data.liquidity_usd = None
            raise PipelineFailure(build_outcome(OutcomeKind.PAIR_NOT_FOUND, **context))

        warnings = []
        if data.liquidity_usd < self.settings.ledger.min_liquidity_usd and not data.low_liquidity_accepted:
            warnings.append(SoftWarning.LOW_LIQUIDITY)
        if self.balance_short(data) and not data.balance_risk_accepted:
            warnings.append(SoftWarning.INSUFFICIENT_BALANCE)
        return PipelineResult(warnings=warnings)

    @staticmethod
    def balance_short(data: StopOrderData) -> bool:
        """True when the balance cannot cover the requested amount."""
        if data.user_balance is None or data.amount is None:
            return False
        if data.user_balance <= 0:
            return True
        return resolve_amount(data.amount, data.user_balance) > data.user_balance

    @staticmethod
    def _pair(data: StopOrderData, sell_id: str, buy_id: str, chain_id: int) -> PairInfo:
        token0, token1 = (sell_id, buy_id) if data.sell_token0 else (buy_id, sell_id)
        return PairInfo(address=data.pair_address, token0=token0.upper(), token1=token1.upper(), chain_id=chain_id)

    # -- aave protection -------------------------------------------------------

    async def _run_aave(self, state: ConversationState, data: AaveProtectionData) -> PipelineResult:
        asset = data.primary_asset
        if data.protection_type is None or asset is None:
            raise StateError("aave protection is missing raw slots")

        chain_id = state.selected_network
        account = state.connected_account
        context = {"network": network_name(chain_id), "token": asset, "sell": asset}

        # 1. balance of the asset that funds the protection
        if data.asset_balance is None:
            try:
                data.asset_balance = await self.ledger.get_balance(
                    account, self.token_id(state, asset), chain_id
                )
            except LedgerError as e:
                raise PipelineFailure(translate_failure(e, **context)) from e

        # 2. lending position
        if data.has_position is None:
            try:
                position = await self.ledger.get_lending_position(account, chain_id)
            except LedgerError as e:
                raise PipelineFailure(translate_failure(e, **context)) from e
            data.has_position = position.has_position
            data.current_health_factor = position.health_factor

        warnings = []
        if data.asset_balance <= 0 and not data.balance_risk_accepted:
            warnings.append(SoftWarning.INSUFFICIENT_BALANCE)
        return PipelineResult(warnings=warnings)

    # -- custom tokens ---------------------------------------------------------

    async def register_custom_token(self, state: ConversationState, address: str) -> TokenInfo:
        """Verify a raw token address and remember it under its symbol.

        Args:
            state: Conversation to register the token in
            address: 0x-prefixed contract address

        Returns:
            TokenInfo for the verified contract

        Raises:
            PipelineFailure: The address is not a usable token contract
        """
        if state.selected_network is None:
            raise StateError("a network is needed to verify a token contract")
        try:
            info = await self.ledger.validate_token_contract(address, state.selected_network)
        except LedgerError as e:
            raise PipelineFailure(
                translate_failure(e, token=address, network=network_name(state.selected_network))
            ) from e
        state.custom_tokens[info.symbol] = address
        logger.info(f"Registered custom token {info.symbol} for conversation {state.id}")
        return info

    @staticmethod
    def token_id(state: ConversationState, symbol: str) -> str:
        """Address for registered custom tokens, the ticker otherwise."""
        return state.custom_tokens.get(symbol, symbol)
