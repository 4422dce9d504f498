"""Deployment payloads built from a validated conversation."""

from typing import Any, Optional

from reactorai.chat.context import AaveProtectionData, ConversationState, ProtectionType, StopOrderData
from reactorai.chat.validation import resolve_amount
from reactorai.config.settings import Settings, get_settings
from reactorai.data.networks import get_network
from reactorai.utils.errors import StateError


def build_configuration(state: ConversationState, settings: Optional[Settings] = None) -> dict[str, Any]:
    """Assemble the hand-off payload for the active task.

    Args:
        state: Conversation whose task data has been validated
        settings: Settings providing deployment constants

    Returns:
        A JSON-serializable configuration with ``deployment_ready`` set

    Raises:
        StateError: The task data is incomplete
    """
    settings = settings or get_settings()
    if isinstance(state.data, StopOrderData):
        return _stop_order_config(state, state.data, settings)
    if isinstance(state.data, AaveProtectionData):
        return _aave_config(state, state.data, settings)
    raise StateError("no active task to build a configuration for")


def _network_fields(chain_id: int) -> dict[str, Any]:
    network = get_network(chain_id)
    if network is None:
        raise StateError(f"unsupported network {chain_id}")
    return {
        "chain_id": chain_id,
        "network_name": network.name,
        "dex": network.dex,
        "reactive_network": network.reactive_network,
        "reactive_chain_id": network.reactive_chain_id,
    }


def _stop_order_config(state: ConversationState, data: StopOrderData, settings: Settings) -> dict[str, Any]:
    if not data.is_resolved or data.amount is None or data.drop_percentage is None:
        raise StateError("stop order has not been validated")

    used_custom = {
        symbol: address
        for symbol, address in state.custom_tokens.items()
        if symbol in (data.token_to_sell, data.token_to_buy)
    }
    return {
        "task": "stop_order",
        **_network_fields(state.selected_network),
        "pair_address": data.pair_address,
        "sell_token0": data.sell_token0,
        "client_address": state.connected_account,
        "coefficient": settings.deployment.coefficient,
        "threshold": data.threshold,
        "amount": resolve_amount(data.amount, data.user_balance),
        "amount_input": data.amount,
        "destination_funding": settings.deployment.funding_for(state.selected_network),
        "rsc_funding": settings.deployment.rsc_funding,
        "token_to_sell": data.token_to_sell,
        "token_to_buy": data.token_to_buy,
        "drop_percentage": data.drop_percentage,
        "current_price": data.current_price,
        "target_price": data.target_price,
        "user_balance": data.user_balance,
        "custom_token_addresses": used_custom,
        "deployment_ready": True,
    }


def _aave_config(state: ConversationState, data: AaveProtectionData, settings: Settings) -> dict[str, Any]:
    if not data.is_resolved or data.protection_type is None:
        raise StateError("aave protection has not been validated")

    combined = data.protection_type == ProtectionType.COMBINED
    return {
        "task": "aave_protection",
        **_network_fields(state.selected_network),
        "user_address": state.connected_account,
        "protection_type": data.protection_type.value,
        "health_factor_threshold": data.health_factor_threshold,
        "target_health_factor": data.target_health_factor,
        "collateral_asset": data.collateral_asset,
        "debt_asset": data.debt_asset,
        "prefer_debt_repayment": bool(data.prefer_debt_repayment) if combined else None,
        "current_health_factor": data.current_health_factor,
        "has_aave_position": data.has_position,
        "rsc_funding": settings.deployment.rsc_funding,
        "destination_funding": settings.deployment.funding_for(state.selected_network),
        "deployment_ready": True,
    }
