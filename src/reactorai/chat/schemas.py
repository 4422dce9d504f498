"""Task schemas for the dialogue manager.

Each task declares its slots in elicitation priority order, together with
the prompt used to ask for a slot, suggested values, when the slot applies
and any cross-slot validation. The dialogue manager never hard-codes a
slot name; it walks the schema.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from reactorai.chat.context import (
    AaveProtectionData,
    ConversationState,
    ProtectionType,
    StopOrderData,
    TaskData,
    TaskType,
)
from reactorai.data.networks import (
    AAVE_ASSETS,
    AAVE_PROTECTION_CHAINS,
    NETWORKS,
    STOP_ORDER_CHAINS,
    network_name,
)
from reactorai.utils.errors import StateError


class SlotKind(str, Enum):
    """Value types a slot can hold."""

    ACCOUNT = "account"
    NETWORK = "network"
    TOKEN = "token"
    AMOUNT = "amount"
    PERCENTAGE = "percentage"
    HEALTH_FACTOR = "health_factor"
    STRATEGY = "strategy"
    BOOLEAN = "boolean"


Suggestion = tuple[str, str]  # (value, label)


@dataclass
class SlotDefinition:
    """A single named, typed field required by a task."""

    name: str
    kind: SlotKind
    prompt: Callable[[ConversationState], str]
    suggestions: Callable[[ConversationState], list[Suggestion]] = lambda state: []
    required_when: Optional[Callable[[TaskData], bool]] = None
    # Returns an error message when the value is unacceptable in this state
    validate: Optional[Callable[[Any, ConversationState], Optional[str]]] = None

    def applies(self, data: Optional[TaskData]) -> bool:
        if self.required_when is None or data is None:
            return True
        return self.required_when(data)


@dataclass
class TaskSchema:
    """Slots and dependencies of one automation task."""

    task: TaskType
    title: str
    slots: list[SlotDefinition]
    supported_chains: tuple[int, ...]
    # raw slot -> task fields that must be reset when it changes
    dependents: dict[str, tuple[str, ...]] = field(default_factory=dict)
    # slots cleared by "choose different tokens"
    asset_slots: tuple[str, ...] = ()

    def slot(self, name: str) -> SlotDefinition:
        for slot in self.slots:
            if slot.name == name:
                return slot
        raise KeyError(name)

    def active_slots(self, state: ConversationState) -> list[SlotDefinition]:
        """Slots that apply given what has been collected so far."""
        return [s for s in self.slots if s.applies(state.data)]

    def missing_slots(self, state: ConversationState) -> list[SlotDefinition]:
        """Unfilled applicable slots, in priority order."""
        return [s for s in self.active_slots(state) if state.get_slot(s.name) is None]

    def next_missing(self, state: ConversationState) -> Optional[SlotDefinition]:
        missing = self.missing_slots(state)
        return missing[0] if missing else None

    def dependents_of(self, names: list[str]) -> list[str]:
        """The given slots plus every field derived from them."""
        result = list(names)
        for name in names:
            for dependent in self.dependents.get(name, ()):
                if dependent not in result:
                    result.append(dependent)
        return result


# =============================================================================
# Shared slot helpers
# =============================================================================


def _account_slot() -> SlotDefinition:
    return SlotDefinition(
        name="connected_account",
        kind=SlotKind.ACCOUNT,
        prompt=lambda state: "Please connect your wallet or paste the address (0x...) that holds the funds.",
    )


def _network_slot(chains: tuple[int, ...], task_title: str) -> SlotDefinition:
    def validate(chain_id: int, state: ConversationState) -> Optional[str]:
        if chain_id not in chains:
            supported = ", ".join(network_name(c) for c in chains)
            return f"{task_title} is not available on {network_name(chain_id)}. Supported: {supported}."
        return None

    def prompt(state: ConversationState) -> str:
        if len(chains) == 1:
            return f"Which network should this run on? {task_title} is available on {network_name(chains[0])}."
        return "Which network should this run on?"

    return SlotDefinition(
        name="selected_network",
        kind=SlotKind.NETWORK,
        prompt=prompt,
        suggestions=lambda state: [(str(c), NETWORKS[c].name) for c in chains],
        validate=validate,
    )


def _token_options(symbols: list[str], exclude: Optional[str] = None) -> list[Suggestion]:
    return [(s, s) for s in symbols if s != exclude]


# =============================================================================
# Stop order
# =============================================================================


def _sell(state: ConversationState) -> str:
    data = state.data
    return data.token_to_sell if isinstance(data, StopOrderData) and data.token_to_sell else "your token"


def _validate_token_to_buy(value: str, state: ConversationState) -> Optional[str]:
    if isinstance(state.data, StopOrderData) and value == state.data.token_to_sell:
        return f"You're already selling {value}. Pick a different token to receive."
    return None


def _validate_amount(value: str, state: ConversationState) -> Optional[str]:
    if value == "all" or value.endswith("%"):
        return None
    if float(value) <= 0:
        return "The amount has to be greater than zero."
    return None


STOP_ORDER_SCHEMA = TaskSchema(
    task=TaskType.STOP_ORDER,
    title="Stop order",
    supported_chains=STOP_ORDER_CHAINS,
    slots=[
        _account_slot(),
        _network_slot(STOP_ORDER_CHAINS, "Stop order"),
        SlotDefinition(
            name="token_to_sell",
            kind=SlotKind.TOKEN,
            prompt=lambda state: "Which token do you want to protect (sell if the price drops)?",
            suggestions=lambda state: _token_options(["ETH", "WBTC", "AVAX", "LINK"]),
        ),
        SlotDefinition(
            name="token_to_buy",
            kind=SlotKind.TOKEN,
            prompt=lambda state: f"Which token should {_sell(state)} be sold for?",
            suggestions=lambda state: _token_options(["USDC", "USDT", "DAI", "ETH"], _sell(state)),
            validate=_validate_token_to_buy,
        ),
        SlotDefinition(
            name="amount",
            kind=SlotKind.AMOUNT,
            prompt=lambda state: (
                f"How much {_sell(state)} should the order cover? "
                "Say 'all', a share like '50%', or an exact amount."
            ),
            suggestions=lambda state: [("all", "All"), ("50%", "50%"), ("custom", "Custom amount")],
            validate=_validate_amount,
        ),
        SlotDefinition(
            name="drop_percentage",
            kind=SlotKind.PERCENTAGE,
            prompt=lambda state: f"How far should {_sell(state)} drop before selling? (percentage)",
            suggestions=lambda state: [(str(p), f"{p}%") for p in (5, 10, 15, 20)],
        ),
    ],
    dependents={
        "selected_network": StopOrderData.DERIVED_FIELDS + StopOrderData.RISK_FLAGS,
        "token_to_sell": StopOrderData.DERIVED_FIELDS + StopOrderData.RISK_FLAGS,
        "token_to_buy": (
            "pair_address",
            "sell_token0",
            "current_price",
            "target_price",
            "threshold",
            "liquidity_usd",
            "low_liquidity_accepted",
        ),
        "amount": ("balance_risk_accepted",),
        "drop_percentage": ("target_price", "threshold"),
    },
    asset_slots=("token_to_sell", "token_to_buy"),
)


# =============================================================================
# Aave liquidation protection
# =============================================================================


def _aave(state: ConversationState) -> AaveProtectionData:
    if not isinstance(state.data, AaveProtectionData):
        raise StateError("no Aave protection in progress")
    return state.data


def _uses_collateral(data: TaskData) -> bool:
    return isinstance(data, AaveProtectionData) and data.protection_type in (
        ProtectionType.COLLATERAL_DEPOSIT,
        ProtectionType.COMBINED,
    )


def _uses_debt(data: TaskData) -> bool:
    return isinstance(data, AaveProtectionData) and data.protection_type in (
        ProtectionType.DEBT_REPAYMENT,
        ProtectionType.COMBINED,
    )


def _is_combined(data: TaskData) -> bool:
    return isinstance(data, AaveProtectionData) and data.protection_type == ProtectionType.COMBINED


def _validate_target(value: float, state: ConversationState) -> Optional[str]:
    trigger = _aave(state).health_factor_threshold
    if trigger is not None and value <= trigger:
        return f"The target health factor must be above the trigger ({trigger})."
    return None


def _validate_trigger(value: float, state: ConversationState) -> Optional[str]:
    target = _aave(state).target_health_factor
    if target is not None and value >= target:
        return f"The trigger must be below the target health factor ({target})."
    return None


def _target_suggestions(state: ConversationState) -> list[Suggestion]:
    trigger = _aave(state).health_factor_threshold or 1.0
    return [(str(v), str(v)) for v in (1.5, 2.0, 2.5) if v > trigger]


PROTECTION_LABELS = {
    ProtectionType.COLLATERAL_DEPOSIT: "Deposit more collateral",
    ProtectionType.DEBT_REPAYMENT: "Repay part of the debt",
    ProtectionType.COMBINED: "Combined (both)",
}


AAVE_PROTECTION_SCHEMA = TaskSchema(
    task=TaskType.AAVE_PROTECTION,
    title="Aave liquidation protection",
    supported_chains=AAVE_PROTECTION_CHAINS,
    slots=[
        _account_slot(),
        _network_slot(AAVE_PROTECTION_CHAINS, "Aave liquidation protection"),
        SlotDefinition(
            name="protection_type",
            kind=SlotKind.STRATEGY,
            prompt=lambda state: "How should your position be protected when it gets risky?",
            suggestions=lambda state: [(p.value, label) for p, label in PROTECTION_LABELS.items()],
        ),
        SlotDefinition(
            name="health_factor_threshold",
            kind=SlotKind.HEALTH_FACTOR,
            prompt=lambda state: "At what health factor should protection kick in? (between 1.0 and 10.0)",
            suggestions=lambda state: [(str(v), str(v)) for v in (1.2, 1.3, 1.5)],
            validate=_validate_trigger,
        ),
        SlotDefinition(
            name="target_health_factor",
            kind=SlotKind.HEALTH_FACTOR,
            prompt=lambda state: "What health factor should the protection restore?",
            suggestions=_target_suggestions,
            validate=_validate_target,
        ),
        SlotDefinition(
            name="collateral_asset",
            kind=SlotKind.TOKEN,
            prompt=lambda state: "Which asset should be deposited as extra collateral?",
            suggestions=lambda state: _token_options(list(AAVE_ASSETS)),
            required_when=_uses_collateral,
        ),
        SlotDefinition(
            name="debt_asset",
            kind=SlotKind.TOKEN,
            prompt=lambda state: "Which borrowed asset should be repaid?",
            suggestions=lambda state: _token_options(["USDC", "USDT", "DAI"]),
            required_when=_uses_debt,
        ),
        SlotDefinition(
            name="prefer_debt_repayment",
            kind=SlotKind.BOOLEAN,
            prompt=lambda state: "Should debt repayment be tried before depositing collateral?",
            suggestions=lambda state: [("yes", "Repay debt first"), ("no", "Deposit collateral first")],
            required_when=_is_combined,
        ),
    ],
    dependents={
        "selected_network": AaveProtectionData.DERIVED_FIELDS + AaveProtectionData.RISK_FLAGS,
        "protection_type": ("asset_balance", "balance_risk_accepted"),
        "collateral_asset": ("asset_balance", "balance_risk_accepted"),
        "debt_asset": ("asset_balance", "balance_risk_accepted"),
        "prefer_debt_repayment": ("asset_balance", "balance_risk_accepted"),
    },
    asset_slots=("collateral_asset", "debt_asset"),
)


SCHEMAS: dict[TaskType, TaskSchema] = {
    TaskType.STOP_ORDER: STOP_ORDER_SCHEMA,
    TaskType.AAVE_PROTECTION: AAVE_PROTECTION_SCHEMA,
}


def get_schema(task: TaskType) -> TaskSchema:
    """Look up the schema for an active task."""
    return SCHEMAS[task]
