"""Conversation state for reactorai.

This module holds everything remembered about one conversation:
- Which automation task is active and where the dialogue stands
- The task's collected slot values (a tagged union, one model per task)
- Shared context that survives task switches (account, network, custom tokens)
- A size-capped message history used only for free-text answers
"""

import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from reactorai.errors.translator import OutcomeKind


class TaskType(str, Enum):
    """Automation tasks a conversation can be building."""

    NONE = "none"
    STOP_ORDER = "stop_order"
    AAVE_PROTECTION = "aave_protection"


class DialogueStep(str, Enum):
    """Where the dialogue manager stands."""

    INITIAL = "initial"
    COLLECTING = "collecting"
    VALIDATING = "validating"
    AWAITING_RECOVERY = "awaiting-recovery"
    CONFIRM_LOW_LIQUIDITY = "confirm-low-liquidity"
    CONFIRM_INSUFFICIENT_BALANCE = "confirm-insufficient-balance"
    FINAL_CONFIRMATION = "final-confirmation"
    READY = "ready"
    CANCELLED = "cancelled"


# Steps in which only a yes/no answer is accepted
YES_NO_STEPS = frozenset(
    {
        DialogueStep.CONFIRM_LOW_LIQUIDITY,
        DialogueStep.CONFIRM_INSUFFICIENT_BALANCE,
        DialogueStep.FINAL_CONFIRMATION,
    }
)

# Slots living on the conversation rather than on a task
SHARED_SLOTS = ("connected_account", "selected_network")


class ProtectionType(str, Enum):
    """Aave protection strategies."""

    COLLATERAL_DEPOSIT = "collateral_deposit"
    DEBT_REPAYMENT = "debt_repayment"
    COMBINED = "combined"


# =============================================================================
# Task data
# =============================================================================


class TaskData(BaseModel):
    """Common behaviour of per-task slot storage."""

    model_config = ConfigDict(validate_assignment=True)

    DERIVED_FIELDS: ClassVar[tuple[str, ...]] = ()
    RISK_FLAGS: ClassVar[tuple[str, ...]] = ()

    def clear_derived(self) -> None:
        """Forget everything computed from lookups, plus accepted risks."""
        for name in self.DERIVED_FIELDS + self.RISK_FLAGS:
            setattr(self, name, type(self).model_fields[name].default)

    @property
    def is_resolved(self) -> bool:
        """True once the validation pipeline has filled the derived fields."""
        raise NotImplementedError


class StopOrderData(TaskData):
    """Slots for a stop order (sell when price drops)."""

    task: Literal["stop_order"] = "stop_order"

    # Raw slots
    token_to_sell: Optional[str] = None
    token_to_buy: Optional[str] = None
    amount: Optional[str] = None  # "all", "50%" or a decimal string
    drop_percentage: Optional[float] = None

    # Derived from ledger lookups
    user_balance: Optional[float] = None
    pair_address: Optional[str] = None
    sell_token0: Optional[bool] = None
    current_price: Optional[float] = None
    target_price: Optional[float] = None
    threshold: Optional[int] = None
    liquidity_usd: Optional[float] = None

    # Risks the user explicitly accepted
    low_liquidity_accepted: bool = False
    balance_risk_accepted: bool = False

    DERIVED_FIELDS: ClassVar[tuple[str, ...]] = (
        "user_balance",
        "pair_address",
        "sell_token0",
        "current_price",
        "target_price",
        "threshold",
        "liquidity_usd",
    )
    RISK_FLAGS: ClassVar[tuple[str, ...]] = ("low_liquidity_accepted", "balance_risk_accepted")

    @property
    def is_resolved(self) -> bool:
        return all(getattr(self, name) is not None for name in self.DERIVED_FIELDS)


class AaveProtectionData(TaskData):
    """Slots for Aave liquidation protection."""

    task: Literal["aave_protection"] = "aave_protection"

    # Raw slots
    protection_type: Optional[ProtectionType] = None
    health_factor_threshold: Optional[float] = None
    target_health_factor: Optional[float] = None
    collateral_asset: Optional[str] = None
    debt_asset: Optional[str] = None
    prefer_debt_repayment: Optional[bool] = None

    # Derived from ledger lookups
    asset_balance: Optional[float] = None
    has_position: Optional[bool] = None
    current_health_factor: Optional[float] = None

    balance_risk_accepted: bool = False

    DERIVED_FIELDS: ClassVar[tuple[str, ...]] = (
        "asset_balance",
        "has_position",
        "current_health_factor",
    )
    RISK_FLAGS: ClassVar[tuple[str, ...]] = ("balance_risk_accepted",)

    @property
    def is_resolved(self) -> bool:
        return self.asset_balance is not None and self.has_position is not None

    @property
    def primary_asset(self) -> Optional[str]:
        """Asset whose wallet balance funds the protection."""
        if self.protection_type == ProtectionType.DEBT_REPAYMENT:
            return self.debt_asset
        if self.protection_type == ProtectionType.COMBINED and self.prefer_debt_repayment:
            return self.debt_asset
        return self.collateral_asset


AnyTaskData = Annotated[Union[StopOrderData, AaveProtectionData], Field(discriminator="task")]

TASK_DATA_MODELS: dict[TaskType, type[TaskData]] = {
    TaskType.STOP_ORDER: StopOrderData,
    TaskType.AAVE_PROTECTION: AaveProtectionData,
}


# =============================================================================
# Conversation state
# =============================================================================


@dataclass
class HistoryTurn:
    """One line of the conversation log."""

    speaker: str  # "user" or "assistant"
    text: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class ConversationState:
    """Everything known about one conversation id."""

    id: str
    active_task: TaskType = TaskType.NONE
    step: DialogueStep = DialogueStep.INITIAL
    current_slot: Optional[str] = None
    data: Optional[AnyTaskData] = None

    # Shared context, kept across task switches
    connected_account: Optional[str] = None
    selected_network: Optional[int] = None
    custom_tokens: dict[str, str] = field(default_factory=dict)  # symbol -> address

    history: deque = field(default_factory=lambda: deque(maxlen=20))
    last_updated: float = field(default_factory=time.time)

    # Set while waiting for the user to pick a recovery action
    recovery: Optional[OutcomeKind] = None
    # Configuration built for final confirmation, handed off at READY
    pending_config: Optional[dict[str, Any]] = None

    @property
    def current_step(self) -> str:
        """Diagnostic name of the step, e.g. "awaiting-amount"."""
        if self.step == DialogueStep.COLLECTING and self.current_slot:
            return f"awaiting-{self.current_slot.replace('_', '-')}"
        return self.step.value

    @property
    def expects_yes_no(self) -> bool:
        return self.step in YES_NO_STEPS

    def touch(self) -> None:
        """Mark the conversation as active now."""
        self.last_updated = time.time()

    def add_turn(self, speaker: str, text: str) -> None:
        self.history.append(HistoryTurn(speaker=speaker, text=text))

    def recent_history(self, n: int) -> list[HistoryTurn]:
        """The n most recent turns, oldest first."""
        return list(self.history)[-n:] if n > 0 else []

    # -- task lifecycle --------------------------------------------------------

    def start_task(self, task: TaskType) -> None:
        """Begin a task from scratch, dropping any other task's slots.

        Args:
            task: The task to start (not NONE)
        """
        self.active_task = task
        self.data = TASK_DATA_MODELS[task]()
        self.step = DialogueStep.COLLECTING
        self.current_slot = None
        self.recovery = None
        self.pending_config = None

    def reset_task(self, step: DialogueStep = DialogueStep.INITIAL) -> None:
        """Drop the active task while keeping shared context."""
        self.active_task = TaskType.NONE
        self.data = None
        self.step = step
        self.current_slot = None
        self.recovery = None
        self.pending_config = None

    def set_network(self, chain_id: Optional[int]) -> None:
        """Select a network; derived values from another network are dropped."""
        if chain_id != self.selected_network:
            self._drop_lookups()
        self.selected_network = chain_id

    def set_account(self, account: Optional[str]) -> None:
        """Select a wallet; balances and positions of another wallet are dropped."""
        if account != self.connected_account:
            self._drop_lookups()
        self.connected_account = account

    def _drop_lookups(self) -> None:
        if self.data is not None:
            self.data.clear_derived()
        self.pending_config = None

    # -- slot access -----------------------------------------------------------

    def get_slot(self, name: str) -> Any:
        """Read a shared or task slot by name."""
        if name in SHARED_SLOTS:
            return getattr(self, name)
        if self.data is None:
            return None
        return getattr(self.data, name)

    def set_slot(self, name: str, value: Any) -> None:
        """Write a shared or task slot by name."""
        if name == "selected_network":
            self.set_network(value)
        elif name == "connected_account":
            self.set_account(value)
        elif self.data is not None:
            setattr(self.data, name, value)

    def clear_slots(self, names: list[str]) -> None:
        """Reset task fields to their defaults.

        Callers pass the raw slots together with the derived fields that
        depend on them (see TaskSchema.dependents).
        """
        if self.data is None:
            return
        fields = type(self.data).model_fields
        for name in names:
            if name in fields and name != "task":
                setattr(self.data, name, fields[name].default)
        self.pending_config = None
