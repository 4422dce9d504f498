"""Response composition for reactorai.

Every turn ends in an AssistantResponse: the message text, whether more
input is expected and in what shape, suggested options, and the finished
configuration once a task is ready.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from reactorai.chat.context import (
    AaveProtectionData,
    ConversationState,
    DialogueStep,
    ProtectionType,
    StopOrderData,
    TaskType,
)
from reactorai.chat.schemas import PROTECTION_LABELS, SlotDefinition, SlotKind, TaskSchema
from reactorai.data.networks import get_network, network_name
from reactorai.errors.translator import RECOVERY_LABELS, RecoveryAction, ValidationOutcome
from reactorai.utils.errors import StateError


class InputType(str, Enum):
    """Shape of the input the assistant is waiting for."""

    AMOUNT = "amount"
    TOKEN = "token"
    NETWORK = "network"
    CONFIRMATION = "confirmation"
    CHOICE = "choice"
    NUMBER = "number"


SLOT_INPUT_TYPES = {
    SlotKind.ACCOUNT: None,
    SlotKind.NETWORK: InputType.NETWORK,
    SlotKind.TOKEN: InputType.TOKEN,
    SlotKind.AMOUNT: InputType.AMOUNT,
    SlotKind.PERCENTAGE: InputType.NUMBER,
    SlotKind.HEALTH_FACTOR: InputType.NUMBER,
    SlotKind.STRATEGY: InputType.CHOICE,
    SlotKind.BOOLEAN: InputType.CHOICE,
}


@dataclass
class Option:
    """A suggested reply."""

    value: str
    label: str


@dataclass
class AssistantResponse:
    """Outbound reply for one turn."""

    message: str
    needs_input: bool = True
    input_type: Optional[InputType] = None
    options: list[Option] = field(default_factory=list)
    configuration: Optional[dict[str, Any]] = None  # only once READY
    next_step: str = ""
    intent: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "needs_input": self.needs_input,
            "input_type": self.input_type.value if self.input_type else None,
            "options": [{"value": o.value, "label": o.label} for o in self.options],
            "configuration": self.configuration,
            "next_step": self.next_step,
            "intent": self.intent,
        }


TASK_ENTRY_OPTIONS = [
    Option("create a stop order", "Create a stop order"),
    Option("set up aave liquidation protection", "Protect an Aave position"),
    Option("what is reactor", "Learn about the platform"),
]

YES_NO_OPTIONS = [Option("yes", "Yes"), Option("no", "No")]

TASK_TITLES = {
    TaskType.STOP_ORDER: "stop order",
    TaskType.AAVE_PROTECTION: "Aave liquidation protection",
}


def _fmt(value: Optional[float], places: int = 6) -> str:
    if value is None:
        return "-"
    text = f"{value:,.{places}f}".rstrip("0").rstrip(".")
    return text or "0"


# =============================================================================
# Slot questions
# =============================================================================


def ask_slot(
    slot: SlotDefinition,
    state: ConversationState,
    preface: Optional[str] = None,
    intent: Optional[str] = None,
) -> AssistantResponse:
    """Ask for a slot, listing suggestions without restricting to them."""
    message = slot.prompt(state)
    if preface:
        message = f"{preface}\n\n{message}"
    return AssistantResponse(
        message=message,
        input_type=SLOT_INPUT_TYPES[slot.kind],
        options=[Option(value, label) for value, label in slot.suggestions(state)],
        next_step=state.current_step,
        intent=intent,
    )


def reminder(schema: TaskSchema, state: ConversationState) -> str:
    """One line restating what the active task is waiting for."""
    if state.expects_yes_no:
        return "Whenever you're ready: shall we continue? (yes/no)"
    if state.step == DialogueStep.AWAITING_RECOVERY:
        return "When you're ready, say 'try again' or choose different tokens."
    if state.current_slot:
        return f"Back to your {TASK_TITLES[schema.task]}: {schema.slot(state.current_slot).prompt(state)}"
    return f"We can continue with your {TASK_TITLES[schema.task]} whenever you like."


# =============================================================================
# Confirmations
# =============================================================================


def confirm_low_liquidity(state: ConversationState) -> AssistantResponse:
    data = state.data
    if not isinstance(data, StopOrderData):
        raise StateError("low liquidity only applies to stop orders")
    message = (
        f"Heads up: the {data.token_to_sell}/{data.token_to_buy} pool on "
        f"{network_name(state.selected_network)} only holds about ${_fmt(data.liquidity_usd, 0)} "
        "of liquidity, so a large sale could move the price a lot.\n\n"
        "Do you want to continue with this pair anyway?"
    )
    return AssistantResponse(
        message=message,
        input_type=InputType.CONFIRMATION,
        options=list(YES_NO_OPTIONS),
        next_step=state.current_step,
    )


def confirm_insufficient_balance(state: ConversationState) -> AssistantResponse:
    data = state.data
    if isinstance(data, StopOrderData):
        message = (
            f"Your wallet holds {_fmt(data.user_balance)} {data.token_to_sell}, which doesn't cover "
            f"the requested amount ({data.amount}). The order will only execute if the funds are "
            "there when it triggers.\n\nKeep this amount anyway?"
        )
    elif isinstance(data, AaveProtectionData):
        message = (
            f"Your wallet has no {data.primary_asset} to fund the protection right now. It will "
            "only act if the funds are there when it triggers.\n\nContinue anyway?"
        )
    else:
        raise StateError("no active task to confirm")
    return AssistantResponse(
        message=message,
        input_type=InputType.CONFIRMATION,
        options=list(YES_NO_OPTIONS),
        next_step=state.current_step,
    )


def summarize(state: ConversationState, config: dict[str, Any]) -> str:
    """Human-readable summary of a configuration."""
    network = config["network_name"]
    if config["task"] == "stop_order":
        lines = [
            "**Stop order summary**",
            f"- Network: {network} ({config['dex']})",
            f"- Sell: {_fmt(config['amount'])} {config['token_to_sell']} for {config['token_to_buy']}",
            f"- Current price: {_fmt(config['current_price'])} {config['token_to_buy']} per {config['token_to_sell']}",
            f"- Trigger: {config['drop_percentage']:g}% drop, at {_fmt(config['target_price'])}",
            f"- Funding: {config['destination_funding']} {_currency(state)} + "
            f"{config['rsc_funding']} {config['reactive_network']}",
        ]
    else:
        strategy = PROTECTION_LABELS[ProtectionType(config["protection_type"])]
        lines = [
            "**Aave liquidation protection summary**",
            f"- Network: {network}",
            f"- Strategy: {strategy}",
            f"- Trigger below health factor {config['health_factor_threshold']}, "
            f"restore to {config['target_health_factor']}",
        ]
        if config["collateral_asset"]:
            lines.append(f"- Collateral asset: {config['collateral_asset']}")
        if config["debt_asset"]:
            lines.append(f"- Debt asset: {config['debt_asset']}")
        if config["prefer_debt_repayment"] is not None:
            first = "repay debt" if config["prefer_debt_repayment"] else "deposit collateral"
            lines.append(f"- Tries to {first} first")
        if config["current_health_factor"] is not None:
            lines.append(f"- Current health factor: {config['current_health_factor']:.2f}")
        if not config["has_aave_position"]:
            lines.append("- Note: no open Aave borrow position was found for this account yet")
    return "\n".join(lines)


def _currency(state: ConversationState) -> str:
    network = get_network(state.selected_network)
    return network.currency if network else ""


def final_confirmation(state: ConversationState, config: dict[str, Any]) -> AssistantResponse:
    return AssistantResponse(
        message=f"{summarize(state, config)}\n\nShall I prepare this for deployment?",
        input_type=InputType.CONFIRMATION,
        options=[Option("yes", "Deploy"), Option("no", "Cancel")],
        next_step=state.current_step,
    )


def ready(state: ConversationState, config: dict[str, Any]) -> AssistantResponse:
    title = TASK_TITLES[TaskType(config["task"])]
    return AssistantResponse(
        message=f"Your {title} is ready. Sign the deployment transactions in your wallet to activate it.",
        needs_input=False,
        configuration=config,
        next_step=state.current_step,
    )


def cancelled(state: ConversationState) -> AssistantResponse:
    return AssistantResponse(
        message="No problem, I've discarded that setup. What would you like to do next?",
        input_type=InputType.CHOICE,
        options=list(TASK_ENTRY_OPTIONS),
        next_step=state.current_step,
    )


def yes_no_again(state: ConversationState) -> AssistantResponse:
    return AssistantResponse(
        message="Sorry, I need a clear yes or no to continue.",
        input_type=InputType.CONFIRMATION,
        options=list(YES_NO_OPTIONS),
        next_step=state.current_step,
    )


# =============================================================================
# Failures, redirects and help
# =============================================================================


def recovery(outcome: ValidationOutcome, state: ConversationState) -> AssistantResponse:
    """Tailored recovery prompt for a failed validation."""
    prompt = outcome.recovery_prompt
    if prompt is None:
        raise StateError(f"no recovery prompt for {outcome.kind.value}")
    options = [Option(value, label) for value, label in prompt.options]
    return AssistantResponse(
        message=prompt.message,
        input_type=InputType.CHOICE,
        options=options,
        next_step=state.current_step,
        intent=outcome.kind.value,
    )


def recovery_unclear(state: ConversationState, actions: list[RecoveryAction]) -> AssistantResponse:
    return AssistantResponse(
        message="How would you like to continue?",
        input_type=InputType.CHOICE,
        options=[Option(a.value, RECOVERY_LABELS[a]) for a in actions],
        next_step=state.current_step,
    )


DECLINE_MESSAGES = {
    "balance": "I can't look up live wallet balances here. Your wallet app or a block explorer shows them best.",
    "price": "I don't quote live prices. A price tracker or your DEX will have the latest numbers.",
    "portfolio": "I can't show portfolio overviews. I focus on setting up protective automations.",
    "position": "I can't check live Aave positions here. The Aave dashboard shows your health factor.",
    "history": "I don't have access to your transaction history. A block explorer lists it for your address.",
}


def declined(topic: str, state: ConversationState, reminder_text: Optional[str] = None) -> AssistantResponse:
    message = DECLINE_MESSAGES.get(topic, "That's not something I can help with here.")
    if reminder_text:
        message = f"{message}\n\n{reminder_text}"
        return AssistantResponse(message=message, next_step=state.current_step, intent="declined")
    message = f"{message}\n\nI can help you protect your assets instead:"
    return AssistantResponse(
        message=message,
        input_type=InputType.CHOICE,
        options=list(TASK_ENTRY_OPTIONS),
        next_step=state.current_step,
        intent="declined",
    )


def help_response(state: ConversationState, preface: Optional[str] = None) -> AssistantResponse:
    """Generic help offering both task entry points and the learn path."""
    message = (
        "I can set up two kinds of automations for you:\n"
        "- **Stop orders** that sell a token when its price drops\n"
        "- **Aave liquidation protection** that steps in when your health factor falls\n\n"
        "You can also ask me how the platform works."
    )
    if preface:
        message = f"{preface}\n\n{message}"
    return AssistantResponse(
        message=message,
        input_type=InputType.CHOICE,
        options=list(TASK_ENTRY_OPTIONS),
        next_step=state.current_step,
        intent="help",
    )


def answer(text: str, state: ConversationState, reminder_text: Optional[str] = None) -> AssistantResponse:
    """Free-text answer, followed by the pending question when a task is active."""
    if reminder_text:
        return AssistantResponse(
            message=f"{text}\n\n{reminder_text}",
            next_step=state.current_step,
            intent="question",
        )
    return AssistantResponse(
        message=text,
        input_type=InputType.CHOICE,
        options=list(TASK_ENTRY_OPTIONS),
        next_step=state.current_step,
        intent="question",
    )
