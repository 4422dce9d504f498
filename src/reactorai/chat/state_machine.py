"""Dialogue manager - the conversation state machine.

Turns free-form messages into a validated automation configuration.

States: INITIAL -> COLLECTING(slot) -> VALIDATING -> [CONFIRM_LOW_LIQUIDITY]
-> [CONFIRM_INSUFFICIENT_BALANCE] -> FINAL_CONFIRMATION -> READY | CANCELLED,
with AWAITING_RECOVERY entered when a ledger lookup fails.

Each turn is offered to an ordered list of guards. A guard either returns
the response for the turn or None to pass the turn to the next guard:
1. Declined queries, whatever the state
2. Yes/no steps, where only the confirmation resolver is consulted
3. Recovery choices after a failed validation
4. Switching to the other task
5. Starting a task
6. Open questions
7. Continuing the active task
8. Help
"""

import logging
import re
from collections import deque
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, Field

from reactorai.chat import responses
from reactorai.chat.configuration import build_configuration
from reactorai.chat.confirmation import ConfirmationResolver, Resolution
from reactorai.chat.context import (
    AaveProtectionData,
    ConversationState,
    DialogueStep,
    StopOrderData,
    TaskType,
)
from reactorai.chat.entities import CustomTokenRef, EntityExtractor
from reactorai.chat.intents import Intent, IntentClassifier, IntentType
from reactorai.chat.llm import LLMClient
from reactorai.chat.responses import AssistantResponse
from reactorai.chat.schemas import SlotDefinition, SlotKind, TaskSchema, get_schema
from reactorai.chat.validation import PipelineFailure, SoftWarning, ValidationPipeline
from reactorai.config.settings import Settings, get_settings
from reactorai.data.ledger import LedgerClient
from reactorai.data.store import ConversationStore, InMemoryConversationStore
from reactorai.errors.translator import RECOVERY_MESSAGES, RecoveryAction
from reactorai.utils.errors import StateError

logger = logging.getLogger(__name__)


class TurnRequest(BaseModel):
    """One inbound user turn."""

    text: str
    conversation_id: str
    connected_account: Optional[str] = Field(default=None, pattern=r"^0x[a-fA-F0-9]{40}$")
    network: Optional[int] = None


Guard = Callable[[ConversationState, Intent], Awaitable[Optional[AssistantResponse]]]


SLOT_DESCRIPTIONS = {
    SlotKind.ACCOUNT: "a wallet address",
    SlotKind.NETWORK: "a network",
    SlotKind.TOKEN: "a token",
    SlotKind.AMOUNT: "an amount ('all', a percentage, or a number)",
    SlotKind.PERCENTAGE: "a percentage between 0 and 100",
    SlotKind.HEALTH_FACTOR: "a health factor between 1.0 and 10.0",
    SlotKind.STRATEGY: "a protection strategy",
    SlotKind.BOOLEAN: "a yes or no",
}

# Phrases picking a recovery action (ORDER MATTERS)
RECOVERY_KEYWORDS = [
    (RecoveryAction.RETRY, ("retry", "try again", "again", "reload")),
    (RecoveryAction.CHANGE_TOKENS, ("change_tokens", "different", "change", "other token", "choose")),
    (RecoveryAction.SWITCH_TASK, ("switch_task", "switch", "another automation", "other automation")),
    (RecoveryAction.ASK_QUESTION, ("ask_question", "question", "ask")),
]

# Steps whose pending answer depends on the wallet and network
RECHECK_STEPS = (
    DialogueStep.AWAITING_RECOVERY,
    DialogueStep.CONFIRM_LOW_LIQUIDITY,
    DialogueStep.CONFIRM_INSUFFICIENT_BALANCE,
    DialogueStep.FINAL_CONFIRMATION,
)

OTHER_TASK = {
    TaskType.STOP_ORDER: TaskType.AAVE_PROTECTION,
    TaskType.AAVE_PROTECTION: TaskType.STOP_ORDER,
}


class DialogueManager:
    """Runs conversations to a deployable configuration.

    Args:
        store: Conversation storage (in-memory by default)
        ledger: Ledger-data client used by the validation pipeline
        llm: Answerer for open questions
        settings: Settings override
    """

    def __init__(
        self,
        store: Optional[ConversationStore] = None,
        ledger: Optional[LedgerClient] = None,
        llm: Optional[LLMClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store if store is not None else InMemoryConversationStore()
        self.ledger = ledger if ledger is not None else LedgerClient()
        self.llm = llm if llm is not None else LLMClient()
        self.pipeline = ValidationPipeline(self.ledger, self.settings)
        self.classifier = IntentClassifier()
        self.resolver = ConfirmationResolver()
        self._guards: list[Guard] = [
            self._guard_declined,
            self._guard_yes_no,
            self._guard_recovery,
            self._guard_switch,
            self._guard_create,
            self._guard_question,
            self._guard_continue,
            self._guard_help,
        ]

    # =========================================================================
    # Public API
    # =========================================================================

    def get_or_create(self, conversation_id: str) -> ConversationState:
        """Load a conversation, starting a fresh one for unknown ids."""
        state = self.store.get(conversation_id)
        if state is None:
            state = ConversationState(
                id=conversation_id,
                history=deque(maxlen=self.settings.conversation.history_limit),
            )
            logger.debug(f"New conversation {conversation_id}")
        return state

    def clear_conversation(self, conversation_id: str) -> bool:
        """Forget a conversation entirely."""
        return self.store.delete(conversation_id)

    async def handle_turn(self, request: TurnRequest) -> AssistantResponse:
        """Process one user message.

        Args:
            request: The inbound turn

        Returns:
            The assistant's reply; always offers a next action
        """
        state = self.get_or_create(request.conversation_id)
        context_changed = self._apply_request_context(state, request)
        state.add_turn("user", request.text)

        try:
            if context_changed and state.step in RECHECK_STEPS:
                # An answer given against the old wallet or network no longer applies
                response = await self._recheck(state)
            else:
                intent = self.classifier.classify(request.text, state.active_task)
                logger.debug(f"{state.id} [{state.current_step}] {intent}")
                response = await self._run_guards(state, intent)
        except Exception:
            logger.exception(f"Unexpected failure in conversation {state.id}")
            state.reset_task()
            response = responses.help_response(
                state, preface="Sorry, something went wrong on my side and I had to start over."
            )

        state.add_turn("assistant", response.message)
        state.touch()
        self.store.put(state)
        return response

    # =========================================================================
    # Guards
    # =========================================================================

    async def _run_guards(self, state: ConversationState, intent: Intent) -> AssistantResponse:
        for guard in self._guards:
            response = await guard(state, intent)
            if response is not None:
                return response
        raise RuntimeError("no guard produced a response")

    async def _guard_declined(self, state: ConversationState, intent: Intent) -> Optional[AssistantResponse]:
        if intent.type != IntentType.DECLINED:
            return None
        return responses.declined(intent.declined_topic or "", state, self._reminder(state))

    async def _guard_yes_no(self, state: ConversationState, intent: Intent) -> Optional[AssistantResponse]:
        if not state.expects_yes_no:
            return None

        resolution = self.resolver.resolve(intent.raw_input)
        if resolution == Resolution.NONE:
            return responses.yes_no_again(state)

        if state.step == DialogueStep.FINAL_CONFIRMATION:
            if resolution == Resolution.CONFIRM:
                return self._complete(state)
            logger.info(f"Conversation {state.id} cancelled at final confirmation")
            state.reset_task(DialogueStep.CANCELLED)
            return responses.cancelled(state)

        if resolution == Resolution.CANCEL:
            state.reset_task(DialogueStep.CANCELLED)
            return responses.cancelled(state)

        schema = get_schema(state.active_task)
        data = state.data
        if data is None:
            raise StateError(f"no task data at {state.current_step}")

        if state.step == DialogueStep.CONFIRM_LOW_LIQUIDITY:
            if resolution == Resolution.CONFIRM:
                data.low_liquidity_accepted = True
                return await self._validate(state)
            state.clear_slots(schema.dependents_of(["token_to_buy"]))
            return await self._advance(state, schema, "Okay, let's pick a different token to receive.")

        # CONFIRM_INSUFFICIENT_BALANCE
        if resolution == Resolution.CONFIRM:
            data.balance_risk_accepted = True
            return await self._validate(state)
        if isinstance(data, StopOrderData):
            offending = ["amount"]
        elif isinstance(data, AaveProtectionData):
            offending = ["debt_asset"] if data.primary_asset == data.debt_asset else ["collateral_asset"]
        else:
            raise StateError(f"unexpected task data {type(data).__name__}")
        state.clear_slots(schema.dependents_of(offending))
        return await self._advance(state, schema, "Okay, let's adjust that.")

    async def _guard_recovery(self, state: ConversationState, intent: Intent) -> Optional[AssistantResponse]:
        if state.step != DialogueStep.AWAITING_RECOVERY or state.recovery is None:
            return None
        if intent.type in (IntentType.QUESTION, IntentType.SWITCH_TASK):
            return None

        schema = get_schema(state.active_task)
        extractor = EntityExtractor(state.custom_tokens)
        if extractor.find_tokens(intent.raw_input):
            # New tokens given directly: clear the old ones and read these
            state.clear_slots(schema.dependents_of(list(schema.asset_slots)))
            state.recovery = None
            state.step = DialogueStep.COLLECTING
            state.current_slot = None
            return await self._collect(state, intent.raw_input)

        action = self._recovery_action(intent.raw_input)
        allowed = RECOVERY_MESSAGES[state.recovery].actions
        if action is None or action not in allowed:
            return responses.recovery_unclear(state, allowed)

        if action == RecoveryAction.RETRY:
            state.recovery = None
            return await self._validate(state)
        if action == RecoveryAction.CHANGE_TOKENS:
            state.recovery = None
            state.clear_slots(schema.dependents_of(list(schema.asset_slots)))
            return await self._advance(state, schema, "Sure, let's choose different tokens.")
        if action == RecoveryAction.SWITCH_TASK:
            return await self._start(state, OTHER_TASK[state.active_task], intent.raw_input, switched=True)
        return AssistantResponse(
            message="Sure, what would you like to know?",
            next_step=state.current_step,
        )

    async def _guard_switch(self, state: ConversationState, intent: Intent) -> Optional[AssistantResponse]:
        if intent.type != IntentType.SWITCH_TASK or intent.task is None:
            return None
        return await self._start(state, intent.task, intent.raw_input, switched=True)

    async def _guard_create(self, state: ConversationState, intent: Intent) -> Optional[AssistantResponse]:
        if intent.type not in (IntentType.START_STOP_ORDER, IntentType.START_AAVE_PROTECTION) or intent.task is None:
            return None
        return await self._start(state, intent.task, intent.raw_input)

    async def _guard_question(self, state: ConversationState, intent: Intent) -> Optional[AssistantResponse]:
        if intent.type != IntentType.QUESTION:
            return None
        text = await self.llm.answer(intent.raw_input, state)
        return responses.answer(text, state, self._reminder(state))

    async def _guard_continue(self, state: ConversationState, intent: Intent) -> Optional[AssistantResponse]:
        if intent.type != IntentType.CONTINUE or state.active_task == TaskType.NONE:
            return None
        return await self._collect(state, intent.raw_input)

    async def _guard_help(self, state: ConversationState, intent: Intent) -> Optional[AssistantResponse]:
        return responses.help_response(state)

    # =========================================================================
    # Transitions
    # =========================================================================

    async def _start(
        self, state: ConversationState, task: TaskType, text: str, switched: bool = False
    ) -> AssistantResponse:
        """Start a task (dropping any other task's data) and ask the first question."""
        previous = state.active_task
        state.start_task(task)
        schema = get_schema(task)
        self._fill_unprompted(state, schema, text)

        title = responses.TASK_TITLES[task]
        if switched and previous != TaskType.NONE:
            preface = (
                f"Switching from your {responses.TASK_TITLES[previous]} to {title}. "
                "I've cleared those details but kept your wallet and network."
            )
        else:
            preface = f"Let's set up your {title}."
        logger.info(f"Conversation {state.id} started {task.value}")
        return await self._advance(state, schema, preface)

    async def _collect(self, state: ConversationState, text: str) -> AssistantResponse:
        """Read an answer to the current question, then move on."""
        schema = get_schema(state.active_task)
        slot = schema.slot(state.current_slot) if state.current_slot else schema.next_missing(state)
        extractor = EntityExtractor(state.custom_tokens)
        preface = None
        filled = False

        if slot is not None:
            value = extractor.extract(text, slot.kind)
            if isinstance(value, CustomTokenRef):
                if state.selected_network is None:
                    return self._ask(
                        state, schema.slot("selected_network"),
                        "I need to know the network before I can check that token address.",
                    )
                try:
                    info = await self.pipeline.register_custom_token(state, value.address)
                except PipelineFailure as failure:
                    return self._enter_recovery(state, failure)
                value = info.symbol
                preface = f"Found {info.symbol} at {info.address}."

            if value is not None:
                error = slot.validate(value, state) if slot.validate else None
                if error:
                    return self._ask(state, slot, error)
                self._set_slot(state, schema, slot.name, value)
                filled = True

        filled = self._fill_unprompted(state, schema, text, skip=slot.name if slot else None) or filled

        if not filled and slot is not None:
            return self._ask(state, slot, f"Sorry, I couldn't find {SLOT_DESCRIPTIONS[slot.kind]} in that.")
        return await self._advance(state, schema, preface)

    async def _advance(
        self, state: ConversationState, schema: TaskSchema, preface: Optional[str] = None
    ) -> AssistantResponse:
        """Ask for the next missing slot, or validate once all are present."""
        slot, error = self._next_question(state, schema)
        if slot is not None:
            return self._ask(state, slot, " ".join(p for p in (preface, error) if p) or None)
        state.current_slot = None
        return await self._validate(state)

    def _next_question(
        self, state: ConversationState, schema: TaskSchema
    ) -> tuple[Optional[SlotDefinition], Optional[str]]:
        """First slot, in priority order, that is missing or no longer valid."""
        for slot in schema.active_slots(state):
            value = state.get_slot(slot.name)
            if value is None:
                return slot, None
            if slot.validate:
                error = slot.validate(value, state)
                if error:
                    return slot, error
        return None, None

    def _ask(self, state: ConversationState, slot: SlotDefinition, preface: Optional[str] = None) -> AssistantResponse:
        state.step = DialogueStep.COLLECTING
        state.current_slot = slot.name
        return responses.ask_slot(slot, state, preface)

    async def _validate(self, state: ConversationState) -> AssistantResponse:
        """Run the validation pipeline and route to the next confirmation."""
        state.step = DialogueStep.VALIDATING
        state.current_slot = None
        try:
            result = await self.pipeline.run(state)
        except PipelineFailure as failure:
            return self._enter_recovery(state, failure)

        if SoftWarning.LOW_LIQUIDITY in result.warnings:
            state.step = DialogueStep.CONFIRM_LOW_LIQUIDITY
            return responses.confirm_low_liquidity(state)
        if SoftWarning.INSUFFICIENT_BALANCE in result.warnings:
            state.step = DialogueStep.CONFIRM_INSUFFICIENT_BALANCE
            return responses.confirm_insufficient_balance(state)

        config = build_configuration(state, self.settings)
        state.pending_config = config
        state.step = DialogueStep.FINAL_CONFIRMATION
        return responses.final_confirmation(state, config)

    def _enter_recovery(self, state: ConversationState, failure: PipelineFailure) -> AssistantResponse:
        outcome = failure.outcome
        logger.info(f"Validation failed for {state.id}: {outcome.kind.value} ({outcome.detail})")
        state.step = DialogueStep.AWAITING_RECOVERY
        state.current_slot = None
        state.recovery = outcome.kind
        return responses.recovery(outcome, state)

    async def _recheck(self, state: ConversationState) -> AssistantResponse:
        """Check the task again after the wallet or network changed under it."""
        state.recovery = None
        schema = get_schema(state.active_task)
        preface = "Your wallet or network changed, so I checked the details again."
        response = await self._advance(state, schema, preface)
        if state.step != DialogueStep.COLLECTING:
            response.message = f"{preface}\n\n{response.message}"
        return response

    def _complete(self, state: ConversationState) -> AssistantResponse:
        config = state.pending_config
        if config is None:
            config = build_configuration(state, self.settings)
        logger.info(f"Conversation {state.id} ready: {config['task']}")
        state.reset_task(DialogueStep.READY)
        return responses.ready(state, config)

    # =========================================================================
    # Slot helpers
    # =========================================================================

    def _set_slot(self, state: ConversationState, schema: TaskSchema, name: str, value: Any) -> None:
        """Set a slot, clearing whatever was derived from its previous value."""
        if state.get_slot(name) != value and name in schema.dependents:
            state.clear_slots(list(schema.dependents[name]))
        state.set_slot(name, value)

    def _fill_unprompted(
        self, state: ConversationState, schema: TaskSchema, text: str, skip: Optional[str] = None
    ) -> bool:
        """Fill empty slots stated unambiguously out of order.

        Returns:
            True if any slot was filled
        """
        extractor = EntityExtractor(state.custom_tokens)
        data = state.data
        if isinstance(data, StopOrderData):
            found = extractor.extract_stop_order_details(text, sell_hint=data.token_to_sell)
            sell, buy = found.pop("tokens", (None, None))
            if sell and buy:
                found.setdefault("token_to_sell", sell)
                found.setdefault("token_to_buy", buy)
            elif sell and data.token_to_sell is None:
                found["token_to_sell"] = sell
            elif sell and data.token_to_buy is None and sell != data.token_to_sell:
                found["token_to_buy"] = sell
        else:
            found = extractor.extract_aave_details(text)

        filled = False
        for slot in schema.active_slots(state):
            if slot.name == skip or slot.name not in found or state.get_slot(slot.name) is not None:
                continue
            value = found[slot.name]
            if slot.validate and slot.validate(value, state):
                continue
            self._set_slot(state, schema, slot.name, value)
            filled = True
        return filled

    def _recovery_action(self, text: str) -> Optional[RecoveryAction]:
        lowered = text.lower().strip()
        for action, keywords in RECOVERY_KEYWORDS:
            if any(re.search(rf"\b{re.escape(k)}\b", lowered) for k in keywords):
                return action
        return None

    def _reminder(self, state: ConversationState) -> Optional[str]:
        if state.active_task == TaskType.NONE:
            return None
        return responses.reminder(get_schema(state.active_task), state)

    def _apply_request_context(self, state: ConversationState, request: TurnRequest) -> bool:
        """Take the wallet and network sent with the turn.

        Returns:
            True if either one changed while a task was in progress
        """
        changed = False
        if request.connected_account and request.connected_account != state.connected_account:
            state.set_account(request.connected_account)
            changed = True
        if request.network is not None and request.network != state.selected_network:
            state.set_network(request.network)
            changed = True
        if changed and state.active_task != TaskType.NONE:
            logger.info(f"Wallet or network changed in {state.id} at {state.current_step}")
            return True
        return False
