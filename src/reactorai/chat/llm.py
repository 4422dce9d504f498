"""LLM client for open questions (any OpenAI-compatible endpoint)."""

import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from reactorai.chat.context import ConversationState, TaskType
from reactorai.chat.knowledge import KnowledgeBase
from reactorai.config.settings import get_settings
from reactorai.security.credentials import CredentialManager

logger = logging.getLogger(__name__)


ANSWER_SYSTEM_PROMPT = """You are the REACTOR assistant. REACTOR sets up DeFi automations \
(stop orders and Aave liquidation protection) powered by Reactive Smart Contracts.

RULES:
- Answer in 2-4 sentences, plainly
- Only use the reference material and conversation below; say so if you don't know
- Never quote live balances or prices
- Never ask for private keys or seed phrases

REFERENCE:
{knowledge}

CURRENT SETUP:
{setup}"""


TASK_DESCRIPTIONS = {
    TaskType.NONE: "No automation in progress.",
    TaskType.STOP_ORDER: "The user is configuring a stop order.",
    TaskType.AAVE_PROTECTION: "The user is configuring Aave liquidation protection.",
}


class LLMClient:
    """Answers open questions, falling back to the knowledge base."""

    def __init__(self, api_key: Optional[str] = None, knowledge: Optional[KnowledgeBase] = None):
        """Initialize the LLM client.

        Args:
            api_key: API key (if not provided, will try to get from keyring)
            knowledge: FAQ used for grounding and as the fallback
        """
        self.settings = get_settings()
        self._api_key = api_key
        self._client: Optional[AsyncOpenAI] = None
        self.knowledge = knowledge or KnowledgeBase()

    @property
    def api_key(self) -> Optional[str]:
        """Get the API key from provided value or keyring."""
        if self._api_key:
            return self._api_key
        return CredentialManager.get_llm_key()

    @property
    def is_available(self) -> bool:
        """Check if LLM is available (has API key, not in demo mode)."""
        return not self.settings.demo_mode and self.api_key is not None

    def _get_client(self) -> AsyncOpenAI:
        """Get or create the async OpenAI client."""
        if self._client is None:
            if not self.api_key:
                raise ValueError("No LLM API key available")
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.settings.llm.base_url)
        return self._client

    def build_messages(self, question: str, state: ConversationState) -> list[dict]:
        """Prompt with FAQ context, the active task and recent turns."""
        system = ANSWER_SYSTEM_PROMPT.format(
            knowledge=self.knowledge.context_for(question),
            setup=f"{TASK_DESCRIPTIONS[state.active_task]} Step: {state.current_step}.",
        )
        messages = [{"role": "system", "content": system}]
        turns = self.settings.conversation.llm_history_turns
        history = state.recent_history(turns + 1)
        # The question itself is already the newest turn
        if history and history[-1].speaker == "user" and history[-1].text == question:
            history.pop()
        for turn in history[-turns:] if turns > 0 else []:
            role = "user" if turn.speaker == "user" else "assistant"
            messages.append({"role": role, "content": turn.text})
        messages.append({"role": "user", "content": question})
        return messages

    async def answer(self, question: str, state: ConversationState) -> str:
        """Answer an open question.

        Args:
            question: The user's question
            state: Conversation, for task context and recent history

        Returns:
            Answer text; never raises
        """
        if not self.is_available:
            logger.debug("LLM not available, answering from knowledge base")
            return self.knowledge.answer(question)

        try:
            client = self._get_client()
            response = await client.chat.completions.create(
                model=self.settings.llm.model,
                messages=self.build_messages(question, state),
                temperature=self.settings.llm.temperature,
                max_tokens=self.settings.llm.max_tokens,
            )
            content = response.choices[0].message.content if response.choices else None
        except (OpenAIError, ValueError) as e:
            logger.warning(f"LLM answer failed, using knowledge base: {e}")
            return self.knowledge.answer(question)

        if not content or not content.strip():
            return self.knowledge.answer(question)
        return content.strip()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
