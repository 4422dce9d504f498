"""Conversation storage and idle reaping.

The dialogue manager only talks to the ConversationStore interface, so the
in-memory map can be swapped for a durable store later.
"""

import asyncio
import logging
import threading
import time
from typing import Optional

from reactorai.chat.context import ConversationState
from reactorai.config.settings import get_settings

logger = logging.getLogger(__name__)


class ConversationStore:
    """Keyed storage of conversation state.

    Concurrent writes to the same id are last-write-wins; callers keep one
    in-flight turn per conversation.
    """

    def get(self, conversation_id: str) -> Optional[ConversationState]:
        raise NotImplementedError

    def put(self, state: ConversationState) -> None:
        raise NotImplementedError

    def delete(self, conversation_id: str) -> bool:
        raise NotImplementedError

    def sweep(self, max_idle_seconds: float, now: Optional[float] = None) -> int:
        """Delete conversations idle for longer than max_idle_seconds.

        Returns:
            Number of conversations removed
        """
        raise NotImplementedError


class InMemoryConversationStore(ConversationStore):
    """Process-local dict of conversations."""

    def __init__(self) -> None:
        self._states: dict[str, ConversationState] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._states

    def get(self, conversation_id: str) -> Optional[ConversationState]:
        with self._lock:
            return self._states.get(conversation_id)

    def put(self, state: ConversationState) -> None:
        with self._lock:
            self._states[state.id] = state

    def delete(self, conversation_id: str) -> bool:
        with self._lock:
            return self._states.pop(conversation_id, None) is not None

    def sweep(self, max_idle_seconds: float, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        with self._lock:
            expired = [
                cid for cid, state in self._states.items() if now - state.last_updated > max_idle_seconds
            ]
            for cid in expired:
                del self._states[cid]
        if expired:
            logger.info(f"Reaped {len(expired)} idle conversation(s)")
        return len(expired)


class ConversationReaper:
    """Background task that sweeps idle conversations on a fixed interval.

    Only deletes; a reaped id simply starts a fresh conversation next time.
    """

    def __init__(
        self,
        store: ConversationStore,
        idle_timeout: Optional[float] = None,
        interval: Optional[float] = None,
    ):
        settings = get_settings().conversation
        self.store = store
        self.idle_timeout = idle_timeout if idle_timeout is not None else settings.idle_timeout_seconds
        self.interval = interval if interval is not None else settings.sweep_interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start sweeping on the running event loop."""
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.sweep_once()

    def sweep_once(self) -> int:
        return self.store.sweep(self.idle_timeout)
