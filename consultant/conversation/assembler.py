"""Conversation Assembler.

Builds the message list sent to the orchestrator from persisted history and
the new turn, and hands completed exchanges back to a conversation store.
Persistence happens after the response is produced and never fails it.
"""

import asyncio
import logging
import time
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional, Protocol, Sequence, Set, Tuple, runtime_checkable

from consultant.core.types import ChatResponse, ImageBlock, Message, TextBlock
from consultant.utils.log_utils import sanitize_log_message

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20
PHOTO_PLACEHOLDER = "[Photo attached]"


@runtime_checkable
class ConversationStore(Protocol):
    """Persistence collaborator for chat history.

    Implementations may be backed by any database; methods are coroutines so
    network-backed stores do not block the event loop.
    """

    async def load_recent(self, user_id: str, limit: int) -> List[Message]:
        """Return up to ``limit`` most recent messages, oldest first."""
        ...

    async def save_exchange(
        self,
        user_id: str,
        user_message: Message,
        assistant_text: str,
        tools_used: Sequence[str]
    ) -> None:
        """Persist one user message and the assistant's answer to it."""
        ...


class InMemoryConversationStore:
    """Process-local conversation store keeping a capped history per user.

    Args:
        max_messages: Messages kept per user; older ones are dropped
    """

    def __init__(self, max_messages: int = 200) -> None:
        self._max_messages = max_messages
        self._messages: Dict[str, Deque[Message]] = defaultdict(
            lambda: deque(maxlen=self._max_messages)
        )
        self._tools: Dict[str, List[Tuple[str, ...]]] = defaultdict(list)

    async def load_recent(self, user_id: str, limit: int) -> List[Message]:
        if limit <= 0:
            return []
        messages = list(self._messages.get(user_id, ()))
        return messages[-limit:]

    async def save_exchange(
        self,
        user_id: str,
        user_message: Message,
        assistant_text: str,
        tools_used: Sequence[str]
    ) -> None:
        history = self._messages[user_id]
        history.append(user_message)
        history.append(Message.assistant(assistant_text))
        self._tools[user_id].append(tuple(tools_used))

    def tools_used(self, user_id: str) -> List[Tuple[str, ...]]:
        """Tools recorded per saved exchange, oldest first."""
        return list(self._tools.get(user_id, ()))

    def clear(self, user_id: Optional[str] = None) -> None:
        if user_id is None:
            self._messages.clear()
            self._tools.clear()
        else:
            self._messages.pop(user_id, None)
            self._tools.pop(user_id, None)


def strip_images(message: Message) -> Message:
    """Replace image blocks with a text placeholder.

    Photos are never persisted; the placeholder keeps the conversation
    readable when the history is loaded again.
    """
    if not message.has_images:
        return message
    blocks = []
    for block in message.content:
        if isinstance(block, ImageBlock):
            blocks.append(TextBlock(text=PHOTO_PLACEHOLDER))
        else:
            blocks.append(block)
    return Message(role=message.role, content=tuple(blocks))


class ConversationAssembler:
    """Assembles model input from history and persists finished exchanges.

    Args:
        store: Conversation store; None disables history entirely
        history_limit: Maximum number of persisted messages to load
    """

    def __init__(
        self,
        store: Optional[ConversationStore] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT
    ) -> None:
        self._store = store
        self._history_limit = history_limit
        self._pending: Set["asyncio.Task[None]"] = set()

    @property
    def store(self) -> Optional[ConversationStore]:
        return self._store

    async def load_history(self, user_id: Optional[str]) -> Tuple[Message, ...]:
        """Load recent history for a user.

        Store failures are logged and yield an empty history so the chat can
        still be answered without context.
        """
        if self._store is None or not user_id or self._history_limit <= 0:
            return ()
        try:
            messages = await self._store.load_recent(user_id, self._history_limit)
        except Exception as e:
            logger.error("Failed to load chat history", extra={
                "user_id": user_id,
                "error": sanitize_log_message(str(e))
            })
            return ()
        return tuple(messages)

    @staticmethod
    def assemble(history: Sequence[Message], new_messages: Sequence[Message]) -> Tuple[Message, ...]:
        """Concatenate history and the new turn into one transcript.

        Raises:
            ValueError: If there are no new messages
        """
        if not new_messages:
            raise ValueError("new_messages cannot be empty")
        return tuple(history) + tuple(new_messages)

    async def persist(
        self,
        user_id: Optional[str],
        new_messages: Sequence[Message],
        response: ChatResponse
    ) -> None:
        """Save the newest user message and the final answer.

        Raises:
            Exception: Whatever the store raises; ``schedule_persist`` is the
                fire-and-forget variant
        """
        if self._store is None or not user_id:
            return
        user_message = next((m for m in reversed(new_messages) if m.role == "user"), None)
        if user_message is None:
            logger.debug("No user message to persist", extra={"user_id": user_id})
            return

        start_time = time.time()
        await self._store.save_exchange(
            user_id,
            strip_images(user_message),
            response.final_text,
            list(response.tools_used)
        )
        logger.debug("Chat exchange saved", extra={
            "user_id": user_id,
            "tools_used": list(response.tools_used),
            "duration_ms": int((time.time() - start_time) * 1000)
        })

    def schedule_persist(
        self,
        user_id: Optional[str],
        new_messages: Sequence[Message],
        response: ChatResponse
    ) -> Optional["asyncio.Task[None]"]:
        """Persist in the background without delaying the response.

        Must be called from a running event loop.

        Returns:
            The scheduled task, or None when there is nothing to persist
        """
        if self._store is None or not user_id:
            return None
        task = asyncio.ensure_future(self.persist(user_id, new_messages, response))
        self._pending.add(task)
        task.add_done_callback(self._persist_done)
        return task

    def _persist_done(self, task: "asyncio.Task[Any]") -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Failed to save chat exchange", extra={
                "error": sanitize_log_message(str(error))
            })

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled persistence task to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
