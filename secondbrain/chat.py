"""
Conversational context for chat about the active note.

A ChatSession keeps the role-tagged history of one conversation. The text of
the current note is injected as a transient system message for each model
call and stripped right after, so the permanent history grows with the
number of turns, never with note size.
"""

import logging
from typing import Callable

from .errors import EmptyInputError
from .gateway import AIGateway
from .types import ChatMessage, UsageRecord, UsageStats

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant for note-taking and writing. "
    "You help users understand and analyze their notes."
)

NOTE_CONTEXT_MARKER = "Current note content:"

UsageListener = Callable[[UsageRecord, UsageStats], None]


def is_note_context(message: ChatMessage) -> bool:
    """True for the transient system message carrying note content."""
    return message.role == "system" and message.content.startswith(NOTE_CONTEXT_MARKER)


class ChatSession:
    """
    One chat conversation with running usage statistics.

    Listeners subscribed with subscribe() are told about every metered
    completion made by this session, with the record and the updated totals.

    Args:
        gateway: Gateway used for completions
        system_prompt: Leading system message describing assistant behavior
        reset_usage_on_clear: Whether clear_history() also resets usage
    """

    def __init__(
        self,
        gateway: AIGateway,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        *,
        reset_usage_on_clear: bool = False,
    ):
        self._gateway = gateway
        self._system_prompt = system_prompt
        self.reset_usage_on_clear = reset_usage_on_clear
        self._history: list[ChatMessage] = [ChatMessage("system", system_prompt)]
        self._usage = UsageStats()
        self._listeners: list[UsageListener] = []

    @property
    def history(self) -> list[ChatMessage]:
        """Copy of the permanent history."""
        return list(self._history)

    @property
    def usage(self) -> UsageStats:
        """Snapshot of the session's usage."""
        return self._usage.snapshot()

    def subscribe(self, listener: UsageListener) -> Callable[[], None]:
        """Register a usage listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _record_usage(self, record: UsageRecord) -> None:
        self._usage.add(record)
        snapshot = self._usage.snapshot()
        for listener in list(self._listeners):
            listener(record, snapshot)

    def append_user_turn(self, text: str) -> None:
        """Add a user message to the permanent history."""
        if not text or not text.strip():
            raise EmptyInputError("Chat message is empty")
        self._history.append(ChatMessage("user", text))

    async def compose_and_send(self, current_note_content: str) -> str:
        """
        Ask the model for the next reply, with the current note as context.

        The note content travels in a transient system message that is
        removed again whether or not the call succeeds. On success the reply
        is appended to the history.

        Returns:
            The assistant reply
        """
        self._history.append(
            ChatMessage("system", f"{NOTE_CONTEXT_MARKER}\n{current_note_content}")
        )
        try:
            reply = await self._gateway.chat(list(self._history), on_usage=self._record_usage)
            self._history.append(ChatMessage("assistant", reply))
        finally:
            self._history = [m for m in self._history if not is_note_context(m)]
        return reply

    async def send(self, text: str, current_note_content: str) -> str:
        """Append a user turn and get the reply."""
        self.append_user_turn(text)
        return await self.compose_and_send(current_note_content)

    def clear_history(self) -> None:
        """Reset to the single default system message.

        Usage is kept unless the session was created with
        reset_usage_on_clear=True.
        """
        self._history = [ChatMessage("system", self._system_prompt)]
        if self.reset_usage_on_clear:
            self._usage = UsageStats()
        logger.debug("Chat history cleared")
