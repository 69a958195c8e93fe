"""Question and answer session over a completed analysis."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Tuple

from ..errors import ChatBusyError, ChatPreconditionError
from ..models import AnalysisRecord, ChatMessage, ChatRole, ChatTurnResult
from ..utils.events import CHAT_FAILED, CHAT_MESSAGE, EventEmitter, Notification
from .store import AnalysisStore

logger = logging.getLogger(__name__)

SUGGESTED_QUESTIONS = (
    "Where exactly should I change the hook?",
    "How can I improve retention in the middle?",
    "What's the best CTA for this video?",
    "Can you explain the loopability issue?",
)


class ChatSession:
    """
    Append-only chat tied to one analysis record.

    The user message is appended before the request goes out and stays even
    if the exchange fails, so a failed turn grows the history by one. Only
    one turn may be in flight at a time; a second `send` while one is
    pending raises ChatBusyError.
    """

    def __init__(self, backend, store: AnalysisStore, events: Optional[EventEmitter] = None):
        self._backend = backend
        self._store = store
        self._events = events or EventEmitter()
        self._in_flight = asyncio.Lock()

    @property
    def is_loading(self) -> bool:
        return self._in_flight.locked()

    @property
    def history(self) -> Tuple[ChatMessage, ...]:
        record = self._store.record
        return record.chat_history if record else ()

    def _require_ready(self) -> AnalysisRecord:
        record = self._store.record
        if record is None or not record.id:
            raise ChatPreconditionError("No analysis record loaded")
        if not record.has_analysis:
            raise ChatPreconditionError(f"Analysis for {record.id} is not available yet")
        return record

    async def _append(self, message: ChatMessage) -> AnalysisRecord:
        record = self._store.append_message(message)
        await self._events.emit(CHAT_MESSAGE, message)
        return record

    async def _notify_failure(self, record_id: str, description: str) -> None:
        await self._events.emit(
            CHAT_FAILED,
            Notification(
                title="Error",
                description=description,
                destructive=True,
                record_id=record_id,
            ),
        )

    async def send(self, text: str) -> ChatTurnResult:
        """
        Run one chat turn.

        Args:
            text: User question

        Returns:
            ChatTurnResult with the local record after the turn

        Raises:
            ValueError: empty message
            ChatPreconditionError: no analysis payload yet
            ChatBusyError: another turn is still in flight
        """
        message = (text or "").strip()
        if not message:
            raise ValueError("Message must not be empty")
        self._require_ready()
        if self._in_flight.locked():
            raise ChatBusyError("A message is already being sent")

        async with self._in_flight:
            record = await self._append(ChatMessage.now(ChatRole.USER, message))

            try:
                reply = await self._backend.send_chat_turn(
                    record.id,
                    message,
                    record.analysis_data,
                    record.history_payload(),
                )
            except Exception as exc:
                error = str(exc).strip() or "Failed to send message"
                logger.error("Chat turn failed for %s: %s", record.id, error, exc_info=True)
                await self._notify_failure(record.id, error)
                return ChatTurnResult(success=False, record=self._store.record, error=error)

            record = await self._append(ChatMessage.now(ChatRole.ASSISTANT, reply))

            # The exchange itself succeeded; an unsaved history is written by the next turn
            try:
                await self._backend.persist_history(record.id, record.chat_history)
            except Exception as exc:
                error = str(exc).strip() or "Failed to save chat history"
                logger.warning("Could not persist chat history for %s: %s", record.id, error)
                return ChatTurnResult(success=True, record=record, reply=reply, error=error)

            return ChatTurnResult(success=True, record=record, reply=reply)
