"""Local view of one analysis record."""
import logging
from dataclasses import replace
from typing import Optional

from ..models import AnalysisRecord, ChatMessage

logger = logging.getLogger(__name__)


class AnalysisStore:
    """
    Holds the current record for one video.

    Each field has one writer: the poller applies remote snapshots (status,
    payload, error, URL) and the chat session appends messages. A remote
    snapshot never replaces the local chat history, and nothing from the
    backend is applied once the local status is terminal.
    """

    def __init__(self, record: Optional[AnalysisRecord] = None):
        self._record = record

    @property
    def record(self) -> Optional[AnalysisRecord]:
        return self._record

    @property
    def record_id(self) -> Optional[str]:
        return self._record.id if self._record else None

    def set_record(self, record: AnalysisRecord) -> AnalysisRecord:
        """Seed the store with a freshly created record."""
        self._record = record
        return record

    def apply_remote(self, remote: AnalysisRecord) -> AnalysisRecord:
        """Merge a fetched snapshot and return the resulting local record."""
        current = self._record
        if current is None:
            self._record = remote
            return remote

        if current.is_terminal:
            logger.debug(
                "Ignoring snapshot for %s: already %s", current.id, current.status.value
            )
            return current

        history = current.chat_history
        # History only grows, so a longer remote history is a superset of ours
        if len(remote.chat_history) > len(history):
            history = remote.chat_history

        self._record = replace(remote, chat_history=history)
        return self._record

    def append_message(self, message: ChatMessage) -> AnalysisRecord:
        if self._record is None:
            raise RuntimeError("No record loaded")
        self._record = self._record.with_message(message)
        return self._record
