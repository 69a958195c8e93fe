from dataclasses import dataclass
from typing import Dict, List, Callable, Optional
import asyncio
import logging
logger = logging.getLogger(__name__)

# Event names emitted by the pipeline
PROGRESS = "progress"
STAGE_FAILED = "stage_failed"
UPLOAD_COMPLETE = "upload_complete"
ANALYSIS_UPDATED = "analysis_updated"
ANALYSIS_COMPLETED = "analysis_completed"
ANALYSIS_FAILED = "analysis_failed"
POLL_TIMEOUT = "poll_timeout"
CHAT_MESSAGE = "chat_message"
CHAT_FAILED = "chat_failed"


@dataclass
class UploadProgress:
    """Progress information for one upload pipeline run."""
    filename: str
    percent: int = 0
    stage: str = "start"  # start, create, upload, set_url, trigger
    record_id: Optional[str] = None


@dataclass
class Notification:
    """User-visible notification."""
    title: str
    description: str
    destructive: bool = False
    record_id: Optional[str] = None


class EventEmitter:
    """Simple event emitter for pipeline events."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        if event_name not in self._listeners:
            self._listeners[event_name] = []
        if callback not in self._listeners[event_name]:
            self._listeners[event_name].append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        if event_name in self._listeners:
            if callback in self._listeners[event_name]:
                self._listeners[event_name].remove(callback)

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, []))

    async def emit(self, event_name: str, *args, **kwargs):
        """
        Emit an event to all listeners.

        No lock is held while listeners run, so a listener may emit again.
        """
        # Snapshot: listeners may unsubscribe while we iterate
        for callback in list(self._listeners.get(event_name, ())):
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback(*args, **kwargs)
                else:
                    callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error in event listener for {event_name}: {e}")
