"""Fixed-interval polling of an analysis record until it settles."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..models import AnalysisRecord, AnalysisStatus, AnalyzerConfig, PollOutcome, PollResult
from ..utils.events import (
    ANALYSIS_COMPLETED,
    ANALYSIS_FAILED,
    ANALYSIS_UPDATED,
    POLL_TIMEOUT,
    EventEmitter,
    Notification,
)
from .store import AnalysisStore

logger = logging.getLogger(__name__)

DEFAULT_ANALYSIS_ERROR = "An error occurred during analysis"


class AnalysisPoller:
    """
    Polls one record until it is completed or failed.

    Attempts are sequential with a fixed delay between them and capped at
    `config.max_poll_attempts`. A failed fetch is logged and still uses up
    an attempt. `cancel()` stops the loop at its next suspension point.

    Usage:
        poller = AnalysisPoller(backend, store, events, config)
        task = poller.start(record_id)
        ...
        poller.cancel()
        result = await task
    """

    def __init__(
        self,
        backend,
        store: Optional[AnalysisStore] = None,
        events: Optional[EventEmitter] = None,
        config: Optional[AnalyzerConfig] = None,
    ):
        self._backend = backend
        self._store = store or AnalysisStore()
        self._events = events or EventEmitter()
        self._config = config or AnalyzerConfig()
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def store(self) -> AnalysisStore:
        return self._store

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def start(self, record_id: str) -> asyncio.Task:
        """Run `poll` in a background task."""
        if self.running:
            raise RuntimeError(f"Already polling {record_id}")
        self._stop.clear()
        self._task = asyncio.create_task(self.poll(record_id), name=f"poll-{record_id}")
        return self._task

    def cancel(self) -> None:
        """Ask the loop to stop. The task resolves to a CANCELLED result."""
        self._stop.set()

    async def _wait(self, delay: float) -> bool:
        """Sleep for `delay` seconds. Returns True if cancelled meanwhile."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _fetch(self, record_id: str, attempt: int) -> Optional[AnalysisRecord]:
        try:
            return await self._backend.fetch_record(record_id)
        except Exception as exc:
            logger.warning(
                "Error polling analysis %s (attempt %d/%d): %s",
                record_id,
                attempt,
                self._config.max_poll_attempts,
                exc,
            )
            return None

    async def poll(self, record_id: str) -> PollResult:
        """Poll until a terminal status, the attempt ceiling or cancellation."""
        max_attempts = self._config.max_poll_attempts
        attempts = 0
        last: Optional[AnalysisRecord] = None

        while attempts < max_attempts:
            if self._stop.is_set():
                logger.info("Polling for %s cancelled after %d attempts", record_id, attempts)
                return PollResult(PollOutcome.CANCELLED, attempts, last)

            attempts += 1
            fetched = await self._fetch(record_id, attempts)

            if fetched is not None:
                last = self._store.apply_remote(fetched)

                if fetched.status == AnalysisStatus.COMPLETED:
                    logger.info("Analysis %s completed after %d attempts", record_id, attempts)
                    await self._events.emit(
                        ANALYSIS_COMPLETED,
                        last,
                        Notification(
                            title="Analysis complete",
                            description="Your video has been analyzed successfully",
                            record_id=record_id,
                        ),
                    )
                    return PollResult(PollOutcome.COMPLETED, attempts, last)

                if fetched.status == AnalysisStatus.FAILED:
                    error = fetched.error_message or DEFAULT_ANALYSIS_ERROR
                    logger.error("Analysis %s failed: %s", record_id, error)
                    await self._events.emit(
                        ANALYSIS_FAILED,
                        last,
                        Notification(
                            title="Analysis failed",
                            description=error,
                            destructive=True,
                            record_id=record_id,
                        ),
                    )
                    return PollResult(PollOutcome.FAILED, attempts, last, error=error)

                await self._events.emit(ANALYSIS_UPDATED, last)

            if attempts < max_attempts and await self._wait(self._config.poll_interval):
                logger.info("Polling for %s cancelled after %d attempts", record_id, attempts)
                return PollResult(PollOutcome.CANCELLED, attempts, last)

        timeout_seconds = max_attempts * self._config.poll_interval
        message = f"Analysis did not finish within {timeout_seconds:.0f} seconds"
        logger.warning("Stopped polling %s after %d attempts", record_id, attempts)
        await self._events.emit(
            POLL_TIMEOUT,
            last,
            Notification(
                title="Still analyzing",
                description=message,
                record_id=record_id,
            ),
        )
        return PollResult(PollOutcome.TIMED_OUT, attempts, last, error=message)
