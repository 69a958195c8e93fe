"""Single video upload pipeline: probe, create, store, link, trigger."""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from ..models import AnalysisRecord, AnalyzerConfig, UploadResult, UploadStage
from ..utils.events import (
    PROGRESS,
    STAGE_FAILED,
    UPLOAD_COMPLETE,
    EventEmitter,
    Notification,
    UploadProgress,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[UploadProgress], Any]

# Progress reached once each stage has succeeded
STAGE_PROGRESS: Dict[UploadStage, int] = {
    UploadStage.CREATE: 20,
    UploadStage.UPLOAD: 60,
    UploadStage.SET_URL: 80,
    UploadStage.TRIGGER: 100,
}

STAGE_FALLBACK_ERRORS: Dict[UploadStage, str] = {
    UploadStage.PROBE: "Failed to read video metadata",
    UploadStage.CREATE: "Failed to create video analysis",
    UploadStage.UPLOAD: "Failed to upload video",
    UploadStage.SET_URL: "Failed to save video URL",
    UploadStage.TRIGGER: "Failed to start analysis",
}

STAGE_TITLES: Dict[UploadStage, str] = {
    UploadStage.PROBE: "Error",
    UploadStage.CREATE: "Error",
    UploadStage.UPLOAD: "Upload failed",
    UploadStage.SET_URL: "Error",
    UploadStage.TRIGGER: "Analysis failed to start",
}


def _describe_exception(exc: Exception) -> str:
    return str(exc).strip()


class _StageFailed(Exception):
    def __init__(self, stage: UploadStage, message: str):
        super().__init__(message)
        self.stage = stage
        self.message = message


class UploadOrchestrator:
    """
    Drives one local video through the remote pipeline.

    Steps run strictly in order and each runs once. The first failure ends
    the run: progress stays at the last successful value, exactly one
    `stage_failed` notification is emitted and nothing is rolled back.
    Analysis completion is not awaited here; see AnalysisPoller.
    """

    def __init__(
        self,
        backend,
        probe,
        events: Optional[EventEmitter] = None,
        config: Optional[AnalyzerConfig] = None,
        validate_input: bool = True,
    ):
        """
        Initialize upload orchestrator.

        Args:
            backend: AnalysisBackend (or anything with the same operations)
            probe: MediaProbeService
            events: Emitter for progress and notifications
            config: AnalyzerConfig
            validate_input: Check extension and size before probing
        """
        self._backend = backend
        self._probe = probe
        self._events = events or EventEmitter()
        self._config = config or AnalyzerConfig()
        self._validate_input = validate_input

    async def _report(
        self,
        progress: UploadProgress,
        percent: int,
        stage: str,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        if percent < progress.percent:
            raise ValueError(f"Progress must not go backwards: {progress.percent} -> {percent}")
        progress.percent = percent
        progress.stage = stage
        if progress_callback:
            progress_callback(replace(progress))
        await self._events.emit(PROGRESS, replace(progress))

    async def _step(self, stage: UploadStage, call, *args):
        try:
            value = await call(*args)
        except Exception as exc:
            message = _describe_exception(exc) or STAGE_FALLBACK_ERRORS[stage]
            logger.error("Stage %s failed: %s", stage.value, message, exc_info=True)
            raise _StageFailed(stage, message) from exc
        return value

    async def _probe_file(self, path: Path) -> Tuple[int, int]:
        """Return (whole seconds, size in bytes). No remote call is made."""
        try:
            if self._validate_input:
                self._probe.validate(path)
            seconds = await self._probe.probe_duration(path)
            file_size = path.stat().st_size
        except Exception as exc:
            message = _describe_exception(exc) or STAGE_FALLBACK_ERRORS[UploadStage.PROBE]
            logger.error("Could not probe %s: %s", path.name, message)
            raise _StageFailed(UploadStage.PROBE, message) from exc
        return math.floor(seconds), file_size

    async def upload(
        self,
        path: Path,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        """Run the pipeline for `path` and return its outcome."""
        path = Path(path)
        progress = UploadProgress(filename=path.name)
        record: Optional[AnalysisRecord] = None

        await self._report(progress, 0, "start", progress_callback)

        try:
            duration, file_size = await self._probe_file(path)

            record = await self._step(
                UploadStage.CREATE, self._backend.create_record, path.name, file_size, duration
            )
            if record is None or not record.id:
                raise _StageFailed(UploadStage.CREATE, STAGE_FALLBACK_ERRORS[UploadStage.CREATE])
            progress.record_id = record.id
            await self._report(progress, STAGE_PROGRESS[UploadStage.CREATE], "create", progress_callback)

            url = await self._step(UploadStage.UPLOAD, self._backend.upload_blob, path, record.id)
            if not url:
                raise _StageFailed(UploadStage.UPLOAD, STAGE_FALLBACK_ERRORS[UploadStage.UPLOAD])
            await self._report(progress, STAGE_PROGRESS[UploadStage.UPLOAD], "upload", progress_callback)

            await self._step(UploadStage.SET_URL, self._backend.set_record_url, record.id, url)
            record = replace(record, video_url=url)
            await self._report(progress, STAGE_PROGRESS[UploadStage.SET_URL], "set_url", progress_callback)

            await self._step(
                UploadStage.TRIGGER, self._backend.trigger_analysis, record.id, path.name, file_size
            )
            await self._report(progress, STAGE_PROGRESS[UploadStage.TRIGGER], "trigger", progress_callback)
        except _StageFailed as failure:
            await self._events.emit(
                STAGE_FAILED,
                Notification(
                    title=STAGE_TITLES[failure.stage],
                    description=failure.message,
                    destructive=True,
                    record_id=record.id if record else None,
                ),
            )
            return UploadResult.fail(
                path.name,
                failure.stage,
                failure.message,
                progress=progress.percent,
                record=record,
            )

        logger.info("Upload complete for %s (record %s)", path.name, record.id)
        await self._events.emit(
            UPLOAD_COMPLETE,
            Notification(
                title="Upload complete",
                description="Your video is being analyzed. This may take a few minutes.",
                record_id=record.id,
            ),
        )
        return UploadResult.ok(path.name, record)
