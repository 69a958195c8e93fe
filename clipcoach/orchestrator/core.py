"""Core orchestrator - coordinates upload, polling and chat for videos."""
import asyncio
import logging
from pathlib import Path
from typing import Dict, Optional

from ..models import AnalyzerConfig, PollResult, UploadResult
from ..services.api_client import HTTPAPIClient
from ..services.backend import AnalysisBackend
from ..services.probe import MediaProbeService
from ..utils.events import EventEmitter

from .chat import ChatSession
from .poller import AnalysisPoller
from .store import AnalysisStore
from .upload import ProgressCallback, UploadOrchestrator

logger = logging.getLogger(__name__)


class VideoAnalyzer:
    """
    Orchestrates video analysis using injected services.

    Follows:
    - Dependency Injection (services injected)
    - Single Responsibility (delegates to handlers)

    Usage:
        async with VideoAnalyzer(api_url, api_key=key) as analyzer:
            result = await analyzer.analyze(video_path)
            poll = await analyzer.wait(result.record_id)
            turn = await analyzer.chat(result.record_id).send("Where is the hook?")
    """

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        config: Optional[AnalyzerConfig] = None,
        backend=None,
        probe=None,
        events: Optional[EventEmitter] = None,
    ):
        """
        Initialize analyzer with dependencies.

        Args:
            api_url: Backend base URL
            api_key: Key sent as `apikey` and bearer token
            config: Pipeline configuration
            backend: Pre-built backend (skips creating an HTTP client)
            probe: Pre-built duration probe
            events: Shared event emitter
        """
        self._api_url = api_url
        self._api_key = api_key
        self._config = config or AnalyzerConfig()
        self._external_backend = backend
        self._external_probe = probe
        self._events = events or EventEmitter()

        # Initialized in __aenter__
        self._api_client: Optional[HTTPAPIClient] = None
        self._backend = None
        self._uploader: Optional[UploadOrchestrator] = None

        self._stores: Dict[str, AnalysisStore] = {}
        self._pollers: Dict[str, AnalysisPoller] = {}
        self._sessions: Dict[str, ChatSession] = {}

    @property
    def events(self) -> EventEmitter:
        return self._events

    @property
    def config(self) -> AnalyzerConfig:
        return self._config

    async def __aenter__(self):
        """Initialize services and handlers."""
        if self._external_backend is not None:
            self._backend = self._external_backend
        else:
            self._api_client = HTTPAPIClient(
                self._api_url,
                api_key=self._api_key,
                timeout=self._config.request_timeout,
            )
            await self._api_client.__aenter__()
            self._backend = AnalysisBackend.from_api_client(self._api_client, self._config)

        probe = self._external_probe or MediaProbeService(self._config)
        self._uploader = UploadOrchestrator(self._backend, probe, self._events, self._config)
        return self

    async def __aexit__(self, *args):
        """Stop pollers and release the HTTP client."""
        pending = [p.task for p in self._pollers.values() if p.running]
        for poller in self._pollers.values():
            poller.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self._api_client:
            await self._api_client.__aexit__(*args)
            self._api_client = None

    def store(self, record_id: str) -> AnalysisStore:
        if record_id not in self._stores:
            self._stores[record_id] = AnalysisStore()
        return self._stores[record_id]

    async def upload(
        self,
        path: Path,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        """Upload a video and request its analysis."""
        assert self._uploader is not None
        result = await self._uploader.upload(path, progress_callback)
        if result.record is not None:
            self.store(result.record.id).set_record(result.record)
        return result

    async def analyze(
        self,
        path: Path,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        """Upload, then start polling in the background. Returns without waiting."""
        result = await self.upload(path, progress_callback)
        if result.success:
            self.start_polling(result.record_id)
        return result

    def start_polling(self, record_id: str) -> AnalysisPoller:
        poller = self._pollers.get(record_id)
        if poller is None:
            poller = AnalysisPoller(self._backend, self.store(record_id), self._events, self._config)
            self._pollers[record_id] = poller
        if not poller.running:
            poller.start(record_id)
        return poller

    def stop_polling(self, record_id: str) -> None:
        poller = self._pollers.get(record_id)
        if poller is not None:
            poller.cancel()

    async def wait(self, record_id: str) -> PollResult:
        """Await the background poll for `record_id`, starting one if needed."""
        poller = self._pollers.get(record_id)
        if poller is None or poller.task is None:
            poller = self.start_polling(record_id)
        return await poller.task

    async def load(self, record_id: str) -> AnalysisStore:
        """Fetch an existing record into its store (e.g. to resume a chat)."""
        record = await self._backend.fetch_record(record_id)
        store = self.store(record_id)
        store.apply_remote(record)
        return store

    def chat(self, record_id: str) -> ChatSession:
        """Chat session for `record_id`. One session, and one in-flight turn, per record."""
        if record_id not in self._sessions:
            self._sessions[record_id] = ChatSession(self._backend, self.store(record_id), self._events)
        return self._sessions[record_id]
