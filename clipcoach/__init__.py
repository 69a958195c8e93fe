"""
clipcoach - upload a video, wait for its AI analysis, then chat about it.

Follows SOLID principles:
- Single Responsibility: each component handles one stage of the pipeline
- Dependency Injection: the backend is injected into every component
- Interface Segregation: small focused interfaces in `protocols`

Usage:
    from clipcoach import VideoAnalyzer

    async with VideoAnalyzer(api_url, api_key=key) as analyzer:
        # Upload and start polling in the background
        result = await analyzer.analyze(video_path)

        # Wait for the analysis to settle
        poll = await analyzer.wait(result.record_id)

        # Ask questions about the analysis
        turn = await analyzer.chat(result.record_id).send("Where is the hook?")
"""
from .orchestrator import (
    VideoAnalyzer,
    UploadOrchestrator,
    AnalysisPoller,
    AnalysisStore,
    ChatSession,
)
from .models import (
    AnalysisRecord,
    AnalysisStatus,
    AnalyzerConfig,
    ChatMessage,
    ChatRole,
    ChatTurnResult,
    PollOutcome,
    PollResult,
    UploadResult,
    UploadStage,
    UploadStatus,
)
from .errors import (
    ChatBusyError,
    ChatPreconditionError,
    ClipcoachError,
    InputError,
    RecordNotFoundError,
    ServiceError,
)
from .services import (
    AnalysisBackend,
    HTTPAPIClient,
    MediaProbeService,
)

__version__ = "0.1.0"
__all__ = [
    # Main
    "VideoAnalyzer",
    "UploadOrchestrator",
    "AnalysisPoller",
    "AnalysisStore",
    "ChatSession",
    # Models
    "AnalysisRecord",
    "AnalysisStatus",
    "AnalyzerConfig",
    "ChatMessage",
    "ChatRole",
    "ChatTurnResult",
    "PollOutcome",
    "PollResult",
    "UploadResult",
    "UploadStage",
    "UploadStatus",
    # Errors
    "ClipcoachError",
    "InputError",
    "ServiceError",
    "RecordNotFoundError",
    "ChatPreconditionError",
    "ChatBusyError",
    # Services
    "AnalysisBackend",
    "HTTPAPIClient",
    "MediaProbeService",
]
