"""Orchestrator package - coordinates upload, polling and chat workflows."""
from .chat import ChatSession, SUGGESTED_QUESTIONS
from .core import VideoAnalyzer
from .poller import AnalysisPoller
from .store import AnalysisStore
from .upload import UploadOrchestrator

__all__ = [
    "VideoAnalyzer",
    "UploadOrchestrator",
    "AnalysisPoller",
    "AnalysisStore",
    "ChatSession",
    "SUGGESTED_QUESTIONS",
]
