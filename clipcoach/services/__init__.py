"""Services for clipcoach."""
from .api_client import HTTPAPIClient
from .backend import AnalysisBackend
from .functions import FunctionsService
from .probe import MediaProbeService
from .repository import RecordRepository
from .storage import StorageService

__all__ = [
    "HTTPAPIClient",
    "AnalysisBackend",
    "FunctionsService",
    "MediaProbeService",
    "RecordRepository",
    "StorageService",
]
