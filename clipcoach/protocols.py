"""
Protocols (Interfaces) for Dependency Inversion.

Following Interface Segregation Principle - small, focused interfaces.
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Dict, Any, List, Protocol, Sequence, runtime_checkable

from .models import AnalysisRecord, ChatMessage


@runtime_checkable
class IDurationProbe(Protocol):
    """Interface for local media metadata reads."""

    def validate(self, path: Path) -> None:
        """Raise if the file cannot be submitted."""
        ...

    async def probe_duration(self, path: Path) -> float:
        """Return media duration in seconds."""
        ...


@runtime_checkable
class IAPIClient(Protocol):
    """Interface for API operations."""

    async def post(
        self,
        endpoint: str,
        json: Any,
        params: Optional[Dict] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """POST request to API."""
        ...

    async def get(self, endpoint: str, params: Optional[Dict] = None) -> Any:
        """GET request to API."""
        ...

    async def patch(
        self,
        endpoint: str,
        json: Any,
        params: Optional[Dict] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """PATCH request to API."""
        ...

    async def upload(self, endpoint: str, path: Path, content_type: str) -> Any:
        """Stream a local file to API."""
        ...


class IRecordRepository(ABC):
    """Interface for analysis record storage (Repository Pattern)."""

    @abstractmethod
    async def create_record(
        self, file_name: str, file_size: int, duration: Optional[int]
    ) -> AnalysisRecord:
        """Create a record in `uploading` state."""
        pass

    @abstractmethod
    async def set_record_url(self, record_id: str, url: str) -> None:
        """Attach the storage URL to a record."""
        pass

    @abstractmethod
    async def fetch_record(self, record_id: str) -> AnalysisRecord:
        """Fetch the current record."""
        pass

    @abstractmethod
    async def persist_history(self, record_id: str, history: Sequence[ChatMessage]) -> None:
        """Write the chat history field only."""
        pass


class IBlobStorage(ABC):
    """Interface for blob uploads."""

    @abstractmethod
    async def upload_blob(self, path: Path, record_id: str) -> str:
        """Upload raw bytes and return a durable URL."""
        pass


class IAnalysisFunctions(ABC):
    """Interface for remote analysis and chat functions."""

    @abstractmethod
    async def trigger_analysis(self, record_id: str, file_name: str, file_size: int) -> None:
        """Request that an analysis job starts. Does not wait for it."""
        pass

    @abstractmethod
    async def send_chat_turn(
        self,
        record_id: str,
        message: str,
        analysis_data: Dict[str, Any],
        history: List[Dict[str, Any]],
    ) -> str:
        """Send one user message and return the assistant reply."""
        pass
