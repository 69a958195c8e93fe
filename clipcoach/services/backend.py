"""Backend facade - one collaborator exposing every remote operation."""
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..models import AnalysisRecord, AnalyzerConfig, ChatMessage
from ..protocols import IAnalysisFunctions, IAPIClient, IBlobStorage, IRecordRepository
from .functions import FunctionsService
from .repository import RecordRepository
from .storage import StorageService


class AnalysisBackend:
    """
    Delegates record, storage and function calls to injected services.

    Components depend on this single object so tests can swap the whole
    remote side with one mock.
    """

    def __init__(
        self,
        repository: IRecordRepository,
        storage: IBlobStorage,
        functions: IAnalysisFunctions,
    ):
        self._repository = repository
        self._storage = storage
        self._functions = functions

    @classmethod
    def from_api_client(cls, api_client: IAPIClient, config: Optional[AnalyzerConfig] = None):
        return cls(
            RecordRepository(api_client, config),
            StorageService(api_client, config),
            FunctionsService(api_client, config),
        )

    async def create_record(
        self, file_name: str, file_size: int, duration: Optional[int]
    ) -> AnalysisRecord:
        return await self._repository.create_record(file_name, file_size, duration)

    async def upload_blob(self, path: Path, record_id: str) -> str:
        return await self._storage.upload_blob(path, record_id)

    async def set_record_url(self, record_id: str, url: str) -> None:
        await self._repository.set_record_url(record_id, url)

    async def trigger_analysis(self, record_id: str, file_name: str, file_size: int) -> None:
        await self._functions.trigger_analysis(record_id, file_name, file_size)

    async def fetch_record(self, record_id: str) -> AnalysisRecord:
        return await self._repository.fetch_record(record_id)

    async def send_chat_turn(
        self,
        record_id: str,
        message: str,
        analysis_data: Dict[str, Any],
        history: List[Dict[str, Any]],
    ) -> str:
        return await self._functions.send_chat_turn(record_id, message, analysis_data, history)

    async def persist_history(self, record_id: str, history: Sequence[ChatMessage]) -> None:
        await self._repository.persist_history(record_id, history)
