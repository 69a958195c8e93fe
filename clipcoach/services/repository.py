"""
Record Repository - Single Responsibility: persist analysis records to the API.

Implements Repository Pattern for data access.
"""
from typing import Optional, Sequence
import logging

from ..errors import RecordNotFoundError, ServiceError
from ..models import AnalysisRecord, AnalysisStatus, AnalyzerConfig, ChatMessage
from ..protocols import IAPIClient, IRecordRepository

logger = logging.getLogger(__name__)

RETURN_REPRESENTATION = {"Prefer": "return=representation"}


class RecordRepository(IRecordRepository):
    """
    Repository for analysis records stored behind a REST table endpoint.

    Every update is scoped to the fields the caller owns, so a chat history
    write never clobbers a status change made by the analysis job.
    """

    def __init__(self, api_client: IAPIClient, config: Optional[AnalyzerConfig] = None):
        """
        Initialize repository.

        Args:
            api_client: HTTP client for API calls
            config: Table naming
        """
        self._api = api_client
        self._config = config or AnalyzerConfig()

    @property
    def _endpoint(self) -> str:
        return f"/rest/v1/{self._config.records_table}"

    @staticmethod
    def _by_id(record_id: str) -> dict:
        return {"id": f"eq.{record_id}"}

    @staticmethod
    def _single_row(response, context: str) -> dict:
        body = response.json()
        if isinstance(body, list):
            if not body:
                raise RecordNotFoundError(f"{context}: no record returned")
            return body[0]
        if not isinstance(body, dict):
            raise ServiceError(f"{context}: unexpected response {body!r}")
        return body

    @staticmethod
    def _parse(row: dict, context: str) -> AnalysisRecord:
        try:
            return AnalysisRecord.from_dict(row)
        except (KeyError, TypeError, ValueError) as exc:
            raise ServiceError(f"{context}: malformed record: {exc}") from exc

    async def create_record(
        self, file_name: str, file_size: int, duration: Optional[int]
    ) -> AnalysisRecord:
        """
        Create a record in `uploading` state.

        Args:
            file_name: Original file name
            file_size: Size in bytes
            duration: Duration in whole seconds

        Returns:
            The created record with its backend-assigned id
        """
        response = await self._api.post(
            self._endpoint,
            json={
                "file_name": file_name,
                "file_size": file_size,
                "duration": duration,
                "status": AnalysisStatus.UPLOADING.value,
                "chat_history": [],
            },
            headers=RETURN_REPRESENTATION,
        )
        record = self._parse(self._single_row(response, "create record"), "create record")
        logger.debug("Created record %s for %s", record.id, file_name)
        return record

    async def set_record_url(self, record_id: str, url: str) -> None:
        await self._api.patch(self._endpoint, json={"video_url": url}, params=self._by_id(record_id))

    async def fetch_record(self, record_id: str) -> AnalysisRecord:
        params = self._by_id(record_id)
        params["select"] = "*"
        response = await self._api.get(self._endpoint, params=params)
        try:
            row = self._single_row(response, f"fetch record {record_id}")
        except RecordNotFoundError:
            raise RecordNotFoundError(f"Record not found: {record_id}", status_code=404)
        return self._parse(row, f"fetch record {record_id}")

    async def persist_history(self, record_id: str, history: Sequence[ChatMessage]) -> None:
        """
        Save the chat history field.

        Args:
            record_id: Record to update
            history: Full ordered history
        """
        await self._api.patch(
            self._endpoint,
            json={"chat_history": [m.to_dict() for m in history]},
            params=self._by_id(record_id),
        )
