"""Remote analysis and chat functions."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..errors import ServiceError
from ..models import AnalyzerConfig
from ..protocols import IAnalysisFunctions, IAPIClient

logger = logging.getLogger(__name__)


class FunctionsService(IAnalysisFunctions):
    """Calls the backend functions that start analyses and answer chat turns."""

    def __init__(self, api_client: IAPIClient, config: Optional[AnalyzerConfig] = None):
        self._api = api_client
        self._config = config or AnalyzerConfig()

    def _endpoint(self, name: str) -> str:
        return f"/functions/v1/{name}"

    async def trigger_analysis(self, record_id: str, file_name: str, file_size: int) -> None:
        await self._api.post(
            self._endpoint(self._config.analyze_function),
            json={"videoId": record_id, "fileName": file_name, "fileSize": file_size},
        )
        logger.info("Analysis requested for %s", record_id)

    async def send_chat_turn(
        self,
        record_id: str,
        message: str,
        analysis_data: Dict[str, Any],
        history: List[Dict[str, Any]],
    ) -> str:
        response = await self._api.post(
            self._endpoint(self._config.chat_function),
            json={
                "videoId": record_id,
                "message": message,
                "analysisData": analysis_data,
                "chatHistory": history,
            },
        )
        body = response.json()
        if isinstance(body, dict) and body.get("error"):
            raise ServiceError(str(body["error"]))
        reply = body.get("response") if isinstance(body, dict) else None
        if not reply:
            raise ServiceError("Failed to send message")
        return reply
