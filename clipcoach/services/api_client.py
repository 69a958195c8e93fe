"""HTTP adapter for backend API operations."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from ..errors import ServiceError

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024


async def _iter_file(path: Path):
    """Yield file chunks without loading the whole video in memory."""
    with open(path, "rb") as fh:
        while True:
            chunk = await asyncio.to_thread(fh.read, UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except Exception:
        return response.text
    if isinstance(body, dict):
        for key in ("message", "error", "msg", "detail"):
            if body.get(key):
                return str(body[key])
    return str(body)


class HTTPAPIClient:
    """
    HTTP client adapter for API calls.

    Implements IAPIClient protocol. Only GET is retried; mutating calls are
    attempted once so a pipeline step never runs twice.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 60,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self) -> Dict[str, str]:
        if not self._api_key:
            return {}
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
        }

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=self._headers(),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("HTTPAPIClient not initialized. Use 'async with' context.")
        return self._client

    @staticmethod
    def _check(response: httpx.Response, method: str, endpoint: str) -> httpx.Response:
        if response.status_code >= 400:
            raise ServiceError(
                f"API error {response.status_code} on {method} {endpoint}: {_error_detail(response)}",
                status_code=response.status_code,
            )
        return response

    async def _send_once(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        client = self._require_client()
        try:
            response = await client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as exc:
            raise ServiceError(f"{method} {endpoint} failed: {exc}") from exc
        return self._check(response, method, endpoint)

    async def post(
        self,
        endpoint: str,
        json: Any,
        params: Optional[Dict] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        return await self._send_once("POST", endpoint, json=json, params=params, headers=headers)

    async def patch(
        self,
        endpoint: str,
        json: Any,
        params: Optional[Dict] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        return await self._send_once("PATCH", endpoint, json=json, params=params, headers=headers)

    async def upload(self, endpoint: str, path: Path, content_type: str) -> httpx.Response:
        path = Path(path)
        return await self._send_once(
            "POST",
            endpoint,
            content=_iter_file(path),
            headers={
                "Content-Type": content_type,
                "Content-Length": str(path.stat().st_size),
                "x-upsert": "false",
            },
        )

    async def get(self, endpoint: str, params: Optional[Dict] = None) -> httpx.Response:
        client = self._require_client()
        last_exception: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                response = await client.get(endpoint, params=params)

                if response.status_code >= 500 and attempt < self._max_retries - 1:
                    await asyncio.sleep(0.5 * (attempt + 1))
                    continue

                return self._check(response, "GET", endpoint)
            except (httpx.RequestError, httpx.TimeoutException) as exc:
                last_exception = exc
                logger.debug("GET %s attempt %d failed: %s", endpoint, attempt + 1, exc)
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(0.5 * (attempt + 1))
                    continue
                raise ServiceError(f"GET {endpoint} failed: {exc}") from exc

        if last_exception:
            raise ServiceError(f"GET {endpoint} failed: {last_exception}") from last_exception
        raise ServiceError(f"Failed to GET {endpoint} after {self._max_retries} attempts")
