"""Tests for clipcoach services."""
import json
import subprocess
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from clipcoach.errors import ClipcoachError, InputError, RecordNotFoundError, ServiceError
from clipcoach.models import AnalysisStatus, AnalyzerConfig, ChatMessage, ChatRole
from clipcoach.services.api_client import HTTPAPIClient
from clipcoach.services.backend import AnalysisBackend
from clipcoach.services.functions import FunctionsService
from clipcoach.services.probe import MediaProbeService
from clipcoach.services.repository import RecordRepository
from clipcoach.services.storage import StorageService

BASE_URL = "https://api.test"

ROW = {
    "id": "rec-1",
    "file_name": "clip.mp4",
    "file_size": 1234,
    "duration": 42,
    "video_url": None,
    "status": "uploading",
    "analysis_data": None,
    "error_message": None,
    "chat_history": [],
}


class Recorder:
    """MockTransport handler that replays canned responses and keeps requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _client(recorder, **kwargs) -> HTTPAPIClient:
    return HTTPAPIClient(BASE_URL, api_key="anon-key", transport=httpx.MockTransport(recorder), **kwargs)


@pytest.fixture
def no_sleep(monkeypatch):
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr("clipcoach.services.api_client.asyncio.sleep", fake_sleep)
    return delays


class TestHTTPAPIClient:
    @pytest.mark.asyncio
    async def test_sends_auth_headers(self):
        recorder = Recorder(httpx.Response(200, json={}))
        async with _client(recorder) as api:
            await api.post("/functions/v1/analyze-video", json={"a": 1})

        request = recorder.requests[0]
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["authorization"] == "Bearer anon-key"
        assert json.loads(request.content) == {"a": 1}

    @pytest.mark.asyncio
    async def test_error_status_raises_service_error(self):
        recorder = Recorder(httpx.Response(409, json={"message": "duplicate key"}))
        async with _client(recorder) as api:
            with pytest.raises(ServiceError, match="duplicate key") as exc_info:
                await api.post("/rest/v1/video_analyses", json={})

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_post_is_not_retried(self, no_sleep):
        recorder = Recorder(httpx.Response(503, text="unavailable"))
        async with _client(recorder) as api:
            with pytest.raises(ServiceError):
                await api.post("/functions/v1/analyze-video", json={})

        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self):
        recorder = Recorder(httpx.ConnectError("connection refused"))
        async with _client(recorder) as api:
            with pytest.raises(ServiceError, match="connection refused"):
                await api.patch("/rest/v1/video_analyses", json={})

    @pytest.mark.asyncio
    async def test_get_retries_server_errors(self, no_sleep):
        recorder = Recorder(
            httpx.Response(502),
            httpx.ConnectError("reset"),
            httpx.Response(200, json=[ROW]),
        )
        async with _client(recorder) as api:
            response = await api.get("/rest/v1/video_analyses")

        assert response.json() == [ROW]
        assert len(recorder.requests) == 3
        assert no_sleep == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_get_gives_up_after_max_retries(self, no_sleep):
        recorder = Recorder(*[httpx.Response(500, text="boom")] * 3)
        async with _client(recorder) as api:
            with pytest.raises(ServiceError) as exc_info:
                await api.get("/rest/v1/video_analyses")

        assert exc_info.value.status_code == 500
        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_upload_streams_file(self, tmp_path):
        path = tmp_path / "clip.mp4"
        path.write_bytes(b"x" * 2048)
        recorder = Recorder(httpx.Response(200, json={"Key": "videos/rec-1/clip.mp4"}))
        async with _client(recorder) as api:
            await api.upload("/storage/v1/object/videos/rec-1/clip.mp4", path, "video/mp4")

        request = recorder.requests[0]
        assert request.headers["content-type"] == "video/mp4"
        assert request.headers["content-length"] == "2048"
        assert request.content == b"x" * 2048

    @pytest.mark.asyncio
    async def test_requires_context_manager(self):
        api = HTTPAPIClient(BASE_URL)
        with pytest.raises(RuntimeError, match="not initialized"):
            await api.get("/rest/v1/video_analyses")


class TestRecordRepository:
    @pytest.mark.asyncio
    async def test_create_record(self):
        recorder = Recorder(httpx.Response(201, json=[ROW]))
        async with _client(recorder) as api:
            record = await RecordRepository(api).create_record("clip.mp4", 1234, 42)

        assert record.id == "rec-1"
        assert record.status == AnalysisStatus.UPLOADING
        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/rest/v1/video_analyses"
        assert request.headers["prefer"] == "return=representation"
        assert json.loads(request.content) == {
            "file_name": "clip.mp4",
            "file_size": 1234,
            "duration": 42,
            "status": "uploading",
            "chat_history": [],
        }

    @pytest.mark.asyncio
    async def test_set_record_url_only_sends_url(self):
        recorder = Recorder(httpx.Response(204))
        async with _client(recorder) as api:
            await RecordRepository(api).set_record_url("rec-1", "https://cdn.test/v.mp4")

        request = recorder.requests[0]
        assert request.method == "PATCH"
        assert request.url.params["id"] == "eq.rec-1"
        assert json.loads(request.content) == {"video_url": "https://cdn.test/v.mp4"}

    @pytest.mark.asyncio
    async def test_fetch_record(self):
        row = dict(ROW, status="completed", analysis_data={"score": 8})
        recorder = Recorder(httpx.Response(200, json=[row]))
        async with _client(recorder) as api:
            record = await RecordRepository(api).fetch_record("rec-1")

        assert record.status == AnalysisStatus.COMPLETED
        assert record.analysis_data == {"score": 8}
        assert recorder.requests[0].url.params["select"] == "*"

    @pytest.mark.asyncio
    async def test_fetch_missing_record(self):
        recorder = Recorder(httpx.Response(200, json=[]))
        async with _client(recorder) as api:
            with pytest.raises(RecordNotFoundError) as exc_info:
                await RecordRepository(api).fetch_record("nope")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"chat_history": [{"role": "system", "message": "x", "timestamp": "t"}]},
            {"status": "queued"},
        ],
    )
    async def test_fetch_malformed_record_is_service_error(self, overrides):
        recorder = Recorder(httpx.Response(200, json=[dict(ROW, **overrides)]))
        async with _client(recorder) as api:
            with pytest.raises(ServiceError, match="malformed record") as exc_info:
                await RecordRepository(api).fetch_record("rec-1")

        assert isinstance(exc_info.value, ClipcoachError)
        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_persist_history_only_writes_history(self):
        history = [
            ChatMessage(role=ChatRole.USER, message="Where is the hook?", timestamp="t1"),
            ChatMessage(role=ChatRole.ASSISTANT, message="At 0:03.", timestamp="t2"),
        ]
        recorder = Recorder(httpx.Response(204))
        async with _client(recorder) as api:
            await RecordRepository(api).persist_history("rec-1", history)

        body = json.loads(recorder.requests[0].content)
        assert list(body) == ["chat_history"]
        assert body["chat_history"] == [
            {"role": "user", "message": "Where is the hook?", "timestamp": "t1"},
            {"role": "assistant", "message": "At 0:03.", "timestamp": "t2"},
        ]


class TestStorageService:
    @pytest.mark.asyncio
    async def test_upload_blob_returns_public_url(self, tmp_path):
        path = tmp_path / "my clip.mp4"
        path.write_bytes(b"data")
        api = Mock(base_url=BASE_URL)
        api.upload = AsyncMock()

        url = await StorageService(api).upload_blob(path, "rec-1")

        api.upload.assert_awaited_once_with(
            "/storage/v1/object/videos/rec-1/my%20clip.mp4", path, "video/mp4"
        )
        assert url == f"{BASE_URL}/storage/v1/object/public/videos/rec-1/my%20clip.mp4"

    def test_bucket_from_config(self):
        service = StorageService(Mock(base_url=BASE_URL), AnalyzerConfig(storage_bucket="raw"))
        assert service.public_url("k") == f"{BASE_URL}/storage/v1/object/public/raw/k"


class TestFunctionsService:
    @pytest.mark.asyncio
    async def test_trigger_analysis_payload(self):
        recorder = Recorder(httpx.Response(200, json={"ok": True}))
        async with _client(recorder) as api:
            await FunctionsService(api).trigger_analysis("rec-1", "clip.mp4", 1234)

        request = recorder.requests[0]
        assert request.url.path == "/functions/v1/analyze-video"
        assert json.loads(request.content) == {"videoId": "rec-1", "fileName": "clip.mp4", "fileSize": 1234}

    @pytest.mark.asyncio
    async def test_send_chat_turn_returns_reply(self):
        recorder = Recorder(httpx.Response(200, json={"response": "At 0:03."}))
        history = [{"role": "user", "message": "Where is the hook?", "timestamp": "t1"}]
        async with _client(recorder) as api:
            reply = await FunctionsService(api).send_chat_turn(
                "rec-1", "Where is the hook?", {"score": 8}, history
            )

        assert reply == "At 0:03."
        request = recorder.requests[0]
        assert request.url.path == "/functions/v1/video-chat"
        assert json.loads(request.content) == {
            "videoId": "rec-1",
            "message": "Where is the hook?",
            "analysisData": {"score": 8},
            "chatHistory": history,
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body, message",
        [({"error": "Rate limited"}, "Rate limited"), ({}, "Failed to send message")],
    )
    async def test_send_chat_turn_errors(self, body, message):
        recorder = Recorder(httpx.Response(200, json=body))
        async with _client(recorder) as api:
            with pytest.raises(ServiceError, match=message):
                await FunctionsService(api).send_chat_turn("rec-1", "q", {}, [])


class TestAnalysisBackend:
    @pytest.mark.asyncio
    async def test_delegates_to_services(self, tmp_path):
        repository, storage, functions = AsyncMock(), AsyncMock(), AsyncMock()
        backend = AnalysisBackend(repository, storage, functions)

        await backend.fetch_record("rec-1")
        await backend.upload_blob(tmp_path / "clip.mp4", "rec-1")
        await backend.trigger_analysis("rec-1", "clip.mp4", 1)

        repository.fetch_record.assert_awaited_once_with("rec-1")
        storage.upload_blob.assert_awaited_once_with(tmp_path / "clip.mp4", "rec-1")
        functions.trigger_analysis.assert_awaited_once_with("rec-1", "clip.mp4", 1)


class TestMediaProbeService:
    def _video(self, tmp_path: Path, name: str = "clip.mp4", size: int = 16) -> Path:
        path = tmp_path / name
        with open(path, "wb") as fh:
            fh.truncate(size)
        return path

    def test_validate_accepts_video(self, tmp_path):
        MediaProbeService().validate(self._video(tmp_path, "clip.MOV"))

    def test_validate_missing_file(self, tmp_path):
        with pytest.raises(InputError, match="File not found"):
            MediaProbeService().validate(tmp_path / "missing.mp4")

    def test_validate_extension(self, tmp_path):
        with pytest.raises(InputError, match="Please upload MP4, MOV, AVI files only"):
            MediaProbeService().validate(self._video(tmp_path, "clip.mkv"))

    def test_validate_size(self, tmp_path):
        config = AnalyzerConfig(max_file_size=1024 * 1024)
        path = self._video(tmp_path, size=1024 * 1024 + 1)
        with pytest.raises(InputError, match="exceeds 1MB limit"):
            MediaProbeService(config).validate(path)

    @pytest.mark.asyncio
    async def test_probe_duration(self, tmp_path, monkeypatch):
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append(cmd)
            return subprocess.CompletedProcess(cmd, 0, stdout='{"format": {"duration": "42.87"}}', stderr="")

        monkeypatch.setattr("clipcoach.services.probe.subprocess.run", fake_run)

        duration = await MediaProbeService().probe_duration(self._video(tmp_path))

        assert duration == pytest.approx(42.87)
        assert calls[0][0] == "ffprobe"

    def test_probe_failure_is_input_error(self, tmp_path, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise subprocess.CalledProcessError(1, cmd, stderr="moov atom not found\n")

        monkeypatch.setattr("clipcoach.services.probe.subprocess.run", fake_run)

        with pytest.raises(InputError, match="moov atom not found"):
            MediaProbeService().probe_duration_sync(self._video(tmp_path))

    def test_missing_duration(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            "clipcoach.services.probe.subprocess.run",
            lambda cmd, **kwargs: subprocess.CompletedProcess(cmd, 0, stdout='{"format": {}}', stderr=""),
        )

        with pytest.raises(InputError, match="Missing duration"):
            MediaProbeService().probe_duration_sync(self._video(tmp_path))
