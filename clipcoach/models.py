"""
Models for clipcoach.

Immutable dataclasses for analysis records, chat messages and results.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Tuple
from enum import Enum


class AnalysisStatus(Enum):
    """Remote analysis status. Transitions are driven by the backend only."""
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AnalysisStatus.COMPLETED, AnalysisStatus.FAILED)


class ChatRole(Enum):
    """Chat participants."""
    USER = "user"
    ASSISTANT = "assistant"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ChatMessage:
    """Single chat entry. Never mutated once appended."""
    role: ChatRole
    message: str
    timestamp: str

    @classmethod
    def now(cls, role: ChatRole, message: str) -> "ChatMessage":
        return cls(role=role, message=message, timestamp=utc_timestamp())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        return cls(
            role=ChatRole(data["role"]),
            message=data.get("message", ""),
            timestamp=data.get("timestamp") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class AnalysisRecord:
    """Immutable snapshot of one submitted video and its processing state."""
    id: str
    file_name: str
    file_size: int
    status: AnalysisStatus = AnalysisStatus.UPLOADING
    duration: Optional[int] = None
    video_url: Optional[str] = None
    analysis_data: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    chat_history: Tuple[ChatMessage, ...] = ()
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def has_analysis(self) -> bool:
        return self.analysis_data is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisRecord":
        """Build a record from a backend row."""
        history = data.get("chat_history") or []
        return cls(
            id=str(data["id"]),
            file_name=data.get("file_name", ""),
            file_size=int(data.get("file_size") or 0),
            status=AnalysisStatus(data.get("status") or AnalysisStatus.UPLOADING.value),
            duration=data.get("duration"),
            video_url=data.get("video_url"),
            analysis_data=data.get("analysis_data"),
            error_message=data.get("error_message"),
            chat_history=tuple(ChatMessage.from_dict(item) for item in history),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    def with_message(self, message: ChatMessage) -> "AnalysisRecord":
        """Return a copy with `message` appended to the chat history."""
        return replace(self, chat_history=self.chat_history + (message,))

    def history_payload(self) -> list:
        return [m.to_dict() for m in self.chat_history]


class UploadStage(Enum):
    """Steps of the upload pipeline, in execution order."""
    PROBE = "probe"
    CREATE = "create"
    UPLOAD = "upload"
    SET_URL = "set_url"
    TRIGGER = "trigger"


class UploadStatus(Enum):
    """Upload operation status."""
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadResult:
    """Immutable result of an upload pipeline run."""
    filename: str
    status: UploadStatus = UploadStatus.SUCCESS
    record: Optional[AnalysisRecord] = None
    progress: int = 0
    stage: Optional[UploadStage] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == UploadStatus.SUCCESS

    @property
    def record_id(self) -> Optional[str]:
        return self.record.id if self.record else None

    @classmethod
    def ok(cls, filename: str, record: AnalysisRecord):
        return cls(
            filename=filename,
            status=UploadStatus.SUCCESS,
            record=record,
            progress=100,
        )

    @classmethod
    def fail(
        cls,
        filename: str,
        stage: UploadStage,
        error: str,
        progress: int = 0,
        record: Optional[AnalysisRecord] = None,
    ):
        return cls(
            filename=filename,
            status=UploadStatus.FAILED,
            record=record,
            progress=progress,
            stage=stage,
            error=error,
        )


class PollOutcome(Enum):
    """How a polling run ended."""
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PollResult:
    """Result of polling one record until it settles."""
    outcome: PollOutcome
    attempts: int
    record: Optional[AnalysisRecord] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome == PollOutcome.COMPLETED


@dataclass(frozen=True)
class ChatTurnResult:
    """
    Result of one question/answer exchange.

    `success` is False only when no reply arrived. A reply whose history
    could not be saved is still a success, with `error` describing the
    save failure.
    """
    success: bool
    record: AnalysisRecord
    reply: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class AnalyzerConfig:
    """Immutable configuration for the analysis pipeline."""
    poll_interval: float = 5.0
    max_poll_attempts: int = 60
    records_table: str = "video_analyses"
    storage_bucket: str = "videos"
    analyze_function: str = "analyze-video"
    chat_function: str = "video-chat"
    request_timeout: float = 60.0
    max_message_length: int = 500
    max_file_size: int = 500 * 1024 * 1024
    allowed_extensions: Tuple[str, ...] = field(default=(".mp4", ".mov", ".avi"))

    def is_allowed_extension(self, suffix: str) -> bool:
        return suffix.lower() in self.allowed_extensions
