"""Exception types raised by clipcoach components."""
from typing import Optional


class ClipcoachError(Exception):
    """Base class for clipcoach errors."""


class InputError(ClipcoachError):
    """Local file is missing, unsupported or its metadata is unreadable."""


class ServiceError(ClipcoachError):
    """A remote call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RecordNotFoundError(ServiceError):
    """The backend has no record for the requested id."""


class ChatPreconditionError(ClipcoachError):
    """Chat was used before the record had an id and a completed analysis."""


class ChatBusyError(ClipcoachError):
    """A chat turn is already in flight for this record."""
