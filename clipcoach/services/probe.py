"""
Probe Service - Single Responsibility: read local media metadata.

Uses ffprobe to read the container duration before anything is sent to
the backend.
"""
from pathlib import Path
from typing import Optional
import asyncio
import json
import logging
import subprocess

from ..errors import InputError
from ..models import AnalyzerConfig
from ..protocols import IDurationProbe

logger = logging.getLogger(__name__)


class MediaProbeService(IDurationProbe):
    """
    Service for validating and probing local video files.

    Wraps ffprobe with async support.
    """

    def __init__(self, config: Optional[AnalyzerConfig] = None, ffprobe_bin: str = "ffprobe"):
        self._config = config or AnalyzerConfig()
        self._ffprobe_bin = ffprobe_bin

    def validate(self, path: Path) -> None:
        """
        Check that `path` is an uploadable video.

        Raises:
            InputError: missing file, unsupported extension or too large
        """
        path = Path(path)
        if not path.is_file():
            raise InputError(f"File not found: {path}")
        if not self._config.is_allowed_extension(path.suffix):
            allowed = ", ".join(ext.lstrip(".").upper() for ext in self._config.allowed_extensions)
            raise InputError(f"Invalid file type. Please upload {allowed} files only.")
        size = path.stat().st_size
        if size > self._config.max_file_size:
            limit_mb = self._config.max_file_size // (1024 * 1024)
            raise InputError(f"File size exceeds {limit_mb}MB limit.")

    def _run_ffprobe(self, path: Path) -> dict:
        cmd = [
            self._ffprobe_bin,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-print_format",
            "json",
            str(path),
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True)
            return json.loads(result.stdout)
        except FileNotFoundError as e:
            raise InputError(f"ffprobe not available: {e}") from e
        except subprocess.CalledProcessError as e:
            raise InputError(f"Could not read video metadata: {e.stderr.strip()}") from e
        except json.JSONDecodeError as e:
            raise InputError(f"Error parsing ffprobe output: {e}") from e

    def probe_duration_sync(self, path: Path) -> float:
        """Read duration in seconds."""
        probe_data = self._run_ffprobe(Path(path))
        try:
            return float(probe_data["format"]["duration"])
        except (KeyError, TypeError, ValueError) as e:
            raise InputError(f"Missing duration in video metadata: {e}") from e

    async def probe_duration(self, path: Path) -> float:
        """Read duration in seconds without blocking the event loop."""
        loop = asyncio.get_running_loop()
        duration = await loop.run_in_executor(None, self.probe_duration_sync, path)
        logger.debug("Probed %s: %.2fs", Path(path).name, duration)
        return duration
