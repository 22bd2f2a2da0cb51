from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from pathlib import Path
import re
import secrets
import time

from app.interview.errors import InvalidAudioMetadata
from app.interview.models import AudioFile

logger = logging.getLogger("app.interview.audio")

ALLOWED_MIME_TYPES = frozenset({
    "audio/webm",
    "audio/wav",
    "audio/x-wav",
    "audio/mpeg",
    "audio/mp3",
    "audio/mp4",
    "audio/x-m4a",
    "audio/aac",
})
ALLOWED_EXTENSIONS = frozenset({".webm", ".wav", ".mp3", ".m4a", ".aac"})
DEFAULT_EXTENSION = ".webm"

MIN_EXPECTED_BYTES = 4000
SIZE_TOLERANCE_FACTOR = 4.0


def estimate_bitrate_kbps(mime_type: str) -> int:
    value = str(mime_type or "").lower()
    if "wav" in value:
        return 768
    if "mpeg" in value or "mp3" in value:
        return 128
    if "mp4" in value or "m4a" in value or "aac" in value:
        return 128
    return 48


def expected_size_bounds(duration_sec: float, mime_type: str) -> tuple[float, float]:
    expected_bytes = duration_sec * estimate_bitrate_kbps(mime_type) * 1000 / 8
    return (
        max(float(MIN_EXPECTED_BYTES), expected_bytes / SIZE_TOLERANCE_FACTOR),
        expected_bytes * SIZE_TOLERANCE_FACTOR,
    )


def validate_duration_and_size(duration_sec, file_size: int, mime_type: str, max_duration_sec: float = 180.0) -> float:
    try:
        duration = float(duration_sec)
    except (TypeError, ValueError):
        duration = math.nan

    if not math.isfinite(duration) or duration <= 0 or duration > max_duration_sec:
        raise InvalidAudioMetadata(
            f"durationSec must be a number between 1 and {int(max_duration_sec)} seconds.",
            reason="duration_out_of_range",
        )

    lower, upper = expected_size_bounds(duration, mime_type)
    size = int(file_size or 0)
    if size < lower or size > upper:
        raise InvalidAudioMetadata(reason="size_duration_mismatch")
    return duration


def is_allowed_upload(filename: str, mime_type: str) -> bool:
    extension = Path(str(filename or "")).suffix.lower()
    return extension in ALLOWED_EXTENSIONS or str(mime_type or "").lower() in ALLOWED_MIME_TYPES


def build_stored_name(filename: str) -> str:
    path = Path(str(filename or "answer"))
    extension = path.suffix.lower()
    safe_extension = extension if extension in ALLOWED_EXTENSIONS else DEFAULT_EXTENSION
    base_name = re.sub(r"[^a-zA-Z0-9_-]", "_", path.stem) or "answer"
    return f"{base_name}-{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{safe_extension}"


@dataclass(frozen=True)
class StoredUpload:
    original_name: str
    stored_name: str
    mime_type: str
    size: int
    path: Path

    def to_audio_file(self) -> AudioFile:
        return AudioFile(
            original_name=self.original_name,
            stored_name=self.stored_name,
            mime_type=self.mime_type,
            size=self.size,
            storage_path=str(self.path),
        )

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


def store_upload(upload_dir: Path, filename: str, mime_type: str, data: bytes) -> StoredUpload:
    upload_dir.mkdir(parents=True, exist_ok=True)
    stored_name = build_stored_name(filename)
    path = upload_dir / stored_name
    path.write_bytes(data)
    return StoredUpload(
        original_name=str(filename or stored_name),
        stored_name=stored_name,
        mime_type=str(mime_type or "audio/webm"),
        size=len(data),
        path=path,
    )


def discard_upload(upload: StoredUpload | None) -> None:
    if upload is None:
        return
    try:
        upload.path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("failed to delete upload %s: %s", upload.path, exc)
