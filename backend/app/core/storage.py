"""Utilities for storing uploaded media referenced by messages."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Final
from uuid import uuid4

from fastapi import UploadFile

from app.config import get_settings
from app.core.errors import InvalidArgumentError, NotFoundError, UnavailableError

settings = get_settings()

_CHUNK_SIZE: Final[int] = 1024 * 1024  # 1 MiB


@dataclass(slots=True)
class StoredFile:
    """Represents a file persisted by the storage backend."""

    file_name: str
    content_type: str | None
    file_size: int
    absolute_path: Path
    url: str


def _media_root() -> Path:
    root = settings.media_root
    root.mkdir(parents=True, exist_ok=True)
    return root


def build_media_url(user_id: int, file_name: str) -> str:
    """Construct the public URL for a stored media file."""

    base = settings.media_base_url.rstrip("/")
    return f"{base}/{user_id}/{file_name}"


async def store_message_media(user_id: int, upload: UploadFile) -> StoredFile:
    """Persist an uploaded media payload and return its storage metadata."""

    original_name = upload.filename or "upload.bin"
    extension = Path(original_name).suffix
    file_name = f"{uuid4().hex}{extension}"

    total_size = 0
    absolute_path: Path | None = None
    try:
        target_dir = _media_root() / f"user_{user_id}"
        target_dir.mkdir(parents=True, exist_ok=True)
        absolute_path = target_dir / file_name
        with absolute_path.open("wb") as buffer:
            while True:
                chunk = await upload.read(_CHUNK_SIZE)
                if not chunk:
                    break
                total_size += len(chunk)
                if total_size > settings.max_upload_size:
                    raise InvalidArgumentError("Media exceeds allowed size")
                buffer.write(chunk)
    except InvalidArgumentError:
        if absolute_path is not None and absolute_path.exists():
            absolute_path.unlink()
        raise
    except OSError as exc:
        if absolute_path is not None:
            absolute_path.unlink(missing_ok=True)
        raise UnavailableError("Media storage is unavailable") from exc
    finally:
        await upload.close()

    if total_size == 0:
        absolute_path.unlink(missing_ok=True)
        raise InvalidArgumentError("Media payload is empty")

    return StoredFile(
        file_name=original_name,
        content_type=upload.content_type,
        file_size=total_size,
        absolute_path=absolute_path,
        url=build_media_url(user_id, file_name),
    )


def resolve_media_path(user_id: int, file_name: str) -> Path:
    """Return an absolute path for a stored media file."""

    root = _media_root().resolve()
    candidate = (root / f"user_{user_id}" / file_name).resolve()
    if not str(candidate).startswith(str(root)) or not candidate.is_file():
        raise NotFoundError("File not found")
    return candidate
