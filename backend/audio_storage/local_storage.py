from __future__ import annotations

import json
import logging
import re
import threading
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable
from urllib.parse import urlparse

from chat_store.time_utils import to_iso, utc_now

logger = logging.getLogger(__name__)

OBJECTS_PREFIX = "/objects/"
UPLOADS_PREFIX = "/objects/uploads/"

ALLOWED_AUDIO_MIME_TYPES = {
    "audio/mpeg",
    "audio/mp3",
    "audio/mp4",
    "audio/m4a",
    "audio/wav",
    "audio/x-wav",
    "audio/webm",
    "audio/ogg",
}

_OBJECT_ID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
_META_SUFFIX = ".meta.json"

# Matches the lifetime of the signed upload URLs the browser client expects.
UPLOAD_URL_TTL_SECONDS = 900


class ObjectNotFoundError(Exception):
    pass


class UploadRejectedError(Exception):
    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class StoredObject:
    path: Path
    content_type: str
    size: int


def _base_mime_type(content_type: str | None) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


class LocalObjectStorage:
    """Audio blobs on local disk, addressed as ``/objects/<relative path>``.

    Uploads go through one-time URLs: ``create_upload_url`` issues an id, the
    browser PUTs the recording there, and the id is spent once stored. Ids
    nobody uploads to expire after ``upload_ttl_seconds``.
    """

    def __init__(
        self,
        root_dir: str,
        *,
        public_base_url: str,
        max_bytes: int,
        upload_ttl_seconds: float = UPLOAD_URL_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._root = Path(root_dir).expanduser().resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._public_base_url = public_base_url.rstrip("/")
        self._max_bytes = max_bytes
        self._upload_ttl_seconds = upload_ttl_seconds
        self._clock = clock
        self._issued: dict[str, float] = {}
        self._lock = threading.Lock()

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    @property
    def too_large_detail(self) -> str:
        return f"Audio file exceeds {self._max_bytes // (1024 * 1024)}MB limit."

    @property
    def open_upload_count(self) -> int:
        with self._lock:
            return len(self._issued)

    def _drop_expired(self, now: float) -> None:
        expired = [object_id for object_id, expires_at in self._issued.items() if expires_at <= now]
        for object_id in expired:
            del self._issued[object_id]

    def create_upload_url(self) -> str:
        object_id = str(uuid.uuid4())
        now = self._clock()
        with self._lock:
            self._drop_expired(now)
            self._issued[object_id] = now + self._upload_ttl_seconds
        return f"{self._public_base_url}{UPLOADS_PREFIX}{object_id}"

    def store_upload(self, object_id: str, data: bytes, content_type: str | None) -> str:
        with self._lock:
            self._drop_expired(self._clock())
            if not _OBJECT_ID_RE.fullmatch(object_id) or object_id not in self._issued:
                raise UploadRejectedError("Upload URL is unknown, expired or already used.", status_code=404)
            mime_type = _base_mime_type(content_type)
            if mime_type not in ALLOWED_AUDIO_MIME_TYPES:
                raise UploadRejectedError("Unsupported audio format.", status_code=415)
            if not data:
                raise UploadRejectedError("Uploaded file is empty.")
            if len(data) > self._max_bytes:
                raise UploadRejectedError(self.too_large_detail, status_code=413)
            del self._issued[object_id]

        target = self._root / "uploads" / object_id
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        meta = {"content_type": mime_type, "size": len(data), "created_at": to_iso(utc_now())}
        target.with_name(object_id + _META_SUFFIX).write_text(json.dumps(meta), encoding="utf-8")
        logger.info("Stored audio upload %s (%d bytes)", object_id, len(data))
        return f"{UPLOADS_PREFIX}{object_id}"

    def normalize_object_entity_path(self, raw_url: str) -> str:
        if raw_url.startswith(OBJECTS_PREFIX):
            return raw_url
        parsed = urlparse(raw_url)
        if parsed.scheme not in {"http", "https"}:
            return raw_url
        if parsed.netloc != urlparse(self._public_base_url).netloc:
            return raw_url
        if not parsed.path.startswith(UPLOADS_PREFIX):
            return raw_url
        return parsed.path

    def get_object_entity_file(self, object_path: str) -> StoredObject:
        if not object_path.startswith(OBJECTS_PREFIX):
            raise ObjectNotFoundError(object_path)
        relative = object_path[len(OBJECTS_PREFIX):]
        if not relative or relative.endswith(_META_SUFFIX):
            raise ObjectNotFoundError(object_path)
        candidate = (self._root / relative).resolve()
        if self._root not in candidate.parents or not candidate.is_file():
            raise ObjectNotFoundError(object_path)

        content_type = "application/octet-stream"
        meta_path = candidate.with_name(candidate.name + _META_SUFFIX)
        if meta_path.is_file():
            try:
                meta = json.loads(meta_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                meta = {}
            content_type = str(meta.get("content_type") or content_type)
        return StoredObject(path=candidate, content_type=content_type, size=candidate.stat().st_size)
