from .local_storage import (
    ALLOWED_AUDIO_MIME_TYPES,
    LocalObjectStorage,
    ObjectNotFoundError,
    StoredObject,
    UploadRejectedError,
)

__all__ = [
    "ALLOWED_AUDIO_MIME_TYPES",
    "LocalObjectStorage",
    "ObjectNotFoundError",
    "StoredObject",
    "UploadRejectedError",
]
