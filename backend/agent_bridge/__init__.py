from .config import BridgeSettings, public_base_url
from .correlator import ResponseCorrelator
from .models import (
    CALLBACK_ERROR_REPLY,
    DISPATCH_REJECTED_REPLY,
    DISPATCH_TRANSPORT_FAILURE_REPLY,
    EMPTY_RESPONSE_REPLY,
    TIMEOUT_REPLY,
    PendingRequest,
    ResolveOutcome,
)
from .webhook import audio_content, build_webhook_payload, extract_audio_url, generate_message_id

__all__ = [
    "BridgeSettings",
    "CALLBACK_ERROR_REPLY",
    "DISPATCH_REJECTED_REPLY",
    "DISPATCH_TRANSPORT_FAILURE_REPLY",
    "EMPTY_RESPONSE_REPLY",
    "PendingRequest",
    "ResolveOutcome",
    "ResponseCorrelator",
    "TIMEOUT_REPLY",
    "audio_content",
    "build_webhook_payload",
    "extract_audio_url",
    "generate_message_id",
    "public_base_url",
]
