from __future__ import annotations

import re
import secrets
import string
import time
from datetime import datetime
from typing import Any

from chat_store.time_utils import to_iso, utc_now

AUDIO_MARKER = "Audio message:"
_AUDIO_URL_RE = re.compile(r"Audio message: (.+)")
_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_message_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"msg_{int(time.time() * 1000)}_{suffix}"


def extract_audio_url(content: str) -> str | None:
    if AUDIO_MARKER not in (content or ""):
        return None
    match = _AUDIO_URL_RE.search(content)
    if not match:
        return None
    return match.group(1)


def audio_content(public_base_url: str, audio_path: str) -> str:
    if audio_path.startswith(("http://", "https://")):
        return f"{AUDIO_MARKER} {audio_path}"
    return f"{AUDIO_MARKER} {public_base_url.rstrip('/')}{audio_path}"


def build_webhook_payload(
    *,
    message_id: str,
    conversation_id: str,
    content: str,
    message_type: str,
    callback_url: str,
    timestamp: datetime | None = None,
) -> dict[str, Any]:
    kind = message_type or "text"
    payload: dict[str, Any] = {
        "message_id": message_id,
        "conversation_id": conversation_id,
        "content": content,
        "message_type": kind,
        "timestamp": to_iso(timestamp or utc_now()),
        "callback_url": callback_url,
    }
    if kind == "audio":
        audio_url = extract_audio_url(content)
        if audio_url:
            payload["audio_url"] = audio_url
    return payload
