from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_WEBHOOK_URL = (
    "https://api-f1db6c.stack.tryrelevance.com/latest/agents/hooks/custom-trigger/"
    "e7c394c5-f7a3-4655-ab31-eb43eee010a9/da344acf-0036-444e-8c63-5d3970015b94"
)
DEFAULT_LOCAL_BASE_URL = "http://localhost:5000"
CALLBACK_PATH = "/api/agentforce/callback"


def public_base_url() -> str:
    explicit = os.getenv("PUBLIC_BASE_URL", "").strip()
    if explicit:
        return explicit.rstrip("/")
    replit_domain = os.getenv("REPLIT_DEV_DOMAIN", "").strip()
    if replit_domain:
        return f"https://{replit_domain}"
    return DEFAULT_LOCAL_BASE_URL


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class BridgeSettings:
    webhook_url: str
    public_base_url: str
    timeout_seconds: float = 30.0
    dispatch_timeout_seconds: float = 10.0

    @property
    def callback_url(self) -> str:
        return f"{self.public_base_url}{CALLBACK_PATH}"

    @classmethod
    def from_env(cls) -> "BridgeSettings":
        return cls(
            webhook_url=os.getenv("AGENTFORCE_WEBHOOK_URL", DEFAULT_WEBHOOK_URL).strip() or DEFAULT_WEBHOOK_URL,
            public_base_url=public_base_url(),
            timeout_seconds=_float_env("AGENTFORCE_TIMEOUT_SECONDS", 30.0),
            dispatch_timeout_seconds=_float_env("AGENTFORCE_DISPATCH_TIMEOUT_SECONDS", 10.0),
        )
