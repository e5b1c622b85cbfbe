from __future__ import annotations

import importlib
import sys
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from agent_stub import AgentStub  # noqa: E402


@pytest.fixture
def backend_module(tmp_path, monkeypatch):
    monkeypatch.setenv("CARECHAT_DB_PATH", str(tmp_path / "carechat-test.sqlite"))
    monkeypatch.setenv("CARECHAT_OBJECT_DIR", str(tmp_path / "objects"))
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://care.example.test")
    monkeypatch.setenv("AGENTFORCE_WEBHOOK_URL", "https://agent.example.test/hooks/trigger")
    monkeypatch.delenv("REPLIT_DEV_DOMAIN", raising=False)
    monkeypatch.delenv("AGENTFORCE_TIMEOUT_SECONDS", raising=False)

    if "main" in sys.modules:
        module = importlib.reload(sys.modules["main"])
    else:
        module = importlib.import_module("main")
    return module


@pytest.fixture
def agent(backend_module, monkeypatch) -> AgentStub:
    # Keep tests off the network: every outbound webhook lands in the stub.
    stub = AgentStub()
    monkeypatch.setattr(backend_module.container, "correlator", stub.build_correlator(backend_module.container.settings))
    return stub


@pytest.fixture
def client(backend_module, agent):
    with TestClient(backend_module.app) as test_client:
        yield test_client


@pytest.fixture
def signup(client) -> Callable[..., dict]:
    def _make(email: str = "nurse@example.com", password: str = "secret123", full_name: str = "Nora Nurse") -> dict:
        response = client.post(
            "/api/auth/signup",
            json={"email": email, "password": password, "fullName": full_name},
        )
        assert response.status_code == 200, response.text
        return response.json()["user"]

    return _make


@pytest.fixture
def conversation(client, signup) -> dict:
    user = signup()
    response = client.post("/api/conversations", json={"userId": user["id"], "title": "Morning rounds"})
    assert response.status_code == 200, response.text
    return response.json()
