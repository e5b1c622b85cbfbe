from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from agent_bridge import BridgeSettings, ResolveOutcome, ResponseCorrelator, audio_content
from audio_storage import LocalObjectStorage, ObjectNotFoundError, UploadRejectedError
from chat_store import ChatStore, ConversationNotFoundError, DuplicateUserError, SQLiteChatDB, StoreError, public_user

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _load_local_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not _ENV_KEY_RE.fullmatch(key):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def _bootstrap_local_env() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    candidates = [
        repo_root / ".env",
        repo_root / "backend/.env",
    ]
    for candidate in candidates:
        if candidate.exists():
            _load_local_env_file(candidate)


_bootstrap_local_env()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_MAX_AUDIO_BYTES = int(os.getenv("CARECHAT_MAX_AUDIO_BYTES", str(20 * 1024 * 1024)))
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignupPayload(ApiModel):
    email: str
    password: str
    full_name: str

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str) -> str:
        cleaned = value.strip()
        if not _EMAIL_RE.fullmatch(cleaned):
            raise ValueError("Please enter a valid email address")
        return cleaned

    @field_validator("password")
    @classmethod
    def _strong_enough(cls, value: str) -> str:
        if len(value) < 6:
            raise ValueError("Password must be at least 6 characters")
        return value

    @field_validator("full_name")
    @classmethod
    def _has_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Full name is required")
        return value.strip()


class LoginPayload(ApiModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str) -> str:
        cleaned = value.strip()
        if not _EMAIL_RE.fullmatch(cleaned):
            raise ValueError("Please enter a valid email address")
        return cleaned

    @field_validator("password")
    @classmethod
    def _present(cls, value: str) -> str:
        if not value:
            raise ValueError("Password is required")
        return value


class ConversationPayload(ApiModel):
    user_id: str = Field(min_length=1)
    title: str = Field(min_length=1)


class MessagePayload(ApiModel):
    conversation_id: str = Field(min_length=1)
    content: str
    is_from_user: bool
    message_type: Literal["text", "audio"] = "text"
    audio_url: str | None = None


class AudioProcessPayload(BaseModel):
    audio_url: str | None = Field(default=None, alias="audioURL")


class AgentCallbackPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    message_id: str | None = None
    response: Any = None
    error: Any = None


class CareChatApp:
    def __init__(self) -> None:
        backend_dir = Path(__file__).resolve().parent
        db_path = os.getenv("CARECHAT_DB_PATH", str(backend_dir / "carechat.sqlite"))
        self.db = SQLiteChatDB(db_path)
        self.store = ChatStore(self.db)
        self.settings = BridgeSettings.from_env()
        self.correlator = ResponseCorrelator(self.settings)
        self.objects = LocalObjectStorage(
            os.getenv("CARECHAT_OBJECT_DIR", str(backend_dir / "objects")),
            public_base_url=self.settings.public_base_url,
            max_bytes=_MAX_AUDIO_BYTES,
        )


container = CareChatApp()
app = FastAPI(title="Care Manager Chat Backend")

allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in allowed_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = str(errors[0].get("msg", "Validation error")) if errors else "Validation error"
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return JSONResponse(status_code=400, content={"detail": message})


def _callback_text(response: Any) -> str | None:
    if response is None or isinstance(response, str):
        return response
    return json.dumps(response)


@app.get("/health")
def health():
    return {"status": "ok", "pending_agent_replies": container.correlator.pending_count}


@app.post("/api/auth/signup")
def signup(payload: SignupPayload):
    if container.store.get_user_by_email(payload.email):
        raise HTTPException(status_code=400, detail="User already exists with this email")
    try:
        user = container.store.create_user(
            email=payload.email,
            password=payload.password,
            full_name=payload.full_name,
        )
    except DuplicateUserError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info("Created user %s", user["id"])
    return {"user": public_user(user)}


@app.post("/api/auth/login")
def login(payload: LoginPayload):
    user = container.store.get_user_by_email(payload.email)
    if not user or not container.store.verify_password(payload.password, user["password"]):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user["isActive"]:
        raise HTTPException(status_code=401, detail="Account is deactivated")
    return {"user": public_user(user)}


@app.get("/api/conversations/{user_id}")
def list_conversations(user_id: str):
    return container.store.get_conversations_by_user_id(user_id)


@app.post("/api/conversations")
def create_conversation(payload: ConversationPayload):
    try:
        return container.store.create_conversation(user_id=payload.user_id, title=payload.title)
    except StoreError as exc:
        raise HTTPException(status_code=404, detail="User not found") from exc


@app.get("/api/messages/{conversation_id}")
def list_messages(conversation_id: str):
    return container.store.get_messages_by_conversation_id(conversation_id)


@app.post("/api/messages")
async def create_message(payload: MessagePayload):
    if container.store.get_conversation(payload.conversation_id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    try:
        message = container.store.create_message(
            conversation_id=payload.conversation_id,
            content=payload.content,
            is_from_user=payload.is_from_user,
            message_type=payload.message_type,
            audio_url=payload.audio_url,
        )
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Conversation not found") from exc

    if not payload.is_from_user:
        return {"message": message}

    content_for_agent = payload.content
    if payload.message_type == "audio" and payload.audio_url:
        # The agent fetches the recording itself, so it needs a public URL.
        content_for_agent = audio_content(container.settings.public_base_url, payload.audio_url)

    reply = await container.correlator.request_ai_response(
        content_for_agent,
        payload.message_type,
        payload.conversation_id,
    )
    ai_message = container.store.create_message(
        conversation_id=payload.conversation_id,
        content=reply,
        is_from_user=False,
        message_type="text",
    )
    return {"userMessage": message, "aiMessage": ai_message}


@app.post("/api/audio/upload")
def audio_upload_url():
    return {"uploadURL": container.objects.create_upload_url()}


async def _read_capped_body(request: Request, *, max_bytes: int, too_large_detail: str) -> bytes:
    declared = request.headers.get("content-length", "").strip()
    if declared.isdigit() and int(declared) > max_bytes:
        raise HTTPException(status_code=413, detail=too_large_detail)
    chunks: list[bytes] = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > max_bytes:
            raise HTTPException(status_code=413, detail=too_large_detail)
        chunks.append(chunk)
    return b"".join(chunks)


@app.put("/objects/uploads/{object_id}")
async def audio_upload(object_id: str, request: Request):
    data = await _read_capped_body(
        request,
        max_bytes=container.objects.max_bytes,
        too_large_detail=container.objects.too_large_detail,
    )
    try:
        object_path = container.objects.store_upload(object_id, data, request.headers.get("content-type"))
    except UploadRejectedError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return {"objectPath": object_path}


@app.post("/api/audio/process")
def audio_process(payload: AudioProcessPayload):
    if not payload.audio_url:
        raise HTTPException(status_code=400, detail="audioURL is required")
    return {"audioPath": container.objects.normalize_object_entity_path(payload.audio_url)}


@app.get("/objects/{object_path:path}")
def serve_object(object_path: str):
    try:
        stored = container.objects.get_object_entity_file(f"/objects/{object_path}")
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Object not found") from exc
    return FileResponse(stored.path, media_type=stored.content_type)


@app.post("/api/agentforce/callback")
async def agent_callback(payload: AgentCallbackPayload):
    if not payload.message_id:
        raise HTTPException(status_code=400, detail="message_id is required")
    outcome = container.correlator.resolve(
        payload.message_id,
        response=_callback_text(payload.response),
        error=payload.error,
    )
    if outcome is ResolveOutcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Message not found or already processed")
    return {"success": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5000")),
    )
