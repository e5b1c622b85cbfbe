from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import httpx

from .config import BridgeSettings
from .models import (
    CALLBACK_ERROR_REPLY,
    DISPATCH_REJECTED_REPLY,
    DISPATCH_TRANSPORT_FAILURE_REPLY,
    EMPTY_RESPONSE_REPLY,
    TIMEOUT_REPLY,
    PendingRequest,
    ResolveOutcome,
)
from .webhook import build_webhook_payload, generate_message_id

logger = logging.getLogger(__name__)

_MAX_ID_ATTEMPTS = 5


class ResponseCorrelator:
    """Turns the agent's webhook round trip into an awaitable reply.

    Each request is registered under a fresh message id before the outbound
    POST leaves the process, and leaves the pending map exactly once: when
    the agent calls back, when the dispatch fails, or when the timeout
    fires. Whichever path pops the entry first delivers the reply and the
    others find nothing to do.

    All methods must run on the event loop that serves the app.
    """

    def __init__(
        self,
        settings: BridgeSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self._id_factory = id_factory or generate_message_id
        self._pending: dict[str, PendingRequest] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, request_id: str) -> bool:
        return request_id in self._pending

    async def request_ai_response(
        self,
        content: str,
        message_type: str = "text",
        conversation_id: str = "",
    ) -> str:
        request_id = self._new_request_id()
        conversation_id = conversation_id or ""
        payload = build_webhook_payload(
            message_id=request_id,
            conversation_id=conversation_id,
            content=content or "",
            message_type=message_type or "text",
            callback_url=self.settings.callback_url,
        )
        pending = self._register(request_id, conversation_id)
        logger.info(
            "Sending agent webhook message_id=%s conversation_id=%s message_type=%s",
            request_id,
            conversation_id,
            payload["message_type"],
        )

        failure_reply = await self._dispatch(payload)
        if failure_reply is not None:
            abandoned = self._take(request_id)
            if abandoned is not None:
                abandoned.complete(failure_reply)
            # Otherwise a callback already settled the waiter; keep its reply.

        return await pending.waiter

    def resolve(self, request_id: str, response: str | None = None, error: Any = False) -> ResolveOutcome:
        pending = self._take(request_id)
        if pending is None:
            logger.info("Agent callback for unknown or settled message_id=%s", request_id)
            return ResolveOutcome.NOT_FOUND

        if error:
            logger.warning(
                "Agent reported an error message_id=%s conversation_id=%s",
                request_id,
                pending.conversation_id,
            )
            pending.complete(CALLBACK_ERROR_REPLY)
        else:
            pending.complete(response or EMPTY_RESPONSE_REPLY)
        logger.info("Agent callback resolved message_id=%s", request_id)
        return ResolveOutcome.RESOLVED

    def _new_request_id(self) -> str:
        for _ in range(_MAX_ID_ATTEMPTS):
            request_id = self._id_factory()
            if request_id not in self._pending:
                return request_id
        raise RuntimeError("Could not allocate an unused message id.")

    def _register(self, request_id: str, conversation_id: str) -> PendingRequest:
        loop = asyncio.get_running_loop()
        pending = PendingRequest(
            request_id=request_id,
            conversation_id=conversation_id,
            waiter=loop.create_future(),
        )
        pending.timer = loop.call_later(self.settings.timeout_seconds, self._expire, request_id)
        self._pending[request_id] = pending
        return pending

    def _take(self, request_id: str) -> PendingRequest | None:
        return self._pending.pop(request_id, None)

    def _expire(self, request_id: str) -> None:
        pending = self._take(request_id)
        if pending is None:
            return
        logger.warning(
            "No agent callback within %.1fs message_id=%s conversation_id=%s",
            self.settings.timeout_seconds,
            request_id,
            pending.conversation_id,
        )
        pending.complete(TIMEOUT_REPLY)

    async def _dispatch(self, payload: dict[str, Any]) -> str | None:
        message_id = payload["message_id"]
        timeout = httpx.Timeout(self.settings.dispatch_timeout_seconds, connect=5.0)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(self.settings.webhook_url, json=payload)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error("Agent webhook unreachable message_id=%s: %s", message_id, exc)
            return DISPATCH_TRANSPORT_FAILURE_REPLY

        if not response.is_success:
            logger.error(
                "Agent webhook failed message_id=%s status=%s %s",
                message_id,
                response.status_code,
                response.reason_phrase,
            )
            return DISPATCH_REJECTED_REPLY

        logger.info("Agent webhook accepted message_id=%s, waiting for callback", message_id)
        return None
