from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass


DISPATCH_TRANSPORT_FAILURE_REPLY = "I'm having trouble processing your request right now. Please try again."
DISPATCH_REJECTED_REPLY = "I'm having trouble connecting to the AI system. Please try again in a moment."
CALLBACK_ERROR_REPLY = "I apologize, but I encountered an error processing your request. Please try again."
EMPTY_RESPONSE_REPLY = "I received your message but didn't get a response. Please try again."
TIMEOUT_REPLY = "I'm taking longer than usual to process your request. Please try asking again."


class ResolveOutcome(str, enum.Enum):
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"


@dataclass
class PendingRequest:
    request_id: str
    conversation_id: str
    waiter: asyncio.Future
    timer: asyncio.TimerHandle | None = None

    def complete(self, text: str) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        # The caller may have gone away; its entry is still cleared here.
        if not self.waiter.done():
            self.waiter.set_result(text)
