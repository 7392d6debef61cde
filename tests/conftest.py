"""
Shared pytest configuration and fakes.

This file ensures the project root is on sys.path so that `import gemini_api`
works consistently in all tests.
"""

import asyncio
import base64
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import pytest

# Ensure project root is importable for test modules.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from gemini_api.content import BinaryPart, TextPart, Turn  # noqa: E402
from gemini_api.services.chat_manager import ChatManager  # noqa: E402
from gemini_api.services.gemini_client import Attachment, TurnResult  # noqa: E402
from gemini_api.services.session_store import SessionStore  # noqa: E402


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeConversation:
    def __init__(self, model_id: str, region: str, system_preamble: str) -> None:
        self.model_id = model_id
        self.region = region
        self.system_preamble = system_preamble
        self.turns: List[Turn] = []


def attachment_tokens(data: bytes) -> int:
    """One token per started kilobyte of an attached document."""
    return len(data) // 1024 + 1


class FakeConversationClient:
    """
    In-memory stand-in for the Gemini conversation client.
    Token counts are the number of whitespace separated words, plus
    attachment_tokens() for an attached document.
    """

    def __init__(self, reply: str = "Hello from Gemini") -> None:
        self.reply = reply
        self.opened: List[FakeConversation] = []
        self.fail_with: Optional[Exception] = None
        self.fail_count_tokens = False
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    async def open(self, model_id: str, region: str, system_preamble: str = "") -> FakeConversation:
        conversation = FakeConversation(model_id, region, system_preamble)
        self.opened.append(conversation)
        return conversation

    async def send_turn(self, conversation: FakeConversation, text: str,
                        attachment: Optional[Attachment] = None) -> TurnResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_with is not None:
                raise self.fail_with

            parts = [TextPart(text)]
            if attachment is not None:
                encoded = base64.b64encode(attachment.data).decode("ascii")
                parts.append(BinaryPart(mime_type=attachment.mime_type, data=encoded))
            conversation.turns.append(Turn(role="user", parts=parts))
            conversation.turns.append(Turn(role="model", parts=[TextPart(self.reply)]))
            return TurnResult(text=self.reply, history=list(conversation.turns))
        finally:
            self.in_flight -= 1

    async def count_tokens(self, conversation: FakeConversation, content: str,
                           attachment: Optional[Attachment] = None) -> int:
        if self.fail_count_tokens:
            raise RuntimeError("countTokens unavailable")
        tokens = len(content.split())
        if attachment is not None:
            tokens += attachment_tokens(attachment.data)
        return tokens


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_client() -> FakeConversationClient:
    return FakeConversationClient()


@pytest.fixture
def store(fake_client, clock) -> SessionStore:
    return SessionStore(
        fake_client,
        ttl=timedelta(hours=3),
        cleanup_interval=timedelta(minutes=5),
        clock=clock,
        default_preprompt="You are a helpful assistant.",
    )


@pytest.fixture
def manager(store) -> ChatManager:
    return ChatManager(store, upstream_timeout=5)
