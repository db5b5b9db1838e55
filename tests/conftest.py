"""Shared fixtures for rolling-context tests."""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from rolling_context.core.compactor import SUMMARY_SYSTEM_PROMPT
from rolling_context.storage import FilesystemStore, MemoryStore, SQLiteStore
from rolling_context.types import (
    ConversationConfig,
    LLMProviderError,
    Message,
    Role,
    ThreadState,
)


@pytest.fixture
def ts() -> datetime:
    return datetime(2026, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


def make_messages(count: int, chars: int = 200, start: datetime | None = None) -> list[Message]:
    """Alternating user/assistant messages of ``chars`` characters each (~chars/4 tokens)."""
    start = start or datetime(2026, 1, 15, 10, 0, 0, tzinfo=timezone.utc)
    messages = []
    for i in range(count):
        role = Role.USER if i % 2 == 0 else Role.ASSISTANT
        prefix = f"m{i:03d} "
        messages.append(Message(
            role=role,
            content=prefix + "x" * (chars - len(prefix)),
            created_at=start + timedelta(seconds=30 * i),
        ))
    return messages


def make_thread(count: int, chars: int = 200, thread_id: str = "thread-1", summary: str = "") -> ThreadState:
    messages = make_messages(count, chars)
    return ThreadState(
        id=thread_id,
        messages=tuple(messages),
        summary=summary,
        last_updated=messages[-1].created_at if messages else datetime(2026, 1, 15, tzinfo=timezone.utc),
    )


def is_summary_request(messages: list[dict]) -> bool:
    return bool(messages) and messages[0]["content"] == SUMMARY_SYSTEM_PROMPT


class MockLLMProvider:
    """Mock completion service: canned summaries, echoed chat replies."""

    def __init__(self, summary: str = "- Test summary", reply_prefix: str = "echo: ", delay: float = 0.0):
        self.summary = summary
        self.reply_prefix = reply_prefix
        self.delay = delay
        self.calls: list[dict] = []
        self._lock = threading.Lock()

    @property
    def summary_calls(self) -> list[dict]:
        return [c for c in self.calls if is_summary_request(c["messages"])]

    @property
    def chat_calls(self) -> list[dict]:
        return [c for c in self.calls if not is_summary_request(c["messages"])]

    def complete(self, messages: list[dict], max_tokens: int) -> str:
        with self._lock:
            self.calls.append({"messages": messages, "max_tokens": max_tokens})
        if self.delay:
            time.sleep(self.delay)
        if is_summary_request(messages):
            return self.summary
        last_user = next(m["content"] for m in reversed(messages) if m["role"] == "user")
        return f"{self.reply_prefix}{last_user}"


class FailingLLMProvider(MockLLMProvider):
    """Fails summarization requests, chat requests, or both."""

    def __init__(self, fail_summary: bool = True, fail_chat: bool = False, error: Exception | None = None):
        super().__init__()
        self.fail_summary = fail_summary
        self.fail_chat = fail_chat
        self.error = error or LLMProviderError("HTTP 503: unavailable", provider="mock", status_code=503)

    def complete(self, messages: list[dict], max_tokens: int) -> str:
        summary = is_summary_request(messages)
        if (summary and self.fail_summary) or (not summary and self.fail_chat):
            with self._lock:
                self.calls.append({"messages": messages, "max_tokens": max_tokens})
            raise self.error
        return super().complete(messages, max_tokens)


@pytest.fixture
def mock_llm() -> MockLLMProvider:
    return MockLLMProvider()


@pytest.fixture
def small_config() -> ConversationConfig:
    return ConversationConfig(
        max_prompt_tokens=2000,
        compress_after_tokens=400,
        keep_recent=8,
        min_chunk=6,
        chunk_fraction=0.25,
    )


@pytest.fixture(params=["memory", "sqlite", "filesystem"])
def any_store(request, tmp_path):
    """Each ThreadStore implementation in turn."""
    if request.param == "memory":
        store = MemoryStore()
    elif request.param == "sqlite":
        store = SQLiteStore(db_path=tmp_path / "threads.db")
    else:
        store = FilesystemStore(root=tmp_path / "threads")
    yield store
    store.close()
