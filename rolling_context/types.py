"""All dataclasses, Protocols, and exceptions for rolling-context."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol, runtime_checkable


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class RollingContextError(Exception):
    """Base class for every error raised by rolling-context."""


class ThreadNotFoundError(RollingContextError, KeyError):
    def __init__(self, thread_id: str):
        super().__init__(f"Thread {thread_id} not found. Call init_thread() first.")
        self.thread_id = thread_id

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class StorageError(RollingContextError):
    """A thread store failed to load or save state."""


class CompletionError(RollingContextError):
    """The completion service errored, timed out, or was cancelled."""


class LLMProviderError(CompletionError):
    def __init__(self, message: str, provider: str, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class InvariantViolation(RollingContextError):
    """Internal consistency check failed. Always a bug, never user input."""


class ConfigError(RollingContextError, ValueError):
    def __init__(self, errors: list[str]):
        super().__init__("Invalid configuration: " + "; ".join(errors))
        self.errors = errors


# ---------------------------------------------------------------------------
# Message & Thread
# ---------------------------------------------------------------------------

class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    role: Role
    content: str
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class ThreadState:
    """Persisted conversation state. Immutable: every mutation returns a new value."""
    id: str
    messages: tuple[Message, ...] = ()
    summary: str = ""
    last_updated: datetime = field(default_factory=utcnow)

    def with_message(self, message: Message) -> ThreadState:
        return replace(
            self,
            messages=self.messages + (message,),
            last_updated=message.created_at,
        )

    def with_compaction(
        self, removed_count: int, summary: str, now: datetime | None = None,
    ) -> ThreadState:
        """Drop the oldest ``removed_count`` messages and replace the summary."""
        return replace(
            self,
            messages=self.messages[removed_count:],
            summary=summary,
            last_updated=now or utcnow(),
        )


@dataclass(frozen=True)
class ThreadView:
    """Read-only snapshot handed to callers."""
    summary: str
    messages: tuple[Message, ...]


# ---------------------------------------------------------------------------
# Assembly & Compaction
# ---------------------------------------------------------------------------

@dataclass
class AssembledContext:
    header: Message
    messages: list[Message] = field(default_factory=list)
    total_tokens: int = 0
    budget_tokens: int = 0
    dropped_ids: list[str] = field(default_factory=list)

    def to_payload(self) -> list[dict[str, str]]:
        """Ordered ``[{role, content}]`` list for the completion service."""
        return [self.header.to_payload()] + [m.to_payload() for m in self.messages]


@dataclass
class CompactionReport:
    thread_id: str
    messages_compacted: int
    tokens_before: int
    tokens_after: int
    summary_tokens: int
    timestamp: datetime = field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# LLM Provider
# ---------------------------------------------------------------------------

@runtime_checkable
class LLMProvider(Protocol):
    def complete(self, messages: list[dict[str, str]], max_tokens: int) -> str: ...


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful, concise assistant. "
    "Use the `Thread Summary` for long-term context."
)


@dataclass
class ConversationConfig:
    max_prompt_tokens: int = 6000
    compress_after_tokens: int = 4000
    keep_recent: int = 8
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    min_chunk: int = 6
    chunk_fraction: float = 0.25
    message_overhead: int = 5  # per-message framing cost added to each estimate
    summary_max_tokens: int = 1000
    response_max_tokens: int = 2000
    completion_timeout: float | None = None  # seconds; None waits indefinitely


@dataclass
class CompletionConfig:
    provider: str = "ollama"
    model: str = "qwen3:4b-instruct-2507-fp16"
    temperature: float = 0.3
    request_timeout: float = 60.0


@dataclass
class StorageConfig:
    backend: str = "sqlite"
    root: str = ".rollingcontext/threads"
    sqlite_path: str = ".rollingcontext/threads.db"


@dataclass
class RollingContextConfig:
    version: str = "0.1"
    token_counter: str = "estimate"
    conversation: ConversationConfig = field(default_factory=ConversationConfig)
    completion: CompletionConfig = field(default_factory=CompletionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    providers: dict[str, dict] = field(default_factory=dict)
