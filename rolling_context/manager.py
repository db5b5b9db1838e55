"""ConversationManager: turn lifecycle orchestration over a ThreadStore."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Callable

from .config import load_config, validate_conversation_config
from .core.assembler import ContextAssembler
from .core.compactor import ThreadCompactor
from .core.locks import ThreadLockTable
from .core.store import ThreadStore
from .providers import build_provider
from .storage import MemoryStore, build_store
from .token_counter import create_token_counter, estimate_tokens
from .types import (
    AssembledContext,
    CompactionReport,
    CompletionError,
    ConfigError,
    ConversationConfig,
    LLMProvider,
    Message,
    Role,
    RollingContextConfig,
    ThreadNotFoundError,
    ThreadState,
    ThreadView,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)


def _next_message(state: ThreadState, role: Role, text: str) -> Message:
    # created_at never goes backwards within a thread, even if the wall clock does
    now = utcnow()
    if state.messages and state.messages[-1].created_at > now:
        now = state.messages[-1].created_at
    return Message(role=role, content=text, created_at=now)


class _DeadlineProvider:
    """Run ``complete`` on a dedicated daemon thread and give up after ``timeout`` seconds.

    Every bounded call gets its own worker, so the deadline starts when the
    call starts and an abandoned call on one thread never holds up another.
    The abandoned call keeps running until the provider's own HTTP timeout
    ends it; its result is discarded.
    """

    def __init__(self, inner: LLMProvider, timeout: float) -> None:
        self.inner = inner
        self.timeout = timeout

    def complete(self, messages: list[dict[str, str]], max_tokens: int) -> str:
        future: Future[str] = Future()

        def run() -> None:
            try:
                future.set_result(self.inner.complete(messages, max_tokens))
            except Exception as e:
                future.set_exception(e)

        threading.Thread(target=run, name="rolling-context-completion", daemon=True).start()
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError:
            raise CompletionError(
                f"Completion timed out after {self.timeout:.1f}s"
            ) from None



class ConversationManager:
    """Bounded conversation context manager.

    Usage:
        manager = ConversationManager(provider=my_llm, store=SQLiteStore("threads.db"))
        thread_id = manager.init_thread()
        reply = manager.generate(thread_id, "hello")

    Every read-modify-write over a thread runs under that thread's lock, so
    concurrent calls against one id are serialized while different ids run in
    parallel. A ``generate`` turn is persisted with a single save at the end:
    if compaction or the completion call fails, the stored thread is exactly
    what it was before the call.
    """

    def __init__(
        self,
        provider: LLMProvider,
        store: ThreadStore | None = None,
        config: ConversationConfig | None = None,
        token_counter: Callable[[str], int] | None = None,
    ) -> None:
        self.config = config or ConversationConfig()
        errors = validate_conversation_config(self.config)
        if errors:
            raise ConfigError(errors)

        self._provider = provider
        self._store = store if store is not None else MemoryStore()
        self._token_counter = token_counter or estimate_tokens
        self._assembler = ContextAssembler(self.config, token_counter=self._token_counter)
        self._locks = ThreadLockTable()

    @classmethod
    def from_config(
        cls,
        config_path: str | Path | None = None,
        config: RollingContextConfig | None = None,
        store: ThreadStore | None = None,
        provider: LLMProvider | None = None,
    ) -> ConversationManager:
        """Wire store, provider and token counter from a RollingContextConfig."""
        config = config or load_config(config_path)
        if provider is None:
            provider = build_provider(config.completion.provider, config.providers, config.completion)
        return cls(
            provider=provider,
            store=store if store is not None else build_store(config.storage),
            config=config.conversation,
            token_counter=create_token_counter(config.token_counter),
        )

    @property
    def store(self) -> ThreadStore:
        return self._store

    # ------------------------------------------------------------------
    # Thread lifecycle
    # ------------------------------------------------------------------

    def init_thread(self, thread_id: str | None = None) -> str:
        """Create an empty thread, or return ``thread_id`` unchanged if it exists."""
        thread_id = thread_id or new_id()
        with self._locks.hold(thread_id):
            if self._store.get(thread_id) is None:
                self._store.save(ThreadState(id=thread_id))
                logger.info("Created thread %s", thread_id)
        return thread_id

    def add_user_message(self, thread_id: str, text: str) -> Message:
        return self._append(thread_id, Role.USER, text)

    def add_assistant_message(self, thread_id: str, text: str) -> Message:
        return self._append(thread_id, Role.ASSISTANT, text)

    def get_thread_view(self, thread_id: str) -> ThreadView:
        state = self._require(thread_id)
        return ThreadView(summary=state.summary, messages=state.messages)

    # ------------------------------------------------------------------
    # Compaction & assembly
    # ------------------------------------------------------------------

    def maybe_compress(
        self, thread_id: str, timeout: float | None = None,
    ) -> CompactionReport | None:
        """Compact the thread if its history is over ``compress_after_tokens``."""
        if timeout is None:
            timeout = self.config.completion_timeout
        with self._locks.hold(thread_id):
            state = self._require(thread_id)
            result = self._compactor(timeout).compact(state)
            if result is None:
                return None
            new_state, report = result
            self._store.save(new_state)
            return report

    def build_context(self, thread_id: str) -> AssembledContext:
        """Assemble the prompt the next turn would send. Read-only."""
        return self._assembler.assemble(self._require(thread_id))

    def generate(self, thread_id: str, user_text: str, timeout: float | None = None) -> str:
        """Run one turn: append user input, compact if due, complete, append reply.

        ``timeout`` (seconds) bounds each completion-service call made during
        the turn; it defaults to ``config.completion_timeout``.
        """
        if timeout is None:
            timeout = self.config.completion_timeout
        provider = self._bounded(timeout)

        with self._locks.hold(thread_id):
            state = self._require(thread_id)
            state = state.with_message(_next_message(state, Role.USER, user_text))

            result = self._compactor(timeout).compact(state)
            if result is not None:
                state, _ = result

            assembled = self._assembler.assemble(state)
            logger.debug(
                "Thread %s: sending %d messages, %d/%d tokens",
                thread_id, len(assembled.messages) + 1,
                assembled.total_tokens, assembled.budget_tokens,
            )
            text = self._call(provider, assembled.to_payload(), self.config.response_max_tokens)

            state = state.with_message(_next_message(state, Role.ASSISTANT, text))
            self._store.save(state)
            return text

    def close(self) -> None:
        self._store.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, thread_id: str) -> ThreadState:
        state = self._store.get(thread_id)
        if state is None:
            raise ThreadNotFoundError(thread_id)
        return state

    def _append(self, thread_id: str, role: Role, text: str) -> Message:
        with self._locks.hold(thread_id):
            state = self._require(thread_id)
            message = _next_message(state, role, text)
            self._store.save(state.with_message(message))
            return message

    def _bounded(self, timeout: float | None) -> LLMProvider:
        if timeout is None:
            return self._provider
        return _DeadlineProvider(self._provider, timeout)

    def _compactor(self, timeout: float | None) -> ThreadCompactor:
        return ThreadCompactor(
            self._bounded(timeout), self.config, token_counter=self._token_counter,
        )

    @staticmethod
    def _call(provider: LLMProvider, payload: list[dict[str, str]], max_tokens: int) -> str:
        try:
            return provider.complete(payload, max_tokens=max_tokens)
        except CompletionError:
            raise
        except Exception as e:
            raise CompletionError(f"Completion failed: {e}") from e
