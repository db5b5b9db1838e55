"""ThreadCompactor: fold the oldest messages of a thread into its running summary."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Sequence

from ..token_counter import estimate_tokens
from ..types import (
    CompactionReport,
    CompletionError,
    ConversationConfig,
    LLMProvider,
    Message,
    ThreadState,
    utcnow,
)

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = (
    "Summarize the following chat messages into a concise, factual running summary. "
    "Keep entities, decisions, and any explicit constraints. Use bullet points."
)

SUMMARY_USER_PROMPT = """\
Existing summary (may be empty):
{summary}

Messages to compress:
{conversation_text}

Return only the updated summary."""


class ThreadCompactor:
    """Summarize-then-remove compaction over a ThreadState.

    ``compact`` never mutates its input. It returns a new state only after
    the completion service has produced a summary, so a failed call leaves
    the caller holding the original, untouched state.
    """

    def __init__(
        self,
        llm_provider: LLMProvider,
        config: ConversationConfig,
        token_counter: Callable[[str], int] | None = None,
    ) -> None:
        self.llm = llm_provider
        self.config = config
        self.token_counter = token_counter or estimate_tokens

    def total_tokens(self, messages: Sequence[Message]) -> int:
        """Estimated cost of the whole active history, not just the recent window."""
        return self.token_counter(" \n".join(m.content for m in messages))

    def needs_compaction(self, state: ThreadState) -> bool:
        if not state.messages:
            return False
        return self.total_tokens(state.messages) >= self.config.compress_after_tokens

    def chunk_size(self, message_count: int) -> int:
        n = max(self.config.min_chunk, int(message_count * self.config.chunk_fraction))
        return min(n, message_count)

    def select_chunk(self, messages: Sequence[Message]) -> list[Message]:
        """Oldest prefix to fold into the summary."""
        return list(messages[: self.chunk_size(len(messages))])

    def build_request(self, summary: str, chunk: Sequence[Message]) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": SUMMARY_USER_PROMPT.format(
                    summary=summary,
                    conversation_text=self._format_conversation(chunk),
                ),
            },
        ]

    def compact(
        self, state: ThreadState, now: datetime | None = None,
    ) -> tuple[ThreadState, CompactionReport] | None:
        """Compact ``state`` if it is over threshold.

        Returns the new state and a report, or None when no compaction is due.
        Raises CompletionError if summarization fails; ``state`` is unchanged.
        """
        if not self.needs_compaction(state):
            return None

        tokens_before = self.total_tokens(state.messages)
        chunk = self.select_chunk(state.messages)
        request = self.build_request(state.summary, chunk)

        try:
            response_text = self.llm.complete(request, max_tokens=self.config.summary_max_tokens)
        except CompletionError as e:
            logger.warning("Summarization failed for thread %s: %s", state.id, e)
            raise
        except Exception as e:
            logger.warning("Summarization failed for thread %s: %s", state.id, e)
            raise CompletionError(f"Summarization failed for thread {state.id}: {e}") from e

        summary = (response_text or "").strip()
        if not summary:
            raise CompletionError(
                f"Summarization for thread {state.id} returned an empty summary"
            )

        new_state = state.with_compaction(len(chunk), summary, now or utcnow())
        report = CompactionReport(
            thread_id=state.id,
            messages_compacted=len(chunk),
            tokens_before=tokens_before,
            tokens_after=self.total_tokens(new_state.messages),
            summary_tokens=self.token_counter(summary),
            timestamp=new_state.last_updated,
        )
        logger.info(
            "Compacted thread %s: %d messages folded, %d -> %d tokens, summary %d tokens",
            state.id, report.messages_compacted, report.tokens_before,
            report.tokens_after, report.summary_tokens,
        )
        return new_state, report

    def _format_conversation(self, messages: Sequence[Message]) -> str:
        """Format messages as 'ROLE: content' lines."""
        return "\n".join(f"{m.role.value.upper()}: {m.content}" for m in messages)
