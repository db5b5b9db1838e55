"""ContextAssembler: build the per-turn prompt from summary header + bounded history."""

from __future__ import annotations

import logging
from typing import Callable

from ..token_counter import estimate_tokens
from ..types import (
    AssembledContext,
    ConversationConfig,
    InvariantViolation,
    Message,
    Role,
    ThreadState,
)

logger = logging.getLogger(__name__)

SUMMARY_PLACEHOLDER = "(none yet)"


class ContextAssembler:
    """Assemble the ordered message list within ``max_prompt_tokens``.

    Assembly order (top to bottom in final prompt):
    1. [HEADER] - system prompt + running thread summary, never dropped
    2. [OLDER HISTORY] - messages before the recent window, only if room remains
    3. [RECENT WINDOW] - the last ``keep_recent`` messages, oldest first

    Stateless: safe to share across threads.
    """

    def __init__(
        self,
        config: ConversationConfig,
        token_counter: Callable[[str], int] | None = None,
    ) -> None:
        self.config = config
        self.token_counter = token_counter or estimate_tokens

    def build_header(self, summary: str) -> Message:
        text = (
            f"{self.config.system_prompt}\n\n---\n"
            f"Thread Summary (compressed):\n{summary or SUMMARY_PLACEHOLDER}"
        )
        return Message(role=Role.SYSTEM, content=text)

    def message_cost(self, message: Message) -> int:
        return self.token_counter(message.content) + self.config.message_overhead

    def assemble(self, state: ThreadState) -> AssembledContext:
        """Select history for ``state`` without mutating it."""
        budget = self.config.max_prompt_tokens
        header = self.build_header(state.summary)
        header_tokens = self.token_counter(header.content)
        remaining = budget - header_tokens

        if remaining < 0:
            logger.warning(
                "Header for thread %s costs %d tokens, budget is %d; sending header only",
                state.id, header_tokens, budget,
            )
            return AssembledContext(
                header=header,
                total_tokens=header_tokens,
                budget_tokens=budget,
                dropped_ids=[m.id for m in state.messages],
            )

        messages = list(state.messages)
        split = max(0, len(messages) - self.config.keep_recent)
        recent = messages[split:]
        older = messages[:split]

        selected: list[Message] = []

        # Recent window, oldest to newest. Stops at the first misfit, so
        # the newest messages are the ones lost under extreme pressure.
        for m in recent:
            cost = self.message_cost(m)
            if cost > remaining:
                break
            selected.append(m)
            remaining -= cost

        # Older history, newest to oldest, prepended to keep chronology.
        if remaining > 0:
            for m in reversed(older):
                cost = self.message_cost(m)
                if cost > remaining:
                    break
                selected.insert(0, m)
                remaining -= cost

        if remaining < 0:
            raise InvariantViolation(
                f"Assembly overran budget for thread {state.id}: remaining={remaining}"
            )

        kept = {m.id for m in selected}
        dropped = [m.id for m in messages if m.id not in kept]
        if dropped:
            logger.debug(
                "Thread %s: kept %d of %d messages within %d tokens",
                state.id, len(selected), len(messages), budget,
            )

        return AssembledContext(
            header=header,
            messages=selected,
            total_tokens=budget - remaining,
            budget_tokens=budget,
            dropped_ids=dropped,
        )
