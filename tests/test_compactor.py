"""Tests for ThreadCompactor."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from tests.conftest import FailingLLMProvider, MockLLMProvider, make_thread
from rolling_context.core.compactor import SUMMARY_SYSTEM_PROMPT, ThreadCompactor
from rolling_context.types import CompletionError, ConversationConfig, ThreadState


@pytest.fixture
def compactor(mock_llm, small_config):
    return ThreadCompactor(llm_provider=mock_llm, config=small_config)


def test_below_threshold_is_noop(compactor, mock_llm):
    state = make_thread(4, chars=200)  # ~200 tokens < 400
    assert not compactor.needs_compaction(state)
    assert compactor.compact(state) is None
    assert mock_llm.calls == []


def test_empty_thread_never_compacts(compactor):
    assert not compactor.needs_compaction(ThreadState(id="t"))


def test_threshold_is_inclusive():
    config = ConversationConfig(max_prompt_tokens=1000, compress_after_tokens=50)
    compactor = ThreadCompactor(llm_provider=MockLLMProvider(), config=config)
    state = make_thread(1, chars=200)  # exactly 50 tokens
    assert compactor.total_tokens(state.messages) == 50
    assert compactor.needs_compaction(state)


@pytest.mark.parametrize("count,expected", [
    (3, 3),     # fewer than min_chunk: everything
    (6, 6),
    (20, 6),    # floor(20 * 0.25) = 5 < min_chunk
    (28, 7),
    (40, 10),
])
def test_chunk_size(compactor, count, expected):
    assert compactor.chunk_size(count) == expected


def test_compacts_oldest_six_of_twenty(compactor, mock_llm):
    state = make_thread(20, chars=200)
    result = compactor.compact(state)
    assert result is not None
    new_state, report = result

    assert len(new_state.messages) == 14
    assert new_state.messages == state.messages[6:]
    assert new_state.summary == "- Test summary"
    assert report.messages_compacted == 6
    assert report.tokens_after < report.tokens_before
    assert len(mock_llm.summary_calls) == 1


def test_input_state_untouched(compactor):
    state = make_thread(20, chars=200)
    compactor.compact(state)
    assert len(state.messages) == 20
    assert state.summary == ""


def test_request_contains_existing_summary_and_rendered_chunk(compactor, mock_llm):
    state = make_thread(20, chars=200, summary="- earlier: user prefers Python")
    compactor.compact(state)

    request = mock_llm.summary_calls[0]["messages"]
    assert request[0] == {"role": "system", "content": SUMMARY_SYSTEM_PROMPT}
    user = request[1]["content"]
    assert "- earlier: user prefers Python" in user
    assert f"USER: {state.messages[0].content}" in user
    assert f"ASSISTANT: {state.messages[5].content}" in user
    assert state.messages[6].content not in user
    assert user.rstrip().endswith("Return only the updated summary.")


def test_summary_response_is_trimmed(small_config):
    compactor = ThreadCompactor(
        llm_provider=MockLLMProvider(summary="\n  - trimmed  \n\n"), config=small_config,
    )
    new_state, _ = compactor.compact(make_thread(20))
    assert new_state.summary == "- trimmed"


def test_new_summary_replaces_old(small_config):
    compactor = ThreadCompactor(llm_provider=MockLLMProvider(summary="- v2"), config=small_config)
    new_state, _ = compactor.compact(make_thread(20, summary="- v1"))
    assert new_state.summary == "- v2"


def test_last_updated_uses_given_clock(compactor):
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    new_state, report = compactor.compact(make_thread(20), now=now)
    assert new_state.last_updated == now
    assert report.timestamp == now


@pytest.mark.regression("history-loss-on-failed-summary")
def test_failed_summary_raises_and_removes_nothing(small_config):
    provider = FailingLLMProvider()
    compactor = ThreadCompactor(llm_provider=provider, config=small_config)
    state = make_thread(20, summary="- keep me")

    with pytest.raises(CompletionError):
        compactor.compact(state)
    assert len(state.messages) == 20
    assert state.summary == "- keep me"


def test_unexpected_provider_error_is_wrapped(small_config):
    provider = FailingLLMProvider(error=RuntimeError("socket closed"))
    compactor = ThreadCompactor(llm_provider=provider, config=small_config)
    with pytest.raises(CompletionError, match="socket closed") as excinfo:
        compactor.compact(make_thread(20))
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_empty_summary_is_a_failure(small_config):
    compactor = ThreadCompactor(llm_provider=MockLLMProvider(summary="   "), config=small_config)
    with pytest.raises(CompletionError, match="empty summary"):
        compactor.compact(make_thread(20))


def test_small_thread_over_threshold_compacts_everything():
    config = ConversationConfig(max_prompt_tokens=1000, compress_after_tokens=100)
    compactor = ThreadCompactor(llm_provider=MockLLMProvider(), config=config)
    new_state, report = compactor.compact(make_thread(3, chars=400))
    assert new_state.messages == ()
    assert report.messages_compacted == 3
