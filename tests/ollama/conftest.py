"""Shared fixtures and auto-skip logic for Ollama integration tests."""

from __future__ import annotations

import httpx
import pytest

from rolling_context.manager import ConversationManager
from rolling_context.providers.generic_openai import GenericOpenAIProvider
from rolling_context.storage import SQLiteStore
from rolling_context.types import ConversationConfig

OLLAMA_BASE_URL = "http://127.0.0.1:11434"
OLLAMA_MODEL = "qwen3:4b-instruct-2507-fp16"


def _ollama_available() -> bool:
    """Check if Ollama is running and has the required model."""
    try:
        resp = httpx.get(f"{OLLAMA_BASE_URL}/api/tags", timeout=5.0)
        if resp.status_code != 200:
            return False
        models = resp.json().get("models", [])
        return any(OLLAMA_MODEL in m.get("name", "") for m in models)
    except httpx.HTTPError:
        return False


_ollama_ok = _ollama_available()


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Auto-add the 'ollama' marker to every test in this directory."""
    for item in items:
        if "/ollama/" in str(item.fspath):
            item.add_marker(pytest.mark.ollama)
            if not _ollama_ok:
                item.add_marker(
                    pytest.mark.skip(reason=f"Ollama not running or {OLLAMA_MODEL} not available")
                )


@pytest.fixture(scope="session")
def _warmup_ollama():
    """Warmup: send a tiny completion so the model is loaded into memory."""
    if not _ollama_ok:
        pytest.skip("Ollama not available")

    resp = httpx.post(
        f"{OLLAMA_BASE_URL}/v1/chat/completions",
        json={
            "model": OLLAMA_MODEL,
            "messages": [{"role": "user", "content": "Hi"}],
            "max_tokens": 10,
        },
        timeout=120.0,
    )
    assert resp.status_code == 200, f"Warmup failed: {resp.text}"


@pytest.fixture(scope="session")
def ollama_provider(_warmup_ollama) -> GenericOpenAIProvider:
    """Session-scoped GenericOpenAIProvider pointed at local Ollama."""
    return GenericOpenAIProvider(
        base_url=f"{OLLAMA_BASE_URL}/v1",
        model=OLLAMA_MODEL,
        temperature=0.3,
    )


@pytest.fixture
def ollama_manager(ollama_provider, tmp_path):
    """ConversationManager with a small budget so compaction triggers quickly."""
    config = ConversationConfig(
        max_prompt_tokens=1500,
        compress_after_tokens=300,
        keep_recent=4,
        min_chunk=4,
        response_max_tokens=300,
        completion_timeout=240.0,
    )
    manager = ConversationManager(
        provider=ollama_provider,
        store=SQLiteStore(tmp_path / "threads.db"),
        config=config,
    )
    yield manager
    manager.close()
