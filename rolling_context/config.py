"""Configuration loading, validation, and defaults."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .types import (
    DEFAULT_SYSTEM_PROMPT,
    CompletionConfig,
    ConversationConfig,
    RollingContextConfig,
    StorageConfig,
)

CONFIG_FILENAMES = [
    "rolling-context.yaml",
    "rolling-context.yml",
    "rolling-context.json",
]

STORAGE_BACKENDS = ("sqlite", "filesystem", "memory")


def _discover_config() -> Path | None:
    """Search CWD then parent dirs up to home for a config file."""
    cwd = Path.cwd()
    home = Path.home()
    search = cwd
    while True:
        for name in CONFIG_FILENAMES:
            candidate = search / name
            if candidate.is_file():
                return candidate
        if search == home or search == search.parent:
            break
        search = search.parent
    return None


def _build_config(raw: dict[str, Any]) -> RollingContextConfig:
    """Build a RollingContextConfig from a raw dict."""
    # Conversation / budgets
    conv_raw = raw.get("conversation", {})
    compaction = conv_raw.get("compaction", {})
    conversation = ConversationConfig(
        max_prompt_tokens=conv_raw.get("max_prompt_tokens", 6000),
        compress_after_tokens=conv_raw.get("compress_after_tokens", 4000),
        keep_recent=conv_raw.get("keep_recent", 8),
        system_prompt=conv_raw.get("system_prompt", DEFAULT_SYSTEM_PROMPT),
        min_chunk=compaction.get("min_chunk", 6),
        chunk_fraction=compaction.get("chunk_fraction", 0.25),
        message_overhead=conv_raw.get("message_overhead", 5),
        summary_max_tokens=compaction.get("summary_max_tokens", 1000),
        response_max_tokens=conv_raw.get("response_max_tokens", 2000),
        completion_timeout=conv_raw.get("completion_timeout"),
    )

    # Completion service
    comp_raw = raw.get("completion", {})
    completion = CompletionConfig(
        provider=comp_raw.get("provider", "ollama"),
        model=comp_raw.get("model", "qwen3:4b-instruct-2507-fp16"),
        temperature=comp_raw.get("temperature", 0.3),
        request_timeout=comp_raw.get("request_timeout", 60.0),
    )

    # Storage
    storage_raw = raw.get("storage", {})
    storage_root = raw.get("storage_root", ".rollingcontext")
    storage = StorageConfig(
        backend=storage_raw.get("backend", "sqlite"),
        root=storage_raw.get("filesystem", {}).get("root", storage_root + "/threads"),
        sqlite_path=storage_raw.get("sqlite", {}).get("path", storage_root + "/threads.db"),
    )

    return RollingContextConfig(
        version=str(raw.get("version", "0.1")),
        token_counter=raw.get("token_counter", "estimate"),
        conversation=conversation,
        completion=completion,
        storage=storage,
        providers=raw.get("providers", {}),
    )


def validate_conversation_config(config: ConversationConfig) -> list[str]:
    """Validate budget and compaction settings. Returns error strings (empty = valid)."""
    errors: list[str] = []

    if config.max_prompt_tokens < 1:
        errors.append("max_prompt_tokens must be >= 1")

    if config.compress_after_tokens >= config.max_prompt_tokens:
        errors.append(
            f"compress_after_tokens ({config.compress_after_tokens}) must be < "
            f"max_prompt_tokens ({config.max_prompt_tokens})"
        )

    if config.keep_recent < 0:
        errors.append("keep_recent must be >= 0")

    if config.min_chunk < 1:
        errors.append("min_chunk must be >= 1")

    if not 0.0 <= config.chunk_fraction <= 1.0:
        errors.append(f"chunk_fraction ({config.chunk_fraction}) must be between 0 and 1")

    if config.message_overhead < 0:
        errors.append("message_overhead must be >= 0")

    if config.completion_timeout is not None and config.completion_timeout <= 0:
        errors.append("completion_timeout must be > 0 when set")

    return errors


def validate_config(config: RollingContextConfig) -> list[str]:
    """Validate a config. Returns list of error strings (empty = valid)."""
    errors = validate_conversation_config(config.conversation)

    if config.storage.backend not in STORAGE_BACKENDS:
        errors.append(
            f"Unknown storage backend '{config.storage.backend}' "
            f"(expected one of: {', '.join(STORAGE_BACKENDS)})"
        )

    # Check that the completion provider exists in providers
    if config.providers and config.completion.provider not in config.providers:
        errors.append(
            f"Completion provider '{config.completion.provider}' "
            f"not found in providers section"
        )

    return errors


def load_config(
    config_path: str | Path | None = None,
    config_dict: dict | None = None,
) -> RollingContextConfig:
    """Load config from dict, explicit path, or auto-discover."""
    if config_dict is not None:
        return _build_config(config_dict)

    if config_path is not None:
        path = Path(config_path)
    else:
        path = _discover_config()

    if path is None:
        # Return defaults
        return _build_config({})

    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    text = path.read_text()
    if path.suffix == ".json":
        raw = json.loads(text)
    else:
        raw = yaml.safe_load(text) or {}

    return _build_config(raw)
