from __future__ import annotations

import os

from ..types import CompletionConfig, LLMProvider
from .anthropic import AnthropicProvider
from .base import BaseProvider, LLMProviderError
from .generic_openai import GenericOpenAIProvider


def build_provider(
    provider_name: str,
    providers: dict[str, dict],
    completion: CompletionConfig | None = None,
) -> LLMProvider:
    """Build an LLM provider from the ``providers`` config section."""
    completion = completion or CompletionConfig()
    provider_config = providers.get(provider_name, {})
    ptype = provider_config.get("type", provider_name)
    timeout = provider_config.get("timeout", completion.request_timeout)

    if ptype in ("generic_openai", "ollama", "openai"):
        default_url = (
            "https://api.openai.com/v1" if ptype == "openai" else "http://127.0.0.1:11434/v1"
        )
        api_key = provider_config.get("api_key")
        if api_key is None and "api_key_env" in provider_config:
            api_key = os.environ.get(provider_config["api_key_env"], "")
        return GenericOpenAIProvider(
            base_url=provider_config.get("base_url", default_url),
            model=provider_config.get("model", completion.model),
            temperature=completion.temperature,
            api_key=api_key or "not-needed",
            timeout=timeout,
        )

    if ptype == "anthropic":
        return AnthropicProvider(
            api_key=provider_config.get("api_key"),
            api_key_env=provider_config.get("api_key_env", "ANTHROPIC_API_KEY"),
            model=provider_config.get("model", completion.model),
            temperature=completion.temperature,
            timeout=timeout,
        )

    raise ValueError(f"Unknown provider type: {ptype}")


__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "GenericOpenAIProvider",
    "LLMProviderError",
    "build_provider",
]
