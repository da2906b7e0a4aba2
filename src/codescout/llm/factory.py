"""Factory for creating LLM providers from configuration."""

from __future__ import annotations

from codescout.config import LLMConfig
from codescout.llm.base import LLMProvider


def create_provider(config: LLMConfig) -> LLMProvider:
    """Create an LLM provider from configuration.

    Args:
        config: LLM configuration with provider, model, etc.

    Returns:
        An initialized LLM provider.

    Raises:
        ValueError: If the provider is unknown.
        ProviderNotAvailableError: If the provider's SDK is not installed.
    """
    provider = config.provider.lower()
    pricing = {
        "input": config.input_cost_per_mtok,
        "output": config.output_cost_per_mtok,
        "cache_read": config.cache_read_cost_per_mtok,
        "cache_write": config.cache_write_cost_per_mtok,
    }

    if provider in ("openai", "local", "cerebras"):
        from codescout.llm.openai_provider import OpenAIProvider

        return OpenAIProvider(
            model=config.model,
            api_key=config.api_key,
            base_url=config.base_url,
            pricing=pricing,
        )
    elif provider == "anthropic":
        from codescout.llm.anthropic_provider import AnthropicProvider

        return AnthropicProvider(
            model=config.model,
            api_key=config.api_key,
            base_url=config.base_url,
            pricing=pricing,
        )
    else:
        raise ValueError(
            f"Unknown LLM provider: '{provider}'. "
            f"Supported providers: openai, anthropic, cerebras, local"
        )
