"""Factory for creating LLM providers."""

import os
from typing import Dict, List, Optional

from .base import LLMProvider
from .litellm_provider import LiteLLMProvider, MODEL_ALIASES, _to_litellm_model


# Environment variables LiteLLM reads for each provider
PROVIDER_ENV_KEYS: Dict[str, List[str]] = {
    "gemini": ["GEMINI_API_KEY", "GOOGLE_API_KEY"],
    "anthropic": ["ANTHROPIC_API_KEY"],
    "openai": ["OPENAI_API_KEY"],
}


def get_provider(
    provider_name: Optional[str] = None,
    model: Optional[str] = None,
    timeout: Optional[float] = None,
) -> LLMProvider:
    """Get an LLM provider instance.

    Args:
        provider_name: Explicit provider name (gemini, anthropic, openai)
        model: Model name - if provided without provider, resolved through the alias table
        timeout: Request timeout in seconds

    Returns:
        LLMProvider instance

    Examples:
        get_provider("gemini")
        get_provider(model="gpt-4o")  # gpt-4o via LiteLLM
        get_provider(model="gemini/gemini-2.5-pro")  # passed through as-is
    """
    return LiteLLMProvider(default_model=_to_litellm_model(provider_name, model), timeout=timeout)


def list_providers() -> Dict[str, bool]:
    """List all providers and whether an API key is configured for them.

    Returns:
        Dict mapping provider name to availability status
    """
    return {
        name: any(os.environ.get(key) for key in PROVIDER_ENV_KEYS.get(name, []))
        for name in MODEL_ALIASES
    }
