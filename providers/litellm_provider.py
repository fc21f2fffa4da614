"""LiteLLM-backed provider. Single implementation for all generation calls."""

from typing import Any, Optional

from .base import LLMProvider, LLMResponse


# LiteLLM model strings: provider/model-name (OpenAI can omit prefix)
DEFAULT_MODELS = {
    "gemini": "gemini/gemini-2.0-flash",
    "anthropic": "anthropic/claude-sonnet-4-20250514",
    "openai": "gpt-4o-mini",
}

# Map provider + optional model -> LiteLLM model string
MODEL_ALIASES = {
    "gemini": {
        None: "gemini/gemini-2.0-flash",
        "gemini-2.0-flash": "gemini/gemini-2.0-flash",
        "gemini-2.5-flash": "gemini/gemini-2.5-flash",
        "gemini-2.5-pro": "gemini/gemini-2.5-pro",
    },
    "anthropic": {
        None: "anthropic/claude-sonnet-4-20250514",
        "claude-sonnet": "anthropic/claude-sonnet-4-20250514",
        "claude-haiku": "anthropic/claude-3-5-haiku-20241022",
    },
    "openai": {
        None: "gpt-4o-mini",
        "gpt-4o": "gpt-4o",
        "gpt-4o-mini": "gpt-4o-mini",
    },
}

PROVIDER_ALIASES = {"google": "gemini", "claude": "anthropic", "gpt": "openai"}


def _match_alias(aliases: dict, model: str) -> Optional[str]:
    model_lower = model.lower()
    # Prefer longest alias match first (e.g. gpt-4o-mini before gpt-4o)
    for alias in sorted((a for a in aliases if a), key=len, reverse=True):
        if model_lower == alias or model_lower.startswith(alias + "-") or model_lower.startswith(alias + "."):
            return aliases[alias]
    return None


def _to_litellm_model(provider_name: Optional[str], model: Optional[str]) -> str:
    """Map provider + model to LiteLLM model string."""
    if provider_name:
        key = PROVIDER_ALIASES.get(provider_name.lower(), provider_name.lower())
        if key not in MODEL_ALIASES:
            raise ValueError(f"Unknown provider: {provider_name}. Available: {list(MODEL_ALIASES)}")
        if not model:
            return MODEL_ALIASES[key][None]
        matched = _match_alias(MODEL_ALIASES[key], model)
        if matched:
            return matched
        if key == "openai" or "/" in model:
            return model
        return f"{key}/{model}"
    if model:
        for aliases in MODEL_ALIASES.values():
            matched = _match_alias(aliases, model)
            if matched:
                return matched
        return model
    return DEFAULT_MODELS["gemini"]


class LiteLLMProvider(LLMProvider):
    """Single provider that delegates to litellm.completion() / litellm.acompletion()."""

    def __init__(
        self,
        default_model: str,
        metadata: Optional[dict] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize with the LiteLLM model string to use by default.

        Args:
            default_model: LiteLLM model string (e.g. gemini/gemini-2.0-flash).
            metadata: Optional dict passed to litellm (e.g. generation kind) for logging.
            timeout: Request timeout in seconds passed to litellm.
        """
        self._default_model = default_model
        self._metadata = metadata or {}
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "litellm"

    @property
    def default_model(self) -> str:
        return self._default_model

    def set_metadata(self, metadata: dict) -> None:
        """Merge metadata sent with every call."""
        self._metadata.update(metadata)

    def _request_kwargs(self, system_prompt: str, user_message: str, model: Optional[str], max_tokens: int) -> dict:
        kwargs = {
            "model": model or self._default_model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "max_tokens": max_tokens,
            "metadata": {**self._metadata},
        }
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        return kwargs

    def _to_response(self, response: Any, resolved_model: str) -> LLMResponse:
        content = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "prompt_tokens", 0) or 0
        output_tokens = getattr(usage, "completion_tokens", 0) or 0
        hidden = getattr(response, "_hidden_params", None) or {}
        cost = float(hidden.get("response_cost", 0) or 0)
        model_id = getattr(response, "model", None) or resolved_model

        return LLMResponse(
            content=content,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=model_id,
            provider=self.name,
            cost=cost,
        )

    def complete(
        self,
        system_prompt: str,
        user_message: str,
        model: Optional[str] = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        import litellm

        kwargs = self._request_kwargs(system_prompt, user_message, model, max_tokens)
        response = litellm.completion(**kwargs)
        return self._to_response(response, kwargs["model"])

    async def acomplete(
        self,
        system_prompt: str,
        user_message: str,
        model: Optional[str] = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        import litellm

        kwargs = self._request_kwargs(system_prompt, user_message, model, max_tokens)
        response = await litellm.acompletion(**kwargs)
        return self._to_response(response, kwargs["model"])
