"""LLM provider abstraction and the content-generation service built on it."""

from .base import LLMProvider, LLMResponse
from .factory import get_provider, list_providers
from .content_generator import ContentGenerator, GenerationService, sanitize_titles

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "get_provider",
    "list_providers",
    "ContentGenerator",
    "GenerationService",
    "sanitize_titles",
]
