"""Content-generation service.

Sends a generation request (kind + structured context) to an LLM provider and
validates the JSON answer against the Pydantic contract for that kind:
- problem/solution titles -> TitleList (sanitized and cached)
- outline -> OutlineOutput
- content -> ContentOutput

Any provider or parsing failure is reported as ``ExternalServiceError``.
"""

import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError as SchemaError

from contracts import ContentOutput, Draft, GenerationKind, OutlineOutput, TitleList
from config import Settings
from errors import ExternalServiceError
from .base import LLMProvider, LLMResponse
from .factory import get_provider

logger = logging.getLogger(__name__)


OUTPUT_SCHEMAS: Dict[GenerationKind, Type[BaseModel]] = {
    GenerationKind.PROBLEM_TITLES: TitleList,
    GenerationKind.SOLUTION_TITLES: TitleList,
    GenerationKind.OUTLINE: OutlineOutput,
    GenerationKind.CONTENT: ContentOutput,
}

TASKS: Dict[GenerationKind, str] = {
    GenerationKind.PROBLEM_TITLES: "Propose problem titles for the service area described in the input.",
    GenerationKind.SOLUTION_TITLES: "Propose solution titles for the problem described in the input.",
    GenerationKind.OUTLINE: "Write an outline for the asset described in the input.",
    GenerationKind.CONTENT: "Write the full asset described in the input, following its approved outline.",
}

TITLE_KINDS = (GenerationKind.PROBLEM_TITLES, GenerationKind.SOLUTION_TITLES)


class GenerationService(ABC):
    """Interface the workflow uses to request AI output."""

    @abstractmethod
    def generate(self, kind: GenerationKind, context: Dict[str, Any], force_refresh: bool = False) -> Draft:
        pass

    @abstractmethod
    async def agenerate(self, kind: GenerationKind, context: Dict[str, Any], force_refresh: bool = False) -> Draft:
        pass


def sanitize_titles(titles: List[str], limit: int) -> List[str]:
    """Trim, drop empties and case-insensitive duplicates, cap at ``limit``."""
    seen = set()
    result = []
    for title in titles:
        cleaned = " ".join(str(title).split()).strip(" \"'-•*")
        key = cleaned.lower()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        result.append(cleaned)
        if len(result) >= limit:
            break
    return result


class ContentGenerator(GenerationService):
    """LLM-backed generation service."""

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        settings: Optional[Settings] = None,
        max_retries: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the generator.

        Args:
            provider: LLM provider; defaults to LiteLLM with the configured model
            settings: Session settings (model, token limit, title counts, cache TTL)
            max_retries: Retries when the answer does not match the schema
            clock: Monotonic clock used for cache expiry
        """
        self.settings = settings or Settings()
        self.provider = provider or get_provider(
            model=self.settings.default_model,
            timeout=self.settings.generation_timeout_seconds,
        )
        self.max_retries = max_retries
        self._clock = clock
        self._cache: Dict[str, Tuple[float, Draft]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(self, kind: GenerationKind, context: Dict[str, Any], force_refresh: bool = False) -> Draft:
        """Generate synchronously.

        Raises:
            ExternalServiceError: If the provider fails or never returns valid output
        """
        kind = GenerationKind(kind)
        cache_key = self._cache_key(kind, context)
        cached = self._cached(kind, cache_key, force_refresh)
        if cached is not None:
            return cached

        system_prompt = self._build_system_prompt(kind)
        last_error: Optional[str] = None
        for attempt in range(self.max_retries + 1):
            user_message = self._build_user_message(context, last_error)
            try:
                response = self.provider.complete(
                    system_prompt=system_prompt,
                    user_message=user_message,
                    max_tokens=self.settings.max_tokens_per_generation,
                )
            except Exception as e:
                raise ExternalServiceError(f"{kind.value} generation failed: {e}") from e
            draft, last_error = self._try_parse(kind, context, response)
            if draft is not None:
                return self._store(kind, cache_key, draft)
            logger.warning("%s attempt %d returned invalid output: %s", kind.value, attempt + 1, last_error)

        raise ExternalServiceError(f"{kind.value} generation returned invalid output: {last_error}")

    async def agenerate(self, kind: GenerationKind, context: Dict[str, Any], force_refresh: bool = False) -> Draft:
        """Generate asynchronously; same semantics as ``generate``."""
        kind = GenerationKind(kind)
        cache_key = self._cache_key(kind, context)
        cached = self._cached(kind, cache_key, force_refresh)
        if cached is not None:
            return cached

        system_prompt = self._build_system_prompt(kind)
        last_error: Optional[str] = None
        for attempt in range(self.max_retries + 1):
            user_message = self._build_user_message(context, last_error)
            try:
                response = await self.provider.acomplete(
                    system_prompt=system_prompt,
                    user_message=user_message,
                    max_tokens=self.settings.max_tokens_per_generation,
                )
            except Exception as e:
                raise ExternalServiceError(f"{kind.value} generation failed: {e}") from e
            draft, last_error = self._try_parse(kind, context, response)
            if draft is not None:
                return self._store(kind, cache_key, draft)
            logger.warning("%s attempt %d returned invalid output: %s", kind.value, attempt + 1, last_error)

        raise ExternalServiceError(f"{kind.value} generation returned invalid output: {last_error}")

    def clear_cache(self, kind: Optional[GenerationKind] = None) -> None:
        """Drop cached title suggestions (all kinds, or one kind)."""
        if kind is None:
            self._cache.clear()
            return
        prefix = f"{GenerationKind(kind).value}:"
        for key in [k for k in self._cache if k.startswith(prefix)]:
            del self._cache[key]

    # ------------------------------------------------------------------
    # Prompt assembly
    # ------------------------------------------------------------------

    def _build_system_prompt(self, kind: GenerationKind) -> str:
        schema = OUTPUT_SCHEMAS[kind].model_json_schema()
        parts = [TASKS[kind]]
        if kind in TITLE_KINDS:
            parts.append(f"\nReturn exactly {self._title_limit(kind)} distinct titles.")
        parts.append("\n\n# OUTPUT FORMAT\n")
        parts.append("You MUST respond with valid JSON matching this schema:\n\n")
        parts.append(f"```json\n{json.dumps(schema, indent=2)}\n```")
        return "".join(parts)

    def _build_user_message(self, context: Dict[str, Any], last_error: Optional[str]) -> str:
        message = f"# INPUT\n\n{json.dumps(context, indent=2, default=str)}"
        if last_error:
            message += (
                "\n\n# PREVIOUS ERROR\n\n"
                "Your previous response did not match the required schema. "
                f"Error: {last_error}\n\n"
                "Please fix the issues and provide a valid JSON response."
            )
        return message

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def _try_parse(
        self,
        kind: GenerationKind,
        context: Dict[str, Any],
        response: LLMResponse,
    ) -> Tuple[Optional[Draft], Optional[str]]:
        try:
            output = self._parse_and_validate(kind, response.content)
        except (json.JSONDecodeError, SchemaError) as e:
            return None, str(e)

        draft = self._to_draft(kind, output, response.model)
        if kind in TITLE_KINDS and not draft.titles:
            return None, "No usable titles in response"
        return draft, None

    def _parse_and_validate(self, kind: GenerationKind, response_text: str) -> BaseModel:
        """Extract the JSON payload (plain or fenced) and validate it."""
        text = response_text.strip()

        if "```json" in text:
            start = text.find("```json") + 7
            end = text.find("```", start)
            text = text[start:end].strip()
        elif "```" in text:
            start = text.find("```") + 3
            end = text.find("```", start)
            text = text[start:end].strip()

        data = json.loads(text)
        # Some models answer with a bare list of titles
        if kind in TITLE_KINDS and isinstance(data, list):
            data = {"titles": data}
        return OUTPUT_SCHEMAS[kind].model_validate(data)

    def _to_draft(self, kind: GenerationKind, output: BaseModel, model: str) -> Draft:
        if isinstance(output, TitleList):
            return Draft(kind=kind, titles=sanitize_titles(output.titles, self._title_limit(kind)), model=model)
        if isinstance(output, OutlineOutput):
            return Draft(kind=kind, title=output.title, outline=output.outline, model=model)
        return Draft(kind=kind, title=output.title, content=output.content, model=model)

    def _title_limit(self, kind: GenerationKind) -> int:
        if kind == GenerationKind.PROBLEM_TITLES:
            return self.settings.problem_title_count
        return self.settings.solution_title_count

    # ------------------------------------------------------------------
    # Title cache
    # ------------------------------------------------------------------

    def _cache_key(self, kind: GenerationKind, context: Dict[str, Any]) -> str:
        digest = hashlib.sha256(json.dumps(context, sort_keys=True, default=str).encode("utf-8")).hexdigest()
        return f"{kind.value}:{digest}"

    def _cached(self, kind: GenerationKind, cache_key: str, force_refresh: bool) -> Optional[Draft]:
        if kind not in TITLE_KINDS or force_refresh or self.settings.title_cache_seconds <= 0:
            return None
        entry = self._cache.get(cache_key)
        if entry is None:
            return None
        stored_at, draft = entry
        if self._clock() - stored_at > self.settings.title_cache_seconds:
            del self._cache[cache_key]
            return None
        return draft.model_copy(update={"cached": True})

    def _store(self, kind: GenerationKind, cache_key: str, draft: Draft) -> Draft:
        if kind in TITLE_KINDS and self.settings.title_cache_seconds > 0:
            self._cache[cache_key] = (self._clock(), draft)
        return draft
