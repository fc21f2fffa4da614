"""Tests for the LLM-backed content generator with a mocked provider."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from config import Settings
from contracts import GenerationKind
from errors import ExternalServiceError
from providers import ContentGenerator, LLMResponse, sanitize_titles


def response(content: str) -> LLMResponse:
    return LLMResponse(content=content, input_tokens=10, output_tokens=20, model="gemini/gemini-2.0-flash",
                       provider="litellm")


@pytest.fixture
def provider():
    mock = MagicMock()
    mock.complete.return_value = response('{"titles": ["Downtime", "Security gaps"]}')
    mock.acomplete = AsyncMock(return_value=response('{"titles": ["Downtime", "Security gaps"]}'))
    return mock


@pytest.fixture
def clock():
    now = [1000.0]
    tick = MagicMock(side_effect=lambda: now[0])
    tick.now = now
    return tick


@pytest.fixture
def generator(provider, clock):
    return ContentGenerator(provider=provider, settings=Settings(title_cache_seconds=60), clock=clock)


CONTEXT = {"service_area": "Managed IT", "industries": [1], "count": 10}


class TestSanitizeTitles:
    """Test title clean-up."""

    def test_trims_and_deduplicates(self):
        titles = ["  Downtime ", "downtime", "- Security   gaps", "", '"Cost"']
        assert sanitize_titles(titles, 10) == ["Downtime", "Security gaps", "Cost"]

    def test_caps_at_limit(self):
        assert sanitize_titles([f"T{i}" for i in range(10)], 3) == ["T0", "T1", "T2"]


class TestParsing:
    """Test JSON extraction and schema validation."""

    def test_plain_json(self, generator):
        draft = generator.generate(GenerationKind.PROBLEM_TITLES, CONTEXT)
        assert draft.titles == ["Downtime", "Security gaps"]
        assert draft.model == "gemini/gemini-2.0-flash"

    def test_fenced_json(self, generator, provider):
        provider.complete.return_value = response('Here you go:\n```json\n{"outline": "1. Intro"}\n```')
        draft = generator.generate(GenerationKind.OUTLINE, CONTEXT)
        assert draft.outline == "1. Intro"

    def test_bare_list_of_titles(self, generator, provider):
        provider.complete.return_value = response('["A", "B"]')
        assert generator.generate(GenerationKind.SOLUTION_TITLES, CONTEXT).titles == ["A", "B"]

    def test_content(self, generator, provider):
        provider.complete.return_value = response('{"title": "Why downtime costs you", "content": "Body"}')
        draft = generator.generate(GenerationKind.CONTENT, CONTEXT)
        assert draft.title == "Why downtime costs you"
        assert draft.content == "Body"

    def test_system_prompt_contains_schema(self, generator, provider):
        generator.generate(GenerationKind.PROBLEM_TITLES, CONTEXT)
        call_kw = provider.complete.call_args[1]
        assert "titles" in call_kw["system_prompt"]
        assert "Return exactly 10 distinct titles" in call_kw["system_prompt"]
        assert json.dumps(CONTEXT, indent=2) in call_kw["user_message"]


class TestRetries:
    """Test the retry-with-error-feedback loop."""

    def test_invalid_then_valid(self, generator, provider):
        provider.complete.side_effect = [
            response("not json at all"),
            response('{"titles": ["Downtime"]}'),
        ]
        draft = generator.generate(GenerationKind.PROBLEM_TITLES, CONTEXT)
        assert draft.titles == ["Downtime"]
        second_message = provider.complete.call_args_list[1][1]["user_message"]
        assert "PREVIOUS ERROR" in second_message

    def test_still_invalid_after_retries(self, generator, provider):
        provider.complete.return_value = response('{"titles": []}')
        with pytest.raises(ExternalServiceError, match="invalid output"):
            generator.generate(GenerationKind.PROBLEM_TITLES, CONTEXT)
        assert provider.complete.call_count == 2

    def test_only_blank_titles_is_invalid(self, generator, provider):
        provider.complete.return_value = response('{"titles": ["  ", ""]}')
        with pytest.raises(ExternalServiceError):
            generator.generate(GenerationKind.PROBLEM_TITLES, CONTEXT)

    def test_provider_error_is_wrapped(self, generator, provider):
        provider.complete.side_effect = RuntimeError("rate limited")
        with pytest.raises(ExternalServiceError, match="rate limited"):
            generator.generate(GenerationKind.OUTLINE, CONTEXT)


class TestTitleCache:
    """Test the title suggestion cache."""

    def test_second_request_is_cached(self, generator, provider):
        generator.generate(GenerationKind.PROBLEM_TITLES, CONTEXT)
        draft = generator.generate(GenerationKind.PROBLEM_TITLES, CONTEXT)
        assert draft.cached is True
        assert provider.complete.call_count == 1

    def test_force_refresh_bypasses_cache(self, generator, provider):
        generator.generate(GenerationKind.PROBLEM_TITLES, CONTEXT)
        draft = generator.generate(GenerationKind.PROBLEM_TITLES, CONTEXT, force_refresh=True)
        assert draft.cached is False
        assert provider.complete.call_count == 2

    def test_cache_expires(self, generator, provider, clock):
        generator.generate(GenerationKind.PROBLEM_TITLES, CONTEXT)
        clock.now[0] += 61
        generator.generate(GenerationKind.PROBLEM_TITLES, CONTEXT)
        assert provider.complete.call_count == 2

    def test_different_context_is_not_cached(self, generator, provider):
        generator.generate(GenerationKind.PROBLEM_TITLES, CONTEXT)
        generator.generate(GenerationKind.PROBLEM_TITLES, {**CONTEXT, "industries": [2]})
        assert provider.complete.call_count == 2

    def test_outlines_are_never_cached(self, generator, provider):
        provider.complete.return_value = response('{"outline": "1. Intro"}')
        generator.generate(GenerationKind.OUTLINE, CONTEXT)
        generator.generate(GenerationKind.OUTLINE, CONTEXT)
        assert provider.complete.call_count == 2

    def test_clear_cache(self, generator, provider):
        generator.generate(GenerationKind.PROBLEM_TITLES, CONTEXT)
        generator.clear_cache(GenerationKind.PROBLEM_TITLES)
        generator.generate(GenerationKind.PROBLEM_TITLES, CONTEXT)
        assert provider.complete.call_count == 2


class TestAsync:
    """Test the async path."""

    def test_agenerate_uses_acomplete(self, generator, provider):
        draft = asyncio.run(generator.agenerate(GenerationKind.SOLUTION_TITLES, CONTEXT))
        assert draft.titles == ["Downtime", "Security gaps"]
        provider.acomplete.assert_awaited_once()
        provider.complete.assert_not_called()

    def test_agenerate_wraps_errors(self, generator, provider):
        provider.acomplete.side_effect = ConnectionError("reset")
        with pytest.raises(ExternalServiceError):
            asyncio.run(generator.agenerate(GenerationKind.OUTLINE, CONTEXT))
