"""Shared fixtures: settings, a scripted generation service and circle builders."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from config import Settings
from contracts import (
    AssetDraft,
    AssetState,
    Draft,
    GenerationKind,
    Offer,
    Problem,
    ServiceArea,
    Solution,
)
from providers.content_generator import GenerationService
from store import StepDataStore


class FakeGenerationService(GenerationService):
    """Scripted generation service.

    ``responses`` maps a GenerationKind to a Draft or to an exception to raise.
    ``delay`` makes ``agenerate`` sleep first so tests can observe pending states.
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []
        self.responses: Dict[GenerationKind, Any] = {
            GenerationKind.PROBLEM_TITLES: Draft(
                kind=GenerationKind.PROBLEM_TITLES,
                titles=[f"Problem idea {i}" for i in range(1, 11)],
            ),
            GenerationKind.SOLUTION_TITLES: Draft(
                kind=GenerationKind.SOLUTION_TITLES,
                titles=["Solution idea A", "Solution idea B", "Solution idea C"],
            ),
            GenerationKind.OUTLINE: Draft(kind=GenerationKind.OUTLINE, outline="1. Hook\n2. Problem\n3. Fix"),
            GenerationKind.CONTENT: Draft(kind=GenerationKind.CONTENT, content="Full article body."),
        }

    def generate(self, kind, context, force_refresh=False):
        self.calls.append({"kind": kind, "context": context, "force_refresh": force_refresh})
        return self._answer(kind)

    async def agenerate(self, kind, context, force_refresh=False):
        self.calls.append({"kind": kind, "context": context, "force_refresh": force_refresh})
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._answer(kind)

    def _answer(self, kind):
        answer = self.responses[kind]
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.fixture
def settings():
    return Settings(
        max_problems=5,
        offer_policy="per_solution",
        generation_timeout_seconds=5.0,
        title_cache_seconds=900,
    )


@pytest.fixture
def fake_service():
    return FakeGenerationService()


@pytest.fixture
def store():
    return StepDataStore(max_problems=5)


def attach(store: StepDataStore, circle_id: int = 100, service_area_id: int = 200) -> ServiceArea:
    """Bind a store to a committed circle, as after step 2."""
    area = ServiceArea(id=service_area_id, client_id=1, title="Managed IT")
    store.select_service_area(area)
    store.attach_circle(circle_id, area)
    return area


def fill_circle(
    store: StepDataStore,
    problems: int = 5,
    with_solutions: bool = True,
    with_offers: bool = True,
    approved_asset: bool = False,
) -> List[Problem]:
    """Populate a store with problems (first one primary), solutions and offers."""
    created = []
    for i in range(problems):
        problem = store.append_child(None, Problem(title=f"Problem {i + 1}", is_primary=(i == 0)))
        created.append(problem)
        if with_solutions:
            solution = store.append_child(problem.id, Solution(title=f"Solution {i + 1}"))
            if with_offers:
                store.append_child(solution.id, Offer(title=f"Offer {i + 1}", url=f"https://example.com/offer/{i + 1}"))
    if approved_asset and created:
        store.append_child(created[0].id, AssetDraft(state=AssetState.APPROVED, outline="o", content="c"))
    return created


def problem_ids(store: StepDataStore) -> List[Optional[int]]:
    return [p.id for p in store.get_problems()]
