"""Tests for the per-step validators."""

import pytest

from config import OfferPolicy, Settings
from contracts import (
    AssetDraft,
    AssetState,
    BrainContentItem,
    BrainContentType,
    JourneyCircle,
    JourneySnapshot,
    Problem,
    Solution,
    Step,
)
from store import StepDataStore
from workflow import STEP_VALIDATORS, validate_all, validate_step

from conftest import fill_circle


def rules(result):
    return [v.rule for v in result.violations]


class TestValidatorTable:
    """Test the validator registry."""

    def test_every_step_has_a_validator(self):
        assert set(STEP_VALIDATORS) == set(Step)

    def test_validate_all_runs_in_step_order(self, settings):
        results = validate_all(JourneySnapshot(), settings)
        assert [r.step for r in results] == list(Step)

    def test_violations_are_tagged_with_their_step(self, settings):
        for result in validate_all(JourneySnapshot(), settings):
            assert all(v.step == result.step for v in result.violations)


class TestEarlySteps:
    """Steps 1-4."""

    def test_empty_brain_content_passes(self, settings):
        assert validate_step(Step.BRAIN_CONTENT, JourneySnapshot(), settings).passed

    def test_malformed_brain_content_url_fails(self, settings):
        bad = BrainContentItem.model_construct(kind="brain_content", id=1, type=BrainContentType.URL,
                                               value="example", title="")
        snapshot = JourneySnapshot(circle=JourneyCircle.model_construct(
            id=None, service_area_id=None, client_id=None, industries=[], brain_content=[bad],
            primary_problem_id=None, status="incomplete",
        ))
        result = validate_step(Step.BRAIN_CONTENT, snapshot, settings)
        assert rules(result) == ["brain_content_url"]

    def test_service_area_required(self, settings):
        assert rules(validate_step(Step.SERVICE_AREA, JourneySnapshot(), settings)) == ["service_area_required"]
        snapshot = JourneySnapshot(circle=JourneyCircle(service_area_id=4))
        assert validate_step(Step.SERVICE_AREA, snapshot, settings).passed

    @pytest.mark.parametrize("step", [Step.EXISTING_ASSETS, Step.LINK_ASSETS, Step.COMPLETE])
    def test_optional_steps_always_pass(self, step, settings):
        assert validate_step(step, JourneySnapshot(), settings).passed

    def test_industry_required(self, settings):
        assert rules(validate_step(Step.INDUSTRIES, JourneySnapshot(), settings)) == ["industry_required"]
        snapshot = JourneySnapshot(circle=JourneyCircle(industries=[2]))
        assert validate_step(Step.INDUSTRIES, snapshot, settings).passed


class TestProblemSteps:
    """Steps 5-7."""

    def test_primary_problem_required(self, settings):
        snapshot = JourneySnapshot(problems=[Problem(id=1, title="A", position=0)])
        result = validate_step(Step.PRIMARY_PROBLEM, snapshot, settings)
        assert rules(result) == ["single_primary_problem"]

    def test_two_primaries_fail(self, settings):
        snapshot = JourneySnapshot(problems=[
            Problem(id=1, title="A", position=0, is_primary=True),
            Problem(id=2, title="B", position=1, is_primary=True),
        ])
        result = validate_step(Step.PRIMARY_PROBLEM, snapshot, settings)
        assert "2 are marked primary" in result.messages[0]

    @pytest.mark.parametrize("count, passes", [(4, False), (5, True), (6, False)])
    def test_exactly_five_problems(self, count, passes, settings):
        snapshot = JourneySnapshot(problems=[
            Problem(id=i + 1, title=f"P{i}", position=i) for i in range(count)
        ])
        result = validate_step(Step.PROBLEM_TITLES, snapshot, settings)
        assert result.passed is passes
        if not passes:
            assert rules(result) == ["problem_count"]

    def test_problem_count_follows_settings(self):
        snapshot = JourneySnapshot(problems=[Problem(id=1, title="Only", position=0)])
        assert validate_step(Step.PROBLEM_TITLES, snapshot, Settings(max_problems=1)).passed

    def test_each_problem_needs_a_solution(self, store, settings):
        fill_circle(store, problems=5, with_solutions=False)
        result = validate_step(Step.SOLUTION_TITLES, store.snapshot(), settings)
        assert rules(result) == ["solution_required"] * 5

    def test_solutions_step_passes_with_five_pairs(self, store, settings):
        fill_circle(store, problems=5, with_offers=False)
        assert validate_step(Step.SOLUTION_TITLES, store.snapshot(), settings).passed

    def test_solutions_step_rechecks_problem_count(self, store, settings):
        fill_circle(store, problems=4, with_offers=False)
        result = validate_step(Step.SOLUTION_TITLES, store.snapshot(), settings)
        assert rules(result) == ["problem_count"]
        assert result.violations[0].step == Step.SOLUTION_TITLES


class TestOfferMapping:
    """Step 8 under each offer policy."""

    def _without_last_offer(self, store):
        fill_circle(store, problems=5)
        store.remove_child(store.get("offers")[-1].id)
        return store.snapshot()

    def test_per_solution_requires_an_offer_everywhere(self, store, settings):
        result = validate_step(Step.OFFER_MAPPING, self._without_last_offer(store), settings)
        assert rules(result) == ["offer_per_solution"]
        assert "Solution 5" in result.messages[0]

    def test_per_solution_passes_when_complete(self, store, settings):
        fill_circle(store, problems=5)
        assert validate_step(Step.OFFER_MAPPING, store.snapshot(), settings).passed

    def test_per_solution_without_solutions_fails(self, settings):
        assert not validate_step(Step.OFFER_MAPPING, JourneySnapshot(), settings).passed

    def test_any_policy_needs_one_offer(self, store):
        any_policy = Settings(offer_policy=OfferPolicy.ANY)
        fill_circle(store, problems=5, with_offers=False)
        assert rules(validate_step(Step.OFFER_MAPPING, store.snapshot(), any_policy)) == ["offer_required"]

        snapshot = self._without_last_offer(StepDataStore())
        assert validate_step(Step.OFFER_MAPPING, snapshot, any_policy).passed

    def test_none_policy_never_blocks(self):
        assert validate_step(Step.OFFER_MAPPING, JourneySnapshot(), Settings(offer_policy="none")).passed


class TestAssetCreation:
    """Step 9."""

    @pytest.mark.parametrize("state, passes", [
        (AssetState.NONE, False),
        (AssetState.OUTLINE_READY, False),
        (AssetState.CONTENT_READY, False),
        (AssetState.APPROVED, True),
        (AssetState.PUBLISHED, True),
    ])
    def test_needs_an_approved_asset(self, state, passes, settings):
        snapshot = JourneySnapshot(
            problems=[Problem(id=1, title="A", position=0)],
            solutions=[Solution(id=2, problem_id=1, title="Fix")],
            assets=[AssetDraft(id=3, problem_id=1, state=state)],
        )
        assert validate_step(Step.ASSET_CREATION, snapshot, settings).passed is passes
