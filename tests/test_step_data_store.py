"""Tests for the step data store: keyed values, child entities and cascades."""

import pytest
from pydantic import ValidationError as SchemaError

from contracts import (
    AssetDraft,
    AssetFocus,
    BrainContentItem,
    BrainContentType,
    Offer,
    Problem,
    ServiceArea,
    Solution,
    Step,
    TitleSuggestion,
)
from errors import IntegrityViolation
from store import StepDataStore, STEP_KEYS

from conftest import attach, fill_circle


class TestStepScopedValues:
    """Test get/set of step-scoped values."""

    def test_every_key_belongs_to_a_step(self):
        assert set(STEP_KEYS.values()) <= set(Step)
        assert STEP_KEYS["industries"] == Step.INDUSTRIES

    def test_unknown_key(self, store):
        with pytest.raises(KeyError):
            store.get("favourite_colour")
        with pytest.raises(KeyError):
            store.set("favourite_colour", "blue")

    def test_industries_are_deduplicated(self, store):
        store.set("industries", [3, 1, 3])
        assert store.get("industries") == [3, 1]

    def test_get_returns_copies(self, store):
        store.set("industries", [1])
        store.get("industries").append(2)
        assert store.get("industries") == [1]

    def test_child_collections_cannot_be_replaced(self, store):
        with pytest.raises(IntegrityViolation):
            store.set("problems", [])

    def test_suggestions_are_validated(self, store):
        store.set("problem_suggestions", [{"title": "Slow onboarding"}])
        assert store.get("problem_suggestions") == [TitleSuggestion(title="Slow onboarding")]

    def test_set_notifies_owning_step(self, store):
        seen = []
        store.subscribe(seen.append)
        store.set("industries", [1])
        store.set("linked_assets", ["https://example.com/post"])
        assert seen == [Step.INDUSTRIES, Step.LINK_ASSETS]

    def test_brain_content_items_get_ids(self, store):
        store.set("brain_content", [{"type": "text", "value": "About us"}])
        [item] = store.get("brain_content")
        assert item.id is not None

    @pytest.mark.parametrize("key, value", [
        ("industries", ["abc"]),
        ("industries", 5),
        ("brain_content", [{"type": "video", "value": "clip"}]),
        ("solution_suggestions", ["Idea"]),
    ])
    def test_bad_values_raise_pydantic_errors(self, store, key, value):
        with pytest.raises(SchemaError):
            store.set(key, value)
        assert store.get(key) in ([], {})


class TestServiceArea:
    """Test service area selection and the step 2 commit."""

    def test_selection_can_change_before_commit(self, store):
        store.select_service_area(ServiceArea(id=1, title="IT"))
        store.select_service_area(ServiceArea(id=2, title="Cloud"))
        assert store.get("service_area_id") == 2

    def test_service_area_is_immutable_after_commit(self, store):
        attach(store, circle_id=10, service_area_id=20)
        with pytest.raises(IntegrityViolation):
            store.set("service_area_id", 21)
        with pytest.raises(IntegrityViolation):
            store.select_service_area(ServiceArea(id=21, title="Other"))
        assert store.circle.service_area_id == 20

    def test_cannot_attach_a_second_circle(self, store):
        area = attach(store, circle_id=10)
        with pytest.raises(IntegrityViolation):
            store.attach_circle(11, area)


class TestProblems:
    """Test the problem collection and its invariants."""

    def test_problems_fill_the_lowest_free_position(self, store):
        store.append_child(None, Problem(title="A", position=1))
        b = store.append_child(None, Problem(title="B"))
        c = store.append_child(None, Problem(title="C"))
        assert b.position == 0
        assert c.position == 2

    def test_at_most_five_problems(self, store):
        fill_circle(store, problems=5, with_solutions=False)
        with pytest.raises(IntegrityViolation):
            store.append_child(None, Problem(title="Sixth"))
        assert len(store.get("problems")) == 5

    def test_positions_are_unique_and_in_range(self, store):
        store.append_child(None, Problem(title="A", position=2))
        with pytest.raises(IntegrityViolation):
            store.append_child(None, Problem(title="B", position=2))
        with pytest.raises(IntegrityViolation):
            store.append_child(None, Problem(title="C", position=5))

    def test_problem_parent_must_be_the_circle(self, store):
        attach(store, circle_id=10)
        store.append_child(10, Problem(title="Ok"))
        with pytest.raises(IntegrityViolation):
            store.append_child(999, Problem(title="Wrong parent"))

    def test_primary_is_unique(self, store):
        first = store.append_child(None, Problem(title="A", is_primary=True))
        second = store.append_child(None, Problem(title="B", is_primary=True))
        primaries = [p.id for p in store.get_problems() if p.is_primary]
        assert primaries == [second.id]
        assert store.get("primary_problem_id") == second.id

        store.set_primary(first.id)
        assert [p.id for p in store.get_problems() if p.is_primary] == [first.id]

    def test_clearing_primary(self, store):
        store.append_child(None, Problem(title="A", is_primary=True))
        store.set("primary_problem_id", None)
        assert store.get("primary_problem_id") is None
        assert not any(p.is_primary for p in store.get_problems())

    def test_set_primary_unknown_problem(self, store):
        with pytest.raises(IntegrityViolation):
            store.set_primary(42)

    def test_update_rechecks_positions(self, store):
        a = store.append_child(None, Problem(title="A"))
        store.append_child(None, Problem(title="B"))
        with pytest.raises(IntegrityViolation):
            store.update_child(a.model_copy(update={"position": 1}))
        moved = store.update_child(a.model_copy(update={"position": 4, "title": "A2"}))
        assert moved.title == "A2"
        assert [p.title for p in store.get_problems()] == ["B", "A2"]

    def test_duplicate_ids_are_rejected(self, store):
        store.append_child(None, Problem(id=7, title="A"))
        with pytest.raises(IntegrityViolation):
            store.append_child(None, Problem(id=7, title="Again"))


class TestSolutionsAndOffers:
    """Test one-solution-per-problem and offer parents."""

    def test_second_solution_for_a_problem_is_rejected(self, store):
        problem = store.append_child(None, Problem(title="A"))
        store.append_child(problem.id, Solution(title="First"))
        with pytest.raises(IntegrityViolation):
            store.append_child(problem.id, Solution(title="Second"))

    def test_solution_parent_must_exist(self, store):
        with pytest.raises(IntegrityViolation):
            store.append_child(404, Solution(title="Orphan"))

    def test_solution_records_its_problem(self, store):
        problem = store.append_child(None, Problem(title="A"))
        solution = store.append_child(problem.id, Solution(title="Fix"))
        assert solution.problem_id == problem.id
        assert store.solution_for(problem.id).id == solution.id

    def test_offer_parent_must_be_a_solution(self, store):
        problem = store.append_child(None, Problem(title="A"))
        with pytest.raises(IntegrityViolation):
            store.append_child(problem.id, Offer(title="Audit", url="https://example.com"))

    def test_many_offers_per_solution(self, store):
        problem = store.append_child(None, Problem(title="A"))
        solution = store.append_child(problem.id, Solution(title="Fix"))
        store.append_child(solution.id, Offer(title="Audit", url="https://example.com/a"))
        store.append_child(solution.id, Offer(title="Demo", url="https://example.com/d"))
        assert len(store.get("offers")) == 2


class TestAssets:
    """Test asset drafts attached to problems."""

    def test_solution_focus_requires_a_solution(self, store):
        problem = store.append_child(None, Problem(title="A"))
        with pytest.raises(IntegrityViolation):
            store.append_child(problem.id, AssetDraft(focus=AssetFocus.SOLUTION))

    def test_solution_focus_links_the_solution(self, store):
        problem = store.append_child(None, Problem(title="A"))
        solution = store.append_child(problem.id, Solution(title="Fix"))
        asset = store.append_child(problem.id, AssetDraft(focus=AssetFocus.SOLUTION))
        assert asset.solution_id == solution.id


class TestRemoval:
    """Test cascading removal."""

    def test_removing_a_problem_cascades(self, store):
        [problem] = fill_circle(store, problems=1)
        solution = store.solution_for(problem.id)
        [offer] = store.get("offers")
        asset = store.append_child(problem.id, AssetDraft(focus=AssetFocus.SOLUTION))
        store.set("solution_suggestions", {problem.id: [{"title": "Idea"}]})

        removed = store.remove_child(problem.id)

        assert removed[0] == problem.id
        assert set(removed) == {problem.id, solution.id, offer.id, asset.id}
        assert store.get("problems") == []
        assert store.get("solutions") == []
        assert store.get("offers") == []
        assert store.get("assets") == []
        assert store.get("solution_suggestions") == {}
        assert store.get("primary_problem_id") is None

    def test_removing_a_solution_keeps_the_problem(self, store):
        [problem] = fill_circle(store, problems=1)
        problem_asset = store.append_child(problem.id, AssetDraft(focus=AssetFocus.PROBLEM))
        solution = store.solution_for(problem.id)

        store.remove_child(solution.id)

        assert store.get_problem(problem.id) is not None
        assert store.get("offers") == []
        assert [a.id for a in store.get("assets")] == [problem_asset.id]

    def test_removed_slot_can_be_reused(self, store):
        problems = fill_circle(store, problems=5, with_solutions=False)
        store.remove_child(problems[2].id)
        replacement = store.append_child(None, Problem(title="Replacement"))
        assert replacement.position == 2

    def test_removing_brain_content(self, store):
        item = store.append_child(None, BrainContentItem(type=BrainContentType.TEXT, value="notes"))
        store.remove_child(item.id)
        assert store.get("brain_content") == []

    def test_removing_unknown_entity(self, store):
        with pytest.raises(IntegrityViolation):
            store.remove_child(12345)


class TestSnapshots:
    """Test snapshot and restore."""

    def test_snapshot_is_a_copy(self, store):
        fill_circle(store, problems=2)
        snapshot = store.snapshot()
        store.remove_child(snapshot.problems[0].id)
        assert len(snapshot.problems) == 2

    def test_restore_rolls_back(self, store):
        fill_circle(store, problems=2)
        snapshot = store.snapshot()
        store.remove_child(snapshot.problems[0].id)
        store.restore(snapshot)
        assert len(store.get_problems()) == 2
        assert len(store.get("offers")) == 2

    def test_resumed_store_allocates_fresh_ids(self, store):
        fill_circle(store, problems=2)
        resumed = StepDataStore(snapshot=store.snapshot())
        new = resumed.append_child(None, Problem(title="New"))
        known = {p.id for p in store.get_problems()} | {s.id for s in store.get("solutions")}
        assert new.id not in known
