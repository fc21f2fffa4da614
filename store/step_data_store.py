"""Step Data Store - in-memory aggregate of the journey circle being built.

The store is the mutation boundary of the aggregate:
- step-scoped values are read and written through ``get``/``set``
- problems, solutions, offers, brain content and asset drafts are added with
  ``append_child`` and removed with ``remove_child`` (cascading)
- invariants that must never be broken are rejected with ``IntegrityViolation``

Validators never see the store itself, only the ``JourneySnapshot`` it produces.
"""

import itertools
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import TypeAdapter

from contracts import (
    AssetDraft,
    AssetFocus,
    CircleStatus,
    BrainContentItem,
    JourneyCircle,
    JourneySnapshot,
    Offer,
    Problem,
    ServiceArea,
    Solution,
    Step,
    TitleSuggestion,
)
from errors import IntegrityViolation

logger = logging.getLogger(__name__)

Child = Union[Problem, Solution, Offer, BrainContentItem, AssetDraft]
Listener = Callable[[Step], None]


# Step that owns each step-scoped key
STEP_KEYS: Dict[str, Step] = {
    "brain_content": Step.BRAIN_CONTENT,
    "service_area_id": Step.SERVICE_AREA,
    "existing_assets": Step.EXISTING_ASSETS,
    "industries": Step.INDUSTRIES,
    "primary_problem_id": Step.PRIMARY_PROBLEM,
    "problem_suggestions": Step.PROBLEM_TITLES,
    "problems": Step.PROBLEM_TITLES,
    "solution_suggestions": Step.SOLUTION_TITLES,
    "solutions": Step.SOLUTION_TITLES,
    "offers": Step.OFFER_MAPPING,
    "assets": Step.ASSET_CREATION,
    "linked_assets": Step.LINK_ASSETS,
}

# Collections that only change through append_child/remove_child
CHILD_KEYS = ("problems", "solutions", "offers", "assets")

# Validators for values handed to ``set``; bad input raises a pydantic ValidationError
_ID = TypeAdapter(int)
_IDS = TypeAdapter(List[int])
_URLS = TypeAdapter(List[str])
_BRAIN_CONTENT = TypeAdapter(List[BrainContentItem])
_SUGGESTIONS = TypeAdapter(List[TitleSuggestion])
_SUGGESTIONS_BY_PROBLEM = TypeAdapter(Dict[int, List[TitleSuggestion]])


class StepDataStore:
    """Aggregate store for one journey circle editing session."""

    def __init__(
        self,
        max_problems: int = 5,
        id_allocator: Optional[Callable[[], int]] = None,
        snapshot: Optional[JourneySnapshot] = None,
    ):
        """Initialize the store.

        Args:
            max_problems: Hard cap on problems per circle
            id_allocator: Callable returning fresh opaque ids (normally the repository's)
            snapshot: Previously persisted aggregate to resume from
        """
        self.max_problems = max_problems
        self._listeners: List[Listener] = []

        self.circle = JourneyCircle()
        self.service_area: Optional[ServiceArea] = None
        self._problems: Dict[int, Problem] = {}
        self._solutions: Dict[int, Solution] = {}
        self._offers: Dict[int, Offer] = {}
        self._assets: Dict[int, AssetDraft] = {}
        self._problem_suggestions: List[TitleSuggestion] = []
        self._solution_suggestions: Dict[int, List[TitleSuggestion]] = {}
        self._existing_assets: List[str] = []
        self._linked_assets: List[str] = []

        if snapshot is not None:
            self._restore(snapshot)

        if id_allocator is None:
            counter = itertools.count(self._max_known_id() + 1)
            id_allocator = lambda: next(counter)
        self._next_id = id_allocator

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        """Register a callback invoked with the owning step after every mutation."""
        self._listeners.append(listener)

    def _notify(self, step: Step) -> None:
        for listener in self._listeners:
            listener(step)

    # ------------------------------------------------------------------
    # Step-scoped values
    # ------------------------------------------------------------------

    def get(self, key: str) -> Any:
        """Return a copy of a step-scoped value."""
        if key not in STEP_KEYS:
            raise KeyError(f"Unknown step data key: {key}")

        if key == "brain_content":
            return [item.model_copy(deep=True) for item in self.circle.brain_content]
        if key == "service_area_id":
            return self.circle.service_area_id
        if key == "existing_assets":
            return list(self._existing_assets)
        if key == "industries":
            return list(self.circle.industries)
        if key == "primary_problem_id":
            return self.circle.primary_problem_id
        if key == "problem_suggestions":
            return [s.model_copy() for s in self._problem_suggestions]
        if key == "solution_suggestions":
            return {pid: [s.model_copy() for s in items] for pid, items in self._solution_suggestions.items()}
        if key == "problems":
            return [p.model_copy() for p in self.ordered_problems()]
        if key == "solutions":
            return [s.model_copy() for s in self._solutions.values()]
        if key == "offers":
            return [o.model_copy() for o in self._offers.values()]
        if key == "assets":
            return [a.model_copy() for a in self._assets.values()]
        return list(self._linked_assets)

    def set(self, key: str, value: Any) -> None:
        """Replace a step-scoped value.

        Raises:
            KeyError: If the key is unknown
            IntegrityViolation: If the value would break an aggregate invariant
        """
        if key not in STEP_KEYS:
            raise KeyError(f"Unknown step data key: {key}")
        if key in CHILD_KEYS:
            raise IntegrityViolation(f"'{key}' can only be changed with append_child/remove_child")

        if key == "brain_content":
            items = [item.model_copy() for item in _BRAIN_CONTENT.validate_python(value or [])]
            for item in items:
                if item.id is None:
                    item.id = self._next_id()
            self.circle.brain_content = items
        elif key == "service_area_id":
            self._set_service_area_id(None if value is None else _ID.validate_python(value))
        elif key == "existing_assets":
            self._existing_assets = _URLS.validate_python(value or [])
        elif key == "industries":
            self.circle.industries = list(dict.fromkeys(_IDS.validate_python(value or [])))
        elif key == "primary_problem_id":
            if value is None:
                self._clear_primary()
            else:
                self.set_primary(_ID.validate_python(value))
                return
        elif key == "problem_suggestions":
            self._problem_suggestions = _SUGGESTIONS.validate_python(value or [])
        elif key == "solution_suggestions":
            self._solution_suggestions = _SUGGESTIONS_BY_PROBLEM.validate_python(value or {})
        elif key == "linked_assets":
            self._linked_assets = _URLS.validate_python(value or [])

        self._notify(STEP_KEYS[key])

    def _set_service_area_id(self, value: Optional[int]) -> None:
        if self.circle.id is not None and value != self.circle.service_area_id:
            raise IntegrityViolation(
                f"Journey circle {self.circle.id} already belongs to service area "
                f"{self.circle.service_area_id}; its service area cannot change"
            )
        self.circle.service_area_id = value
        if self.service_area is not None and self.service_area.id != value:
            self.service_area = None

    def select_service_area(self, service_area: ServiceArea) -> None:
        """Select the service area the circle will be created for (step 2)."""
        self._set_service_area_id(service_area.id)
        self.service_area = service_area.model_copy()
        self._notify(Step.SERVICE_AREA)

    def attach_circle(self, circle_id: int, service_area: ServiceArea) -> None:
        """Bind the aggregate to its persisted circle (the step 2 commit)."""
        if self.circle.id is not None and self.circle.id != circle_id:
            raise IntegrityViolation(f"Session is already bound to journey circle {self.circle.id}")
        self._set_service_area_id(service_area.id)
        self.circle.id = circle_id
        self.circle.client_id = service_area.client_id
        self.service_area = service_area.model_copy()
        self._notify(Step.SERVICE_AREA)

    # ------------------------------------------------------------------
    # Children
    # ------------------------------------------------------------------

    def append_child(self, parent_id: Optional[int], child: Child) -> Child:
        """Add a child entity under its parent and return the stored copy.

        Parents: the circle (``None`` or the circle id) for problems and brain
        content, a problem for solutions and asset drafts, a solution for offers.
        """
        child = child.model_copy(deep=True)
        if child.id is not None and self._find(child.id) is not None:
            raise IntegrityViolation(f"An entity with id {child.id} already exists")

        if isinstance(child, Problem):
            self._check_circle_parent(parent_id)
            self._append_problem(child)
            step = Step.PROBLEM_TITLES
        elif isinstance(child, Solution):
            self._append_solution(parent_id, child)
            step = Step.SOLUTION_TITLES
        elif isinstance(child, Offer):
            if parent_id not in self._solutions:
                raise IntegrityViolation(f"Offer parent {parent_id} is not a known solution")
            child.solution_id = parent_id
            self._assign_id(child)
            self._offers[child.id] = child
            step = Step.OFFER_MAPPING
        elif isinstance(child, BrainContentItem):
            self._check_circle_parent(parent_id)
            self._assign_id(child)
            self.circle.brain_content.append(child)
            step = Step.BRAIN_CONTENT
        elif isinstance(child, AssetDraft):
            self._append_asset(parent_id, child)
            step = Step.ASSET_CREATION
        else:
            raise TypeError(f"Unsupported child type: {type(child).__name__}")

        logger.debug("Appended %s %s under parent %s", child.kind, child.id, parent_id)
        self._notify(step)
        return child.model_copy()

    def _check_circle_parent(self, parent_id: Optional[int]) -> None:
        if parent_id is not None and parent_id != self.circle.id:
            raise IntegrityViolation(f"Parent {parent_id} is not this journey circle")

    def _assign_id(self, child: Child) -> None:
        if child.id is None:
            child.id = self._next_id()

    def _append_problem(self, problem: Problem) -> None:
        if len(self._problems) >= self.max_problems:
            raise IntegrityViolation(
                f"A journey circle holds at most {self.max_problems} problems"
            )
        taken = {p.position for p in self._problems.values()}
        if problem.position is None:
            problem.position = min(i for i in range(self.max_problems) if i not in taken)
        elif problem.position >= self.max_problems:
            raise IntegrityViolation(
                f"Problem position {problem.position} is outside 0..{self.max_problems - 1}"
            )
        elif problem.position in taken:
            raise IntegrityViolation(f"Problem position {problem.position} is already taken")

        self._assign_id(problem)
        self._problems[problem.id] = problem
        if problem.is_primary:
            self._make_primary(problem.id)

    def _append_solution(self, parent_id: Optional[int], solution: Solution) -> None:
        if parent_id not in self._problems:
            raise IntegrityViolation(f"Solution parent {parent_id} is not a known problem")
        if self.solution_for(parent_id) is not None:
            raise IntegrityViolation(f"Problem {parent_id} already has a solution")
        solution.problem_id = parent_id
        self._assign_id(solution)
        self._solutions[solution.id] = solution

    def _append_asset(self, parent_id: Optional[int], asset: AssetDraft) -> None:
        if parent_id not in self._problems:
            raise IntegrityViolation(f"Asset parent {parent_id} is not a known problem")
        asset.problem_id = parent_id
        solution = self.solution_for(parent_id)
        if asset.solution_id is not None and (solution is None or solution.id != asset.solution_id):
            raise IntegrityViolation(
                f"Solution {asset.solution_id} does not belong to problem {parent_id}"
            )
        if asset.focus == AssetFocus.SOLUTION:
            if solution is None:
                raise IntegrityViolation(f"Problem {parent_id} has no solution to focus an asset on")
            asset.solution_id = solution.id
        self._assign_id(asset)
        self._assets[asset.id] = asset

    def update_child(self, child: Child) -> Child:
        """Replace a stored entity with a modified copy of itself.

        Parent links are kept from the stored entity; problem positions and the
        primary flag are re-checked.
        """
        if child.id is None:
            raise IntegrityViolation("Cannot update an entity without an id")
        child = child.model_copy(deep=True)

        if isinstance(child, Problem) and child.id in self._problems:
            if child.position is None or child.position >= self.max_problems:
                raise IntegrityViolation(f"Problem position {child.position} is outside 0..{self.max_problems - 1}")
            clash = [p for p in self._problems.values() if p.position == child.position and p.id != child.id]
            if clash:
                raise IntegrityViolation(f"Problem position {child.position} is already taken")
            was_primary = self._problems[child.id].is_primary
            self._problems[child.id] = child
            if child.is_primary:
                self._make_primary(child.id)
            elif was_primary:
                self.circle.primary_problem_id = None
            step = Step.PROBLEM_TITLES
        elif isinstance(child, Solution) and child.id in self._solutions:
            child.problem_id = self._solutions[child.id].problem_id
            self._solutions[child.id] = child
            step = Step.SOLUTION_TITLES
        elif isinstance(child, Offer) and child.id in self._offers:
            child.solution_id = self._offers[child.id].solution_id
            self._offers[child.id] = child
            step = Step.OFFER_MAPPING
        elif isinstance(child, AssetDraft) and child.id in self._assets:
            stored = self._assets[child.id]
            child.problem_id = stored.problem_id
            child.solution_id = stored.solution_id
            self._assets[child.id] = child
            step = Step.ASSET_CREATION
        elif isinstance(child, BrainContentItem):
            for index, item in enumerate(self.circle.brain_content):
                if item.id == child.id:
                    self.circle.brain_content[index] = child
                    break
            else:
                raise IntegrityViolation(f"No brain content item with id {child.id}")
            step = Step.BRAIN_CONTENT
        else:
            raise IntegrityViolation(f"No {type(child).__name__} with id {child.id}")

        self._notify(step)
        return child.model_copy()

    def remove_child(self, entity_id: int) -> List[int]:
        """Remove an entity and everything that depends on it.

        Problem -> its solution, that solution's offers, the problem's asset drafts.
        Solution -> its offers and asset drafts focused on it; the problem stays.

        Returns:
            Ids of every removed entity, the requested one first
        """
        removed: List[int] = []
        if entity_id in self._problems:
            problem = self._problems.pop(entity_id)
            removed.append(entity_id)
            solution = self.solution_for(entity_id)
            if solution is not None:
                removed.extend(self._remove_solution(solution.id))
            for asset_id in [a.id for a in self._assets.values() if a.problem_id == entity_id]:
                del self._assets[asset_id]
                removed.append(asset_id)
            self._solution_suggestions.pop(entity_id, None)
            if problem.is_primary or self.circle.primary_problem_id == entity_id:
                self.circle.primary_problem_id = None
            step = Step.PROBLEM_TITLES
        elif entity_id in self._solutions:
            removed.extend(self._remove_solution(entity_id))
            step = Step.SOLUTION_TITLES
        elif entity_id in self._offers:
            del self._offers[entity_id]
            removed.append(entity_id)
            step = Step.OFFER_MAPPING
        elif entity_id in self._assets:
            del self._assets[entity_id]
            removed.append(entity_id)
            step = Step.ASSET_CREATION
        elif any(item.id == entity_id for item in self.circle.brain_content):
            self.circle.brain_content = [i for i in self.circle.brain_content if i.id != entity_id]
            removed.append(entity_id)
            step = Step.BRAIN_CONTENT
        else:
            raise IntegrityViolation(f"No entity with id {entity_id}")

        logger.debug("Removed %s (cascade: %s)", entity_id, removed[1:])
        self._notify(step)
        return removed

    def _remove_solution(self, solution_id: int) -> List[int]:
        del self._solutions[solution_id]
        removed = [solution_id]
        for offer_id in [o.id for o in self._offers.values() if o.solution_id == solution_id]:
            del self._offers[offer_id]
            removed.append(offer_id)
        for asset_id in [a.id for a in self._assets.values() if a.solution_id == solution_id]:
            del self._assets[asset_id]
            removed.append(asset_id)
        return removed

    # ------------------------------------------------------------------
    # Primary problem
    # ------------------------------------------------------------------

    def set_primary(self, problem_id: int) -> None:
        """Mark one problem primary, clearing the flag on every other problem."""
        if problem_id not in self._problems:
            raise IntegrityViolation(f"Problem {problem_id} does not exist")
        self._make_primary(problem_id)
        self._notify(Step.PRIMARY_PROBLEM)

    def _make_primary(self, problem_id: int) -> None:
        for pid, problem in self._problems.items():
            problem.is_primary = pid == problem_id
        self.circle.primary_problem_id = problem_id

    def _clear_primary(self) -> None:
        for problem in self._problems.values():
            problem.is_primary = False
        self.circle.primary_problem_id = None

    def set_status(self, status: CircleStatus) -> None:
        """Record the circle's lifecycle status; this is not a step data change."""
        self.circle.status = status

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def ordered_problems(self) -> List[Problem]:
        return sorted(self._problems.values(), key=lambda p: (p.position, p.id))

    def get_problems(self) -> List[Problem]:
        return [p.model_copy() for p in self.ordered_problems()]

    def get_problem(self, problem_id: int) -> Optional[Problem]:
        problem = self._problems.get(problem_id)
        return problem.model_copy() if problem else None

    def get_asset(self, asset_id: int) -> Optional[AssetDraft]:
        asset = self._assets.get(asset_id)
        return asset.model_copy() if asset else None

    def solution_for(self, problem_id: Optional[int]) -> Optional[Solution]:
        for solution in self._solutions.values():
            if solution.problem_id == problem_id:
                return solution
        return None

    def _find(self, entity_id: int) -> Optional[Child]:
        for collection in (self._problems, self._solutions, self._offers, self._assets):
            if entity_id in collection:
                return collection[entity_id]
        for item in self.circle.brain_content:
            if item.id == entity_id:
                return item
        return None

    def _max_known_id(self) -> int:
        ids = [0]
        ids.extend(self._problems)
        ids.extend(self._solutions)
        ids.extend(self._offers)
        ids.extend(self._assets)
        ids.extend(i.id for i in self.circle.brain_content if i.id is not None)
        if self.circle.id is not None:
            ids.append(self.circle.id)
        return max(ids)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> JourneySnapshot:
        """Return an immutable copy of the whole aggregate."""
        return JourneySnapshot(
            circle=self.circle.model_copy(deep=True),
            service_area=self.service_area.model_copy() if self.service_area else None,
            problems=self.get_problems(),
            solutions=[s.model_copy() for s in self._solutions.values()],
            offers=[o.model_copy() for o in self._offers.values()],
            assets=[a.model_copy() for a in self._assets.values()],
            problem_suggestions=[s.model_copy() for s in self._problem_suggestions],
            solution_suggestions={pid: list(items) for pid, items in self._solution_suggestions.items()},
            existing_assets=list(self._existing_assets),
            linked_assets=list(self._linked_assets),
        )

    def restore(self, snapshot: JourneySnapshot) -> None:
        """Roll the aggregate back to an earlier snapshot."""
        self._restore(snapshot)
        self._notify(Step.BRAIN_CONTENT)

    def _restore(self, snapshot: JourneySnapshot) -> None:
        self.circle = snapshot.circle.model_copy(deep=True)
        self.service_area = snapshot.service_area.model_copy() if snapshot.service_area else None
        self._problems = {p.id: p.model_copy() for p in snapshot.problems}
        self._solutions = {s.id: s.model_copy() for s in snapshot.solutions}
        self._offers = {o.id: o.model_copy() for o in snapshot.offers}
        self._assets = {a.id: a.model_copy() for a in snapshot.assets}
        self._problem_suggestions = [s.model_copy() for s in snapshot.problem_suggestions]
        self._solution_suggestions = {pid: list(items) for pid, items in snapshot.solution_suggestions.items()}
        self._existing_assets = list(snapshot.existing_assets)
        self._linked_assets = list(snapshot.linked_assets)
