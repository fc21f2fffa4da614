"""Workflow contracts: steps, validation results, projections and session results."""

from pydantic import BaseModel, Field
from typing import List, Optional, Dict
from enum import Enum, IntEnum

from .journey_contracts import (
    JourneyCircle,
    ServiceArea,
    Problem,
    Solution,
    Offer,
    TitleSuggestion,
)
from .asset_contracts import AssetDraft, AssetState


class Step(IntEnum):
    """The eleven wizard steps."""
    BRAIN_CONTENT = 1
    SERVICE_AREA = 2
    EXISTING_ASSETS = 3
    INDUSTRIES = 4
    PRIMARY_PROBLEM = 5
    PROBLEM_TITLES = 6
    SOLUTION_TITLES = 7
    OFFER_MAPPING = 8
    ASSET_CREATION = 9
    LINK_ASSETS = 10
    COMPLETE = 11

    @property
    def label(self) -> str:
        return STEP_LABELS[self]


STEP_LABELS: Dict[Step, str] = {
    Step.BRAIN_CONTENT: "Brain Content",
    Step.SERVICE_AREA: "Service Area",
    Step.EXISTING_ASSETS: "Existing Assets",
    Step.INDUSTRIES: "Industries",
    Step.PRIMARY_PROBLEM: "Primary Problem",
    Step.PROBLEM_TITLES: "Problem Titles",
    Step.SOLUTION_TITLES: "Solution Titles",
    Step.OFFER_MAPPING: "Offer Mapping",
    Step.ASSET_CREATION: "Asset Creation",
    Step.LINK_ASSETS: "Link Published Assets",
    Step.COMPLETE: "Complete",
}

FIRST_STEP = Step.BRAIN_CONTENT
LAST_STEP = Step.COMPLETE


class WorkflowPhase(str, Enum):
    """Top-level workflow phase; ``complete`` is terminal."""
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class RuleViolation(BaseModel):
    """A single violated step rule with a user-facing message."""
    step: Step
    rule: str = Field(..., description="Stable rule identifier, e.g. 'problem_count'")
    message: str


class StepValidation(BaseModel):
    """Outcome of running one step validator."""
    step: Step
    violations: List[RuleViolation] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.violations

    @property
    def messages(self) -> List[str]:
        return [v.message for v in self.violations]


class JourneySnapshot(BaseModel):
    """Read-only copy of the aggregate, consumed by validators and the projector."""
    circle: JourneyCircle = Field(default_factory=JourneyCircle)
    service_area: Optional[ServiceArea] = None
    problems: List[Problem] = Field(default_factory=list)
    solutions: List[Solution] = Field(default_factory=list)
    offers: List[Offer] = Field(default_factory=list)
    assets: List[AssetDraft] = Field(default_factory=list)
    problem_suggestions: List[TitleSuggestion] = Field(default_factory=list)
    solution_suggestions: Dict[int, List[TitleSuggestion]] = Field(default_factory=dict)
    existing_assets: List[str] = Field(default_factory=list)
    linked_assets: List[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    def ordered_problems(self) -> List[Problem]:
        return sorted(self.problems, key=lambda p: (p.position is None, p.position or 0, p.id or 0))

    def solution_for(self, problem_id: Optional[int]) -> Optional[Solution]:
        for solution in self.solutions:
            if solution.problem_id == problem_id:
                return solution
        return None

    def offers_for(self, solution_id: Optional[int]) -> List[Offer]:
        return [o for o in self.offers if o.solution_id == solution_id]

    def assets_at_least(self, state: AssetState) -> List[AssetDraft]:
        return [a for a in self.assets if a.is_at_least(state)]


class RingSegment(BaseModel):
    """One slot on a visualization ring."""
    position: int
    entity_id: Optional[int] = None
    title: str = ""
    is_placeholder: bool = True
    is_primary: bool = False


class RingProjection(BaseModel):
    """Drawing model for the three-ring diagram."""
    outer_ring: List[RingSegment]
    middle_ring: List[RingSegment]
    center_count: int = 0


class ErrorKind(str, Enum):
    """Error taxonomy surfaced at the session boundary."""
    VALIDATION = "validation"
    ILLEGAL_TRANSITION = "illegal_transition"
    EXTERNAL_SERVICE = "external_service"
    INTEGRITY = "integrity"


class ErrorInfo(BaseModel):
    """Typed description of a failed command."""
    kind: ErrorKind
    message: str
    violations: List[RuleViolation] = Field(default_factory=list)


class WorkflowView(BaseModel):
    """View-model handed to any UI adapter after each command."""
    current_step: Step
    step_label: str
    phase: WorkflowPhase
    highest_validated_step: int = 0
    accessible_steps: List[int] = Field(default_factory=list)
    progress_percent: float = 0.0
    current_step_valid: bool = False
    violations: List[RuleViolation] = Field(default_factory=list)
    pending: Optional[str] = Field(None, description="Pending generation sub-state, e.g. 'outline_pending'")
    rings: RingProjection


class CommandResult(BaseModel):
    """Result of a session command; failures never raise across the session boundary."""
    ok: bool
    error: Optional[ErrorInfo] = None
    view: Optional[WorkflowView] = None
    entity_id: Optional[int] = None


class CompletionSummary(BaseModel):
    """Totals shown on the completion step."""
    problem_count: int
    solution_count: int
    offer_count: int
    approved_asset_count: int
    published_asset_count: int
    is_complete: bool


class JourneyRecord(BaseModel):
    """What the persistence collaborator stores between steps."""
    snapshot: JourneySnapshot
    current_step: Step = FIRST_STEP
    highest_validated_step: int = 0
    phase: WorkflowPhase = WorkflowPhase.IN_PROGRESS
