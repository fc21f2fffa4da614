"""Pydantic contracts for the Journey Circle workflow.

Every entity, validation result and session result is typed through these contracts.
"""

from .journey_contracts import (
    is_absolute_url,
    BrainContentType,
    CircleStatus,
    BrainContentItem,
    ServiceArea,
    JourneyCircle,
    Problem,
    Solution,
    Offer,
    TitleSuggestion,
)

from .asset_contracts import (
    AssetState,
    AssetFocus,
    AssetType,
    AssetDraft,
    GenerationKind,
    TitleList,
    OutlineOutput,
    ContentOutput,
    Draft,
)

from .workflow_contracts import (
    Step,
    STEP_LABELS,
    FIRST_STEP,
    LAST_STEP,
    WorkflowPhase,
    RuleViolation,
    StepValidation,
    JourneySnapshot,
    RingSegment,
    RingProjection,
    ErrorKind,
    ErrorInfo,
    WorkflowView,
    CommandResult,
    CompletionSummary,
    JourneyRecord,
)

__all__ = [
    # Journey entities
    "is_absolute_url",
    "BrainContentType",
    "CircleStatus",
    "BrainContentItem",
    "ServiceArea",
    "JourneyCircle",
    "Problem",
    "Solution",
    "Offer",
    "TitleSuggestion",
    # Assets and generation
    "AssetState",
    "AssetFocus",
    "AssetType",
    "AssetDraft",
    "GenerationKind",
    "TitleList",
    "OutlineOutput",
    "ContentOutput",
    "Draft",
    # Workflow
    "Step",
    "STEP_LABELS",
    "FIRST_STEP",
    "LAST_STEP",
    "WorkflowPhase",
    "RuleViolation",
    "StepValidation",
    "JourneySnapshot",
    "RingSegment",
    "RingProjection",
    "ErrorKind",
    "ErrorInfo",
    "WorkflowView",
    "CommandResult",
    "CompletionSummary",
    "JourneyRecord",
]
