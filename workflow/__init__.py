"""Workflow module: step gating, validation, generation and the session facade."""

from .validators import STEP_VALIDATORS, validate_step, validate_all
from .state_machine import WorkflowStateMachine
from .generation import GenerationCoordinator
from .session import JourneyCircleSession

__all__ = [
    "STEP_VALIDATORS",
    "validate_step",
    "validate_all",
    "WorkflowStateMachine",
    "GenerationCoordinator",
    "JourneyCircleSession",
]
