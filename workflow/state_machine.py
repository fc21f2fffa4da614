"""Workflow State Machine - step gating for the 11-step journey circle wizard.

States are the steps 1..11 plus the terminal ``complete`` phase:
- advance(): only when the current step validates; step 11 -> complete
- retreat(): N -> N-1 for N > 1, data is kept
- jump_to(): only to steps that were validated and passed before

Any change in the data store marks the current step dirty, so the cached
validation is dropped and ``advance()`` always re-runs the validator.
"""

import logging
from typing import List, Optional

from contracts import (
    CircleStatus,
    FIRST_STEP,
    LAST_STEP,
    Step,
    StepValidation,
    WorkflowPhase,
)
from config import Settings
from errors import IllegalTransition, ValidationError
from store import StepDataStore
from workflow.validators import validate_step

logger = logging.getLogger(__name__)


class WorkflowStateMachine:
    """Owns the current step and the transition rules of one editing session."""

    def __init__(
        self,
        store: StepDataStore,
        settings: Optional[Settings] = None,
        current_step: Step = FIRST_STEP,
        highest_validated_step: int = 0,
        phase: WorkflowPhase = WorkflowPhase.IN_PROGRESS,
    ):
        """Initialize the state machine.

        Args:
            store: Aggregate the steps validate against
            settings: Session settings (validation policies)
            current_step: Step to resume at
            highest_validated_step: Highest step that ever validated and passed
            phase: Resume in the terminal phase if the circle was completed
        """
        self.store = store
        self.settings = settings or Settings()
        self._current_step = Step(current_step)
        self._highest_validated = max(0, min(int(highest_validated_step), int(LAST_STEP)))
        self._phase = phase
        self._last_validation: Optional[StepValidation] = None
        self._pending: Optional[str] = None

        store.subscribe(self._on_data_changed)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def current_step(self) -> Step:
        return self._current_step

    @property
    def phase(self) -> WorkflowPhase:
        return self._phase

    @property
    def is_complete(self) -> bool:
        return self._phase == WorkflowPhase.COMPLETE

    @property
    def highest_validated_step(self) -> int:
        return self._highest_validated

    @property
    def pending(self) -> Optional[str]:
        """Name of the pending generation sub-state, if any (e.g. 'outline_pending')."""
        return self._pending

    @property
    def is_dirty(self) -> bool:
        return self._last_validation is None

    def _on_data_changed(self, step: Step) -> None:
        self._last_validation = None

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, step: Optional[Step] = None) -> StepValidation:
        """Run the validator for a step (default: the current step)."""
        step = Step(step) if step is not None else self._current_step
        result = validate_step(step, self.store.snapshot(), self.settings)
        if step == self._current_step:
            self._last_validation = result
        return result

    def current_validation(self) -> StepValidation:
        """Validation of the current step, re-run only when the data changed."""
        if self._last_validation is None or self._last_validation.step != self._current_step:
            return self.validate()
        return self._last_validation

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def advance(self) -> Step:
        """Move to the next step, or to ``complete`` from the last step.

        Raises:
            ValidationError: With every violated rule of the current step
            IllegalTransition: If complete or a generation request is pending
        """
        self._ensure_navigable("advance")

        result = self.validate()
        if not result.passed:
            logger.info("Step %s failed validation: %s", int(self._current_step), result.messages)
            raise ValidationError(result.violations)

        self._highest_validated = max(self._highest_validated, int(self._current_step))

        if self._current_step == LAST_STEP:
            self._phase = WorkflowPhase.COMPLETE
            self.store.set_status(CircleStatus.COMPLETE)
            logger.info("Journey circle %s complete", self.store.circle.id)
            return self._current_step

        self._move_to(Step(self._current_step + 1))
        return self._current_step

    def retreat(self) -> Step:
        """Move back one step without clearing any data.

        Raises:
            IllegalTransition: At step 1, once complete, or while generation is pending
        """
        self._ensure_navigable("retreat")
        if self._current_step == FIRST_STEP:
            raise IllegalTransition("Cannot go back from the first step")
        self._move_to(Step(self._current_step - 1))
        return self._current_step

    def jump_to(self, step: int) -> Step:
        """Jump to an already validated step for review or editing.

        Raises:
            IllegalTransition: If the step is out of range or was never validated
        """
        self._ensure_navigable("jump")
        try:
            target = Step(step)
        except ValueError:
            raise IllegalTransition(f"Step {step} does not exist") from None

        if target == self._current_step:
            return target
        if int(target) > self._highest_validated:
            raise IllegalTransition(
                f"Cannot jump to step {int(target)}; highest validated step is {self._highest_validated}"
            )
        self._move_to(target)
        return target

    def accessible_steps(self) -> List[int]:
        """Steps a progress indicator may offer as jump targets."""
        if self.is_complete:
            return []
        limit = max(self._highest_validated, int(self._current_step))
        return list(range(int(FIRST_STEP), limit + 1))

    def progress_percent(self) -> float:
        if self.is_complete:
            return 100.0
        return (int(self._current_step) - 1) / (int(LAST_STEP) - 1) * 100

    def restore_position(self, step: Step, highest_validated_step: int, phase: WorkflowPhase) -> None:
        """Put the machine back where it was before a transition that could not be persisted."""
        self._current_step = Step(step)
        self._highest_validated = highest_validated_step
        self._phase = phase
        self._last_validation = None

    def _move_to(self, step: Step) -> None:
        logger.debug("Step %s -> %s", int(self._current_step), int(step))
        self._current_step = step
        self._last_validation = None

    def _ensure_navigable(self, action: str) -> None:
        if self.is_complete:
            raise IllegalTransition(f"Cannot {action}: the journey circle is complete")
        if self._pending is not None:
            raise IllegalTransition(f"Cannot {action} while {self._pending}")

    # ------------------------------------------------------------------
    # Pending generation sub-state
    # ------------------------------------------------------------------

    def begin_pending(self, label: str) -> None:
        """Enter a ``*_pending`` sub-state for a long-running generation request."""
        if self._pending is not None:
            raise IllegalTransition(f"Cannot start {label}: already {self._pending}")
        self._pending = label

    def end_pending(self) -> None:
        self._pending = None
