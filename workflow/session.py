"""Journey Circle Session - the command surface consumed by UI adapters.

The session wires the data store, state machine, projector, generation
coordinator and repository together. Every command returns a
``CommandResult``; workflow errors never raise across this boundary so the
wizard stays interactive after any failure.
"""

import logging
from typing import Any, Awaitable, Callable, List, Optional

from pydantic import ValidationError as SchemaError

from contracts import (
    AssetDraft,
    AssetFocus,
    AssetState,
    AssetType,
    BrainContentItem,
    CircleStatus,
    CommandResult,
    CompletionSummary,
    JourneyRecord,
    Offer,
    Problem,
    RuleViolation,
    Solution,
    Step,
    WorkflowPhase,
    WorkflowView,
)
from config import Settings
from errors import ExternalServiceError, IntegrityViolation, JourneyCircleError, ValidationError
from projector import project
from providers.content_generator import GenerationService
from store import JourneyRepository, StepDataStore
from workflow.generation import GenerationCoordinator
from workflow.state_machine import WorkflowStateMachine

logger = logging.getLogger(__name__)


class JourneyCircleSession:
    """One editing session over one journey circle."""

    def __init__(
        self,
        repository: JourneyRepository,
        settings: Optional[Settings] = None,
        generator: Optional[GenerationService] = None,
        client_id: Optional[int] = None,
        record: Optional[JourneyRecord] = None,
    ):
        """Initialize the session.

        Args:
            repository: Persistence collaborator (also hands out ids)
            settings: Session-scoped configuration
            generator: Content-generation service; AI commands fail without one
            client_id: Client the circle is authored for
            record: Previously saved state to resume from
        """
        self.repository = repository
        self.settings = settings or Settings()
        self.client_id = client_id

        self.store = StepDataStore(
            max_problems=self.settings.max_problems,
            id_allocator=repository.next_id,
            snapshot=record.snapshot if record else None,
        )
        if record is None:
            self.store.circle.client_id = client_id

        self.machine = WorkflowStateMachine(
            self.store,
            self.settings,
            current_step=record.current_step if record else Step.BRAIN_CONTENT,
            highest_validated_step=record.highest_validated_step if record else 0,
            phase=record.phase if record else WorkflowPhase.IN_PROGRESS,
        )
        self.generator = generator
        self.coordinator = (
            GenerationCoordinator(self.machine, self.store, generator, self.settings) if generator else None
        )

    @classmethod
    def resume(
        cls,
        repository: JourneyRepository,
        service_area_id: int,
        settings: Optional[Settings] = None,
        generator: Optional[GenerationService] = None,
    ) -> Optional["JourneyCircleSession"]:
        """Open a session on the saved circle of a service area, or None if there is none."""
        record = repository.load(service_area_id)
        if record is None:
            return None
        return cls(
            repository,
            settings=settings,
            generator=generator,
            client_id=record.snapshot.circle.client_id,
            record=record,
        )

    # ------------------------------------------------------------------
    # Result plumbing
    # ------------------------------------------------------------------

    def _execute(self, command: Callable[[], Any]) -> CommandResult:
        try:
            value = command()
        except (JourneyCircleError, SchemaError) as e:
            return self._failure(e)
        return self._success(value)

    async def _execute_async(self, command: Callable[[], Awaitable[Any]]) -> CommandResult:
        try:
            value = await command()
        except (JourneyCircleError, SchemaError) as e:
            return self._failure(e)
        return self._success(value)

    def _success(self, value: Any) -> CommandResult:
        if isinstance(value, Step):
            entity_id = None
        elif isinstance(value, int):
            entity_id = value
        else:
            entity_id = getattr(value, "id", None)
        return CommandResult(ok=True, view=self.view(), entity_id=entity_id)

    def _failure(self, error: Exception) -> CommandResult:
        if isinstance(error, SchemaError):
            error = ValidationError([
                RuleViolation(step=self.machine.current_step, rule="invalid_input", message=e["msg"])
                for e in error.errors()
            ])
        logger.info("Command failed (%s): %s", error.kind.value, error)
        return CommandResult(ok=False, error=error.to_info(), view=self.view())

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def advance(self) -> CommandResult:
        """Validate the current step and move forward, persisting the circle."""
        return self._execute(self._advance)

    def _advance(self) -> Step:
        step = self.machine.current_step
        highest = self.machine.highest_validated_step
        phase = self.machine.phase
        status = self.store.circle.status
        self.machine.advance()
        try:
            if step == Step.SERVICE_AREA and self.store.circle.id is None:
                self._commit_circle()
            if self.store.circle.id is not None:
                self.repository.save(self.record())
        except JourneyCircleError:
            # Persistence hand-off failed: stay where we were
            self.machine.restore_position(step, highest, phase)
            self.store.set_status(status)
            raise
        return self.machine.current_step

    def _commit_circle(self) -> None:
        """Create the circle for the selected service area (the step 2 commit)."""
        service_area_id = self.store.circle.service_area_id
        area = self.repository.get_service_area(service_area_id)
        if area is None:
            raise IntegrityViolation(f"Service area {service_area_id} does not exist")
        circle_id = self.repository.create_circle(service_area_id)
        self.store.attach_circle(circle_id, area)
        logger.info("Created journey circle %s for service area %s", circle_id, service_area_id)

    def retreat(self) -> CommandResult:
        return self._execute(self.machine.retreat)

    def jump_to(self, step: int) -> CommandResult:
        return self._execute(lambda: self.machine.jump_to(step))

    def set_step_data(self, key: str, value: Any) -> CommandResult:
        """Replace a step-scoped value (see ``store.STEP_KEYS``)."""
        def command() -> None:
            try:
                self.store.set(key, value)
            except KeyError as e:
                raise IntegrityViolation(f"Unknown step data key: {key}") from e
        return self._execute(command)

    def remove_entity(self, entity_id: int) -> CommandResult:
        """Remove a problem, solution, offer, asset or brain content item (cascading)."""
        return self._execute(lambda: self.store.remove_child(entity_id)[0])

    # ------------------------------------------------------------------
    # Steps 1-4
    # ------------------------------------------------------------------

    def add_brain_content(self, content_type: str, value: str, title: str = "") -> CommandResult:
        return self._execute(lambda: self.store.append_child(
            self.store.circle.id,
            BrainContentItem(type=content_type, value=value, title=title),
        ))

    def create_service_area(self, title: str) -> CommandResult:
        """Create a new service area and select it."""
        def command():
            if self.store.circle.id is not None:
                raise IntegrityViolation("This session's journey circle already has a service area")
            area = self.repository.create_service_area(title, client_id=self.client_id)
            self.store.select_service_area(area)
            return area
        return self._execute(command)

    def select_service_area(self, service_area_id: int) -> CommandResult:
        """Select an existing service area that does not have a circle yet."""
        def command():
            area = self.repository.get_service_area(service_area_id)
            if area is None:
                raise IntegrityViolation(f"Service area {service_area_id} does not exist")
            if self.repository.has_circle(service_area_id) and self.store.circle.service_area_id != service_area_id:
                raise IntegrityViolation(
                    f"Service area {service_area_id} already has a journey circle; resume it instead"
                )
            self.store.select_service_area(area)
            return area
        return self._execute(command)

    def set_industries(self, industry_ids: List[int]) -> CommandResult:
        return self.set_step_data("industries", industry_ids)

    # ------------------------------------------------------------------
    # Steps 5-7
    # ------------------------------------------------------------------

    def add_problem(
        self,
        title: str,
        description: str = "",
        position: Optional[int] = None,
        is_primary: bool = False,
    ) -> CommandResult:
        return self._execute(lambda: self.store.append_child(
            self.store.circle.id,
            Problem(title=title, description=description, position=position, is_primary=is_primary),
        ))

    def confirm_problem_suggestion(self, index: int, is_primary: bool = False) -> CommandResult:
        """Turn a generated problem title into a problem."""
        def command():
            suggestions = self.store.get("problem_suggestions")
            if not 0 <= index < len(suggestions):
                raise IntegrityViolation(f"No problem suggestion at index {index}")
            chosen = suggestions.pop(index)
            problem = self.store.append_child(
                self.store.circle.id,
                Problem(title=chosen.title, description=chosen.description, is_primary=is_primary),
            )
            self.store.set("problem_suggestions", suggestions)
            return problem
        return self._execute(command)

    def set_primary_problem(self, problem_id: int) -> CommandResult:
        return self._execute(lambda: self.store.set_primary(problem_id))

    def add_solution(self, problem_id: int, title: str, description: str = "") -> CommandResult:
        return self._execute(lambda: self.store.append_child(
            problem_id, Solution(title=title, description=description)
        ))

    def confirm_solution_suggestion(self, problem_id: int, index: int) -> CommandResult:
        """Turn a generated solution title into the problem's solution."""
        def command():
            all_suggestions = self.store.get("solution_suggestions")
            suggestions = all_suggestions.get(problem_id, [])
            if not 0 <= index < len(suggestions):
                raise IntegrityViolation(f"No solution suggestion at index {index} for problem {problem_id}")
            chosen = suggestions.pop(index)
            solution = self.store.append_child(
                problem_id, Solution(title=chosen.title, description=chosen.description)
            )
            self.store.set("solution_suggestions", all_suggestions)
            return solution
        return self._execute(command)

    # ------------------------------------------------------------------
    # Steps 8-10
    # ------------------------------------------------------------------

    def add_offer(self, solution_id: int, title: str, url: str, description: str = "") -> CommandResult:
        return self._execute(lambda: self.store.append_child(
            solution_id, Offer(title=title, url=url, description=description)
        ))

    def add_asset(
        self,
        problem_id: int,
        asset_type: str = AssetType.ARTICLE.value,
        focus: str = AssetFocus.PROBLEM.value,
    ) -> CommandResult:
        return self._execute(lambda: self.store.append_child(
            problem_id, AssetDraft(asset_type=asset_type, focus=focus)
        ))

    def approve_outline(self, asset_id: int) -> CommandResult:
        return self._execute(lambda: self._require_coordinator().approve_outline(asset_id))

    def approve_content(self, asset_id: int) -> CommandResult:
        return self._execute(lambda: self._require_coordinator().approve_content(asset_id))

    def publish_asset(self, asset_id: int, url: str) -> CommandResult:
        return self._execute(lambda: self._require_coordinator().publish(asset_id, url))

    # ------------------------------------------------------------------
    # AI generation
    # ------------------------------------------------------------------

    async def generate_problem_titles(self, force_refresh: bool = False) -> CommandResult:
        return await self._execute_async(
            lambda: self._require_coordinator().generate_problem_titles(force_refresh)
        )

    async def generate_solution_titles(self, problem_id: int, force_refresh: bool = False) -> CommandResult:
        return await self._execute_async(
            lambda: self._require_coordinator().generate_solution_titles(problem_id, force_refresh)
        )

    async def generate_outline(self, asset_id: int) -> CommandResult:
        return await self._execute_async(lambda: self._require_coordinator().generate_outline(asset_id))

    async def generate_content(self, asset_id: int, feedback: Optional[str] = None) -> CommandResult:
        return await self._execute_async(
            lambda: self._require_coordinator().generate_content(asset_id, feedback)
        )

    def cancel_generation(self) -> CommandResult:
        """Cancel the pending generation request; its result is never applied."""
        cancelled = self.coordinator.cancel() if self.coordinator else False
        return CommandResult(ok=cancelled, view=self.view())

    def _require_coordinator(self) -> GenerationCoordinator:
        if self.coordinator is None:
            raise ExternalServiceError("No content-generation service is configured for this session")
        return self.coordinator

    # ------------------------------------------------------------------
    # Views and persistence
    # ------------------------------------------------------------------

    def view(self) -> WorkflowView:
        """Build the view-model for the current state."""
        validation = self.machine.current_validation()
        step = self.machine.current_step
        return WorkflowView(
            current_step=step,
            step_label=step.label,
            phase=self.machine.phase,
            highest_validated_step=self.machine.highest_validated_step,
            accessible_steps=self.machine.accessible_steps(),
            progress_percent=round(self.machine.progress_percent(), 1),
            current_step_valid=validation.passed,
            violations=validation.violations,
            pending=self.machine.pending,
            rings=project(self.store.snapshot(), self.settings.max_problems),
        )

    def summary(self) -> CompletionSummary:
        snapshot = self.store.snapshot()
        return CompletionSummary(
            problem_count=len(snapshot.problems),
            solution_count=len(snapshot.solutions),
            offer_count=len(snapshot.offers),
            approved_asset_count=len(snapshot.assets_at_least(AssetState.APPROVED)),
            published_asset_count=len(snapshot.assets_at_least(AssetState.PUBLISHED)),
            is_complete=snapshot.circle.status == CircleStatus.COMPLETE,
        )

    def record(self) -> JourneyRecord:
        return JourneyRecord(
            snapshot=self.store.snapshot(),
            current_step=self.machine.current_step,
            highest_validated_step=self.machine.highest_validated_step,
            phase=self.machine.phase,
        )

    def save(self) -> CommandResult:
        """Persist the circle outside of a step transition."""
        def command() -> int:
            if self.store.circle.id is None:
                raise IntegrityViolation("The journey circle is created when step 2 is completed")
            return self.repository.save(self.record())
        return self._execute(command)
