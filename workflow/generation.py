"""Generation coordinator - asynchronous AI requests inside the workflow.

Every request:
1. puts the state machine into a ``<kind>_pending`` sub-state (asset drafts
   also move to ``outline_pending`` / ``content_pending``)
2. awaits the generation service with the configured timeout
3. applies the result only if the request completed; on timeout, failure or
   cancellation the prior state is restored and nothing is applied

Title regeneration replaces unconfirmed suggestions only; confirmed problems
and solutions are never touched.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from contracts import (
    AssetDraft,
    AssetState,
    Draft,
    GenerationKind,
    RuleViolation,
    Step,
    TitleSuggestion,
    is_absolute_url,
)
from config import Settings
from errors import ExternalServiceError, IllegalTransition, IntegrityViolation, ValidationError
from providers.content_generator import GenerationService
from store import StepDataStore
from workflow.state_machine import WorkflowStateMachine

logger = logging.getLogger(__name__)

# Brain content values are truncated before being sent as context
BRAIN_CONTENT_EXCERPT_CHARS = 1000


class GenerationCoordinator:
    """Runs generation requests against the aggregate of one session."""

    def __init__(
        self,
        machine: WorkflowStateMachine,
        store: StepDataStore,
        service: GenerationService,
        settings: Optional[Settings] = None,
    ):
        self.machine = machine
        self.store = store
        self.service = service
        self.settings = settings or machine.settings
        self._inflight: Optional[asyncio.Future] = None
        self._cancel_requested = False

    @property
    def is_running(self) -> bool:
        return self._inflight is not None

    def cancel(self) -> bool:
        """Cancel the in-flight request, if any. Returns True if one was cancelled."""
        if self._inflight is None or self._inflight.done():
            return False
        self._cancel_requested = True
        self._inflight.cancel()
        return True

    async def _request(
        self,
        label: str,
        kind: GenerationKind,
        context: Dict[str, Any],
        force_refresh: bool = False,
        rollback: Optional[Callable[[], None]] = None,
    ) -> Draft:
        """Await one generation call inside a pending sub-state.

        Raises:
            ExternalServiceError: On failure, timeout or cancellation via ``cancel()``
        """
        self.machine.begin_pending(label)
        self._cancel_requested = False
        try:
            self._inflight = asyncio.ensure_future(self.service.agenerate(kind, context, force_refresh))
            return await asyncio.wait_for(self._inflight, timeout=self.settings.generation_timeout_seconds)
        except asyncio.TimeoutError:
            self._rollback(rollback)
            raise ExternalServiceError(
                f"{kind.value} generation timed out after {self.settings.generation_timeout_seconds:g}s"
            ) from None
        except asyncio.CancelledError:
            self._rollback(rollback)
            if self._cancel_requested:
                logger.info("%s cancelled", label)
                raise ExternalServiceError(f"{kind.value} generation was cancelled") from None
            raise
        except ExternalServiceError:
            self._rollback(rollback)
            raise
        except Exception as e:
            self._rollback(rollback)
            raise ExternalServiceError(f"{kind.value} generation failed: {e}") from e
        finally:
            self._inflight = None
            self._cancel_requested = False
            self.machine.end_pending()

    def _rollback(self, rollback: Optional[Callable[[], None]]) -> None:
        if rollback is not None:
            rollback()

    # ------------------------------------------------------------------
    # Title suggestions
    # ------------------------------------------------------------------

    async def generate_problem_titles(self, force_refresh: bool = False) -> List[TitleSuggestion]:
        """Regenerate problem title suggestions for the circle."""
        confirmed = [p.title for p in self.store.get_problems()]
        context = {
            **self._circle_context(),
            "count": self.settings.problem_title_count,
            "exclude_titles": confirmed,
        }
        draft = await self._request("problem_titles_pending", GenerationKind.PROBLEM_TITLES, context, force_refresh)

        # Re-read confirmed titles: problems may have been confirmed while the request ran
        taken = {p.title.lower() for p in self.store.get_problems()}
        suggestions = [TitleSuggestion(title=t) for t in draft.titles if t.lower() not in taken]
        self.store.set("problem_suggestions", suggestions)
        return suggestions

    async def generate_solution_titles(self, problem_id: int, force_refresh: bool = False) -> List[TitleSuggestion]:
        """Regenerate solution title suggestions for one problem."""
        problem = self.store.get_problem(problem_id)
        if problem is None:
            raise IntegrityViolation(f"Problem {problem_id} does not exist")
        context = {
            **self._circle_context(),
            "problem": {"title": problem.title, "description": problem.description},
            "count": self.settings.solution_title_count,
        }
        draft = await self._request("solution_titles_pending", GenerationKind.SOLUTION_TITLES, context, force_refresh)

        if self.store.get_problem(problem_id) is None:
            logger.info("Problem %s was removed while its solution titles were generated", problem_id)
            return []
        solution = self.store.solution_for(problem_id)
        taken = {solution.title.lower()} if solution else set()
        suggestions = [TitleSuggestion(title=t) for t in draft.titles if t.lower() not in taken]
        all_suggestions = self.store.get("solution_suggestions")
        all_suggestions[problem_id] = suggestions
        self.store.set("solution_suggestions", all_suggestions)
        return suggestions

    # ------------------------------------------------------------------
    # Asset drafts
    # ------------------------------------------------------------------

    async def generate_outline(self, asset_id: int) -> AssetDraft:
        """none/outline_ready -> outline_pending -> outline_ready."""
        asset = self._asset(asset_id)
        if asset.state not in (AssetState.NONE, AssetState.OUTLINE_READY):
            raise IllegalTransition(f"Cannot generate an outline for an asset in state '{asset.state.value}'")

        context = self._asset_context(asset)
        draft = await self._run_asset_request(asset, AssetState.OUTLINE_PENDING, GenerationKind.OUTLINE, context)
        return self._apply_to_asset(
            asset_id,
            AssetState.OUTLINE_PENDING,
            {"state": AssetState.OUTLINE_READY, "outline": draft.outline, "outline_approved": False},
        )

    def approve_outline(self, asset_id: int) -> AssetDraft:
        """Explicit user approval of the outline gate."""
        asset = self._asset(asset_id)
        if asset.state != AssetState.OUTLINE_READY:
            raise IllegalTransition(f"Cannot approve an outline for an asset in state '{asset.state.value}'")
        return self.store.update_child(asset.model_copy(update={"outline_approved": True}))

    async def generate_content(self, asset_id: int, feedback: Optional[str] = None) -> AssetDraft:
        """Approved outline -> content_pending -> content_ready (also revises ready content)."""
        asset = self._asset(asset_id)
        if asset.state == AssetState.OUTLINE_READY and not asset.outline_approved:
            raise IllegalTransition("The outline must be approved before content is generated")
        if asset.state not in (AssetState.OUTLINE_READY, AssetState.CONTENT_READY):
            raise IllegalTransition(f"Cannot generate content for an asset in state '{asset.state.value}'")

        context = self._asset_context(asset)
        if feedback:
            context["feedback"] = feedback
            context["existing_content"] = asset.content
        draft = await self._run_asset_request(asset, AssetState.CONTENT_PENDING, GenerationKind.CONTENT, context)
        return self._apply_to_asset(
            asset_id,
            AssetState.CONTENT_PENDING,
            {"state": AssetState.CONTENT_READY, "content": draft.content},
        )

    def approve_content(self, asset_id: int) -> AssetDraft:
        """Explicit user approval of the content gate."""
        asset = self._asset(asset_id)
        if asset.state != AssetState.CONTENT_READY:
            raise IllegalTransition(f"Cannot approve content for an asset in state '{asset.state.value}'")
        return self.store.update_child(asset.model_copy(update={"state": AssetState.APPROVED}))

    def publish(self, asset_id: int, url: str) -> AssetDraft:
        """approved -> published, recording where the asset went live."""
        asset = self._asset(asset_id)
        if asset.state != AssetState.APPROVED:
            raise IllegalTransition(f"Only approved assets can be published (state '{asset.state.value}')")
        if not is_absolute_url(url):
            raise ValidationError([RuleViolation(
                step=Step.LINK_ASSETS,
                rule="published_url",
                message=f"'{url}' is not a valid URL. Enter a full address such as https://example.com.",
            )])
        return self.store.update_child(
            asset.model_copy(update={"state": AssetState.PUBLISHED, "published_url": url.strip()})
        )

    async def _run_asset_request(
        self,
        asset: AssetDraft,
        pending_state: AssetState,
        kind: GenerationKind,
        context: Dict[str, Any],
    ) -> Draft:
        if self.machine.pending is not None:
            raise IllegalTransition(f"Cannot start {pending_state.value}: already {self.machine.pending}")

        previous = asset.model_copy()
        self.store.update_child(asset.model_copy(update={"state": pending_state}))

        def rollback() -> None:
            current = self.store.get_asset(previous.id)
            if current is not None and current.state == pending_state:
                self.store.update_child(previous)

        return await self._request(pending_state.value, kind, context, rollback=rollback)

    def _apply_to_asset(self, asset_id: int, pending_state: AssetState, changes: Dict[str, Any]) -> AssetDraft:
        current = self.store.get_asset(asset_id)
        if current is None:
            raise IntegrityViolation(f"Asset {asset_id} was removed while it was being generated")
        if current.state != pending_state:
            raise IntegrityViolation(f"Asset {asset_id} changed while it was being generated")
        return self.store.update_child(current.model_copy(update=changes))

    def _asset(self, asset_id: int) -> AssetDraft:
        asset = self.store.get_asset(asset_id)
        if asset is None:
            raise IntegrityViolation(f"Asset {asset_id} does not exist")
        return asset

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def _circle_context(self) -> Dict[str, Any]:
        snapshot = self.store.snapshot()
        return {
            "service_area": snapshot.service_area.title if snapshot.service_area else None,
            "industries": list(snapshot.circle.industries),
            "brain_content": [
                {"type": item.type.value, "title": item.title, "value": item.value[:BRAIN_CONTENT_EXCERPT_CHARS]}
                for item in snapshot.circle.brain_content
            ],
        }

    def _asset_context(self, asset: AssetDraft) -> Dict[str, Any]:
        problem = self.store.get_problem(asset.problem_id)
        solution = self.store.solution_for(asset.problem_id)
        return {
            **self._circle_context(),
            "asset_type": asset.asset_type.value,
            "focus": asset.focus.value,
            "problem": problem.title if problem else None,
            "solution": solution.title if solution else None,
            "outline": asset.outline,
        }
