"""Step validators.

Each validator is a pure function over a ``JourneySnapshot`` returning the
violated rules for its step. An empty list means the step passes.
"""

from typing import Callable, Dict, List, Optional

from contracts import (
    AssetState,
    BrainContentType,
    JourneySnapshot,
    RuleViolation,
    Step,
    StepValidation,
    is_absolute_url,
)
from config import OfferPolicy, Settings

Validator = Callable[[JourneySnapshot, Settings], List[RuleViolation]]


def _violation(step: Step, rule: str, message: str) -> RuleViolation:
    return RuleViolation(step=step, rule=rule, message=message)


def validate_brain_content(snapshot: JourneySnapshot, settings: Settings) -> List[RuleViolation]:
    """Any number of items is allowed, but URL items must be well-formed."""
    return [
        _violation(
            Step.BRAIN_CONTENT,
            "brain_content_url",
            f"'{item.value}' is not a valid URL. Enter a full address such as https://example.com.",
        )
        for item in snapshot.circle.brain_content
        if item.type == BrainContentType.URL and not is_absolute_url(item.value)
    ]


def validate_service_area(snapshot: JourneySnapshot, settings: Settings) -> List[RuleViolation]:
    if snapshot.circle.service_area_id is None:
        return [_violation(
            Step.SERVICE_AREA,
            "service_area_required",
            "Please select or create a service area before proceeding.",
        )]
    return []


def validate_optional(snapshot: JourneySnapshot, settings: Settings) -> List[RuleViolation]:
    return []


def validate_industries(snapshot: JourneySnapshot, settings: Settings) -> List[RuleViolation]:
    if not snapshot.circle.industries:
        return [_violation(
            Step.INDUSTRIES,
            "industry_required",
            "Please select at least one industry before proceeding.",
        )]
    return []


def validate_primary_problem(snapshot: JourneySnapshot, settings: Settings) -> List[RuleViolation]:
    primaries = [p for p in snapshot.problems if p.is_primary]
    if len(primaries) == 1:
        return []
    if not primaries:
        message = "Please designate a primary problem before proceeding."
    else:
        message = f"Only one problem can be primary; {len(primaries)} are marked primary."
    return [_violation(Step.PRIMARY_PROBLEM, "single_primary_problem", message)]


def validate_problem_titles(snapshot: JourneySnapshot, settings: Settings) -> List[RuleViolation]:
    count = len(snapshot.problems)
    if count != settings.max_problems:
        return [_violation(
            Step.PROBLEM_TITLES,
            "problem_count",
            f"Please select exactly {settings.max_problems} problem titles before proceeding "
            f"({count} selected).",
        )]
    return []


def validate_solution_titles(snapshot: JourneySnapshot, settings: Settings) -> List[RuleViolation]:
    violations = validate_problem_titles(snapshot, settings)
    violations = [v.model_copy(update={"step": Step.SOLUTION_TITLES}) for v in violations]
    for problem in snapshot.ordered_problems():
        if snapshot.solution_for(problem.id) is None:
            violations.append(_violation(
                Step.SOLUTION_TITLES,
                "solution_required",
                f"Please select a solution for '{problem.title}'.",
            ))
    return violations


def validate_offer_mapping(snapshot: JourneySnapshot, settings: Settings) -> List[RuleViolation]:
    policy = settings.offer_policy
    if policy == OfferPolicy.NONE:
        return []

    solutions = [s for s in snapshot.solutions if s.problem_id is not None]
    if policy == OfferPolicy.ANY:
        if not any(snapshot.offers_for(s.id) for s in solutions):
            return [_violation(
                Step.OFFER_MAPPING,
                "offer_required",
                "Please add at least one offer before proceeding.",
            )]
        return []

    violations = []
    for solution in solutions:
        if not snapshot.offers_for(solution.id):
            violations.append(_violation(
                Step.OFFER_MAPPING,
                "offer_per_solution",
                f"Please map at least one offer to '{solution.title}'.",
            ))
    if not solutions:
        violations.append(_violation(
            Step.OFFER_MAPPING,
            "offer_required",
            "Please add at least one offer before proceeding.",
        ))
    return violations


def validate_asset_creation(snapshot: JourneySnapshot, settings: Settings) -> List[RuleViolation]:
    if not snapshot.assets_at_least(AssetState.APPROVED):
        return [_violation(
            Step.ASSET_CREATION,
            "approved_asset_required",
            "Please approve at least one generated asset before proceeding.",
        )]
    return []


STEP_VALIDATORS: Dict[Step, Validator] = {
    Step.BRAIN_CONTENT: validate_brain_content,
    Step.SERVICE_AREA: validate_service_area,
    Step.EXISTING_ASSETS: validate_optional,
    Step.INDUSTRIES: validate_industries,
    Step.PRIMARY_PROBLEM: validate_primary_problem,
    Step.PROBLEM_TITLES: validate_problem_titles,
    Step.SOLUTION_TITLES: validate_solution_titles,
    Step.OFFER_MAPPING: validate_offer_mapping,
    Step.ASSET_CREATION: validate_asset_creation,
    Step.LINK_ASSETS: validate_optional,
    Step.COMPLETE: validate_optional,
}


def validate_step(
    step: Step,
    snapshot: JourneySnapshot,
    settings: Optional[Settings] = None,
) -> StepValidation:
    """Run the validator for one step.

    Args:
        step: Step to validate
        snapshot: Aggregate contents
        settings: Session settings (max problems, offer policy)

    Returns:
        StepValidation with every violated rule
    """
    settings = settings or Settings()
    step = Step(step)
    return StepValidation(step=step, violations=STEP_VALIDATORS[step](snapshot, settings))


def validate_all(snapshot: JourneySnapshot, settings: Optional[Settings] = None) -> List[StepValidation]:
    """Run every step validator, in step order."""
    settings = settings or Settings()
    return [validate_step(step, snapshot, settings) for step in Step]
