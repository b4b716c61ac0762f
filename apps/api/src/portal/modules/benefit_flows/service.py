"""
Benefit Flows Service Layer

Business logic for the multi-step application and renewal wizards.
Orchestrates repository operations, variant resolution and step guarding.

This module implements:
1. Start Flow:
   - Pick the application context (intake or renewal period)
   - Create fresh state with the year's reference data
   - Point the user at the first step

2. Step Load / Save:
   - Reject steps the user has not reached yet (redirect to the furthest step)
   - Accept only the fields belonging to the submitted step
   - Drop partner information when the marital status no longer needs it
   - Advance linearly, or back to review when in edit mode

3. Review / Submit / Exit:
   - Review is reachable only once every step is complete; loading it turns
     edit mode on, failing to reach it turns edit mode off
   - Final submission hands the state to the submitter, then clears it
   - Exit clears the state and returns to the recovery page

4. Children:
   - Add, edit and remove children for variants with a children step; other
     variants redirect to their furthest step
   - Each child has its own guarded step sequence

Navigation failures (stale links, skipped steps, expired state) are returned
as Redirect outcomes. Service errors carry an error code and HTTP status for
the router to translate.
"""

import logging
from dataclasses import dataclass
from typing import Protocol
from uuid import uuid4

from portal.core.config import settings
from portal.core.session import Session
from portal.modules.benefit_flows import repository
from portal.modules.benefit_flows.checks import is_partnered_marital_status
from portal.modules.benefit_flows.helpers import get_children_state
from portal.modules.benefit_flows.keys import is_valid_flow_id
from portal.modules.benefit_flows.models import (
    ApplicationYear,
    ChildState,
    ChildStateUpdate,
    FlowState,
    FlowStateUpdate,
    IdSource,
    TypeOfApplication,
)
from portal.modules.benefit_flows.navigator import (
    REVIEW_ROUTE_ID,
    get_furthest_route_id,
    get_next_route_id,
    guard_step,
)
from portal.modules.benefit_flows.outcomes import FlowOutcome, Loaded, Redirect
from portal.modules.benefit_flows.repository import FlowStateParams
from portal.modules.benefit_flows.variants import (
    CHILD_ROUTE_IDS,
    DELEGATE_ROUTE_ID,
    ENTRY_ROUTE_IDS,
    FlowFamily,
    FlowVariant,
    resolve_flow_variant,
    validate_flow_context,
)

logger = logging.getLogger(__name__)

CHILDREN_ROUTE_ID = "children"

# Fields each step may write
STEP_FIELDS: dict[str, frozenset[str]] = {
    "type-of-application": frozenset({"type_of_application"}),
    "terms-and-conditions": frozenset({"terms_and_conditions"}),
    "applicant-information": frozenset({"applicant_information"}),
    "marital-status": frozenset({"marital_status", "partner_information"}),
    "phone-number": frozenset({"phone_number"}),
    "address": frozenset(
        {"mailing_address", "home_address", "is_home_address_same_as_mailing_address"}
    ),
    "communication-preferences": frozenset({"communication_preferences", "email", "email_verified"}),
    "dental-insurance": frozenset({"dental_insurance"}),
    "dental-benefits": frozenset({"dental_benefits"}),
    # Children are edited through their own routes
    CHILDREN_ROUTE_ID: frozenset(),
}

CHILD_STEP_FIELDS: dict[str, frozenset[str]] = {
    "information": frozenset({"information"}),
    "dental-insurance": frozenset({"dental_insurance"}),
    "dental-benefits": frozenset({"dental_benefits"}),
}

# Every route a flow page can be requested under
FLOW_ROUTE_IDS = frozenset(STEP_FIELDS) | {DELEGATE_ROUTE_ID}


# =============================================================================
# Exceptions
# =============================================================================


class FlowServiceError(Exception):
    """Base exception for flow service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class FlowFamilyNotFoundError(FlowServiceError):
    """Raised when a route names a flow family that does not exist."""

    def __init__(self, name: str):
        super().__init__(
            message=f"Flow {name} not found",
            error_code="FLOW_NOT_FOUND",
            status_code=404,
        )


class UnknownStepError(FlowServiceError):
    """Raised when a route names a step no flow has."""

    def __init__(self, route_id: str):
        super().__init__(
            message=f"Step {route_id} not found",
            error_code="STEP_NOT_FOUND",
            status_code=404,
        )


class InvalidStepDataError(FlowServiceError):
    """Raised when a step submission carries fields of another step."""

    def __init__(self, route_id: str, fields: set[str]):
        super().__init__(
            message=f"Fields not accepted by step {route_id}: {', '.join(sorted(fields))}",
            error_code="INVALID_STEP_DATA",
            status_code=422,
        )


class SubmissionFailedError(FlowServiceError):
    """Raised when the downstream submission fails; the flow is kept."""

    def __init__(self):
        super().__init__(
            message="The application could not be submitted. Please try again later.",
            error_code="SUBMISSION_FAILED",
            status_code=502,
        )


class MalformedFlowStateError(FlowServiceError):
    """Raised when stored flow state cannot be read back."""

    def __init__(self):
        super().__init__(
            message="The application data is invalid. Please start again.",
            error_code="MALFORMED_FLOW_STATE",
            status_code=400,
        )


# =============================================================================
# Collaborators and results
# =============================================================================


class ApplicationSubmitter(Protocol):
    """Downstream benefit-submission client."""

    async def submit(self, state: FlowState) -> str:
        """Submit a completed application and return its confirmation code."""
        ...


@dataclass(frozen=True)
class FlowStarted:
    state: FlowState
    next_url: str


@dataclass(frozen=True)
class FlowSubmitted:
    flow_id: str
    confirmation_code: str
    tag: str


@dataclass(frozen=True)
class StepView:
    """A reachable step: the state to pre-fill it with and its variant."""

    state: FlowState
    variant: FlowVariant
    route_id: str


@dataclass(frozen=True)
class ChildStepView:
    state: FlowState
    variant: FlowVariant
    child: ChildState
    route_id: str


# =============================================================================
# URLs
# =============================================================================


def _flow_base_url(family: FlowFamily, lang: str, flow_id: str) -> tuple[str, str]:
    """Get a flow's base path and the query string carrying its id."""
    base = f"{settings.api_v1_prefix}/{lang}/flows/{family.name}"
    if family.id_source is IdSource.QUERY:
        return base, f"?id={flow_id}"
    return f"{base}/{flow_id}", ""


def build_step_url(family: FlowFamily, lang: str, flow_id: str, route_id: str) -> str:
    """Build the URL of a flow step (or of the review page)."""
    base, query = _flow_base_url(family, lang, flow_id)
    if route_id == REVIEW_ROUTE_ID:
        return f"{base}/{REVIEW_ROUTE_ID}{query}"
    return f"{base}/steps/{route_id}{query}"


def build_child_step_url(
    family: FlowFamily, lang: str, flow_id: str, child_id: str, route_id: str
) -> str:
    base, query = _flow_base_url(family, lang, flow_id)
    return f"{base}/children/{child_id}/steps/{route_id}{query}"


def get_application_year() -> ApplicationYear:
    """Get the application year a new flow is started for."""
    return ApplicationYear(
        application_year_id=settings.application_year_id,
        tax_year=settings.tax_year,
        coverage_start_date=settings.coverage_start_date,
        dependent_eligibility_end_date=settings.dependent_eligibility_end_date,
    )


# =============================================================================
# Internal helpers
# =============================================================================


async def _load_flow(session: Session, family: FlowFamily, params: FlowStateParams) -> FlowOutcome:
    try:
        outcome = await repository.load(session, family, params)
    except repository.MalformedFlowStateError as e:
        raise MalformedFlowStateError() from e
    if isinstance(outcome, Redirect):
        return outcome
    return validate_flow_context(family, outcome.state, params.lang)


def _step_url_builder(family: FlowFamily, params: FlowStateParams, state: FlowState):
    return lambda route_id: build_step_url(family, params.lang, state.id, route_id)


def _redirect_to_furthest_step(
    family: FlowFamily, params: FlowStateParams, state: FlowState, variant: FlowVariant
) -> Redirect:
    route_id = get_furthest_route_id(state, variant.steps)
    return Redirect(
        url=build_step_url(family, params.lang, state.id, route_id),
        reason=f"step not part of {variant.tag}",
    )


def _check_step_fields(route_id: str, fields: set[str], allowed: dict[str, frozenset[str]]) -> None:
    if route_id not in allowed:
        raise UnknownStepError(route_id)
    extra = fields - allowed[route_id]
    if extra:
        raise InvalidStepDataError(route_id, extra)


async def _save(
    session: Session,
    family: FlowFamily,
    params: FlowStateParams,
    changes: FlowStateUpdate,
    remove: str | None = None,
) -> FlowState:
    outcome = await repository.save(session, family, params, changes, remove)
    # The flow was loaded earlier in the same request
    assert isinstance(outcome, Loaded), "flow state disappeared during the request"
    return outcome.state


# =============================================================================
# Start
# =============================================================================


async def start_flow(session: Session, family: FlowFamily, lang: str) -> FlowStarted:
    """
    Start a new flow instance for a family.

    Returns:
        FlowStarted with the new state and the URL of its first step
    """
    state = await repository.start(
        session,
        family,
        str(uuid4()),
        context=family.get_start_context(),
        application_year=get_application_year(),
    )
    logger.info(
        f"Started {family.name} flow in {state.context.value} context; sessionId: [{session.id}]"
    )
    return FlowStarted(
        state=state,
        next_url=build_step_url(family, lang, state.id, ENTRY_ROUTE_IDS[0]),
    )


# =============================================================================
# Steps
# =============================================================================


async def load_step(
    session: Session,
    family: FlowFamily,
    params: FlowStateParams,
    route_id: str,
) -> Loaded | Redirect:
    """
    Load a step if the user has reached it.

    Returns:
        Loaded(StepView), or a Redirect to the recovery page, the furthest
        reachable step or the delegate page

    Raises:
        UnknownStepError: If no flow has the step.
    """
    if route_id not in FLOW_ROUTE_IDS:
        raise UnknownStepError(route_id)

    outcome = await _load_flow(session, family, params)
    if isinstance(outcome, Redirect):
        return outcome
    state = outcome.state
    variant = resolve_flow_variant(family, state)
    is_delegate = state.type_of_application is TypeOfApplication.DELEGATE

    if route_id == DELEGATE_ROUTE_ID:
        if is_delegate:
            return Loaded(StepView(state=state, variant=variant, route_id=route_id))
        return _redirect_to_furthest_step(family, params, state, variant)

    # Delegates leave the wizard; only the type question stays open to them
    if is_delegate and route_id != ENTRY_ROUTE_IDS[0]:
        return Redirect(
            url=build_step_url(family, params.lang, state.id, DELEGATE_ROUTE_ID),
            reason="application made by a delegate",
        )

    if route_id not in variant.route_ids:
        return _redirect_to_furthest_step(family, params, state, variant)

    outcome = guard_step(state, variant.steps, route_id, _step_url_builder(family, params, state))
    if isinstance(outcome, Redirect):
        logger.info(f"{outcome.reason}; sessionId: [{session.id}]")
        return outcome
    return Loaded(StepView(state=state, variant=variant, route_id=route_id))


async def save_step(
    session: Session,
    family: FlowFamily,
    params: FlowStateParams,
    route_id: str,
    changes: FlowStateUpdate,
) -> Redirect:
    """
    Save a step's answers and get where to go next.

    Returns:
        Redirect to the next step (review when in edit mode), or to wherever
        the user must go when the step is not reachable

    Raises:
        UnknownStepError: If no flow has the step.
        InvalidStepDataError: If changes carry fields of another step.
    """
    _check_step_fields(route_id, changes.model_fields_set, STEP_FIELDS)

    outcome = await load_step(session, family, params, route_id)
    if isinstance(outcome, Redirect):
        return outcome
    state = outcome.state

    remove = None
    if route_id == "marital-status" and not is_partnered_marital_status(changes.marital_status):
        remove = "partner_information"

    state = await _save(session, family, params, changes, remove)

    if state.type_of_application is TypeOfApplication.DELEGATE:
        return Redirect(
            url=build_step_url(family, params.lang, state.id, DELEGATE_ROUTE_ID),
            reason="application made by a delegate",
        )

    # The answer to the type question may switch the variant
    variant = resolve_flow_variant(family, state)
    next_route_id = get_next_route_id(variant.steps, route_id, state.edit_mode)
    return Redirect(
        url=build_step_url(family, params.lang, state.id, next_route_id),
        reason=f"{route_id} saved",
    )


# =============================================================================
# Review, submit, exit
# =============================================================================


async def load_review(
    session: Session,
    family: FlowFamily,
    params: FlowStateParams,
) -> Loaded | Redirect:
    """
    Load the review page.

    Reaching it turns edit mode on so later step saves come back here;
    being sent away from it turns edit mode off.

    Returns:
        Loaded(StepView), or a Redirect to the furthest reachable step
    """
    outcome = await _load_flow(session, family, params)
    if isinstance(outcome, Redirect):
        return outcome
    state = outcome.state
    variant = resolve_flow_variant(family, state)

    outcome = guard_step(
        state, variant.steps, REVIEW_ROUTE_ID, _step_url_builder(family, params, state)
    )
    if isinstance(outcome, Redirect):
        if state.edit_mode:
            await _save(session, family, params, FlowStateUpdate(edit_mode=False))
        return outcome

    if not state.edit_mode:
        state = await _save(session, family, params, FlowStateUpdate(edit_mode=True))
    return Loaded(StepView(state=state, variant=variant, route_id=REVIEW_ROUTE_ID))


async def submit_flow(
    session: Session,
    family: FlowFamily,
    params: FlowStateParams,
    submitter: ApplicationSubmitter,
) -> Loaded | Redirect:
    """
    Submit a completed flow and clear it.

    New children that were never finished are left out of the submission.

    Returns:
        Loaded(FlowSubmitted), or a Redirect when the flow is unavailable or
        incomplete

    Raises:
        SubmissionFailedError: If the submitter fails; the flow is kept so the
            user can retry.
    """
    outcome = await load_review(session, family, params)
    if isinstance(outcome, Redirect):
        return outcome
    view = outcome.state

    submission = view.state.model_copy(
        update={"children": get_children_state(view.state.children)}
    )
    try:
        confirmation_code = await submitter.submit(submission)
    except Exception as e:
        logger.exception(f"Submission failed for {view.variant.tag}: {e}")
        raise SubmissionFailedError() from e

    await repository.clear(session, family, params)
    logger.info(f"Flow submitted: {view.variant.tag}; sessionId: [{session.id}]")
    return Loaded(
        FlowSubmitted(
            flow_id=view.state.id,
            confirmation_code=confirmation_code,
            tag=view.variant.tag,
        )
    )


async def exit_flow(session: Session, family: FlowFamily, params: FlowStateParams) -> Redirect:
    """Abandon a flow. Exiting an already cleared flow is not an error."""
    outcome = await repository.clear(session, family, params)
    if isinstance(outcome, Loaded):
        logger.info(f"Flow exited; sessionId: [{session.id}]")
    return Redirect(url=family.get_recovery_url(params.lang), reason="flow exited")


# =============================================================================
# Children
# =============================================================================


def _find_child(state: FlowState, child_id: str) -> ChildState | None:
    if not is_valid_flow_id(child_id):
        return None
    child_id = child_id.lower()
    return next((child for child in state.children if child.id == child_id), None)


async def add_child(session: Session, family: FlowFamily, params: FlowStateParams) -> Redirect:
    """Add an empty child and send the user to its first step."""
    outcome = await load_step(session, family, params, CHILDREN_ROUTE_ID)
    if isinstance(outcome, Redirect):
        return outcome
    state = outcome.state.state

    child = ChildState(id=str(uuid4()))
    await _save(session, family, params, FlowStateUpdate(children=[*state.children, child]))
    return Redirect(
        url=build_child_step_url(family, params.lang, state.id, child.id, CHILD_ROUTE_IDS[0]),
        reason="child added",
    )


async def load_child_step(
    session: Session,
    family: FlowFamily,
    params: FlowStateParams,
    child_id: str,
    route_id: str,
) -> Loaded | Redirect:
    """
    Load one child's step if the user has reached it.

    An unknown child sends the user back to the children step.

    Returns:
        Loaded(ChildStepView), or a Redirect

    Raises:
        UnknownStepError: If there is no such child step.
    """
    if route_id not in CHILD_STEP_FIELDS:
        raise UnknownStepError(route_id)

    outcome = await load_step(session, family, params, CHILDREN_ROUTE_ID)
    if isinstance(outcome, Redirect):
        return outcome
    view = outcome.state
    state = view.state

    child = _find_child(state, child_id)
    if child is None:
        logger.warning(f"Child {child_id!r} not found; sessionId: [{session.id}]")
        return Redirect(
            url=build_step_url(family, params.lang, state.id, CHILDREN_ROUTE_ID),
            reason="child not found",
        )

    outcome = guard_step(
        child,
        view.variant.child_steps,
        route_id,
        lambda child_route_id: build_child_step_url(
            family, params.lang, state.id, child.id, child_route_id
        ),
    )
    if isinstance(outcome, Redirect):
        return outcome
    return Loaded(
        ChildStepView(state=state, variant=view.variant, child=child, route_id=route_id)
    )


async def save_child_step(
    session: Session,
    family: FlowFamily,
    params: FlowStateParams,
    child_id: str,
    route_id: str,
    changes: ChildStateUpdate,
) -> Redirect:
    """
    Save one child's step and get where to go next.

    After the last child step the user returns to the children step, or to
    review when in edit mode.

    Raises:
        UnknownStepError: If there is no such child step.
        InvalidStepDataError: If changes carry fields of another step.
    """
    _check_step_fields(route_id, changes.model_fields_set, CHILD_STEP_FIELDS)

    outcome = await load_child_step(session, family, params, child_id, route_id)
    if isinstance(outcome, Redirect):
        return outcome
    view = outcome.state
    state = view.state

    updated_child = ChildState.model_validate(
        view.child.model_dump()
        | {name: getattr(changes, name) for name in changes.model_fields_set}
    )
    children = [updated_child if child.id == updated_child.id else child for child in state.children]
    state = await _save(session, family, params, FlowStateUpdate(children=children))

    next_route_id = get_next_route_id(view.variant.child_steps, route_id)
    if next_route_id != REVIEW_ROUTE_ID:
        url = build_child_step_url(family, params.lang, state.id, updated_child.id, next_route_id)
    elif state.edit_mode:
        url = build_step_url(family, params.lang, state.id, REVIEW_ROUTE_ID)
    else:
        url = build_step_url(family, params.lang, state.id, CHILDREN_ROUTE_ID)
    return Redirect(url=url, reason=f"child {route_id} saved")


async def remove_child(
    session: Session,
    family: FlowFamily,
    params: FlowStateParams,
    child_id: str,
) -> Redirect:
    """
    Remove a child and return to the children step. Removing a child that is
    already gone is not an error.
    """
    outcome = await load_step(session, family, params, CHILDREN_ROUTE_ID)
    if isinstance(outcome, Redirect):
        return outcome
    state = outcome.state.state

    child = _find_child(state, child_id)
    if child is not None:
        children = [c for c in state.children if c.id != child.id]
        await _save(session, family, params, FlowStateUpdate(children=children))
        logger.info(f"Child removed from flow; sessionId: [{session.id}]")

    return Redirect(
        url=build_step_url(family, params.lang, state.id, CHILDREN_ROUTE_ID),
        reason="child removed",
    )
