"""
Benefit Flows Router

API endpoints for the application and renewal wizards. Each endpoint serves
every flow family; families that carry the flow id in the path use the
"/{flow_id}/..." routes, the others pass it as the "id" query parameter.

Endpoints (relative to /{lang}/flows/{family}):
- POST  ""                                  - Start a flow
- GET   /steps/{step}                       - Load a step
- POST  /steps/{step}                       - Save a step
- GET   /review                             - Load the review page
- POST  /submit                             - Submit the application
- POST  /exit                               - Exit the application
- POST  /children                           - Add a child
- GET   /children/{child_id}/steps/{step}   - Load a child step
- POST  /children/{child_id}/steps/{step}   - Save a child step
- POST  /children/{child_id}/remove         - Remove a child

Navigation:
- Unreachable, stale or expired flows redirect (302 for GET, 303 for POST)
- Successful saves redirect (303) to the next step

Security:
- Every POST except start requires the session's CSRF token in a header
- The session cookie is HTTP-only
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import RedirectResponse

from portal.core.csrf import ensure_csrf_token, verify_csrf_token
from portal.core.session import Session, get_session
from portal.modules.benefit_flows import service
from portal.modules.benefit_flows.helpers import SUPPORTED_LANGUAGES, get_flow_id_from_request
from portal.modules.benefit_flows.models import ChildStateUpdate, FlowStateUpdate
from portal.modules.benefit_flows.outcomes import Redirect
from portal.modules.benefit_flows.repository import FlowStateParams
from portal.modules.benefit_flows.schemas import (
    ChildStepResponse,
    FlowStartResponse,
    StepResponse,
    SubmissionResponse,
)
from portal.modules.benefit_flows.service import (
    ApplicationSubmitter,
    FlowFamilyNotFoundError,
    FlowServiceError,
)
from portal.modules.benefit_flows.variants import FlowFamily, get_flow_family

logger = logging.getLogger(__name__)

router = APIRouter()

FLOW = "/{lang}/flows/{family}"
PATH_FLOW = FLOW + "/{flow_id}"


# =============================================================================
# Dependencies
# =============================================================================


def get_lang(lang: str) -> str:
    if lang not in SUPPORTED_LANGUAGES:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "LANGUAGE_NOT_FOUND", "message": f"Language {lang} not supported"},
        )
    return lang


def get_family(family: str) -> FlowFamily:
    flow_family = get_flow_family(family)
    if flow_family is None:
        raise _to_http_exception(FlowFamilyNotFoundError(family))
    return flow_family


def get_flow_params(
    request: Request,
    lang: str = Depends(get_lang),
    family: FlowFamily = Depends(get_family),
) -> FlowStateParams:
    """Read the (unvalidated) flow id from wherever the family carries it."""
    return FlowStateParams(flow_id=get_flow_id_from_request(request, family.id_source), lang=lang)


def get_application_submitter(request: Request) -> ApplicationSubmitter:
    """Get the submitter registered on the application."""
    submitter = getattr(request.app.state, "application_submitter", None)
    if submitter is None:
        logger.error("No application submitter registered")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "SUBMISSION_UNAVAILABLE",
                "message": "Applications cannot be submitted right now. Please try again later.",
            },
        )
    return submitter


# =============================================================================
# Helpers
# =============================================================================


def _to_http_exception(e: FlowServiceError) -> HTTPException:
    return HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    )


def _redirect(outcome: Redirect, response: Response, status_code: int) -> RedirectResponse:
    """Turn a Redirect outcome into a response, keeping cookies set by dependencies."""
    redirect = RedirectResponse(url=outcome.url, status_code=status_code)
    for cookie in response.headers.getlist("set-cookie"):
        redirect.headers.append("set-cookie", cookie)
    return redirect


# =============================================================================
# Start
# =============================================================================


@router.post(
    FLOW,
    response_model=FlowStartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start Flow",
    description="""
Start a new application or renewal flow.

Returns the flow id, the session's CSRF token (to send in the CSRF header on
every later POST) and the URL of the first step. Renewal-only flows, and
flows started during the renewal period, start in the renewal context.
""",
)
async def start_flow(
    lang: str = Depends(get_lang),
    family: FlowFamily = Depends(get_family),
    session: Session = Depends(get_session),
) -> FlowStartResponse:
    started = await service.start_flow(session, family, lang)
    csrf_token = await ensure_csrf_token(session)
    return FlowStartResponse(
        id=started.state.id,
        context=started.state.context,
        csrf_token=csrf_token,
        next_url=started.next_url,
    )


# =============================================================================
# Steps
# =============================================================================


@router.get(
    FLOW + "/steps/{step}",
    response_model=StepResponse,
    summary="Load Step",
    responses={302: {"description": "Step not reachable; redirect"}},
)
@router.get(PATH_FLOW + "/steps/{step}", response_model=StepResponse, include_in_schema=False)
async def load_step(
    step: str,
    response: Response,
    family: FlowFamily = Depends(get_family),
    params: FlowStateParams = Depends(get_flow_params),
    session: Session = Depends(get_session),
):
    try:
        outcome = await service.load_step(session, family, params, step)
    except FlowServiceError as e:
        logger.warning(f"Step load rejected: {e.message}")
        raise _to_http_exception(e) from e

    if isinstance(outcome, Redirect):
        return _redirect(outcome, response, status.HTTP_302_FOUND)
    view = outcome.state
    return StepResponse(step=view.route_id, variant=view.variant.tag, state=view.state)


@router.post(
    FLOW + "/steps/{step}",
    status_code=status.HTTP_303_SEE_OTHER,
    summary="Save Step",
    description="""
Save the answers of one step and redirect to the next one.

**Rules:**
- The body may only carry the fields of the submitted step
- Saving a step that has not been reached redirects to the furthest step
- In edit mode, a successful save returns to the review page
""",
    dependencies=[Depends(verify_csrf_token)],
)
@router.post(
    PATH_FLOW + "/steps/{step}",
    status_code=status.HTTP_303_SEE_OTHER,
    dependencies=[Depends(verify_csrf_token)],
    include_in_schema=False,
)
async def save_step(
    step: str,
    response: Response,
    changes: FlowStateUpdate | None = None,
    family: FlowFamily = Depends(get_family),
    params: FlowStateParams = Depends(get_flow_params),
    session: Session = Depends(get_session),
) -> RedirectResponse:
    try:
        outcome = await service.save_step(
            session, family, params, step, changes or FlowStateUpdate()
        )
    except FlowServiceError as e:
        logger.warning(f"Step save rejected: {e.message}")
        raise _to_http_exception(e) from e

    return _redirect(outcome, response, status.HTTP_303_SEE_OTHER)


# =============================================================================
# Review, submit, exit
# =============================================================================


@router.get(FLOW + "/review", response_model=StepResponse, summary="Load Review")
@router.get(PATH_FLOW + "/review", response_model=StepResponse, include_in_schema=False)
async def load_review(
    response: Response,
    family: FlowFamily = Depends(get_family),
    params: FlowStateParams = Depends(get_flow_params),
    session: Session = Depends(get_session),
):
    try:
        outcome = await service.load_review(session, family, params)
    except FlowServiceError as e:
        logger.warning(f"Review load rejected: {e.message}")
        raise _to_http_exception(e) from e

    if isinstance(outcome, Redirect):
        return _redirect(outcome, response, status.HTTP_302_FOUND)
    view = outcome.state
    return StepResponse(step=view.route_id, variant=view.variant.tag, state=view.state)


@router.post(
    FLOW + "/submit",
    response_model=SubmissionResponse,
    summary="Submit Application",
    description="""
Submit a completed application.

On success the flow is cleared and the confirmation code returned. An
incomplete flow redirects (303) to its furthest step. If the downstream
submission fails, the flow is kept so the user can retry.
""",
    dependencies=[Depends(verify_csrf_token)],
)
@router.post(
    PATH_FLOW + "/submit",
    response_model=SubmissionResponse,
    dependencies=[Depends(verify_csrf_token)],
    include_in_schema=False,
)
async def submit_flow(
    response: Response,
    family: FlowFamily = Depends(get_family),
    params: FlowStateParams = Depends(get_flow_params),
    session: Session = Depends(get_session),
    submitter: ApplicationSubmitter = Depends(get_application_submitter),
):
    try:
        outcome = await service.submit_flow(session, family, params, submitter)
    except FlowServiceError as e:
        logger.error(f"Submission failed: {e.message}")
        raise _to_http_exception(e) from e

    if isinstance(outcome, Redirect):
        return _redirect(outcome, response, status.HTTP_303_SEE_OTHER)
    submitted = outcome.state
    return SubmissionResponse(
        id=submitted.flow_id,
        variant=submitted.tag,
        confirmation_code=submitted.confirmation_code,
        message="Your application has been submitted.",
    )


@router.post(
    FLOW + "/exit",
    status_code=status.HTTP_303_SEE_OTHER,
    summary="Exit Application",
    dependencies=[Depends(verify_csrf_token)],
)
@router.post(
    PATH_FLOW + "/exit",
    status_code=status.HTTP_303_SEE_OTHER,
    dependencies=[Depends(verify_csrf_token)],
    include_in_schema=False,
)
async def exit_flow(
    response: Response,
    family: FlowFamily = Depends(get_family),
    params: FlowStateParams = Depends(get_flow_params),
    session: Session = Depends(get_session),
) -> RedirectResponse:
    try:
        outcome = await service.exit_flow(session, family, params)
    except FlowServiceError as e:
        logger.warning(f"Exit rejected: {e.message}")
        raise _to_http_exception(e) from e

    return _redirect(outcome, response, status.HTTP_303_SEE_OTHER)


# =============================================================================
# Children
# =============================================================================


@router.post(
    FLOW + "/children",
    status_code=status.HTTP_303_SEE_OTHER,
    summary="Add Child",
    dependencies=[Depends(verify_csrf_token)],
)
@router.post(
    PATH_FLOW + "/children",
    status_code=status.HTTP_303_SEE_OTHER,
    dependencies=[Depends(verify_csrf_token)],
    include_in_schema=False,
)
async def add_child(
    response: Response,
    family: FlowFamily = Depends(get_family),
    params: FlowStateParams = Depends(get_flow_params),
    session: Session = Depends(get_session),
) -> RedirectResponse:
    try:
        outcome = await service.add_child(session, family, params)
    except FlowServiceError as e:
        logger.warning(f"Add child rejected: {e.message}")
        raise _to_http_exception(e) from e

    return _redirect(outcome, response, status.HTTP_303_SEE_OTHER)


@router.get(
    FLOW + "/children/{child_id}/steps/{step}",
    response_model=ChildStepResponse,
    summary="Load Child Step",
)
@router.get(
    PATH_FLOW + "/children/{child_id}/steps/{step}",
    response_model=ChildStepResponse,
    include_in_schema=False,
)
async def load_child_step(
    child_id: str,
    step: str,
    response: Response,
    family: FlowFamily = Depends(get_family),
    params: FlowStateParams = Depends(get_flow_params),
    session: Session = Depends(get_session),
):
    try:
        outcome = await service.load_child_step(session, family, params, child_id, step)
    except FlowServiceError as e:
        logger.warning(f"Child step load rejected: {e.message}")
        raise _to_http_exception(e) from e

    if isinstance(outcome, Redirect):
        return _redirect(outcome, response, status.HTTP_302_FOUND)
    view = outcome.state
    return ChildStepResponse(flow_id=view.state.id, step=view.route_id, child=view.child)


@router.post(
    FLOW + "/children/{child_id}/steps/{step}",
    status_code=status.HTTP_303_SEE_OTHER,
    summary="Save Child Step",
    dependencies=[Depends(verify_csrf_token)],
)
@router.post(
    PATH_FLOW + "/children/{child_id}/steps/{step}",
    status_code=status.HTTP_303_SEE_OTHER,
    dependencies=[Depends(verify_csrf_token)],
    include_in_schema=False,
)
async def save_child_step(
    child_id: str,
    step: str,
    response: Response,
    changes: ChildStateUpdate | None = None,
    family: FlowFamily = Depends(get_family),
    params: FlowStateParams = Depends(get_flow_params),
    session: Session = Depends(get_session),
) -> RedirectResponse:
    try:
        outcome = await service.save_child_step(
            session, family, params, child_id, step, changes or ChildStateUpdate()
        )
    except FlowServiceError as e:
        logger.warning(f"Child step save rejected: {e.message}")
        raise _to_http_exception(e) from e

    return _redirect(outcome, response, status.HTTP_303_SEE_OTHER)


@router.post(
    FLOW + "/children/{child_id}/remove",
    status_code=status.HTTP_303_SEE_OTHER,
    summary="Remove Child",
    dependencies=[Depends(verify_csrf_token)],
)
@router.post(
    PATH_FLOW + "/children/{child_id}/remove",
    status_code=status.HTTP_303_SEE_OTHER,
    dependencies=[Depends(verify_csrf_token)],
    include_in_schema=False,
)
async def remove_child(
    child_id: str,
    response: Response,
    family: FlowFamily = Depends(get_family),
    params: FlowStateParams = Depends(get_flow_params),
    session: Session = Depends(get_session),
) -> RedirectResponse:
    try:
        outcome = await service.remove_child(session, family, params, child_id)
    except FlowServiceError as e:
        logger.warning(f"Remove child rejected: {e.message}")
        raise _to_http_exception(e) from e

    return _redirect(outcome, response, status.HTTP_303_SEE_OTHER)
