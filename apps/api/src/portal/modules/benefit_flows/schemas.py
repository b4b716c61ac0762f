"""
Benefit Flows Schemas

Pydantic schemas for response serialization. Step submissions are validated
with FlowStateUpdate / ChildStateUpdate from the models module.
"""

from pydantic import BaseModel, Field

# Re-use state models; nested state is serialized with its camelCase aliases
from portal.modules.benefit_flows.models import ApplicationContext, ChildState, FlowState


class FlowStartResponse(BaseModel):
    """Response after starting a flow."""

    id: str
    context: ApplicationContext
    csrf_token: str = Field(..., description="Send back in the CSRF header on every POST")
    next_url: str


class StepResponse(BaseModel):
    """A reachable step (or the review page) with the state to pre-fill it."""

    step: str
    variant: str
    state: FlowState


class ChildStepResponse(BaseModel):
    flow_id: str
    step: str
    child: ChildState


class SubmissionResponse(BaseModel):
    """Response after final submission."""

    id: str
    variant: str
    confirmation_code: str
    message: str
