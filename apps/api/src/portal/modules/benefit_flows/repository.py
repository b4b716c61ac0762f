"""
Flow State Repository

Start, load, save and clear operations over session-persisted flow state.
All operations are async and take the browser session first, following the
repository pattern used across the portal's modules.

Design Principles:
- One session entry per flow instance, keyed by derive_key(flow type, id)
- Stale links, expired or cleared state redirect to the recovery page;
  they are never raised to the caller
- A stored payload that no longer validates is an integrity fault and raises
- Saves are a shallow per-field merge: nested objects are replaced wholesale
- Timezone-aware datetime handling (UTC)
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError

from portal.core.config import settings
from portal.core.session import Session
from portal.modules.benefit_flows.keys import derive_key, is_valid_flow_id, parse_flow_id
from portal.modules.benefit_flows.models import (
    REMOVABLE_FIELDS,
    ApplicationContext,
    ApplicationYear,
    FlowState,
    FlowStateUpdate,
)
from portal.modules.benefit_flows.outcomes import FlowOutcome, Loaded, Redirect
from portal.modules.benefit_flows.variants import FlowFamily

logger = logging.getLogger(__name__)


class MalformedFlowStateError(Exception):
    """Raised when stored flow state no longer matches the state model."""

    def __init__(self, key: str, errors: list[Any] | None = None):
        self.key = key
        self.errors = errors or []
        super().__init__(f"Malformed flow state stored under {key}")


@dataclass(frozen=True)
class FlowStateParams:
    """Request parameters identifying a flow instance."""

    flow_id: str | None
    lang: str = "en"


def is_flow_state_expired(state: FlowState, now: datetime | None = None) -> bool:
    now = now or datetime.now(UTC)
    return now - state.last_updated_on >= timedelta(minutes=settings.flow_state_ttl_minutes)


def _dump(state: FlowState) -> dict[str, Any]:
    return state.model_dump(mode="json", by_alias=True)


def _redirect_to_recovery(
    session: Session, family: FlowFamily, params: FlowStateParams, reason: str
) -> Redirect:
    logger.warning(f"Flow state unavailable ({reason}); redirecting; sessionId: [{session.id}]")
    return Redirect(url=family.get_recovery_url(params.lang), reason=reason)


async def start(
    session: Session,
    family: FlowFamily,
    flow_id: str,
    *,
    context: ApplicationContext = ApplicationContext.INTAKE,
    application_year: ApplicationYear | None = None,
    initial: FlowStateUpdate | None = None,
) -> FlowState:
    """
    Create a flow's state, overwriting anything stored under the same key.

    Raises:
        InvalidIdentifierError: If flow_id is not a UUID.
    """
    flow_id = parse_flow_id(flow_id)
    fields = initial.model_dump(exclude_unset=True, exclude_none=True) if initial else {}
    state = FlowState(
        **fields,
        id=flow_id,
        context=context,
        application_year=application_year,
    )

    key = derive_key(family.flow_type, flow_id)
    await session.set(key, _dump(state))
    logger.info(f"Flow started: {key}; sessionId: [{session.id}]")
    return state


async def load(session: Session, family: FlowFamily, params: FlowStateParams) -> FlowOutcome:
    """
    Load a flow's state.

    Returns:
        Loaded(state), or a Redirect to the recovery page when the id is
        malformed or the state is absent or expired

    Raises:
        MalformedFlowStateError: If the stored payload does not validate.
    """
    if not is_valid_flow_id(params.flow_id):
        return _redirect_to_recovery(session, family, params, f"invalid flow id {params.flow_id!r}")

    key = derive_key(family.flow_type, params.flow_id)
    if not await session.has(key):
        return _redirect_to_recovery(session, family, params, f"no state for {key}")

    try:
        state = FlowState.model_validate(await session.get(key))
    except ValidationError as e:
        logger.error(f"Stored flow state failed validation: {key}; sessionId: [{session.id}]")
        raise MalformedFlowStateError(key, e.errors()) from e

    if is_flow_state_expired(state):
        await session.unset(key)
        return _redirect_to_recovery(session, family, params, f"state expired for {key}")

    return Loaded(state)


def merge_flow_state(
    current: FlowState,
    changes: FlowStateUpdate,
    remove: str | None = None,
) -> FlowState:
    """
    Merge explicitly set fields over the current state.

    Fields absent from changes are kept. Nested objects are replaced as a
    whole. The id, context and application year cannot change.

    Args:
        current: State to merge into
        changes: Fields to overwrite (only explicitly set fields apply)
        remove: Optional section field to drop in the same write

    Raises:
        ValueError: If remove names a field that cannot be removed.
    """
    if remove is not None and remove not in REMOVABLE_FIELDS:
        raise ValueError(f"Field cannot be removed: {remove}")

    updates = {}
    for name in changes.model_fields_set:
        value = getattr(changes, name)
        # edit_mode and children are never unset by a merge
        if value is None and name not in REMOVABLE_FIELDS:
            continue
        updates[name] = value
    if remove is not None:
        updates[remove] = None
    updates["last_updated_on"] = datetime.now(UTC)

    # Re-validate so the merged record obeys the state model
    merged = current.model_dump() | updates
    return FlowState.model_validate(merged)


async def save(
    session: Session,
    family: FlowFamily,
    params: FlowStateParams,
    changes: FlowStateUpdate,
    remove: str | None = None,
) -> FlowOutcome:
    """
    Merge changes into a flow's state and write it back.

    Returns:
        Loaded(new state), or the load Redirect when the flow is unavailable
    """
    outcome = await load(session, family, params)
    if isinstance(outcome, Redirect):
        return outcome

    state = merge_flow_state(outcome.state, changes, remove)
    key = derive_key(family.flow_type, state.id)
    await session.set(key, _dump(state))
    logger.info(f"Flow saved: {key}; sessionId: [{session.id}]")
    return Loaded(state)


async def clear(session: Session, family: FlowFamily, params: FlowStateParams) -> FlowOutcome:
    """
    Remove a flow's state.

    Clearing a flow that is already gone is not an error: the load Redirect
    is returned instead.

    Returns:
        Loaded(removed state), or the load Redirect
    """
    outcome = await load(session, family, params)
    if isinstance(outcome, Redirect):
        return outcome

    key = derive_key(family.flow_type, outcome.state.id)
    await session.unset(key)
    logger.info(f"Flow cleared: {key}; sessionId: [{session.id}]")
    return outcome
