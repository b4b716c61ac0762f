"""
Flow Guard / Navigator

Linear progression over an ordered step table. The furthest reachable step is
the first one whose completeness check fails; any later step (including the
review page, which sits after the last step) is out of reach and redirects
back to it. Earlier steps stay freely reachable.

Nothing is invalidated explicitly: editing an earlier answer so its check
fails simply moves the furthest step back on the next evaluation.
"""

from collections.abc import Callable, Sequence
from typing import TypeVar

from portal.modules.benefit_flows.outcomes import FlowOutcome, Loaded, Redirect
from portal.modules.benefit_flows.variants import FlowStep

S = TypeVar("S")

REVIEW_ROUTE_ID = "review"


def get_furthest_step_index(state: S, steps: Sequence[FlowStep[S]]) -> int:
    """
    Get the index of the first incomplete step.

    Returns len(steps) when every step is complete (the review page is
    reachable).
    """
    for index, step in enumerate(steps):
        if not step.is_completed(state):
            return index
    return len(steps)


def get_step_index(steps: Sequence[FlowStep], route_id: str) -> int:
    """
    Get the position of a route in a step table. The review route sits after
    the last step.

    Raises:
        ValueError: If the route is not part of the table.
    """
    if route_id == REVIEW_ROUTE_ID:
        return len(steps)
    for index, step in enumerate(steps):
        if step.route_id == route_id:
            return index
    raise ValueError(f"Unknown step: {route_id}")


def get_furthest_route_id(state: S, steps: Sequence[FlowStep[S]]) -> str:
    index = get_furthest_step_index(state, steps)
    if index == len(steps):
        return REVIEW_ROUTE_ID
    return steps[index].route_id


def is_flow_completed(state: S, steps: Sequence[FlowStep[S]]) -> bool:
    return get_furthest_step_index(state, steps) == len(steps)


def guard_step(
    state: S,
    steps: Sequence[FlowStep[S]],
    route_id: str,
    build_url: Callable[[str], str],
) -> FlowOutcome:
    """
    Allow access to a step only if every earlier step is complete.

    Args:
        state: Current flow (or child) state
        steps: The resolved step table
        route_id: The requested step, or the review route
        build_url: Turns a route id into the URL to redirect to

    Returns:
        Loaded(state) when reachable, otherwise a Redirect to the furthest
        reachable step

    Raises:
        ValueError: If route_id is not part of the table.
    """
    requested = get_step_index(steps, route_id)
    furthest = get_furthest_step_index(state, steps)
    if requested > furthest:
        furthest_route_id = get_furthest_route_id(state, steps)
        return Redirect(
            url=build_url(furthest_route_id),
            reason=f"step {route_id} requested before {furthest_route_id} was completed",
        )
    return Loaded(state)


def get_next_route_id(
    steps: Sequence[FlowStep],
    route_id: str,
    edit_mode: bool = False,
) -> str:
    """
    Get where to go after saving a step.

    In edit mode the user returns to the review page; otherwise they advance
    to the following step, and to review after the last one.

    Raises:
        ValueError: If route_id is not part of the table.
    """
    index = get_step_index(steps, route_id)
    if edit_mode or index + 1 >= len(steps):
        return REVIEW_ROUTE_ID
    return steps[index + 1].route_id
