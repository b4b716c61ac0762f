"""
Flow Outcomes

Loading or guarding a flow either yields the state or tells the caller where
to send the user. Navigation failures (stale links, expired or cleared state,
skipped steps) are ordinary outcomes, not exceptions.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

S = TypeVar("S")


@dataclass(frozen=True)
class Loaded(Generic[S]):
    """The requested state is available."""

    state: S


@dataclass(frozen=True)
class Redirect:
    """The user must be sent elsewhere."""

    url: str
    reason: str = ""


FlowOutcome = Loaded | Redirect
