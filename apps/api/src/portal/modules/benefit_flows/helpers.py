"""
Benefit Flows Shared Helpers

Small utilities shared by the repository, service and router layers.
"""

from datetime import UTC, date, datetime

from fastapi import Request

from portal.core.config import settings
from portal.modules.benefit_flows.models import ChildState, IdSource

SUPPORTED_LANGUAGES = ("en", "fr")


def get_recovery_url(lang: str, page: str = "apply") -> str:
    """
    Get the page where users with a stale or missing flow are sent.

    Args:
        lang: Locale; unknown languages fall back to English
        page: Settings prefix of the recovery page ("apply", "protected_apply")
    """
    if lang not in SUPPORTED_LANGUAGES:
        lang = "en"
    return getattr(settings, f"{page}_url_{lang}")


def get_flow_id_from_request(request: Request, id_source: IdSource) -> str | None:
    """
    Read the raw (unvalidated) flow id from a request.

    Args:
        request: The incoming request
        id_source: Whether the id is a route parameter or the "id" query string

    Returns:
        The raw id, or None if absent
    """
    if id_source is IdSource.QUERY:
        return request.query_params.get("id")
    return request.path_params.get("flow_id")


def is_within_renewal_period(today: date | None = None) -> bool:
    """
    Check whether a date falls within the configured renewal period (inclusive).

    Returns False when the period is not configured.
    """
    start = settings.renewal_period_start_date
    end = settings.renewal_period_end_date
    if start is None or end is None:
        return False
    today = today or datetime.now(UTC).date()
    return start <= today <= end


def is_new_child_state(child: ChildState) -> bool:
    """A child is new until all of its sections have been answered once."""
    return child.information is None or child.dental_insurance is None or child.dental_benefits is None


def get_children_state(children: list[ChildState], include_new: bool = False) -> list[ChildState]:
    """Get the children of a flow, excluding incomplete new entries by default."""
    if include_new:
        return list(children)
    return [child for child in children if not is_new_child_state(child)]

