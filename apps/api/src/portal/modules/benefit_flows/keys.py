"""
Flow Key Derivation

Session keys are namespaced by flow type so that different flows open in the
same browser session (e.g. two tabs) never collide:

    "<flow type>-flow-<uuid>"
"""

import enum
import re
from uuid import UUID

_UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


class InvalidIdentifierError(ValueError):
    """Raised when a flow or child identifier is not a valid UUID."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid identifier: {value!r}")


def is_valid_flow_id(value: object) -> bool:
    """Check whether a value is a canonical 8-4-4-4-12 UUID string."""
    return isinstance(value, str) and _UUID_PATTERN.match(value) is not None


def parse_flow_id(value: object) -> str:
    """
    Validate an identifier and return it in canonical (lowercase) form.

    Raises:
        InvalidIdentifierError: If the value is not a UUID string.
    """
    if not is_valid_flow_id(value):
        raise InvalidIdentifierError(value)
    return str(UUID(value))


def derive_key(flow_type: str, flow_id: str) -> str:
    """
    Derive the session key of a flow instance.

    Args:
        flow_type: Flow type tag (a FlowType or its string value)
        flow_id: The flow's UUID

    Returns:
        The namespaced session key

    Raises:
        InvalidIdentifierError: If flow_id is not a UUID.
        ValueError: If flow_type is empty.
    """
    if isinstance(flow_type, enum.Enum):
        flow_type = flow_type.value
    if not flow_type:
        raise ValueError("flow_type must not be empty")
    return f"{flow_type}-flow-{parse_flow_id(flow_id)}"
