"""
Unit tests for flow key derivation.
"""

import uuid

import pytest

from portal.modules.benefit_flows.keys import (
    InvalidIdentifierError,
    derive_key,
    is_valid_flow_id,
    parse_flow_id,
)
from portal.modules.benefit_flows.models import FlowType


class TestIsValidFlowId:
    """Tests for UUID syntax validation."""

    def test_accepts_canonical_uuid(self, flow_id):
        assert is_valid_flow_id(flow_id) is True

    def test_accepts_uppercase_uuid(self):
        assert is_valid_flow_id("ABCDEF12-3456-7890-ABCD-EF1234567890") is True

    @pytest.mark.parametrize(
        "value",
        [
            "not-a-uuid",
            "",
            None,
            42,
            "11111111111111111111111111111111",  # no hyphens
            "{11111111-1111-1111-1111-111111111111}",
            "11111111-1111-1111-1111-11111111111g",
            " 11111111-1111-1111-1111-111111111111",
        ],
    )
    def test_rejects_malformed_values(self, value):
        assert is_valid_flow_id(value) is False


class TestParseFlowId:
    """Tests for identifier parsing."""

    def test_returns_lowercase_canonical_form(self):
        result = parse_flow_id("ABCDEF12-3456-7890-ABCD-EF1234567890")
        assert result == "abcdef12-3456-7890-abcd-ef1234567890"

    def test_raises_on_malformed_id(self):
        with pytest.raises(InvalidIdentifierError) as exc_info:
            parse_flow_id("not-a-uuid")
        assert exc_info.value.value == "not-a-uuid"

    def test_invalid_identifier_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_flow_id("nope")


class TestDeriveKey:
    """Tests for session key derivation."""

    def test_key_format(self, flow_id):
        assert derive_key("apply", flow_id) == f"apply-flow-{flow_id}"

    def test_accepts_flow_type_enum(self, flow_id):
        assert derive_key(FlowType.PROTECTED_RENEW, flow_id) == f"protected-renew-flow-{flow_id}"

    def test_is_deterministic(self, flow_id):
        assert derive_key("renew", flow_id) == derive_key("renew", flow_id)

    def test_case_of_id_does_not_change_key(self, flow_id):
        assert derive_key("apply", flow_id.upper()) == derive_key("apply", flow_id)

    def test_distinct_ids_give_distinct_keys(self):
        ids = {str(uuid.uuid4()) for _ in range(200)}
        keys = {derive_key("apply", value) for value in ids}
        assert len(keys) == len(ids)

    def test_distinct_flow_types_give_distinct_keys(self, flow_id):
        keys = {derive_key(flow_type, flow_id) for flow_type in FlowType}
        assert len(keys) == len(FlowType)

    def test_raises_on_malformed_id(self):
        with pytest.raises(InvalidIdentifierError):
            derive_key("apply", "not-a-uuid")

    def test_raises_on_empty_flow_type(self, flow_id):
        with pytest.raises(ValueError):
            derive_key("", flow_id)
