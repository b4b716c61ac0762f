"""
Fixtures for benefit flows tests.
"""

from unittest.mock import AsyncMock

import pytest

from portal.core.session import MemorySession
from portal.modules.benefit_flows.models import (
    Address,
    ApplicantInformation,
    ChildInformation,
    ChildState,
    CommunicationPreferences,
    DeclaredChange,
    DentalBenefits,
    DentalInsurance,
    FlowStateUpdate,
    PartnerInformation,
    PhoneNumber,
    TermsAndConditions,
    TypeOfApplication,
)
from portal.modules.benefit_flows.repository import FlowStateParams
from portal.modules.benefit_flows.variants import APPLY_FAMILY, RENEW_FAMILY

FLOW_ID = "11111111-1111-1111-1111-111111111111"
OTHER_FLOW_ID = "22222222-2222-2222-2222-222222222222"
CHILD_ID = "33333333-3333-3333-3333-333333333333"
NEW_CHILD_ID = "44444444-4444-4444-4444-444444444444"


@pytest.fixture
def session():
    """Create an isolated in-memory browser session."""
    return MemorySession("test-session-id", store={})


@pytest.fixture
def family():
    """Apply family (flow id carried in the path)."""
    return APPLY_FAMILY


@pytest.fixture
def renew_family():
    """Renew family (flow id carried in the query string)."""
    return RENEW_FAMILY


@pytest.fixture
def params():
    return FlowStateParams(flow_id=FLOW_ID, lang="en")


@pytest.fixture
def mock_submitter():
    """Create a mock downstream submission client."""
    submitter = AsyncMock()
    submitter.submit = AsyncMock(return_value="CONF-0001")
    return submitter


def make_terms(share_data=True):
    return TermsAndConditions(acknowledge_terms=True, acknowledge_privacy=True, share_data=share_data)


def make_applicant_information():
    return ApplicantInformation(
        first_name="Jane",
        last_name="Doe",
        date_of_birth="1980-01-01",
        social_insurance_number="800000002",
    )


def make_phone_number(has_changed=True):
    if not has_changed:
        return DeclaredChange[PhoneNumber](has_changed=False)
    return DeclaredChange[PhoneNumber](has_changed=True, value=PhoneNumber(primary="613-555-0100"))


def make_address(has_changed=True):
    if not has_changed:
        return DeclaredChange[Address](has_changed=False)
    return DeclaredChange[Address](
        has_changed=True,
        value=Address(
            address="123 Main St",
            city="Ottawa",
            country="CAN",
            province="ON",
            postal_code="K1A 0B1",
        ),
    )


def make_communication_preferences(method="mail", has_changed=True):
    if not has_changed:
        return DeclaredChange[CommunicationPreferences](has_changed=False)
    return DeclaredChange[CommunicationPreferences](
        has_changed=True,
        value=CommunicationPreferences(
            preferred_language="en",
            preferred_method=method,
            preferred_notification_method="mail",
        ),
    )


def make_dental_insurance(confirmation=None):
    return DentalInsurance(
        has_dental_insurance=False,
        dental_insurance_eligibility_confirmation=confirmation,
    )


def make_dental_benefits(has_changed=True):
    if not has_changed:
        return DeclaredChange[DentalBenefits](has_changed=False)
    return DeclaredChange[DentalBenefits](
        has_changed=True,
        value=DentalBenefits(has_federal_benefits=False, has_provincial_territorial_benefits=False),
    )


def make_child(child_id=CHILD_ID, complete=True):
    if not complete:
        return ChildState(id=child_id)
    return ChildState(
        id=child_id,
        information=ChildInformation(
            first_name="Sam",
            last_name="Doe",
            date_of_birth="2015-05-05",
            is_parent=True,
            has_social_insurance_number=False,
        ),
        dental_insurance=make_dental_insurance(),
        dental_benefits=make_dental_benefits(),
    )


def adult_step_changes(type_of_application=TypeOfApplication.ADULT):
    """Answers for every adult step, in step order."""
    return [
        ("type-of-application", FlowStateUpdate(type_of_application=type_of_application)),
        ("terms-and-conditions", FlowStateUpdate(terms_and_conditions=make_terms())),
        ("applicant-information", FlowStateUpdate(applicant_information=make_applicant_information())),
        ("marital-status", FlowStateUpdate(marital_status="single")),
        ("phone-number", FlowStateUpdate(phone_number=make_phone_number())),
        (
            "address",
            FlowStateUpdate(
                mailing_address=make_address(),
                home_address=make_address(),
                is_home_address_same_as_mailing_address=True,
            ),
        ),
        (
            "communication-preferences",
            FlowStateUpdate(communication_preferences=make_communication_preferences()),
        ),
        ("dental-insurance", FlowStateUpdate(dental_insurance=make_dental_insurance())),
        ("dental-benefits", FlowStateUpdate(dental_benefits=make_dental_benefits())),
    ]


def complete_adult_update(type_of_application=TypeOfApplication.ADULT):
    """A single update answering every adult step."""
    fields = {}
    for _route_id, changes in adult_step_changes(type_of_application):
        fields.update({name: getattr(changes, name) for name in changes.model_fields_set})
    return FlowStateUpdate(**fields)


def make_partner_information(confirm=True):
    return PartnerInformation(confirm=confirm, year_of_birth="1981", social_insurance_number="800000010")


@pytest.fixture
def flow_id():
    return FLOW_ID


@pytest.fixture
def other_flow_id():
    return OTHER_FLOW_ID


@pytest.fixture
def terms():
    """Fully accepted terms and conditions."""
    return make_terms()


@pytest.fixture
def applicant_information():
    return make_applicant_information()


@pytest.fixture
def partner_information():
    """Confirmed partner information."""
    return make_partner_information()


@pytest.fixture
def phone_number():
    return make_phone_number()


@pytest.fixture
def address():
    return make_address()


@pytest.fixture
def communication_preferences():
    """Communication preferences by mail (no email needed)."""
    return make_communication_preferences()


@pytest.fixture
def dental_insurance():
    return make_dental_insurance()


@pytest.fixture
def dental_benefits():
    return make_dental_benefits()


@pytest.fixture
def child():
    """A child with every section answered."""
    return make_child()


@pytest.fixture
def new_child():
    """A child that was just added."""
    return make_child(NEW_CHILD_ID, complete=False)


@pytest.fixture
def adult_steps():
    """(route id, answers) for every adult step, in order."""
    return adult_step_changes()


@pytest.fixture
def family_steps():
    """(route id, answers) for every family step before the children step."""
    return adult_step_changes(TypeOfApplication.FAMILY)


@pytest.fixture
def complete_adult():
    """A single update answering every adult step."""
    return complete_adult_update()


@pytest.fixture
def complete_family():
    """A single update answering every family step except children."""
    return complete_adult_update(TypeOfApplication.FAMILY)
