"""
Benefit Flow State Models

Session-persisted state of an in-progress wizard. One FlowState is stored per
flow instance under a key derived from its flow type and id. Fields are
serialized in camelCase so the stored payload keeps the portal's historical
layout.

A section slice is either absent (step not visited yet) or a complete value
for its step; DeclaredChange slices record whether the user changed a value
or confirmed the existing one.
"""

import enum
from datetime import UTC, date, datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class FlowType(str, enum.Enum):
    """Flow families; the value is the session key namespace."""

    APPLY = "apply"
    PROTECTED_APPLY = "protected-apply"
    RENEW = "renew"
    PROTECTED_RENEW = "protected-renew"


class IdSource(str, enum.Enum):
    """Where a family's routes carry the flow id."""

    PATH = "path"
    QUERY = "query"


class ApplicationContext(str, enum.Enum):
    """Whether the flow is a new application or a renewal."""

    INTAKE = "intake"
    RENEWAL = "renewal"


class TypeOfApplication(str, enum.Enum):
    """Who the application is for."""

    ADULT = "adult"
    FAMILY = "family"
    CHILDREN = "children"
    # Someone else applies on the person's behalf; leaves the wizard
    DELEGATE = "delegate"


class StateModel(BaseModel):
    """Base for persisted state: camelCase aliases, unknown fields rejected."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class DeclaredChange(StateModel, Generic[T]):
    """A value the user either changed or confirmed as unchanged."""

    has_changed: bool
    value: T | None = None

    @model_validator(mode="after")
    def validate_value(self) -> "DeclaredChange":
        if self.has_changed and self.value is None:
            raise ValueError("value is required when has_changed is true")
        return self


class ApplicationYear(StateModel):
    application_year_id: str
    tax_year: str
    coverage_start_date: date
    dependent_eligibility_end_date: date | None = None


class TermsAndConditions(StateModel):
    acknowledge_terms: bool | None = None
    acknowledge_privacy: bool | None = None
    share_data: bool | None = None


class ApplicantInformation(StateModel):
    first_name: str
    last_name: str
    date_of_birth: str
    social_insurance_number: str
    member_id: str | None = None


class PartnerInformation(StateModel):
    confirm: bool | None = None
    year_of_birth: str | None = None
    social_insurance_number: str | None = None


class PhoneNumber(StateModel):
    primary: str
    alternate: str | None = None


class Address(StateModel):
    address: str
    city: str
    country: str
    province: str | None = None
    postal_code: str | None = None


class CommunicationPreferences(StateModel):
    preferred_language: str
    preferred_method: str
    preferred_notification_method: str


class DentalInsurance(StateModel):
    has_dental_insurance: bool
    dental_insurance_eligibility_confirmation: bool | None = None


class DentalBenefits(StateModel):
    has_federal_benefits: bool
    federal_social_program: str | None = None
    has_provincial_territorial_benefits: bool
    provincial_territorial_social_program: str | None = None
    province: str | None = None


class ChildInformation(StateModel):
    first_name: str
    last_name: str
    date_of_birth: str
    is_parent: bool
    has_social_insurance_number: bool
    social_insurance_number: str | None = None
    member_id: str | None = None


class ChildState(StateModel):
    """State of one child within a flow."""

    id: str
    information: ChildInformation | None = None
    dental_insurance: DentalInsurance | None = None
    dental_benefits: DeclaredChange[DentalBenefits] | None = None


class FlowState(StateModel):
    """State of one in-progress wizard."""

    id: str
    edit_mode: bool = False
    last_updated_on: datetime = Field(default_factory=lambda: datetime.now(UTC))
    context: ApplicationContext = ApplicationContext.INTAKE
    application_year: ApplicationYear | None = None

    type_of_application: TypeOfApplication | None = None
    terms_and_conditions: TermsAndConditions | None = None
    applicant_information: ApplicantInformation | None = None
    marital_status: str | None = None
    partner_information: PartnerInformation | None = None
    phone_number: DeclaredChange[PhoneNumber] | None = None
    mailing_address: DeclaredChange[Address] | None = None
    home_address: DeclaredChange[Address] | None = None
    is_home_address_same_as_mailing_address: bool | None = None
    communication_preferences: DeclaredChange[CommunicationPreferences] | None = None
    email: str | None = None
    email_verified: bool | None = None
    dental_insurance: DentalInsurance | None = None
    dental_benefits: DeclaredChange[DentalBenefits] | None = None
    children: list[ChildState] = Field(default_factory=list)


class FlowStateUpdate(StateModel):
    """
    Mergeable surface of FlowState.

    Only fields explicitly set are applied; id, context, application year and
    the update timestamp are not part of it.
    """

    edit_mode: bool | None = None
    type_of_application: TypeOfApplication | None = None
    terms_and_conditions: TermsAndConditions | None = None
    applicant_information: ApplicantInformation | None = None
    marital_status: str | None = None
    partner_information: PartnerInformation | None = None
    phone_number: DeclaredChange[PhoneNumber] | None = None
    mailing_address: DeclaredChange[Address] | None = None
    home_address: DeclaredChange[Address] | None = None
    is_home_address_same_as_mailing_address: bool | None = None
    communication_preferences: DeclaredChange[CommunicationPreferences] | None = None
    email: str | None = None
    email_verified: bool | None = None
    dental_insurance: DentalInsurance | None = None
    dental_benefits: DeclaredChange[DentalBenefits] | None = None
    children: list[ChildState] | None = None


class ChildStateUpdate(StateModel):
    """Mergeable surface of ChildState (everything but its id)."""

    information: ChildInformation | None = None
    dental_insurance: DentalInsurance | None = None
    dental_benefits: DeclaredChange[DentalBenefits] | None = None


# Section fields that a save may drop explicitly
REMOVABLE_FIELDS = frozenset(FlowStateUpdate.model_fields) - {"edit_mode", "children"}
