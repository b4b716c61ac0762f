"""
Section Completeness Checks

One pure predicate per wizard section. Each takes only the slices it reads,
so the same predicate serves every flow variant.

Rules:
- Booleans are strict: only True counts as acknowledged or confirmed.
- Strings count as present when non-empty. No trimming is done here.
- For DeclaredChange slices, only a declared change completes the section
  unless the caller accepts a confirmed-unchanged declaration
  (accept_unchanged=True). Which flows accept it is configured per variant.
"""

from collections.abc import Collection, Sequence

from portal.core.config import settings
from portal.modules.benefit_flows.models import (
    Address,
    ApplicantInformation,
    ChildInformation,
    ChildState,
    CommunicationPreferences,
    DeclaredChange,
    DentalBenefits,
    DentalInsurance,
    PartnerInformation,
    PhoneNumber,
    TermsAndConditions,
    TypeOfApplication,
)


def _is_present(value: str | None) -> bool:
    return isinstance(value, str) and value != ""


def _is_declared(declared_change: DeclaredChange | None, accept_unchanged: bool) -> bool:
    if declared_change is None:
        return False
    if declared_change.has_changed is True:
        return declared_change.value is not None
    return accept_unchanged and declared_change.has_changed is False


def is_partnered_marital_status(
    marital_status: str | None,
    partnered_statuses: Collection[str] | None = None,
) -> bool:
    """Check whether a marital status requires partner information."""
    if not marital_status:
        return False
    if partnered_statuses is None:
        partnered_statuses = settings.marital_status_codes_with_partner
    return marital_status in partnered_statuses


def is_email_communication_required(
    preferences: CommunicationPreferences,
    email_methods: Collection[str] | None = None,
) -> bool:
    """Check whether the chosen methods need a verified email address."""
    if email_methods is None:
        email_methods = settings.communication_method_email_ids
    return (
        preferences.preferred_method in email_methods
        or preferences.preferred_notification_method in email_methods
    )


def is_type_of_application_section_completed(
    type_of_application: TypeOfApplication | None,
) -> bool:
    # Delegate applications leave the wizard rather than completing the step
    return type_of_application is not None and type_of_application is not TypeOfApplication.DELEGATE


def is_terms_and_conditions_section_completed(
    terms_and_conditions: TermsAndConditions | None,
) -> bool:
    if terms_and_conditions is None:
        return False
    return (
        terms_and_conditions.acknowledge_terms is True
        and terms_and_conditions.acknowledge_privacy is True
        and terms_and_conditions.share_data is True
    )


def is_applicant_information_section_completed(
    applicant_information: ApplicantInformation | None,
) -> bool:
    if applicant_information is None:
        return False
    return (
        _is_present(applicant_information.date_of_birth)
        and _is_present(applicant_information.first_name)
        and _is_present(applicant_information.last_name)
        and _is_present(applicant_information.social_insurance_number)
    )


def is_marital_status_section_completed(
    marital_status: str | None,
    partner_information: PartnerInformation | None = None,
    partnered_statuses: Collection[str] | None = None,
) -> bool:
    """
    Marital status is complete once selected; partnered statuses also need
    the partner's information confirmed.
    """
    if not _is_present(marital_status):
        return False
    if not is_partnered_marital_status(marital_status, partnered_statuses):
        return True
    return partner_information is not None and partner_information.confirm is True


def is_phone_number_section_completed(
    phone_number: DeclaredChange[PhoneNumber] | None,
    accept_unchanged: bool = False,
) -> bool:
    return _is_declared(phone_number, accept_unchanged)


def is_address_section_completed(
    mailing_address: DeclaredChange[Address] | None,
    home_address: DeclaredChange[Address] | None,
    accept_unchanged: bool = False,
) -> bool:
    return _is_declared(mailing_address, accept_unchanged) and _is_declared(
        home_address, accept_unchanged
    )


def is_communication_preferences_section_completed(
    communication_preferences: DeclaredChange[CommunicationPreferences] | None,
    email: str | None = None,
    email_verified: bool | None = None,
    email_methods: Collection[str] | None = None,
    accept_unchanged: bool = False,
) -> bool:
    """
    Communication preferences are complete once declared; email-based methods
    additionally need an email address that has been verified.
    """
    if not _is_declared(communication_preferences, accept_unchanged):
        return False

    preferences = communication_preferences.value
    if preferences is None or not is_email_communication_required(preferences, email_methods):
        return True

    return _is_present(email) and email_verified is True


def is_dental_insurance_section_completed(
    dental_insurance: DentalInsurance | None,
    require_eligibility_confirmation: bool = False,
) -> bool:
    if dental_insurance is None:
        return False
    if require_eligibility_confirmation:
        return dental_insurance.dental_insurance_eligibility_confirmation is True
    return True


def is_dental_benefits_section_completed(
    dental_benefits: DeclaredChange[DentalBenefits] | None,
    accept_unchanged: bool = False,
) -> bool:
    return _is_declared(dental_benefits, accept_unchanged)


def is_child_information_section_completed(information: ChildInformation | None) -> bool:
    if information is None:
        return False
    return (
        _is_present(information.date_of_birth)
        and _is_present(information.first_name)
        and _is_present(information.last_name)
    )


def is_child_dental_insurance_section_completed(
    dental_insurance: DentalInsurance | None,
    require_eligibility_confirmation: bool = False,
) -> bool:
    return is_dental_insurance_section_completed(dental_insurance, require_eligibility_confirmation)


def is_child_dental_benefits_section_completed(
    dental_benefits: DeclaredChange[DentalBenefits] | None,
    accept_unchanged: bool = False,
) -> bool:
    return _is_declared(dental_benefits, accept_unchanged)


def is_child_section_completed(
    child: ChildState,
    require_eligibility_confirmation: bool = False,
    accept_unchanged: bool = False,
) -> bool:
    return (
        is_child_information_section_completed(child.information)
        and is_child_dental_insurance_section_completed(
            child.dental_insurance, require_eligibility_confirmation
        )
        and is_child_dental_benefits_section_completed(child.dental_benefits, accept_unchanged)
    )


def is_children_section_completed(
    children: Sequence[ChildState],
    require_eligibility_confirmation: bool = False,
    accept_unchanged: bool = False,
) -> bool:
    """At least one child, and every child complete."""
    if not children:
        return False
    return all(
        is_child_section_completed(child, require_eligibility_confirmation, accept_unchanged)
        for child in children
    )
