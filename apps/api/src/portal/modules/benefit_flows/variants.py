"""
Flow Variant Resolver

Static route configuration for every flow family, plus the data-driven step
tables of each flow variant.

A family (apply, protected-apply, renew, protected-renew) fixes the session
key namespace, where its routes carry the flow id, and which application
contexts it serves. Within a family the variant is picked by context and by
the state's typeOfApplication:

    "<flow type>-<context>-<type of application>"

e.g. "protected-apply-intake-family". Until a type is chosen (or when the
user is a delegate) the family's entry variant applies, which holds only the
type-of-application step.

Each context carries a SectionPolicy that decides whether a confirmed
"no change" declaration completes a section in that context.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date
from typing import Generic, TypeVar

from portal.modules.benefit_flows import checks
from portal.modules.benefit_flows.helpers import (
    get_children_state,
    get_recovery_url,
    is_within_renewal_period,
)
from portal.modules.benefit_flows.models import (
    ApplicationContext,
    ChildState,
    FlowState,
    FlowType,
    IdSource,
    TypeOfApplication,
)
from portal.modules.benefit_flows.outcomes import FlowOutcome, Loaded, Redirect

S = TypeVar("S")

ENTRY_VARIANT = "entry"
DELEGATE_ROUTE_ID = "application-delegate"


@dataclass(frozen=True)
class SectionPolicy:
    """Per-context completion rules for sections that can be left unchanged."""

    accept_unchanged_phone_number: bool = False
    accept_unchanged_address: bool = False
    accept_unchanged_communication_preferences: bool = False
    accept_unchanged_dental_benefits: bool = False
    require_dental_insurance_confirmation: bool = False


# New applicants have nothing on file to keep
INTAKE_POLICY = SectionPolicy()

SIMPLIFIED_RENEWAL_POLICY = SectionPolicy(
    accept_unchanged_phone_number=True,
    accept_unchanged_address=True,
    accept_unchanged_communication_preferences=True,
    accept_unchanged_dental_benefits=True,
)

FULL_RENEWAL_POLICY = SectionPolicy(
    accept_unchanged_phone_number=True,
    accept_unchanged_communication_preferences=True,
    require_dental_insurance_confirmation=True,
)


@dataclass(frozen=True)
class FlowStep(Generic[S]):
    """One wizard step: its route id and the check that it is done."""

    route_id: str
    is_completed: Callable[[S], bool]


@dataclass(frozen=True)
class FlowVariant:
    tag: str
    steps: tuple[FlowStep[FlowState], ...]
    child_steps: tuple[FlowStep[ChildState], ...] = ()

    @property
    def route_ids(self) -> tuple[str, ...]:
        return tuple(step.route_id for step in self.steps)


@dataclass(frozen=True)
class FlowFamily:
    """Static configuration shared by every route of one flow family."""

    flow_type: FlowType
    id_source: IdSource
    contexts: tuple[ApplicationContext, ...]
    policies: Mapping[ApplicationContext, SectionPolicy]
    # Settings prefix of the page stale or expired flows are sent to
    recovery_page: str = "apply"

    @property
    def name(self) -> str:
        return self.flow_type.value

    def get_recovery_url(self, lang: str) -> str:
        return get_recovery_url(lang, self.recovery_page)

    def allows_context(self, context: ApplicationContext) -> bool:
        return context in self.contexts

    def get_policy(self, context: ApplicationContext) -> SectionPolicy:
        return self.policies[context]

    def get_start_context(self, today: date | None = None) -> ApplicationContext:
        """
        Pick the context of a new flow.

        Renewal-only families always renew; families serving both contexts
        renew only while the renewal period is open.
        """
        if ApplicationContext.INTAKE not in self.contexts:
            return ApplicationContext.RENEWAL
        if ApplicationContext.RENEWAL in self.contexts and is_within_renewal_period(today):
            return ApplicationContext.RENEWAL
        return ApplicationContext.INTAKE


APPLY_FAMILY = FlowFamily(
    flow_type=FlowType.APPLY,
    id_source=IdSource.PATH,
    contexts=(ApplicationContext.INTAKE, ApplicationContext.RENEWAL),
    policies={
        ApplicationContext.INTAKE: INTAKE_POLICY,
        ApplicationContext.RENEWAL: SIMPLIFIED_RENEWAL_POLICY,
    },
)

PROTECTED_APPLY_FAMILY = FlowFamily(
    flow_type=FlowType.PROTECTED_APPLY,
    id_source=IdSource.PATH,
    contexts=(ApplicationContext.INTAKE, ApplicationContext.RENEWAL),
    policies={
        ApplicationContext.INTAKE: INTAKE_POLICY,
        ApplicationContext.RENEWAL: FULL_RENEWAL_POLICY,
    },
    recovery_page="protected_apply",
)

RENEW_FAMILY = FlowFamily(
    flow_type=FlowType.RENEW,
    id_source=IdSource.QUERY,
    contexts=(ApplicationContext.RENEWAL,),
    policies={ApplicationContext.RENEWAL: SIMPLIFIED_RENEWAL_POLICY},
)

PROTECTED_RENEW_FAMILY = FlowFamily(
    flow_type=FlowType.PROTECTED_RENEW,
    id_source=IdSource.QUERY,
    contexts=(ApplicationContext.RENEWAL,),
    policies={ApplicationContext.RENEWAL: FULL_RENEWAL_POLICY},
)

FLOW_FAMILIES: dict[str, FlowFamily] = {
    family.name: family
    for family in (APPLY_FAMILY, PROTECTED_APPLY_FAMILY, RENEW_FAMILY, PROTECTED_RENEW_FAMILY)
}


def get_flow_family(name: str) -> FlowFamily | None:
    """Get a flow family by its route name (its flow type value)."""
    return FLOW_FAMILIES.get(name)


# =============================================================================
# Step tables
# =============================================================================

ENTRY_ROUTE_IDS = ("type-of-application",)

APPLICANT_ROUTE_IDS = (
    "type-of-application",
    "terms-and-conditions",
    "applicant-information",
    "marital-status",
    "phone-number",
    "address",
    "communication-preferences",
)

ROUTE_IDS_BY_TYPE: dict[TypeOfApplication, tuple[str, ...]] = {
    TypeOfApplication.ADULT: APPLICANT_ROUTE_IDS + ("dental-insurance", "dental-benefits"),
    TypeOfApplication.FAMILY: APPLICANT_ROUTE_IDS + ("dental-insurance", "dental-benefits", "children"),
    # Only the children are covered; the applicant answers no dental questions
    TypeOfApplication.CHILDREN: APPLICANT_ROUTE_IDS + ("children",),
}

CHILD_ROUTE_IDS = ("information", "dental-insurance", "dental-benefits")


def build_steps(policy: SectionPolicy) -> dict[str, FlowStep[FlowState]]:
    """Build every applicant step, bound to the completion rules of a policy."""
    return {
        step.route_id: step
        for step in (
            FlowStep(
                "type-of-application",
                lambda state: checks.is_type_of_application_section_completed(
                    state.type_of_application
                ),
            ),
            FlowStep(
                "terms-and-conditions",
                lambda state: checks.is_terms_and_conditions_section_completed(
                    state.terms_and_conditions
                ),
            ),
            FlowStep(
                "applicant-information",
                lambda state: checks.is_applicant_information_section_completed(
                    state.applicant_information
                ),
            ),
            FlowStep(
                "marital-status",
                lambda state: checks.is_marital_status_section_completed(
                    state.marital_status, state.partner_information
                ),
            ),
            FlowStep(
                "phone-number",
                lambda state: checks.is_phone_number_section_completed(
                    state.phone_number, accept_unchanged=policy.accept_unchanged_phone_number
                ),
            ),
            FlowStep(
                "address",
                lambda state: checks.is_address_section_completed(
                    state.mailing_address,
                    state.home_address,
                    accept_unchanged=policy.accept_unchanged_address,
                ),
            ),
            FlowStep(
                "communication-preferences",
                lambda state: checks.is_communication_preferences_section_completed(
                    state.communication_preferences,
                    state.email,
                    state.email_verified,
                    accept_unchanged=policy.accept_unchanged_communication_preferences,
                ),
            ),
            FlowStep(
                "dental-insurance",
                lambda state: checks.is_dental_insurance_section_completed(
                    state.dental_insurance,
                    require_eligibility_confirmation=policy.require_dental_insurance_confirmation,
                ),
            ),
            FlowStep(
                "dental-benefits",
                lambda state: checks.is_dental_benefits_section_completed(
                    state.dental_benefits, accept_unchanged=policy.accept_unchanged_dental_benefits
                ),
            ),
            FlowStep(
                "children",
                lambda state: checks.is_children_section_completed(
                    get_children_state(state.children),
                    require_eligibility_confirmation=policy.require_dental_insurance_confirmation,
                    accept_unchanged=policy.accept_unchanged_dental_benefits,
                ),
            ),
        )
    }


def build_child_steps(policy: SectionPolicy) -> tuple[FlowStep[ChildState], ...]:
    """Build the per-child steps, bound to the completion rules of a policy."""
    return (
        FlowStep(
            "information",
            lambda child: checks.is_child_information_section_completed(child.information),
        ),
        FlowStep(
            "dental-insurance",
            lambda child: checks.is_child_dental_insurance_section_completed(
                child.dental_insurance,
                require_eligibility_confirmation=policy.require_dental_insurance_confirmation,
            ),
        ),
        FlowStep(
            "dental-benefits",
            lambda child: checks.is_child_dental_benefits_section_completed(
                child.dental_benefits, accept_unchanged=policy.accept_unchanged_dental_benefits
            ),
        ),
    )


def get_variant_tag(
    family: FlowFamily,
    context: ApplicationContext,
    type_of_application: TypeOfApplication | None,
) -> str:
    if type_of_application is None or type_of_application is TypeOfApplication.DELEGATE:
        suffix = ENTRY_VARIANT
    else:
        suffix = type_of_application.value
    return f"{family.name}-{context.value}-{suffix}"


def _build_variants() -> dict[str, FlowVariant]:
    variants: dict[str, FlowVariant] = {}
    for family in FLOW_FAMILIES.values():
        for context in family.contexts:
            policy = family.get_policy(context)
            steps = build_steps(policy)
            child_steps = build_child_steps(policy)

            entry_tag = get_variant_tag(family, context, None)
            variants[entry_tag] = FlowVariant(
                tag=entry_tag,
                steps=tuple(steps[route_id] for route_id in ENTRY_ROUTE_IDS),
            )

            for type_of_application, route_ids in ROUTE_IDS_BY_TYPE.items():
                tag = get_variant_tag(family, context, type_of_application)
                variants[tag] = FlowVariant(
                    tag=tag,
                    steps=tuple(steps[route_id] for route_id in route_ids),
                    child_steps=child_steps if "children" in route_ids else (),
                )
    return variants


VARIANTS = _build_variants()


def resolve_flow_variant(family: FlowFamily, state: FlowState) -> FlowVariant:
    """
    Select the variant serving a flow's current state.

    Re-reads typeOfApplication on every call, so changing the answer switches
    the downstream step list on the next request.

    Raises:
        KeyError: If the state's context is not served by the family.
    """
    tag = get_variant_tag(family, state.context, state.type_of_application)
    return VARIANTS[tag]


def validate_flow_context(family: FlowFamily, state: FlowState, lang: str) -> FlowOutcome:
    """
    Check that a state belongs to a context its family serves.

    A renewal flow reached through an intake-only route (or the reverse)
    is treated like a stale link.
    """
    if not family.allows_context(state.context):
        return Redirect(
            url=family.get_recovery_url(lang),
            reason=f"context {state.context.value} not served by {family.name}",
        )
    return Loaded(state)
