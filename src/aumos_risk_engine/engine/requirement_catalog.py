"""Requirement catalog — mapping of risk tier to mandatory safeguard categories.

This module is the single source of truth for which safeguards a tier
requires, which control types can satisfy each safeguard, and the fixed
remediation / recommendation text attached to each one. The regulatory
mapping itself is configuration, not something derived here.
"""

from dataclasses import dataclass

from aumos_risk_engine.core.models import ControlType, RiskLevel, SafeguardCategory


@dataclass(frozen=True)
class SafeguardRequirement:
    """One safeguard category and how it can be satisfied.

    Attributes:
        category: The safeguard category identifier.
        article: Regulation article reference.
        title: Short human-readable title.
        accepted_control_types: Control types that can cover this category.
        preferred_control_type: Type used when a control is generated for a gap.
        remediation: Remediation guidance attached to gaps.
        recommendation: Report recommendation emitted while a gap is open.
    """

    category: SafeguardCategory
    article: str
    title: str
    accepted_control_types: tuple[ControlType, ...]
    preferred_control_type: ControlType
    remediation: str
    recommendation: str


_REQUIREMENTS: dict[SafeguardCategory, SafeguardRequirement] = {
    SafeguardCategory.RISK_MANAGEMENT: SafeguardRequirement(
        category=SafeguardCategory.RISK_MANAGEMENT,
        article="Art. 9",
        title="Risk management system",
        accepted_control_types=(ControlType.ORGANIZATIONAL, ControlType.PROCEDURAL),
        preferred_control_type=ControlType.ORGANIZATIONAL,
        remediation="Establish and document a risk management process covering the full system lifecycle.",
        recommendation="Establish a documented risk management process covering the full system lifecycle",
    ),
    SafeguardCategory.DATA_GOVERNANCE: SafeguardRequirement(
        category=SafeguardCategory.DATA_GOVERNANCE,
        article="Art. 10",
        title="Data and data governance",
        accepted_control_types=(ControlType.TECHNICAL, ControlType.PROCEDURAL),
        preferred_control_type=ControlType.PROCEDURAL,
        remediation="Define data quality criteria and bias examination for training, validation and test data.",
        recommendation="Put data governance controls in place for training, validation and test data",
    ),
    SafeguardCategory.TECHNICAL_DOCUMENTATION: SafeguardRequirement(
        category=SafeguardCategory.TECHNICAL_DOCUMENTATION,
        article="Art. 11",
        title="Technical documentation",
        accepted_control_types=(ControlType.PROCEDURAL,),
        preferred_control_type=ControlType.PROCEDURAL,
        remediation="Draw up and maintain technical documentation before the system is put into service.",
        recommendation="Complete the technical documentation required before putting the system into service",
    ),
    SafeguardCategory.RECORD_KEEPING: SafeguardRequirement(
        category=SafeguardCategory.RECORD_KEEPING,
        article="Art. 12",
        title="Record-keeping",
        accepted_control_types=(ControlType.TECHNICAL,),
        preferred_control_type=ControlType.TECHNICAL,
        remediation="Enable automatic event logging over the lifetime of the system.",
        recommendation="Enable automatic event logging and define log retention for the system",
    ),
    SafeguardCategory.TRANSPARENCY: SafeguardRequirement(
        category=SafeguardCategory.TRANSPARENCY,
        article="Art. 13, Art. 50",
        title="Transparency and provision of information",
        accepted_control_types=(ControlType.PROCEDURAL, ControlType.CONTRACTUAL),
        preferred_control_type=ControlType.PROCEDURAL,
        remediation="Provide instructions for use and disclose AI interaction to affected persons.",
        recommendation="Provide transparency information and disclose AI interaction to affected persons",
    ),
    SafeguardCategory.HUMAN_OVERSIGHT: SafeguardRequirement(
        category=SafeguardCategory.HUMAN_OVERSIGHT,
        article="Art. 14",
        title="Human oversight",
        accepted_control_types=(ControlType.ORGANIZATIONAL, ControlType.PROCEDURAL),
        preferred_control_type=ControlType.ORGANIZATIONAL,
        remediation="Assign trained personnel able to monitor, interpret and override system outputs.",
        recommendation="Assign human oversight with authority to monitor and override system outputs",
    ),
    SafeguardCategory.ACCURACY_ROBUSTNESS: SafeguardRequirement(
        category=SafeguardCategory.ACCURACY_ROBUSTNESS,
        article="Art. 15",
        title="Accuracy, robustness and cybersecurity",
        accepted_control_types=(ControlType.TECHNICAL,),
        preferred_control_type=ControlType.TECHNICAL,
        remediation="Define accuracy metrics, test robustness and protect the system against manipulation.",
        recommendation="Define accuracy metrics and test robustness and cybersecurity of the system",
    ),
}

_TIER_REQUIREMENTS: dict[RiskLevel, tuple[SafeguardCategory, ...]] = {
    RiskLevel.UNACCEPTABLE: (),
    RiskLevel.HIGH: (
        SafeguardCategory.RISK_MANAGEMENT,
        SafeguardCategory.DATA_GOVERNANCE,
        SafeguardCategory.TECHNICAL_DOCUMENTATION,
        SafeguardCategory.RECORD_KEEPING,
        SafeguardCategory.TRANSPARENCY,
        SafeguardCategory.HUMAN_OVERSIGHT,
        SafeguardCategory.ACCURACY_ROBUSTNESS,
    ),
    RiskLevel.LIMITED: (SafeguardCategory.TRANSPARENCY,),
    RiskLevel.MINIMAL: (),
}

DEPLOYMENT_BLOCKED_RECOMMENDATION = (
    "Halt deployment: the system matches a prohibited practice under Article 5 "
    "and must not be placed on the market or put into service"
)


def required_categories(tier: RiskLevel) -> tuple[SafeguardCategory, ...]:
    """Return the ordered safeguard categories required for a tier.

    Args:
        tier: The classified risk tier.

    Returns:
        Ordered tuple of categories; empty for minimal and unacceptable.
    """
    return _TIER_REQUIREMENTS[tier]


def get_requirement(category: SafeguardCategory) -> SafeguardRequirement:
    """Return the catalog entry for a safeguard category."""
    return _REQUIREMENTS[category]


def requirements_for_tier(tier: RiskLevel) -> list[SafeguardRequirement]:
    """Return catalog entries for every category required by a tier, in order."""
    return [_REQUIREMENTS[category] for category in _TIER_REQUIREMENTS[tier]]


def is_deployment_blocked(tier: RiskLevel | None) -> bool:
    """Whether the tier short-circuits to a blocking recommendation."""
    return tier == RiskLevel.UNACCEPTABLE


def list_requirements() -> list[SafeguardRequirement]:
    """Return every safeguard requirement in catalog order."""
    return list(_REQUIREMENTS.values())
