"""Gap analysis — compares implemented controls against the tier's safeguards.

For each safeguard the tier requires, the analyzer looks for a covering
control whose implementation status is implemented/verified:

- effective or very_effective coverage   -> no gap
- only partially_effective coverage      -> open gap flagged ``partial``,
                                            severity lowered one step
- no adequate coverage                   -> open gap

Gap identifiers are deterministic in (assessment_id, category), so re-running
the analyzer over an unchanged control set reproduces the same gap set. The
caller stores the result with a replace, never an append.

Remediation status updates go through GapLifecycle.
"""

import uuid
from collections.abc import Sequence
from datetime import UTC, datetime

from aumos_risk_engine.core.models import (
    ComplianceGap,
    ControlEffectiveness,
    GapStatus,
    ImplementationStatus,
    RiskControl,
    RiskLevel,
    SafeguardCategory,
    Severity,
)
from aumos_risk_engine.engine.requirement_catalog import SafeguardRequirement, requirements_for_tier
from aumos_risk_engine.observability import get_logger

logger = get_logger(__name__)

_GAP_ID_NAMESPACE = uuid.UUID("6f1d2c52-4b8e-4d0a-9a57-3c1f0e6b9d21")

COVERING_STATUSES: frozenset[ImplementationStatus] = frozenset(
    {ImplementationStatus.IMPLEMENTED, ImplementationStatus.VERIFIED}
)
FULL_EFFECTIVENESS: frozenset[ControlEffectiveness] = frozenset(
    {ControlEffectiveness.EFFECTIVE, ControlEffectiveness.VERY_EFFECTIVE}
)

_TIER_GAP_SEVERITY: dict[RiskLevel, Severity] = {
    RiskLevel.UNACCEPTABLE: Severity.CRITICAL,
    RiskLevel.HIGH: Severity.HIGH,
    RiskLevel.LIMITED: Severity.MEDIUM,
    RiskLevel.MINIMAL: Severity.LOW,
}

_LOWER_SEVERITY: dict[Severity, Severity] = {
    Severity.CRITICAL: Severity.HIGH,
    Severity.HIGH: Severity.MEDIUM,
    Severity.MEDIUM: Severity.LOW,
    Severity.LOW: Severity.LOW,
}


def gap_id_for(assessment_id: str, category: SafeguardCategory) -> str:
    """Return the deterministic gap id for an assessment and category."""
    return f"gap_{uuid.uuid5(_GAP_ID_NAMESPACE, f'{assessment_id}:{category.value}').hex}"


def control_covers(control: RiskControl, requirement: SafeguardRequirement) -> bool:
    """Whether a control addresses a safeguard category, regardless of status.

    A control with explicit ``safeguard_categories`` covers exactly those;
    otherwise coverage follows the category's accepted control types.
    """
    if control.safeguard_categories:
        return requirement.category in control.safeguard_categories
    return control.control_type in requirement.accepted_control_types


class GapAnalyzer:
    """Derives ComplianceGap records for one assessment.

    Pure and idempotent: given the same tier and controls it returns the same
    gaps. Passing the previously stored gaps carries over their
    ``identified_at`` timestamp and an ``in_remediation`` status.
    """

    def analyze(
        self,
        assessment_id: str,
        system_id: str,
        tier: RiskLevel,
        controls: Sequence[RiskControl],
        previous_gaps: Sequence[ComplianceGap] = (),
        now: datetime | None = None,
    ) -> list[ComplianceGap]:
        """Compute the gap set for an assessment.

        Args:
            assessment_id: The assessment the gaps belong to.
            system_id: The owning AI system.
            tier: The classified risk tier.
            controls: All controls of the system.
            previous_gaps: Gaps from the previous run, if any.
            now: Timestamp used for newly identified gaps.

        Returns:
            Gaps ordered as the catalog orders the tier's requirements.
        """
        timestamp = now or datetime.now(UTC)
        previous = {gap.gap_id: gap for gap in previous_gaps}
        base_severity = _TIER_GAP_SEVERITY[tier]
        gaps: list[ComplianceGap] = []

        for requirement in requirements_for_tier(tier):
            covering = [
                control
                for control in controls
                if control.implementation_status in COVERING_STATUSES and control_covers(control, requirement)
            ]
            if any(control.effectiveness in FULL_EFFECTIVENESS for control in covering):
                continue

            partial_controls = [
                control.control_id
                for control in covering
                if control.effectiveness == ControlEffectiveness.PARTIALLY_EFFECTIVE
            ]
            gap_id = gap_id_for(assessment_id, requirement.category)
            prior = previous.get(gap_id)

            if partial_controls:
                severity = _LOWER_SEVERITY[base_severity]
                description = f"{requirement.title} ({requirement.article}) is only partially covered"
            else:
                severity = base_severity
                description = f"No effective control covers {requirement.title} ({requirement.article})"

            status = GapStatus.OPEN
            if prior is not None and prior.status == GapStatus.IN_REMEDIATION:
                status = GapStatus.IN_REMEDIATION

            gaps.append(
                ComplianceGap(
                    gap_id=gap_id,
                    assessment_id=assessment_id,
                    system_id=system_id,
                    requirement=requirement.category,
                    article=requirement.article,
                    description=description,
                    severity=severity,
                    status=status,
                    partial=bool(partial_controls),
                    remediation=requirement.remediation,
                    covering_control_ids=sorted(partial_controls),
                    identified_at=prior.identified_at if prior is not None else timestamp,
                )
            )

        logger.debug(
            "Gap analysis computed",
            assessment_id=assessment_id,
            tier=tier.value,
            gap_count=len(gaps),
        )
        return gaps

