"""Compliance report aggregation.

Builds a ComplianceReport from one consistent snapshot of a system's
assessment, controls, events, gaps and risk management system. The
aggregator is pure: the caller reads the snapshot, the aggregator only
computes.

Report sections:
- controlSummary    — counts per implementation status, effectiveness rate
- eventSummary      — counts per investigation status, open critical events
- topRisks          — unresolved gaps, open critical/high events, failed or
                      ineffective controls ranked by severity then recency
- recommendations   — fixed rule templates, deduplicated, padded to a minimum
- complianceStatus  — implementation-rate banding, stricter for high tiers
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from aumos_risk_engine.core.models import (
    AiSystem,
    ComplianceGap,
    ComplianceReport,
    ControlEffectiveness,
    ControlSummary,
    EventStatus,
    EventSummary,
    ImplementationStatus,
    RiskAssessment,
    RiskControl,
    RiskEvent,
    RiskLevel,
    RiskManagementSystem,
    RiskSource,
    RmsSummary,
    Severity,
    TopRisk,
)
from aumos_risk_engine.engine.event_lifecycle import OPEN_STATUSES as OPEN_EVENT_STATUSES
from aumos_risk_engine.engine.gap_analyzer import COVERING_STATUSES, FULL_EFFECTIVENESS
from aumos_risk_engine.engine.gap_lifecycle import UNRESOLVED_STATUSES as UNRESOLVED_GAP_STATUSES
from aumos_risk_engine.engine.requirement_catalog import DEPLOYMENT_BLOCKED_RECOMMENDATION, get_requirement
from aumos_risk_engine.engine.review_schedule import is_review_overdue
from aumos_risk_engine.observability import get_logger

logger = get_logger(__name__)

SEVERITY_RANK: dict[Severity, int] = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}

HIGH_TIER_RECOMMENDATIONS: tuple[str, ...] = (
    "Schedule quarterly reassessments due to high-risk classification",
    "Enhance monitoring frequency for high-risk system operations",
)

GENERIC_RECOMMENDATIONS: tuple[str, ...] = (
    "Review and update risk management documentation regularly",
    "Conduct regular testing of implemented controls to verify effectiveness",
    "Maintain continuous monitoring for new risks and regulatory changes",
)

# (non-compliant below, partially compliant below) implementation-rate bands
_STRICT_BANDS = (50, 80)
_STANDARD_BANDS = (30, 70)

NO_CONTROLS_STATUS = "No controls implemented"


@dataclass(frozen=True)
class RiskSnapshot:
    """Everything the report reads, captured at one point in time.

    Attributes:
        system: The AI system the report is about.
        assessment: The latest assessment, or None if none exists.
        controls: All controls of the system.
        events: All risk events of the system.
        gaps: Gaps derived for the latest assessment.
        rms: The system's risk management system, if created.
    """

    system: AiSystem
    assessment: RiskAssessment | None = None
    controls: Sequence[RiskControl] = field(default_factory=tuple)
    events: Sequence[RiskEvent] = field(default_factory=tuple)
    gaps: Sequence[ComplianceGap] = field(default_factory=tuple)
    rms: RiskManagementSystem | None = None


def effectiveness_rate(controls: Sequence[RiskControl]) -> int:
    """Percentage of controls rated effective or very effective, rounded half up.

    Returns 0 for an empty control set.
    """
    total = len(controls)
    if total == 0:
        return 0
    effective = sum(1 for control in controls if control.effectiveness in FULL_EFFECTIVENESS)
    return (200 * effective + total) // (2 * total)


def compliance_status(controls: Sequence[RiskControl], tier: RiskLevel | None) -> str:
    """Band the share of implemented or verified controls into a status label."""
    total = len(controls)
    if total == 0:
        return NO_CONTROLS_STATUS
    implemented = sum(1 for control in controls if control.implementation_status in COVERING_STATUSES)
    non_compliant_below, partial_below = (
        _STRICT_BANDS if tier in (RiskLevel.HIGH, RiskLevel.UNACCEPTABLE) else _STANDARD_BANDS
    )
    if implemented * 100 < non_compliant_below * total:
        return "Non-compliant"
    if implemented * 100 < partial_below * total:
        return "Partially compliant"
    return "Compliant"


def _recency_key(moment: datetime | None) -> float:
    return -moment.timestamp() if moment is not None else math.inf


class ReportAggregator:
    """Computes ComplianceReport values.

    Args:
        top_risks_limit: Number of entries kept in ``top_risks``.
        minimum_recommendations: Pad recommendations with generic entries up to this count.
    """

    def __init__(self, top_risks_limit: int = 5, minimum_recommendations: int = 3) -> None:
        self._top_risks_limit = top_risks_limit
        self._minimum_recommendations = minimum_recommendations

    def build(self, snapshot: RiskSnapshot, now: datetime) -> ComplianceReport:
        """Build the report for one snapshot.

        Args:
            snapshot: The system state to summarize.
            now: Generation time; also decides whether the RMS review is overdue.

        Returns:
            The computed ComplianceReport.
        """
        tier, score = self._resolve_tier(snapshot)
        unresolved_gaps = [gap for gap in snapshot.gaps if gap.status in UNRESOLVED_GAP_STATUSES]
        rms_summary = self._rms_summary(snapshot.rms, now)

        report = ComplianceReport(
            system_id=snapshot.system.system_id,
            risk_level=tier,
            risk_score=score,
            compliance_status=compliance_status(snapshot.controls, tier),
            control_summary=self._control_summary(snapshot.controls),
            event_summary=self._event_summary(snapshot.events),
            open_gap_count=len(unresolved_gaps),
            top_risks=self._top_risks(unresolved_gaps, snapshot.events, snapshot.controls),
            recommendations=self._recommendations(tier, unresolved_gaps, snapshot, rms_summary),
            rms=rms_summary,
            generated_at=now,
        )
        logger.debug(
            "Report aggregated",
            system_id=report.system_id,
            risk_level=tier.value if tier else None,
            top_risk_count=len(report.top_risks),
        )
        return report

    @staticmethod
    def _resolve_tier(snapshot: RiskSnapshot) -> tuple[RiskLevel | None, int | None]:
        # An incomplete latest assessment reports no tier rather than a stale one.
        if snapshot.assessment is not None:
            return snapshot.assessment.risk_level, snapshot.assessment.risk_score
        return snapshot.system.risk_level, snapshot.system.risk_score

    @staticmethod
    def _control_summary(controls: Sequence[RiskControl]) -> ControlSummary:
        by_status = {status.value: 0 for status in ImplementationStatus}
        for control in controls:
            by_status[control.implementation_status.value] += 1
        return ControlSummary(
            total=len(controls),
            by_status=by_status,
            effectiveness_rate=effectiveness_rate(controls),
        )

    @staticmethod
    def _event_summary(events: Sequence[RiskEvent]) -> EventSummary:
        by_status = {status.value: 0 for status in EventStatus}
        for event in events:
            by_status[event.status.value] += 1
        open_critical = sum(
            1 for event in events if event.severity == Severity.CRITICAL and event.status in OPEN_EVENT_STATUSES
        )
        return EventSummary(total=len(events), by_status=by_status, open_critical_events=open_critical)

    @staticmethod
    def _rms_summary(rms: RiskManagementSystem | None, now: datetime) -> RmsSummary | None:
        if rms is None:
            return None
        return RmsSummary(
            rms_id=rms.rms_id,
            status=rms.status,
            version=rms.version,
            next_review_date=rms.next_review_date,
            review_overdue=is_review_overdue(rms.next_review_date, now),
        )

    def _top_risks(
        self,
        gaps: Sequence[ComplianceGap],
        events: Sequence[RiskEvent],
        controls: Sequence[RiskControl],
    ) -> list[TopRisk]:
        candidates: list[TopRisk] = [
            TopRisk(
                description=gap.description,
                severity=gap.severity,
                source=RiskSource.GAP,
                reference_id=gap.gap_id,
                detected_at=gap.identified_at,
            )
            for gap in gaps
        ]
        candidates.extend(
            TopRisk(
                description=event.description,
                severity=event.severity,
                source=RiskSource.EVENT,
                reference_id=event.event_id,
                detected_at=event.detection_date,
            )
            for event in events
            if event.status in OPEN_EVENT_STATUSES and event.severity in (Severity.CRITICAL, Severity.HIGH)
        )
        for control in controls:
            if control.effectiveness == ControlEffectiveness.INEFFECTIVE:
                description, severity = f"Ineffective control: {control.name}", Severity.HIGH
            elif control.implementation_status == ImplementationStatus.FAILED:
                description, severity = f"Failed control: {control.name}", Severity.MEDIUM
            else:
                continue
            candidates.append(
                TopRisk(
                    description=description,
                    severity=severity,
                    source=RiskSource.CONTROL,
                    reference_id=control.control_id,
                    detected_at=control.updated_at,
                )
            )

        candidates.sort(
            key=lambda risk: (-SEVERITY_RANK[risk.severity], _recency_key(risk.detected_at), risk.reference_id)
        )
        return candidates[: self._top_risks_limit]

    def _recommendations(
        self,
        tier: RiskLevel | None,
        gaps: Sequence[ComplianceGap],
        snapshot: RiskSnapshot,
        rms_summary: RmsSummary | None,
    ) -> list[str]:
        items: list[str] = []

        if tier == RiskLevel.UNACCEPTABLE:
            items.append(DEPLOYMENT_BLOCKED_RECOMMENDATION)

        for gap in gaps:
            requirement = get_requirement(gap.requirement)
            if gap.partial:
                items.append(
                    f"Strengthen partially effective controls for {requirement.title.lower()} ({requirement.article})"
                )
            else:
                items.append(requirement.recommendation)

        open_events = [event for event in snapshot.events if event.status in OPEN_EVENT_STATUSES]
        open_critical = sum(1 for event in open_events if event.severity == Severity.CRITICAL)
        open_high = sum(1 for event in open_events if event.severity == Severity.HIGH)
        if open_critical:
            items.append(f"Prioritize addressing {open_critical} open critical risk events")
        if open_high:
            items.append(f"Investigate {open_high} open high-severity risk events")

        failed = sum(
            1 for control in snapshot.controls if control.implementation_status == ImplementationStatus.FAILED
        )
        planned = sum(
            1 for control in snapshot.controls if control.implementation_status == ImplementationStatus.PLANNED
        )
        if failed:
            items.append(f"Review and fix {failed} failed control implementations")
        if planned:
            items.append(f"Implement {planned} planned risk controls to improve compliance status")

        if tier == RiskLevel.HIGH:
            items.extend(HIGH_TIER_RECOMMENDATIONS)

        if rms_summary is not None and rms_summary.review_overdue and rms_summary.next_review_date is not None:
            items.append(
                "Complete the overdue risk management system review "
                f"(due {rms_summary.next_review_date:%Y-%m-%d})"
            )

        recommendations = list(dict.fromkeys(items))
        for generic in GENERIC_RECOMMENDATIONS:
            if len(recommendations) >= self._minimum_recommendations:
                break
            if generic not in recommendations:
                recommendations.append(generic)
        return recommendations
