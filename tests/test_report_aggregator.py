"""Tests for ReportAggregator and review cadence helpers."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from aumos_risk_engine.core.models import (
    AiSystem,
    ComplianceGap,
    ControlEffectiveness,
    EventStatus,
    GapStatus,
    ImplementationStatus,
    ReviewCycle,
    RiskAssessment,
    RiskControl,
    RiskEvent,
    RiskLevel,
    RiskManagementSystem,
    RiskSource,
    SafeguardCategory,
    Severity,
)
from aumos_risk_engine.engine.gap_analyzer import gap_id_for
from aumos_risk_engine.engine.report_aggregator import (
    GENERIC_RECOMMENDATIONS,
    HIGH_TIER_RECOMMENDATIONS,
    NO_CONTROLS_STATUS,
    ReportAggregator,
    RiskSnapshot,
    compliance_status,
    effectiveness_rate,
)
from aumos_risk_engine.engine.requirement_catalog import DEPLOYMENT_BLOCKED_RECOMMENDATION, get_requirement
from aumos_risk_engine.engine.review_schedule import add_months, is_review_overdue, next_review_date

ControlFactory = Callable[..., RiskControl]


def _gap(
    category: SafeguardCategory,
    identified_at: datetime,
    severity: Severity = Severity.HIGH,
    status: GapStatus = GapStatus.OPEN,
    partial: bool = False,
) -> ComplianceGap:
    requirement = get_requirement(category)
    return ComplianceGap(
        gap_id=gap_id_for("ra_test", category),
        assessment_id="ra_test",
        system_id="sys_test",
        requirement=category,
        article=requirement.article,
        description=f"No effective control covers {requirement.title} ({requirement.article})",
        severity=severity,
        status=status,
        partial=partial,
        remediation=requirement.remediation,
        identified_at=identified_at,
    )


def _controls(make_control: ControlFactory, implemented: int, total: int, effective: int = 0) -> list[RiskControl]:
    controls = []
    for index in range(total):
        controls.append(
            make_control(
                control_id=f"ctrl_{index}",
                implementation_status=(
                    ImplementationStatus.IMPLEMENTED if index < implemented else ImplementationStatus.IN_PROGRESS
                ),
                effectiveness=(
                    ControlEffectiveness.EFFECTIVE if index < effective else ControlEffectiveness.NOT_TESTED
                ),
            )
        )
    return controls


class TestEffectivenessRate:
    def test_zero_controls_is_zero(self) -> None:
        assert effectiveness_rate([]) == 0

    @pytest.mark.parametrize(
        ("effective", "total", "expected"),
        [(1, 3, 33), (2, 3, 67), (1, 8, 13), (3, 8, 38), (4, 4, 100), (0, 5, 0)],
    )
    def test_rounds_half_up(
        self, make_control: ControlFactory, effective: int, total: int, expected: int
    ) -> None:
        controls = _controls(make_control, implemented=total, total=total, effective=effective)

        assert effectiveness_rate(controls) == expected

    def test_very_effective_counts(self, make_control: ControlFactory) -> None:
        controls = [
            make_control(
                implementation_status=ImplementationStatus.VERIFIED,
                effectiveness=ControlEffectiveness.VERY_EFFECTIVE,
            ),
            make_control(control_id="ctrl_2", effectiveness=ControlEffectiveness.PARTIALLY_EFFECTIVE),
        ]

        assert effectiveness_rate(controls) == 50


class TestComplianceStatus:
    def test_no_controls(self) -> None:
        assert compliance_status([], RiskLevel.HIGH) == NO_CONTROLS_STATUS

    @pytest.mark.parametrize(
        ("tier", "implemented", "total", "expected"),
        [
            (RiskLevel.HIGH, 1, 4, "Non-compliant"),
            (RiskLevel.HIGH, 2, 4, "Partially compliant"),
            (RiskLevel.HIGH, 3, 4, "Partially compliant"),
            (RiskLevel.HIGH, 4, 5, "Compliant"),
            (RiskLevel.UNACCEPTABLE, 2, 5, "Non-compliant"),
            (RiskLevel.MINIMAL, 1, 4, "Non-compliant"),
            (RiskLevel.MINIMAL, 3, 10, "Partially compliant"),
            (RiskLevel.LIMITED, 3, 4, "Compliant"),
            (None, 7, 10, "Compliant"),
        ],
    )
    def test_bands(
        self,
        make_control: ControlFactory,
        tier: RiskLevel | None,
        implemented: int,
        total: int,
        expected: str,
    ) -> None:
        assert compliance_status(_controls(make_control, implemented, total), tier) == expected


class TestReportBuild:
    def test_empty_system(self, make_system: Callable[..., AiSystem], now: datetime) -> None:
        report = ReportAggregator().build(RiskSnapshot(system=make_system()), now)

        assert report.risk_level is None
        assert report.compliance_status == NO_CONTROLS_STATUS
        assert report.control_summary.total == 0
        assert report.control_summary.effectiveness_rate == 0
        assert report.control_summary.by_status == {status.value: 0 for status in ImplementationStatus}
        assert report.event_summary.by_status == {status.value: 0 for status in EventStatus}
        assert report.top_risks == []
        assert report.recommendations == list(GENERIC_RECOMMENDATIONS)
        assert report.rms is None
        assert report.generated_at == now

    def test_tier_comes_from_latest_assessment(
        self,
        make_system: Callable[..., AiSystem],
        make_assessment: Callable[..., RiskAssessment],
        now: datetime,
    ) -> None:
        system = make_system(risk_level=RiskLevel.HIGH, risk_score=14)
        incomplete = make_assessment(risk_level=None, risk_score=None)

        with_assessment = ReportAggregator().build(RiskSnapshot(system=system, assessment=incomplete), now)
        without = ReportAggregator().build(RiskSnapshot(system=system), now)

        assert (with_assessment.risk_level, with_assessment.risk_score) == (None, None)
        assert (without.risk_level, without.risk_score) == (RiskLevel.HIGH, 14)

    def test_top_risks_ranked_by_severity_then_recency(
        self,
        make_system: Callable[..., AiSystem],
        make_event: Callable[..., RiskEvent],
        make_control: ControlFactory,
        now: datetime,
    ) -> None:
        snapshot = RiskSnapshot(
            system=make_system(),
            gaps=[
                _gap(SafeguardCategory.HUMAN_OVERSIGHT, now - timedelta(days=10)),
                _gap(SafeguardCategory.RECORD_KEEPING, now, status=GapStatus.CLOSED),
            ],
            events=[
                make_event(event_id="evt_critical", severity=Severity.CRITICAL, detection_date=now - timedelta(days=1)),
                make_event(event_id="evt_high", severity=Severity.HIGH, detection_date=now),
                make_event(
                    event_id="evt_resolved",
                    severity=Severity.CRITICAL,
                    status=EventStatus.RESOLVED,
                    detection_date=now,
                ),
                make_event(event_id="evt_low", severity=Severity.LOW, detection_date=now),
            ],
            controls=[
                make_control(
                    control_id="ctrl_ineffective",
                    implementation_status=ImplementationStatus.IMPLEMENTED,
                    effectiveness=ControlEffectiveness.INEFFECTIVE,
                    updated_at=now - timedelta(days=2),
                ),
                make_control(control_id="ctrl_failed", implementation_status=ImplementationStatus.FAILED),
            ],
        )

        report = ReportAggregator().build(snapshot, now)

        assert [risk.reference_id for risk in report.top_risks] == [
            "evt_critical",
            "evt_high",
            "ctrl_ineffective",
            gap_id_for("ra_test", SafeguardCategory.HUMAN_OVERSIGHT),
            "ctrl_failed",
        ]
        assert [risk.source for risk in report.top_risks] == [
            RiskSource.EVENT,
            RiskSource.EVENT,
            RiskSource.CONTROL,
            RiskSource.GAP,
            RiskSource.CONTROL,
        ]
        assert report.open_gap_count == 1
        assert report.event_summary.open_critical_events == 1
        assert report.event_summary.by_status["resolved"] == 1

    def test_top_risks_limit_and_tie_break(
        self, make_system: Callable[..., AiSystem], make_event: Callable[..., RiskEvent], now: datetime
    ) -> None:
        events = [make_event(event_id=f"evt_{index}", severity=Severity.HIGH) for index in (3, 1, 2)]

        report = ReportAggregator(top_risks_limit=2).build(RiskSnapshot(system=make_system(), events=events), now)

        assert [risk.reference_id for risk in report.top_risks] == ["evt_1", "evt_2"]

    def test_unacceptable_tier_leads_with_blocking_recommendation(
        self,
        make_system: Callable[..., AiSystem],
        make_assessment: Callable[..., RiskAssessment],
        now: datetime,
    ) -> None:
        snapshot = RiskSnapshot(
            system=make_system(),
            assessment=make_assessment(risk_level=RiskLevel.UNACCEPTABLE, risk_score=25),
        )

        report = ReportAggregator().build(snapshot, now)

        assert report.recommendations[0] == DEPLOYMENT_BLOCKED_RECOMMENDATION
        assert len(report.recommendations) == 3

    def test_recommendation_order(
        self,
        make_system: Callable[..., AiSystem],
        make_assessment: Callable[..., RiskAssessment],
        make_event: Callable[..., RiskEvent],
        make_control: ControlFactory,
        make_rms: Callable[..., RiskManagementSystem],
        now: datetime,
    ) -> None:
        snapshot = RiskSnapshot(
            system=make_system(),
            assessment=make_assessment(risk_level=RiskLevel.HIGH, risk_score=12),
            gaps=[
                _gap(SafeguardCategory.HUMAN_OVERSIGHT, now),
                _gap(SafeguardCategory.TRANSPARENCY, now, severity=Severity.MEDIUM, partial=True),
            ],
            events=[
                make_event(event_id="evt_1", severity=Severity.CRITICAL),
                make_event(event_id="evt_2", severity=Severity.CRITICAL),
                make_event(event_id="evt_3", severity=Severity.HIGH),
            ],
            controls=[
                make_control(control_id="ctrl_1", implementation_status=ImplementationStatus.FAILED),
                make_control(control_id="ctrl_2"),
            ],
            rms=make_rms(next_review_date=datetime(2025, 3, 1, tzinfo=UTC)),
        )

        report = ReportAggregator().build(snapshot, now)

        assert report.recommendations == [
            "Assign human oversight with authority to monitor and override system outputs",
            "Strengthen partially effective controls for transparency and provision of information "
            "(Art. 13, Art. 50)",
            "Prioritize addressing 2 open critical risk events",
            "Investigate 1 open high-severity risk events",
            "Review and fix 1 failed control implementations",
            "Implement 1 planned risk controls to improve compliance status",
            *HIGH_TIER_RECOMMENDATIONS,
            "Complete the overdue risk management system review (due 2025-03-01)",
        ]
        assert report.rms is not None
        assert report.rms.review_overdue is True

    def test_padding_skips_duplicates_and_stops_at_minimum(
        self,
        make_system: Callable[..., AiSystem],
        make_assessment: Callable[..., RiskAssessment],
        now: datetime,
    ) -> None:
        snapshot = RiskSnapshot(
            system=make_system(),
            assessment=make_assessment(risk_level=RiskLevel.HIGH, risk_score=12),
        )

        report = ReportAggregator(minimum_recommendations=3).build(snapshot, now)

        assert report.recommendations == [*HIGH_TIER_RECOMMENDATIONS, GENERIC_RECOMMENDATIONS[0]]

    def test_rms_not_overdue_without_schedule(
        self, make_system: Callable[..., AiSystem], make_rms: Callable[..., RiskManagementSystem], now: datetime
    ) -> None:
        report = ReportAggregator().build(RiskSnapshot(system=make_system(), rms=make_rms()), now)

        assert report.rms is not None
        assert report.rms.review_overdue is False
        assert report.rms.version == 1


class TestReviewSchedule:
    @pytest.mark.parametrize(
        ("start", "cycle", "expected"),
        [
            (datetime(2025, 1, 15, tzinfo=UTC), ReviewCycle.MONTHLY, datetime(2025, 2, 15, tzinfo=UTC)),
            (datetime(2025, 1, 31, tzinfo=UTC), ReviewCycle.MONTHLY, datetime(2025, 2, 28, tzinfo=UTC)),
            (datetime(2023, 11, 30, tzinfo=UTC), ReviewCycle.QUARTERLY, datetime(2024, 2, 29, tzinfo=UTC)),
            (datetime(2025, 8, 31, tzinfo=UTC), ReviewCycle.SEMI_ANNUAL, datetime(2026, 2, 28, tzinfo=UTC)),
            (datetime(2024, 2, 29, tzinfo=UTC), ReviewCycle.ANNUAL, datetime(2025, 2, 28, tzinfo=UTC)),
        ],
    )
    def test_next_review_date(self, start: datetime, cycle: ReviewCycle, expected: datetime) -> None:
        assert next_review_date(start, cycle) == expected

    def test_add_months_crosses_year(self) -> None:
        assert add_months(datetime(2025, 12, 5, tzinfo=UTC), 1) == datetime(2026, 1, 5, tzinfo=UTC)

    def test_overdue(self, now: datetime) -> None:
        assert is_review_overdue(now - timedelta(seconds=1), now)
        assert not is_review_overdue(now, now)
        assert not is_review_overdue(None, now)
