"""Domain models for the risk engine.

Every entity that crosses the storage boundary is a frozen Pydantic model, so
the engine always works on immutable snapshots. State changes produce new
instances via ``model_copy(update=...)`` inside the lifecycle state machines.

Field names are snake_case in Python and camelCase on the wire (the stable
contract consumed by the presentation layer).

Models:
- AiSystem              — registered AI system with cached risk tier
- RiskAssessment        — classification answers plus derived tier and score
- RiskManagementSystem  — one per system, version-guarded
- RiskControl           — mitigating measure with implementation lifecycle
- RiskEvent             — incident / near miss with investigation lifecycle
- ComplianceGap         — derived record of a missing safeguard
- ActivityRecord        — immutable trail entry written after each mutation
- ComplianceReport      — computed summary, never persisted
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DomainModel(BaseModel):
    """Base for all domain records: frozen, camelCase aliases, snake_case access."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ---------------------------------------------------------------------------
# Enumerations: one per state machine / closed vocabulary
# ---------------------------------------------------------------------------


class RiskLevel(StrEnum):
    UNACCEPTABLE = "unacceptable"
    HIGH = "high"
    LIMITED = "limited"
    MINIMAL = "minimal"


class OrdinalLevel(StrEnum):
    VERY_LOW = "very_low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class AssessmentStatus(StrEnum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    APPROVED = "approved"
    REJECTED = "rejected"
    REQUIRES_UPDATE = "requires_update"


class RmsStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNDER_REVIEW = "under_review"
    OUTDATED = "outdated"


class ReviewCycle(StrEnum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUAL = "semi-annual"
    ANNUAL = "annual"


class ControlType(StrEnum):
    TECHNICAL = "technical"
    PROCEDURAL = "procedural"
    ORGANIZATIONAL = "organizational"
    CONTRACTUAL = "contractual"


class ImplementationStatus(StrEnum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    IMPLEMENTED = "implemented"
    VERIFIED = "verified"
    FAILED = "failed"


class ControlEffectiveness(StrEnum):
    VERY_EFFECTIVE = "very_effective"
    EFFECTIVE = "effective"
    PARTIALLY_EFFECTIVE = "partially_effective"
    INEFFECTIVE = "ineffective"
    NOT_IMPLEMENTED = "not_implemented"
    NOT_TESTED = "not_tested"


class EventType(StrEnum):
    INCIDENT = "incident"
    NEAR_MISS = "near_miss"
    PERFORMANCE_DEVIATION = "performance_deviation"
    EXTERNAL_FACTOR = "external_factor"
    USER_FEEDBACK = "user_feedback"


class Severity(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EventStatus(StrEnum):
    NEW = "new"
    UNDER_INVESTIGATION = "under_investigation"
    RESOLVED = "resolved"
    CLOSED = "closed"


class GapStatus(StrEnum):
    OPEN = "open"
    IN_REMEDIATION = "in_remediation"
    CLOSED = "closed"


class SafeguardCategory(StrEnum):
    RISK_MANAGEMENT = "risk-management"
    DATA_GOVERNANCE = "data-governance"
    TECHNICAL_DOCUMENTATION = "technical-documentation"
    RECORD_KEEPING = "record-keeping"
    TRANSPARENCY = "transparency"
    HUMAN_OVERSIGHT = "human-oversight"
    ACCURACY_ROBUSTNESS = "accuracy-robustness"


class RiskSource(StrEnum):
    GAP = "gap"
    EVENT = "event"
    CONTROL = "control"


# ---------------------------------------------------------------------------
# Classification inputs and output
# ---------------------------------------------------------------------------


class ProhibitedUseFlags(DomainModel):
    """Article 5 prohibited-practice answers. None means "not answered"."""

    social_scoring: bool | None = None
    vulnerability_exploitation: bool | None = None
    subliminal_techniques: bool | None = None
    biometric_identification: bool | None = None


class HighRiskCategoryFlags(DomainModel):
    """Annex III high-risk application domain answers. None means "not answered"."""

    biometric_category: bool | None = None
    critical_infrastructure: bool | None = None
    education_vocational: bool | None = None
    employment_work_management: bool | None = None
    essential_services: bool | None = None
    law_enforcement: bool | None = None
    migration_asylum_border: bool | None = None
    justice_processes: bool | None = None


class RiskParameters(DomainModel):
    """Ordinal risk parameters.

    Values are kept as raw labels so that ParameterScale is the single place
    that accepts or rejects them (InvalidParameterError).
    """

    autonomy_level: str | None = None
    technical_maturity: str | None = None
    impact_severity: str | None = None
    scale_of_deployment: str | None = None
    user_vulnerability: str | None = None


class ClassificationInput(DomainModel):
    """The full answer set consumed by ClassificationEngine."""

    prohibited_use_flags: ProhibitedUseFlags = Field(default_factory=ProhibitedUseFlags)
    high_risk_category_flags: HighRiskCategoryFlags = Field(default_factory=HighRiskCategoryFlags)
    risk_parameters: RiskParameters = Field(default_factory=RiskParameters)


class ClassificationResult(DomainModel):
    risk_level: RiskLevel
    risk_score: int


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


class AiSystem(DomainModel):
    """A registered AI system.

    Attributes:
        system_id: Stable identifier (``sys_`` prefix).
        risk_level: Cached tier, copied from the last approved assessment.
        risk_score: Cached score, copied from the last approved assessment.
    """

    system_id: str
    name: str
    department: str
    purpose: str | None = None
    vendor: str | None = None
    version: str | None = None
    description: str | None = None
    risk_level: RiskLevel | None = None
    risk_score: int | None = None
    last_assessment_date: datetime | None = None
    created_at: datetime
    updated_at: datetime


class RiskAssessment(DomainModel):
    """A risk assessment for one AI system.

    ``risk_level`` and ``risk_score`` are derived from the flags and
    parameters on the same record and are recomputed whenever answers change.
    They are None while the answer set is incomplete.
    ``revision`` advances on every save and guards against stale writes.
    """

    assessment_id: str
    system_id: str
    status: AssessmentStatus = AssessmentStatus.DRAFT
    prohibited_use_flags: ProhibitedUseFlags = Field(default_factory=ProhibitedUseFlags)
    high_risk_category_flags: HighRiskCategoryFlags = Field(default_factory=HighRiskCategoryFlags)
    risk_parameters: RiskParameters = Field(default_factory=RiskParameters)
    risk_level: RiskLevel | None = None
    risk_score: int | None = None
    summary_notes: str | None = None
    created_by: str | None = None
    assessment_date: datetime
    revision: int = 1
    created_at: datetime
    updated_at: datetime

    def classification_input(self) -> ClassificationInput:
        """Return the answer set carried by this assessment."""
        return ClassificationInput(
            prohibited_use_flags=self.prohibited_use_flags,
            high_risk_category_flags=self.high_risk_category_flags,
            risk_parameters=self.risk_parameters,
        )


class RiskManagementSystem(DomainModel):
    """The risk management system of one AI system.

    ``version`` is the optimistic concurrency token: it starts at 1 and is
    incremented by the repository on every successful update.
    """

    rms_id: str
    system_id: str
    status: RmsStatus = RmsStatus.ACTIVE
    review_cycle: ReviewCycle = ReviewCycle.QUARTERLY
    last_review_date: datetime | None = None
    next_review_date: datetime | None = None
    responsible_person: str | None = None
    document_reference: str | None = None
    notes: str | None = None
    version: int = 1
    created_at: datetime
    updated_at: datetime


class RiskControl(DomainModel):
    """A mitigating control.

    Attributes:
        implementation_cycle: Attempt counter, incremented by an explicit reset.
        implementation_date: First time the control reached ``implemented``.
            Never overwritten once set.
        safeguard_categories: Optional explicit coverage. When empty, coverage
            is inferred from ``control_type``.
        related_gaps: Informational back-references to ComplianceGap ids.
        revision: Row revision, advanced by the repository on every save.
    """

    control_id: str
    system_id: str
    name: str
    description: str = ""
    control_type: ControlType
    implementation_status: ImplementationStatus = ImplementationStatus.PLANNED
    effectiveness: ControlEffectiveness = ControlEffectiveness.NOT_TESTED
    implementation_cycle: int = 1
    implementation_date: datetime | None = None
    safeguard_categories: list[SafeguardCategory] = Field(default_factory=list)
    related_gaps: list[str] = Field(default_factory=list)
    responsible_person: str | None = None
    notes: str | None = None
    revision: int = 1
    created_at: datetime
    updated_at: datetime


class RiskEvent(DomainModel):
    """A recorded incident, near miss, or deviation.

    ``closure_date`` is set exactly once, on the first entry into
    ``resolved`` or ``closed``.
    ``revision`` advances on every save and guards against stale writes.
    """

    event_id: str
    system_id: str
    event_type: EventType
    severity: Severity
    status: EventStatus = EventStatus.NEW
    description: str
    detection_date: datetime
    reported_by: str | None = None
    impact: str | None = None
    root_cause: str | None = None
    resolution_note: str | None = None
    closure_date: datetime | None = None
    related_controls: list[str] = Field(default_factory=list)
    revision: int = 1
    created_at: datetime
    updated_at: datetime


class ComplianceGap(DomainModel):
    """A required safeguard lacking adequate control coverage.

    ``gap_id`` is deterministic in (assessment_id, requirement), so re-running
    gap analysis yields the same identifiers.
    """

    gap_id: str
    assessment_id: str
    system_id: str
    requirement: SafeguardCategory
    article: str
    description: str
    severity: Severity
    status: GapStatus = GapStatus.OPEN
    partial: bool = False
    remediation: str
    covering_control_ids: list[str] = Field(default_factory=list)
    identified_at: datetime


class ActivityRecord(DomainModel):
    """Immutable trail entry. There is no update or delete for activities."""

    activity_id: str
    type: str
    description: str
    actor_id: str
    system_id: str
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Report (computed, never persisted)
# ---------------------------------------------------------------------------


class TopRisk(DomainModel):
    description: str
    severity: Severity
    source: RiskSource
    reference_id: str
    detected_at: datetime | None = None


class ControlSummary(DomainModel):
    total: int
    by_status: dict[str, int]
    effectiveness_rate: int


class EventSummary(DomainModel):
    total: int
    by_status: dict[str, int]
    open_critical_events: int


class RmsSummary(DomainModel):
    rms_id: str
    status: RmsStatus
    version: int
    next_review_date: datetime | None
    review_overdue: bool


class ComplianceReport(DomainModel):
    """System-wide risk posture summary computed from one consistent snapshot."""

    system_id: str
    risk_level: RiskLevel | None
    risk_score: int | None
    compliance_status: str
    control_summary: ControlSummary
    event_summary: EventSummary
    open_gap_count: int
    top_risks: list[TopRisk]
    recommendations: list[str]
    rms: RmsSummary | None = None
    generated_at: datetime
