"""Pydantic request schemas for the risk engine API.

All API inputs use Pydantic models, never raw dicts. Bodies are camelCase on
the wire and snake_case in Python. Responses reuse the domain models from
core/models.py, which already serialize to camelCase.

Resources:
- Classification   — stateless tier classification
- AiSystem         — registration
- RiskAssessment   — creation, answers, workflow transitions
- ComplianceGap    — remediation transitions
- RMS              — create, version-guarded update and review
- RiskControl      — creation, transitions, effectiveness, reset
- RiskEvent        — recording and investigation transitions
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from aumos_risk_engine.core.models import (
    AssessmentStatus,
    ClassificationInput,
    ControlEffectiveness,
    ControlType,
    EventStatus,
    EventType,
    GapStatus,
    HighRiskCategoryFlags,
    ImplementationStatus,
    ProhibitedUseFlags,
    ReviewCycle,
    RiskParameters,
    RmsStatus,
    SafeguardCategory,
    Severity,
)


class ApiRequest(BaseModel):
    """Base for request bodies: camelCase aliases, unknown fields rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


# ---------------------------------------------------------------------------
# AiSystem
# ---------------------------------------------------------------------------


class SystemCreateRequest(ApiRequest):
    name: str = Field(min_length=1, max_length=255, description="Human-readable system name")
    department: str = Field(min_length=1, max_length=255, description="Owning department")
    purpose: str | None = Field(default=None, description="Intended purpose of the system")
    vendor: str | None = Field(default=None, max_length=255)
    version: str | None = Field(default=None, max_length=64)
    description: str | None = None


# ---------------------------------------------------------------------------
# RiskAssessment
# ---------------------------------------------------------------------------


class AssessmentCreateRequest(ApiRequest):
    """Opens a draft assessment; answers may be supplied now or later."""

    prohibited_use_flags: ProhibitedUseFlags | None = None
    high_risk_category_flags: HighRiskCategoryFlags | None = None
    risk_parameters: RiskParameters | None = None
    summary_notes: str | None = None

    def answers(self) -> ClassificationInput | None:
        """Return the supplied answers, or None when none were given."""
        if self.prohibited_use_flags is None and self.high_risk_category_flags is None and self.risk_parameters is None:
            return None
        return ClassificationInput(
            prohibited_use_flags=self.prohibited_use_flags or ProhibitedUseFlags(),
            high_risk_category_flags=self.high_risk_category_flags or HighRiskCategoryFlags(),
            risk_parameters=self.risk_parameters or RiskParameters(),
        )


class AssessmentTransitionRequest(ApiRequest):
    expected_current_status: AssessmentStatus
    target_status: AssessmentStatus


class GapTransitionRequest(ApiRequest):
    expected_current_status: GapStatus
    target_status: GapStatus


# ---------------------------------------------------------------------------
# Risk management system
# ---------------------------------------------------------------------------


class RmsCreateRequest(ApiRequest):
    review_cycle: ReviewCycle = ReviewCycle.QUARTERLY
    responsible_person: str | None = None
    document_reference: str | None = None
    notes: str | None = None


class RmsUpdateRequest(ApiRequest):
    """Partial update. Only fields present in the body are changed."""

    expected_version: int = Field(ge=1, description="Version the caller last read")
    status: RmsStatus | None = None
    review_cycle: ReviewCycle | None = None
    responsible_person: str | None = None
    document_reference: str | None = None
    notes: str | None = None

    @field_validator("status", "review_cycle")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        # Omit the field to keep it; null is only accepted for the free-text fields.
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"expected_version"})


class RmsReviewRequest(ApiRequest):
    expected_version: int = Field(ge=1, description="Version the caller last read")
    review_notes: str | None = None


# ---------------------------------------------------------------------------
# RiskControl
# ---------------------------------------------------------------------------


class ControlCreateRequest(ApiRequest):
    name: str = Field(min_length=1, max_length=255)
    control_type: ControlType
    description: str = ""
    safeguard_categories: list[SafeguardCategory] = Field(
        default_factory=list,
        description="Explicit safeguard coverage; inferred from controlType when empty",
    )
    related_gaps: list[str] = Field(default_factory=list)
    responsible_person: str | None = None
    notes: str | None = None


class ControlTransitionRequest(ApiRequest):
    expected_current_status: ImplementationStatus
    target_status: ImplementationStatus


class EffectivenessRequest(ApiRequest):
    effectiveness: ControlEffectiveness


class ControlResetRequest(ApiRequest):
    expected_current_status: ImplementationStatus


# ---------------------------------------------------------------------------
# RiskEvent
# ---------------------------------------------------------------------------


class EventCreateRequest(ApiRequest):
    event_type: EventType
    severity: Severity
    description: str = Field(min_length=1)
    detection_date: datetime | None = Field(default=None, description="Defaults to the time of recording")
    impact: str | None = None
    related_controls: list[str] = Field(default_factory=list)


class EventTransitionRequest(ApiRequest):
    expected_current_status: EventStatus
    target_status: EventStatus
    resolution_note: str | None = Field(default=None, description="Required when targetStatus is resolved")
    root_cause: str | None = None


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    error: str = Field(description="Stable machine-readable error code")
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
