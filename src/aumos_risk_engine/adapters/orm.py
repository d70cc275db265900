"""SQLAlchemy ORM models for the risk engine.

All tables use the `risk_` prefix. Column names mirror the domain model
field names so rows convert to and from the frozen Pydantic models
field-for-field; the activity trail's ``metadata`` payload is the single
exception, mapped to the ``details`` attribute.

Models:
- AiSystemRow               — registered AI systems with cached tier
- RiskAssessmentRow         — assessment answers (JSON) and derived tier
- RiskManagementSystemRow   — one per system, version column for CAS
- RiskControlRow            — controls with implementation lifecycle
- RiskEventRow              — risk events with investigation lifecycle
- ComplianceGapRow          — derived gaps, ordered by position
- ActivityRow               — append-only activity trail

JSON columns use JSONB on PostgreSQL and plain JSON elsewhere.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class AiSystemRow(Base):
    __tablename__ = "risk_ai_systems"

    system_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    department: Mapped[str] = mapped_column(String(255), nullable=False)
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    vendor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    risk_level: Mapped[str | None] = mapped_column(String(32), nullable=True)
    risk_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_assessment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class RiskAssessmentRow(Base):
    """Assessment answers are stored as three JSON objects keyed by snake_case field name."""

    __tablename__ = "risk_assessments"

    assessment_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    system_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("risk_ai_systems.system_id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    prohibited_use_flags: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    high_risk_category_flags: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    risk_parameters: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    risk_level: Mapped[str | None] = mapped_column(String(32), nullable=True)
    risk_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    summary_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    assessment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class RiskManagementSystemRow(Base):
    """``version`` is the optimistic concurrency token, incremented on every update."""

    __tablename__ = "risk_management_systems"

    rms_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    system_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("risk_ai_systems.system_id"), nullable=False, unique=True
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    review_cycle: Mapped[str] = mapped_column(String(32), nullable=False)
    last_review_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_review_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    responsible_person: Mapped[str | None] = mapped_column(String(255), nullable=True)
    document_reference: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class RiskControlRow(Base):
    __tablename__ = "risk_controls"

    control_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    system_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("risk_ai_systems.system_id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    control_type: Mapped[str] = mapped_column(String(32), nullable=False)
    implementation_status: Mapped[str] = mapped_column(String(32), nullable=False)
    effectiveness: Mapped[str] = mapped_column(String(32), nullable=False)
    implementation_cycle: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    implementation_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    safeguard_categories: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
    related_gaps: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
    responsible_person: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class RiskEventRow(Base):
    __tablename__ = "risk_events"

    event_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    system_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("risk_ai_systems.system_id"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    detection_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reported_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    impact: Mapped[str | None] = mapped_column(Text, nullable=True)
    root_cause: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    closure_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    related_controls: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ComplianceGapRow(Base):
    """Derived gap rows. ``position`` preserves the catalog order of one analysis run."""

    __tablename__ = "risk_compliance_gaps"

    gap_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    assessment_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("risk_assessments.assessment_id"), nullable=False, index=True
    )
    system_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    requirement: Mapped[str] = mapped_column(String(64), nullable=False)
    article: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    partial: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    remediation: Mapped[str] = mapped_column(Text, nullable=False)
    covering_control_ids: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
    identified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ActivityRow(Base):
    """Append-only. Rows are inserted and read, never updated or deleted."""

    __tablename__ = "risk_activities"

    activity_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    system_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    activity_type: Mapped[str] = mapped_column("type", String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    details: Mapped[dict[str, Any]] = mapped_column("metadata", JsonType, nullable=False, default=dict)
