"""Test fixtures for aumos-risk-engine.

Provides:
- now / clock: A fixed UTC timestamp and a clock returning it
- complete_answers: A fully answered minimal-risk ClassificationInput
- answers_with: Factory to override flags and parameters on complete_answers
- make_system / make_assessment / make_control / make_event / make_rms:
  Factories for domain records with sensible defaults
- memory_store / repos: A fresh in-memory store and its RepositoryBundle
- engine: A ClassificationEngine with the default threshold
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from aumos_risk_engine.adapters.memory import InMemoryRiskStore
from aumos_risk_engine.core.interfaces import RepositoryBundle
from aumos_risk_engine.core.models import (
    AiSystem,
    ClassificationInput,
    ControlEffectiveness,
    ControlType,
    EventType,
    HighRiskCategoryFlags,
    ImplementationStatus,
    ProhibitedUseFlags,
    RiskAssessment,
    RiskControl,
    RiskEvent,
    RiskManagementSystem,
    RiskParameters,
    Severity,
)
from aumos_risk_engine.engine.classification import ClassificationEngine

FIXED_NOW = datetime(2025, 3, 14, 9, 30, tzinfo=UTC)


@pytest.fixture()
def now() -> datetime:
    """Return a fixed timestamp for deterministic assertions."""
    return FIXED_NOW


@pytest.fixture()
def clock(now: datetime) -> Callable[[], datetime]:
    return lambda: now


@pytest.fixture()
def complete_answers() -> ClassificationInput:
    """A complete answer set: no flags set, all parameters 'low' (score 10)."""
    return ClassificationInput(
        prohibited_use_flags=ProhibitedUseFlags(
            social_scoring=False,
            vulnerability_exploitation=False,
            subliminal_techniques=False,
            biometric_identification=False,
        ),
        high_risk_category_flags=HighRiskCategoryFlags(
            biometric_category=False,
            critical_infrastructure=False,
            education_vocational=False,
            employment_work_management=False,
            essential_services=False,
            law_enforcement=False,
            migration_asylum_border=False,
            justice_processes=False,
        ),
        risk_parameters=RiskParameters(
            autonomy_level="low",
            technical_maturity="low",
            impact_severity="low",
            scale_of_deployment="low",
            user_vulnerability="low",
        ),
    )


@pytest.fixture()
def answers_with(complete_answers: ClassificationInput) -> Callable[..., ClassificationInput]:
    """Factory overriding individual flags/parameters of complete_answers.

    Usage: ``answers_with(prohibited={"social_scoring": True}, parameters={"autonomy_level": "high"})``
    """

    def _build(
        prohibited: dict[str, Any] | None = None,
        categories: dict[str, Any] | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> ClassificationInput:
        return ClassificationInput(
            prohibited_use_flags=complete_answers.prohibited_use_flags.model_copy(update=prohibited or {}),
            high_risk_category_flags=complete_answers.high_risk_category_flags.model_copy(update=categories or {}),
            risk_parameters=complete_answers.risk_parameters.model_copy(update=parameters or {}),
        )

    return _build


@pytest.fixture()
def make_system(now: datetime) -> Callable[..., AiSystem]:
    def _build(**overrides: Any) -> AiSystem:
        fields: dict[str, Any] = {
            "system_id": "sys_test",
            "name": "Candidate Screening",
            "department": "HR",
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        return AiSystem(**fields)

    return _build


@pytest.fixture()
def make_assessment(now: datetime) -> Callable[..., RiskAssessment]:
    def _build(**overrides: Any) -> RiskAssessment:
        fields: dict[str, Any] = {
            "assessment_id": "ra_test",
            "system_id": "sys_test",
            "assessment_date": now,
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        return RiskAssessment(**fields)

    return _build


@pytest.fixture()
def make_control(now: datetime) -> Callable[..., RiskControl]:
    def _build(**overrides: Any) -> RiskControl:
        fields: dict[str, Any] = {
            "control_id": "ctrl_test",
            "system_id": "sys_test",
            "name": "Human review of rejections",
            "control_type": ControlType.ORGANIZATIONAL,
            "implementation_status": ImplementationStatus.PLANNED,
            "effectiveness": ControlEffectiveness.NOT_TESTED,
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        return RiskControl(**fields)

    return _build


@pytest.fixture()
def make_event(now: datetime) -> Callable[..., RiskEvent]:
    def _build(**overrides: Any) -> RiskEvent:
        fields: dict[str, Any] = {
            "event_id": "evt_test",
            "system_id": "sys_test",
            "event_type": EventType.INCIDENT,
            "severity": Severity.HIGH,
            "description": "Model rejected qualified candidates",
            "detection_date": now,
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        return RiskEvent(**fields)

    return _build


@pytest.fixture()
def make_rms(now: datetime) -> Callable[..., RiskManagementSystem]:
    def _build(**overrides: Any) -> RiskManagementSystem:
        fields: dict[str, Any] = {
            "rms_id": "rms_test",
            "system_id": "sys_test",
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        return RiskManagementSystem(**fields)

    return _build


@pytest.fixture()
def memory_store() -> InMemoryRiskStore:
    return InMemoryRiskStore()


@pytest.fixture()
def repos(memory_store: InMemoryRiskStore) -> RepositoryBundle:
    return memory_store.repositories()


@pytest.fixture()
def engine() -> ClassificationEngine:
    return ClassificationEngine()
