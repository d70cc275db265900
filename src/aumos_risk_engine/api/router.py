"""API router for aumos-risk-engine.

All risk engine endpoints are registered here and included in main.py under
the /api/v1 prefix. Routes are thin: all business logic lives in the
service layer and the engine package.

Endpoints:
- POST        /classification                         — Classify an answer set (stateless)
- POST/GET    /systems                                — Register / list AI systems
- GET         /systems/{id}                           — Get AI system
- POST/GET    /systems/{id}/assessments               — Open / list assessments
- GET         /assessments/{id}                       — Get assessment
- PUT         /assessments/{id}/answers               — Replace answers, recompute tier
- POST        /assessments/{id}/transition            — Workflow transition
- POST        /assessments/{id}/gap-analysis          — Recompute compliance gaps
- GET         /assessments/{id}/gaps                  — List compliance gaps
- POST        /gaps/{id}/transition                   — Gap remediation transition
- POST/GET/PATCH /systems/{id}/rms                    — Risk management system
- POST        /systems/{id}/rms/review                — Record an RMS review
- POST/GET    /systems/{id}/controls                  — Create / list controls
- POST        /systems/{id}/controls/from-gaps        — Generate controls for open gaps
- POST        /controls/{id}/transition               — Control lifecycle transition
- POST        /controls/{id}/effectiveness            — Rate control effectiveness
- POST        /controls/{id}/reset                    — Start a new implementation cycle
- POST/GET    /systems/{id}/events                    — Record / list risk events
- POST        /events/{id}/transition                 — Event lifecycle transition
- GET         /systems/{id}/report                    — Compliance report
- GET         /systems/{id}/activities                — Activity trail

The acting user is taken from the X-Actor-Id header.
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, Request

from aumos_risk_engine.adapters.database import session_scope
from aumos_risk_engine.adapters.repositories import sql_repositories
from aumos_risk_engine.api.schemas import (
    AssessmentCreateRequest,
    AssessmentTransitionRequest,
    ControlCreateRequest,
    ControlResetRequest,
    ControlTransitionRequest,
    EffectivenessRequest,
    EventCreateRequest,
    EventTransitionRequest,
    GapTransitionRequest,
    RmsCreateRequest,
    RmsReviewRequest,
    RmsUpdateRequest,
    SystemCreateRequest,
)
from aumos_risk_engine.core.interfaces import RepositoryBundle
from aumos_risk_engine.core.models import (
    ActivityRecord,
    AiSystem,
    ClassificationInput,
    ClassificationResult,
    ComplianceGap,
    ComplianceReport,
    RiskAssessment,
    RiskControl,
    RiskEvent,
    RiskManagementSystem,
)
from aumos_risk_engine.core.services import (
    AssessmentService,
    AuditService,
    ControlService,
    EventService,
    GapService,
    ReportService,
    RiskManagementService,
    SystemService,
)
from aumos_risk_engine.engine.classification import ClassificationEngine
from aumos_risk_engine.engine.commands import (
    TransitionAssessmentCommand,
    TransitionControlCommand,
    TransitionEventCommand,
    TransitionGapCommand,
)
from aumos_risk_engine.engine.report_aggregator import ReportAggregator
from aumos_risk_engine.settings import Settings

router = APIRouter(tags=["risk"])


# ---------------------------------------------------------------------------
# Dependency factories: wire repositories and services together
# ---------------------------------------------------------------------------


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_repositories(request: Request) -> AsyncGenerator[RepositoryBundle, None]:
    """Yield the repositories of the configured storage backend.

    With the SQL backend all repositories share one session, committed when
    the request succeeds and rolled back when it fails.
    """
    settings: Settings = request.app.state.settings
    if settings.storage_backend == "memory":
        yield request.app.state.memory_store.repositories()
        return
    async with session_scope() as session:
        yield sql_repositories(session)


def get_actor_id(x_actor_id: Annotated[str | None, Header()] = None) -> str:
    return x_actor_id or "anonymous"


def get_classification_engine(settings: Annotated[Settings, Depends(get_settings)]) -> ClassificationEngine:
    return ClassificationEngine(limited_threshold=settings.limited_risk_threshold)


Repositories = Annotated[RepositoryBundle, Depends(get_repositories)]
ActorId = Annotated[str, Depends(get_actor_id)]


def get_audit_service(repos: Repositories) -> AuditService:
    return AuditService(repos.activities)


def get_system_service(repos: Repositories) -> SystemService:
    return SystemService(repos.systems, AuditService(repos.activities))


def get_assessment_service(
    repos: Repositories,
    engine: Annotated[ClassificationEngine, Depends(get_classification_engine)],
) -> AssessmentService:
    return AssessmentService(repos.systems, repos.assessments, AuditService(repos.activities), engine)


def get_gap_service(
    repos: Repositories,
    engine: Annotated[ClassificationEngine, Depends(get_classification_engine)],
) -> GapService:
    return GapService(repos.assessments, repos.controls, repos.gaps, AuditService(repos.activities), engine)


def get_rms_service(repos: Repositories) -> RiskManagementService:
    return RiskManagementService(repos.systems, repos.rms, AuditService(repos.activities))


def get_control_service(repos: Repositories) -> ControlService:
    return ControlService(repos.systems, repos.controls, repos.assessments, repos.gaps, AuditService(repos.activities))


def get_event_service(repos: Repositories) -> EventService:
    return EventService(repos.systems, repos.events, AuditService(repos.activities))


def get_report_service(
    repos: Repositories,
    settings: Annotated[Settings, Depends(get_settings)],
) -> ReportService:
    aggregator = ReportAggregator(
        top_risks_limit=settings.report_top_risks_limit,
        minimum_recommendations=settings.minimum_recommendations,
    )
    return ReportService(
        repos.systems, repos.assessments, repos.controls, repos.events, repos.gaps, repos.rms, aggregator
    )


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


@router.post("/classification", response_model=ClassificationResult)
async def classify(
    body: ClassificationInput,
    engine: Annotated[ClassificationEngine, Depends(get_classification_engine)],
) -> ClassificationResult:
    """Classify a complete answer set without storing anything."""
    return engine.classify(body)


# ---------------------------------------------------------------------------
# AI systems
# ---------------------------------------------------------------------------


@router.post("/systems", response_model=AiSystem, status_code=201)
async def register_system(
    body: SystemCreateRequest,
    actor_id: ActorId,
    service: Annotated[SystemService, Depends(get_system_service)],
) -> AiSystem:
    return await service.register(actor_id=actor_id, **body.model_dump())


@router.get("/systems", response_model=list[AiSystem])
async def list_systems(service: Annotated[SystemService, Depends(get_system_service)]) -> list[AiSystem]:
    return await service.list_all()


@router.get("/systems/{system_id}", response_model=AiSystem)
async def get_system(
    system_id: str,
    service: Annotated[SystemService, Depends(get_system_service)],
) -> AiSystem:
    return await service.get(system_id)


# ---------------------------------------------------------------------------
# Assessments and gaps
# ---------------------------------------------------------------------------


@router.post("/systems/{system_id}/assessments", response_model=RiskAssessment, status_code=201)
async def create_assessment(
    system_id: str,
    body: AssessmentCreateRequest,
    actor_id: ActorId,
    service: Annotated[AssessmentService, Depends(get_assessment_service)],
) -> RiskAssessment:
    return await service.create(
        system_id=system_id,
        actor_id=actor_id,
        answers=body.answers(),
        summary_notes=body.summary_notes,
    )


@router.get("/systems/{system_id}/assessments", response_model=list[RiskAssessment])
async def list_assessments(
    system_id: str,
    service: Annotated[AssessmentService, Depends(get_assessment_service)],
) -> list[RiskAssessment]:
    return await service.list_for_system(system_id)


@router.get("/assessments/{assessment_id}", response_model=RiskAssessment)
async def get_assessment(
    assessment_id: str,
    service: Annotated[AssessmentService, Depends(get_assessment_service)],
) -> RiskAssessment:
    return await service.get(assessment_id)


@router.put("/assessments/{assessment_id}/answers", response_model=RiskAssessment)
async def update_answers(
    assessment_id: str,
    body: ClassificationInput,
    actor_id: ActorId,
    service: Annotated[AssessmentService, Depends(get_assessment_service)],
) -> RiskAssessment:
    return await service.update_answers(assessment_id, body, actor_id)


@router.post("/assessments/{assessment_id}/transition", response_model=RiskAssessment)
async def transition_assessment(
    assessment_id: str,
    body: AssessmentTransitionRequest,
    actor_id: ActorId,
    service: Annotated[AssessmentService, Depends(get_assessment_service)],
) -> RiskAssessment:
    return await service.transition(
        TransitionAssessmentCommand(
            assessment_id=assessment_id,
            expected_current_status=body.expected_current_status,
            target_status=body.target_status,
            actor_id=actor_id,
        )
    )


@router.post("/assessments/{assessment_id}/gap-analysis", response_model=list[ComplianceGap])
async def run_gap_analysis(
    assessment_id: str,
    actor_id: ActorId,
    service: Annotated[GapService, Depends(get_gap_service)],
) -> list[ComplianceGap]:
    return await service.analyze(assessment_id, actor_id)


@router.get("/assessments/{assessment_id}/gaps", response_model=list[ComplianceGap])
async def list_gaps(
    assessment_id: str,
    service: Annotated[GapService, Depends(get_gap_service)],
) -> list[ComplianceGap]:
    return await service.list_for_assessment(assessment_id)


@router.post("/gaps/{gap_id}/transition", response_model=ComplianceGap)
async def transition_gap(
    gap_id: str,
    body: GapTransitionRequest,
    actor_id: ActorId,
    service: Annotated[GapService, Depends(get_gap_service)],
) -> ComplianceGap:
    return await service.transition(
        TransitionGapCommand(
            gap_id=gap_id,
            expected_current_status=body.expected_current_status,
            target_status=body.target_status,
            actor_id=actor_id,
        )
    )


# ---------------------------------------------------------------------------
# Risk management system
# ---------------------------------------------------------------------------


@router.post("/systems/{system_id}/rms", response_model=RiskManagementSystem, status_code=201)
async def create_rms(
    system_id: str,
    body: RmsCreateRequest,
    actor_id: ActorId,
    service: Annotated[RiskManagementService, Depends(get_rms_service)],
) -> RiskManagementSystem:
    return await service.create(system_id=system_id, actor_id=actor_id, **body.model_dump())


@router.get("/systems/{system_id}/rms", response_model=RiskManagementSystem)
async def get_rms(
    system_id: str,
    service: Annotated[RiskManagementService, Depends(get_rms_service)],
) -> RiskManagementSystem:
    return await service.get(system_id)


@router.patch("/systems/{system_id}/rms", response_model=RiskManagementSystem)
async def update_rms(
    system_id: str,
    body: RmsUpdateRequest,
    actor_id: ActorId,
    service: Annotated[RiskManagementService, Depends(get_rms_service)],
) -> RiskManagementSystem:
    return await service.update(system_id, body.expected_version, body.changes(), actor_id)


@router.post("/systems/{system_id}/rms/review", response_model=RiskManagementSystem)
async def review_rms(
    system_id: str,
    body: RmsReviewRequest,
    actor_id: ActorId,
    service: Annotated[RiskManagementService, Depends(get_rms_service)],
) -> RiskManagementSystem:
    return await service.review(system_id, body.expected_version, actor_id, body.review_notes)


# ---------------------------------------------------------------------------
# Controls
# ---------------------------------------------------------------------------


@router.post("/systems/{system_id}/controls", response_model=RiskControl, status_code=201)
async def create_control(
    system_id: str,
    body: ControlCreateRequest,
    actor_id: ActorId,
    service: Annotated[ControlService, Depends(get_control_service)],
) -> RiskControl:
    return await service.create(system_id=system_id, actor_id=actor_id, **body.model_dump())


@router.get("/systems/{system_id}/controls", response_model=list[RiskControl])
async def list_controls(
    system_id: str,
    service: Annotated[ControlService, Depends(get_control_service)],
) -> list[RiskControl]:
    return await service.list_for_system(system_id)


@router.post("/systems/{system_id}/controls/from-gaps", response_model=list[RiskControl], status_code=201)
async def generate_controls_from_gaps(
    system_id: str,
    actor_id: ActorId,
    service: Annotated[ControlService, Depends(get_control_service)],
) -> list[RiskControl]:
    return await service.generate_from_gaps(system_id, actor_id)


@router.post("/controls/{control_id}/transition", response_model=RiskControl)
async def transition_control(
    control_id: str,
    body: ControlTransitionRequest,
    actor_id: ActorId,
    service: Annotated[ControlService, Depends(get_control_service)],
) -> RiskControl:
    return await service.transition(
        TransitionControlCommand(
            control_id=control_id,
            expected_current_status=body.expected_current_status,
            target_status=body.target_status,
            actor_id=actor_id,
        )
    )


@router.post("/controls/{control_id}/effectiveness", response_model=RiskControl)
async def rate_control_effectiveness(
    control_id: str,
    body: EffectivenessRequest,
    actor_id: ActorId,
    service: Annotated[ControlService, Depends(get_control_service)],
) -> RiskControl:
    return await service.rate_effectiveness(control_id, body.effectiveness, actor_id)


@router.post("/controls/{control_id}/reset", response_model=RiskControl)
async def reset_control(
    control_id: str,
    body: ControlResetRequest,
    actor_id: ActorId,
    service: Annotated[ControlService, Depends(get_control_service)],
) -> RiskControl:
    return await service.reset(control_id, body.expected_current_status, actor_id)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@router.post("/systems/{system_id}/events", response_model=RiskEvent, status_code=201)
async def record_event(
    system_id: str,
    body: EventCreateRequest,
    actor_id: ActorId,
    service: Annotated[EventService, Depends(get_event_service)],
) -> RiskEvent:
    return await service.record(system_id=system_id, actor_id=actor_id, **body.model_dump())


@router.get("/systems/{system_id}/events", response_model=list[RiskEvent])
async def list_events(
    system_id: str,
    service: Annotated[EventService, Depends(get_event_service)],
) -> list[RiskEvent]:
    return await service.list_for_system(system_id)


@router.post("/events/{event_id}/transition", response_model=RiskEvent)
async def transition_event(
    event_id: str,
    body: EventTransitionRequest,
    actor_id: ActorId,
    service: Annotated[EventService, Depends(get_event_service)],
) -> RiskEvent:
    return await service.transition(
        TransitionEventCommand(
            event_id=event_id,
            expected_current_status=body.expected_current_status,
            target_status=body.target_status,
            resolution_note=body.resolution_note,
            root_cause=body.root_cause,
            actor_id=actor_id,
        )
    )


# ---------------------------------------------------------------------------
# Report and activity trail
# ---------------------------------------------------------------------------


@router.get("/systems/{system_id}/report", response_model=ComplianceReport)
async def get_report(
    system_id: str,
    service: Annotated[ReportService, Depends(get_report_service)],
) -> ComplianceReport:
    return await service.generate(system_id)


@router.get("/systems/{system_id}/activities", response_model=list[ActivityRecord])
async def list_activities(
    system_id: str,
    service: Annotated[AuditService, Depends(get_audit_service)],
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
) -> list[ActivityRecord]:
    return await service.list_for_system(system_id, limit)
