"""Core business logic services for the risk engine.

Service classes:
- AuditService: Append-only activity trail writes and queries
- SystemService: AI system registration
- AssessmentService: Assessment answers, workflow and approval
- GapService: Gap analysis runs and gap remediation status
- RiskManagementService: Version-guarded RMS create / update / review
- ControlService: Control lifecycle, effectiveness, reset, generation from gaps
- EventService: Risk event recording and investigation lifecycle
- ReportService: Compliance report over one snapshot

All services are async-first. They accept injected repositories through
their constructors, contain no framework code, and delegate every decision
to the pure components in aumos_risk_engine.engine. An ActivityRecord is
appended through AuditService after every state-changing operation.
"""

import uuid
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

from aumos_risk_engine.core.interfaces import (
    IActivityRepository,
    IAssessmentRepository,
    IControlRepository,
    IEventRepository,
    IGapRepository,
    IRiskManagementRepository,
    ISystemRepository,
)
from aumos_risk_engine.core.models import (
    ActivityRecord,
    AiSystem,
    AssessmentStatus,
    ClassificationInput,
    ComplianceGap,
    ComplianceReport,
    ControlEffectiveness,
    ControlType,
    EventType,
    ImplementationStatus,
    ReviewCycle,
    RiskAssessment,
    RiskControl,
    RiskEvent,
    RiskManagementSystem,
    RmsStatus,
    SafeguardCategory,
    Severity,
)
from aumos_risk_engine.engine.assessment_lifecycle import AssessmentLifecycle
from aumos_risk_engine.engine.classification import ClassificationEngine
from aumos_risk_engine.engine.commands import (
    TransitionAssessmentCommand,
    TransitionControlCommand,
    TransitionEventCommand,
    TransitionGapCommand,
)
from aumos_risk_engine.engine.control_lifecycle import ControlLifecycle
from aumos_risk_engine.engine.event_lifecycle import EventLifecycle
from aumos_risk_engine.engine.gap_analyzer import GapAnalyzer
from aumos_risk_engine.engine.gap_lifecycle import UNRESOLVED_STATUSES, GapLifecycle
from aumos_risk_engine.engine.report_aggregator import ReportAggregator, RiskSnapshot
from aumos_risk_engine.engine.requirement_catalog import get_requirement
from aumos_risk_engine.engine.review_schedule import next_review_date
from aumos_risk_engine.errors import DuplicateEntityError, InvalidParameterError, NotFoundError, RiskEngineError
from aumos_risk_engine.observability import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]

_RMS_UPDATABLE_FIELDS = frozenset(
    {"status", "review_cycle", "responsible_person", "document_reference", "notes"}
)
_RMS_REQUIRED_FIELDS = frozenset({"status", "review_cycle"})


def _utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(moment: datetime) -> datetime:
    """Return ``moment`` as an aware UTC datetime; naive values are read as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def new_id(prefix: str) -> str:
    """Return a fresh opaque identifier such as ``ctrl_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


def latest_assessment(assessments: Sequence[RiskAssessment]) -> RiskAssessment | None:
    """Pick the most recent assessment by assessment date, then creation time."""
    if not assessments:
        return None
    return max(assessments, key=lambda a: (a.assessment_date, a.created_at, a.assessment_id))


class AuditService:
    """Activity trail write orchestration.

    The single point of entry for activity writes. The trail is append-only:
    if an entry must be corrected, write a compensating entry.

    Args:
        activity_repo: Repository for ActivityRecord persistence.
        clock: Source of the current time.
    """

    def __init__(self, activity_repo: IActivityRepository, clock: Clock = _utcnow) -> None:
        self._activity_repo = activity_repo
        self._clock = clock

    async def record(
        self,
        system_id: str,
        activity_type: str,
        description: str,
        actor_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> ActivityRecord:
        """Append an immutable activity record.

        Args:
            system_id: The AI system the activity concerns.
            activity_type: Snake-case activity type, e.g. ``risk_control_transitioned``.
            description: Human-readable summary.
            actor_id: Who performed the action.
            metadata: Structured activity-specific payload.

        Returns:
            The persisted ActivityRecord.
        """
        record = ActivityRecord(
            activity_id=new_id("act"),
            type=activity_type,
            description=description,
            actor_id=actor_id,
            system_id=system_id,
            timestamp=self._clock(),
            metadata=metadata or {},
        )
        logger.info(
            "Writing activity record",
            activity_type=activity_type,
            system_id=system_id,
            actor_id=actor_id,
        )
        return await self._activity_repo.append(record)

    async def list_for_system(self, system_id: str, limit: int | None = None) -> list[ActivityRecord]:
        """List a system's activity trail, newest first."""
        return await self._activity_repo.list_by_system(system_id, limit)


class SystemService:
    """AI system registration.

    Args:
        system_repo: Repository for AiSystem persistence.
        audit_service: Service for activity trail writes.
        clock: Source of the current time.
    """

    def __init__(
        self,
        system_repo: ISystemRepository,
        audit_service: AuditService,
        clock: Clock = _utcnow,
    ) -> None:
        self._system_repo = system_repo
        self._audit_service = audit_service
        self._clock = clock

    async def register(
        self,
        name: str,
        department: str,
        actor_id: str,
        purpose: str | None = None,
        vendor: str | None = None,
        version: str | None = None,
        description: str | None = None,
    ) -> AiSystem:
        """Register a new AI system with no risk tier yet."""
        now = self._clock()
        system = await self._system_repo.add(
            AiSystem(
                system_id=new_id("sys"),
                name=name,
                department=department,
                purpose=purpose,
                vendor=vendor,
                version=version,
                description=description,
                created_at=now,
                updated_at=now,
            )
        )
        await self._audit_service.record(
            system_id=system.system_id,
            activity_type="risk_system_registered",
            description=f"AI system '{name}' registered",
            actor_id=actor_id,
            metadata={"department": department},
        )
        logger.info("AI system registered", system_id=system.system_id, department=department)
        return system

    async def get(self, system_id: str) -> AiSystem:
        return await self._system_repo.get(system_id)

    async def list_all(self) -> list[AiSystem]:
        return await self._system_repo.list_all()


class AssessmentService:
    """Risk assessment answers, workflow, and approval.

    ``risk_level`` and ``risk_score`` are always derived by the classification
    engine from the answers on the assessment. Approval copies them onto the
    owning AiSystem.

    Args:
        system_repo: Repository for AiSystem persistence.
        assessment_repo: Repository for RiskAssessment persistence.
        audit_service: Service for activity trail writes.
        engine: Classification engine.
        clock: Source of the current time.
    """

    def __init__(
        self,
        system_repo: ISystemRepository,
        assessment_repo: IAssessmentRepository,
        audit_service: AuditService,
        engine: ClassificationEngine,
        clock: Clock = _utcnow,
    ) -> None:
        self._system_repo = system_repo
        self._assessment_repo = assessment_repo
        self._audit_service = audit_service
        self._lifecycle = AssessmentLifecycle(engine, clock)
        self._clock = clock

    async def create(
        self,
        system_id: str,
        actor_id: str,
        answers: ClassificationInput | None = None,
        summary_notes: str | None = None,
    ) -> RiskAssessment:
        """Open a draft assessment, optionally pre-filled with answers.

        Raises:
            NotFoundError: If the system does not exist.
            InvalidParameterError: If a provided parameter label is unrecognized.
        """
        await self._system_repo.get(system_id)
        now = self._clock()
        assessment = RiskAssessment(
            assessment_id=new_id("ra"),
            system_id=system_id,
            summary_notes=summary_notes,
            created_by=actor_id,
            assessment_date=now,
            created_at=now,
            updated_at=now,
        )
        if answers is not None:
            assessment = self._lifecycle.apply_answers(assessment, answers)

        assessment = await self._assessment_repo.add(assessment)
        await self._audit_service.record(
            system_id=system_id,
            activity_type="risk_assessment_created",
            description="Risk assessment created",
            actor_id=actor_id,
            metadata={"assessment_id": assessment.assessment_id},
        )
        logger.info(
            "Risk assessment created",
            assessment_id=assessment.assessment_id,
            system_id=system_id,
            risk_level=assessment.risk_level.value if assessment.risk_level else None,
        )
        return assessment

    async def get(self, assessment_id: str) -> RiskAssessment:
        return await self._assessment_repo.get(assessment_id)

    async def list_for_system(self, system_id: str) -> list[RiskAssessment]:
        await self._system_repo.get(system_id)
        return await self._assessment_repo.list_by_system(system_id)

    async def update_answers(
        self,
        assessment_id: str,
        answers: ClassificationInput,
        actor_id: str,
    ) -> RiskAssessment:
        """Replace an assessment's answers and recompute its tier.

        Raises:
            NotFoundError: If the assessment does not exist.
            InvalidTransitionError: If the assessment is no longer editable.
            InvalidParameterError: If a parameter label is unrecognized.
            ConcurrentModificationError: If the status changed in the meantime.
        """
        current = await self._assessment_repo.get(assessment_id)
        try:
            updated = self._lifecycle.apply_answers(current, answers)
        except RiskEngineError as exc:
            logger.warning("Assessment answers rejected", assessment_id=assessment_id, error_code=exc.error_code)
            raise
        updated = await self._assessment_repo.save_if_status(updated, current.status)
        await self._audit_service.record(
            system_id=updated.system_id,
            activity_type="risk_assessment_answers_updated",
            description="Risk assessment answers updated",
            actor_id=actor_id,
            metadata={
                "assessment_id": assessment_id,
                "risk_level": updated.risk_level.value if updated.risk_level else None,
                "risk_score": updated.risk_score,
            },
        )
        logger.info(
            "Assessment answers updated",
            assessment_id=assessment_id,
            risk_level=updated.risk_level.value if updated.risk_level else None,
        )
        return updated

    async def transition(self, command: TransitionAssessmentCommand) -> RiskAssessment:
        """Move an assessment through its workflow.

        Approving an assessment copies its tier and score onto the system.

        Raises:
            NotFoundError: If the assessment does not exist.
            ConcurrentModificationError: If the status is not the expected one.
            InvalidTransitionError: If the move is not allowed.
            MissingInputError: If completing with unanswered inputs.
        """
        current = await self._assessment_repo.get(command.assessment_id)
        try:
            updated = self._lifecycle.transition(current, command)
        except RiskEngineError as exc:
            logger.warning(
                "Assessment transition rejected",
                assessment_id=command.assessment_id,
                target_status=command.target_status.value,
                error_code=exc.error_code,
            )
            raise
        updated = await self._assessment_repo.save_if_status(updated, command.expected_current_status)

        if updated.status == AssessmentStatus.APPROVED:
            system = await self._system_repo.get(updated.system_id)
            await self._system_repo.update(
                system.model_copy(
                    update={
                        "risk_level": updated.risk_level,
                        "risk_score": updated.risk_score,
                        "last_assessment_date": updated.assessment_date,
                        "updated_at": self._clock(),
                    }
                )
            )

        await self._audit_service.record(
            system_id=updated.system_id,
            activity_type="risk_assessment_transitioned",
            description=f"Risk assessment moved from {current.status.value} to {updated.status.value}",
            actor_id=command.actor_id,
            metadata={
                "assessment_id": updated.assessment_id,
                "from_status": current.status.value,
                "to_status": updated.status.value,
            },
        )
        logger.info(
            "Assessment transitioned",
            assessment_id=updated.assessment_id,
            from_status=current.status.value,
            to_status=updated.status.value,
        )
        return updated


class GapService:
    """Gap analysis runs and gap remediation status.

    Args:
        assessment_repo: Repository for RiskAssessment persistence.
        control_repo: Repository for RiskControl persistence.
        gap_repo: Repository for ComplianceGap persistence.
        audit_service: Service for activity trail writes.
        engine: Classification engine, used to require a complete answer set.
        clock: Source of the current time.
    """

    def __init__(
        self,
        assessment_repo: IAssessmentRepository,
        control_repo: IControlRepository,
        gap_repo: IGapRepository,
        audit_service: AuditService,
        engine: ClassificationEngine,
        clock: Clock = _utcnow,
    ) -> None:
        self._assessment_repo = assessment_repo
        self._control_repo = control_repo
        self._gap_repo = gap_repo
        self._audit_service = audit_service
        self._engine = engine
        self._analyzer = GapAnalyzer()
        self._lifecycle = GapLifecycle()
        self._clock = clock

    async def analyze(self, assessment_id: str, actor_id: str) -> list[ComplianceGap]:
        """Recompute and store the gap set of an assessment.

        Re-running over an unchanged control set reproduces the same gaps.

        Raises:
            NotFoundError: If the assessment does not exist.
            MissingInputError: If the assessment's answers are incomplete.
            InvalidParameterError: If a parameter label is unrecognized.
        """
        assessment = await self._assessment_repo.get(assessment_id)
        tier = self._engine.classify(assessment.classification_input()).risk_level
        controls = await self._control_repo.list_by_system(assessment.system_id)
        previous = await self._gap_repo.list_by_assessment(assessment_id)

        gaps = self._analyzer.analyze(
            assessment_id=assessment_id,
            system_id=assessment.system_id,
            tier=tier,
            controls=controls,
            previous_gaps=previous,
            now=self._clock(),
        )
        stored = await self._gap_repo.replace_for_assessment(assessment_id, gaps)

        await self._audit_service.record(
            system_id=assessment.system_id,
            activity_type="risk_gap_analysis_completed",
            description=f"Gap analysis identified {len(stored)} compliance gaps",
            actor_id=actor_id,
            metadata={
                "assessment_id": assessment_id,
                "risk_level": tier.value,
                "gap_ids": [gap.gap_id for gap in stored],
            },
        )
        logger.info(
            "Gap analysis completed",
            assessment_id=assessment_id,
            risk_level=tier.value,
            gap_count=len(stored),
        )
        return stored

    async def list_for_assessment(self, assessment_id: str) -> list[ComplianceGap]:
        await self._assessment_repo.get(assessment_id)
        return await self._gap_repo.list_by_assessment(assessment_id)

    async def transition(self, command: TransitionGapCommand) -> ComplianceGap:
        """Update a gap's remediation status.

        Raises:
            NotFoundError: If the gap does not exist.
            ConcurrentModificationError: If the status is not the expected one.
            InvalidTransitionError: If the move is not allowed.
        """
        current = await self._gap_repo.get(command.gap_id)
        try:
            updated = self._lifecycle.apply(current, command)
        except RiskEngineError as exc:
            logger.warning("Gap transition rejected", gap_id=command.gap_id, error_code=exc.error_code)
            raise
        updated = await self._gap_repo.save_if_status(updated, command.expected_current_status)
        await self._audit_service.record(
            system_id=updated.system_id,
            activity_type="risk_gap_transitioned",
            description=f"Compliance gap {updated.requirement.value} moved to {updated.status.value}",
            actor_id=command.actor_id,
            metadata={
                "gap_id": updated.gap_id,
                "from_status": current.status.value,
                "to_status": updated.status.value,
            },
        )
        logger.info("Gap transitioned", gap_id=updated.gap_id, to_status=updated.status.value)
        return updated


class RiskManagementService:
    """Risk management system lifecycle, one RMS per AI system.

    Every update is guarded by the caller's expected version.

    Args:
        system_repo: Repository for AiSystem persistence.
        rms_repo: Repository for RiskManagementSystem persistence.
        audit_service: Service for activity trail writes.
        clock: Source of the current time.
    """

    def __init__(
        self,
        system_repo: ISystemRepository,
        rms_repo: IRiskManagementRepository,
        audit_service: AuditService,
        clock: Clock = _utcnow,
    ) -> None:
        self._system_repo = system_repo
        self._rms_repo = rms_repo
        self._audit_service = audit_service
        self._clock = clock

    async def create(
        self,
        system_id: str,
        actor_id: str,
        review_cycle: ReviewCycle = ReviewCycle.QUARTERLY,
        responsible_person: str | None = None,
        document_reference: str | None = None,
        notes: str | None = None,
    ) -> RiskManagementSystem:
        """Create the RMS of a system with its first review scheduled.

        Raises:
            NotFoundError: If the system does not exist.
            DuplicateEntityError: If the system already has an RMS.
        """
        await self._system_repo.get(system_id)
        if await self._rms_repo.get_by_system(system_id) is not None:
            raise DuplicateEntityError("RiskManagementSystem", system_id)

        now = self._clock()
        rms = await self._rms_repo.add(
            RiskManagementSystem(
                rms_id=new_id("rms"),
                system_id=system_id,
                review_cycle=review_cycle,
                next_review_date=next_review_date(now, review_cycle),
                responsible_person=responsible_person,
                document_reference=document_reference,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
        )
        await self._audit_service.record(
            system_id=system_id,
            activity_type="risk_rms_created",
            description="Risk management system created",
            actor_id=actor_id,
            metadata={"rms_id": rms.rms_id, "review_cycle": review_cycle.value},
        )
        logger.info("Risk management system created", rms_id=rms.rms_id, system_id=system_id)
        return rms

    async def get(self, system_id: str) -> RiskManagementSystem:
        """Return the RMS of a system.

        Raises:
            NotFoundError: If the system has no RMS.
        """
        rms = await self._rms_repo.get_by_system(system_id)
        if rms is None:
            raise NotFoundError("RiskManagementSystem", system_id)
        return rms

    async def update(
        self,
        system_id: str,
        expected_version: int,
        changes: dict[str, Any],
        actor_id: str,
    ) -> RiskManagementSystem:
        """Apply field changes to the RMS if nobody updated it since ``expected_version``.

        Changing the review cycle reschedules the next review from the last
        review (or creation) date.

        Raises:
            NotFoundError: If the system has no RMS.
            InvalidParameterError: If status or review_cycle is explicitly cleared.
            ConcurrentModificationError: If the stored version differs.
        """
        current = await self.get(system_id)
        update = {key: value for key, value in changes.items() if key in _RMS_UPDATABLE_FIELDS}
        for field_name in sorted(_RMS_REQUIRED_FIELDS & update.keys()):
            if update[field_name] is None:
                raise InvalidParameterError(field_name, None)
        update["updated_at"] = self._clock()

        merged = RiskManagementSystem.model_validate({**current.model_dump(), **update})
        if merged.review_cycle != current.review_cycle:
            merged = merged.model_copy(
                update={
                    "next_review_date": next_review_date(
                        current.last_review_date or current.created_at, merged.review_cycle
                    )
                }
            )
            update["next_review_date"] = merged.next_review_date

        stored = await self._store(merged, expected_version)
        await self._audit_service.record(
            system_id=system_id,
            activity_type="risk_rms_updated",
            description="Risk management system updated",
            actor_id=actor_id,
            metadata={"rms_id": stored.rms_id, "version": stored.version, "fields": sorted(update)},
        )
        logger.info("Risk management system updated", rms_id=stored.rms_id, version=stored.version)
        return stored

    async def review(
        self,
        system_id: str,
        expected_version: int,
        actor_id: str,
        review_notes: str | None = None,
    ) -> RiskManagementSystem:
        """Record a completed review and schedule the next one.

        Raises:
            NotFoundError: If the system has no RMS.
            ConcurrentModificationError: If the stored version differs.
        """
        current = await self.get(system_id)
        now = self._clock()
        notes = current.notes
        if review_notes and review_notes.strip():
            entry = f"[{now:%Y-%m-%d}] {review_notes.strip()}"
            notes = f"{notes}\n{entry}" if notes else entry

        reviewed = current.model_copy(
            update={
                "status": RmsStatus.ACTIVE,
                "last_review_date": now,
                "next_review_date": next_review_date(now, current.review_cycle),
                "notes": notes,
                "updated_at": now,
            }
        )
        stored = await self._store(reviewed, expected_version)
        await self._audit_service.record(
            system_id=system_id,
            activity_type="risk_rms_reviewed",
            description="Risk management system reviewed",
            actor_id=actor_id,
            metadata={
                "rms_id": stored.rms_id,
                "version": stored.version,
                "next_review_date": stored.next_review_date.isoformat() if stored.next_review_date else None,
            },
        )
        logger.info("Risk management system reviewed", rms_id=stored.rms_id, version=stored.version)
        return stored

    async def _store(self, rms: RiskManagementSystem, expected_version: int) -> RiskManagementSystem:
        try:
            return await self._rms_repo.update(rms, expected_version)
        except RiskEngineError as exc:
            logger.warning(
                "Risk management system update rejected",
                rms_id=rms.rms_id,
                expected_version=expected_version,
                error_code=exc.error_code,
            )
            raise


class ControlService:
    """Risk control lifecycle management.

    Args:
        system_repo: Repository for AiSystem persistence.
        control_repo: Repository for RiskControl persistence.
        assessment_repo: Repository for RiskAssessment persistence.
        gap_repo: Repository for ComplianceGap persistence.
        audit_service: Service for activity trail writes.
        clock: Source of the current time.
    """

    def __init__(
        self,
        system_repo: ISystemRepository,
        control_repo: IControlRepository,
        assessment_repo: IAssessmentRepository,
        gap_repo: IGapRepository,
        audit_service: AuditService,
        clock: Clock = _utcnow,
    ) -> None:
        self._system_repo = system_repo
        self._control_repo = control_repo
        self._assessment_repo = assessment_repo
        self._gap_repo = gap_repo
        self._audit_service = audit_service
        self._lifecycle = ControlLifecycle(clock)
        self._clock = clock

    async def create(
        self,
        system_id: str,
        name: str,
        control_type: ControlType,
        actor_id: str,
        description: str = "",
        safeguard_categories: Sequence[SafeguardCategory] = (),
        related_gaps: Sequence[str] = (),
        responsible_person: str | None = None,
        notes: str | None = None,
    ) -> RiskControl:
        """Create a control in ``planned`` status.

        Raises:
            NotFoundError: If the system does not exist.
        """
        await self._system_repo.get(system_id)
        now = self._clock()
        control = await self._control_repo.add(
            RiskControl(
                control_id=new_id("ctrl"),
                system_id=system_id,
                name=name,
                description=description,
                control_type=control_type,
                safeguard_categories=list(safeguard_categories),
                related_gaps=list(related_gaps),
                responsible_person=responsible_person,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
        )
        await self._audit_service.record(
            system_id=system_id,
            activity_type="risk_control_created",
            description=f"Risk control '{name}' created",
            actor_id=actor_id,
            metadata={"control_id": control.control_id, "control_type": control_type.value},
        )
        logger.info("Risk control created", control_id=control.control_id, system_id=system_id)
        return control

    async def get(self, control_id: str) -> RiskControl:
        return await self._control_repo.get(control_id)

    async def list_for_system(self, system_id: str) -> list[RiskControl]:
        await self._system_repo.get(system_id)
        return await self._control_repo.list_by_system(system_id)

    async def transition(self, command: TransitionControlCommand) -> RiskControl:
        """Move a control along its implementation lifecycle.

        Raises:
            NotFoundError: If the control does not exist.
            ConcurrentModificationError: If the status is not the expected one.
            InvalidTransitionError: If the move is not allowed.
        """
        current = await self._control_repo.get(command.control_id)
        try:
            updated = self._lifecycle.apply(current, command)
            updated = await self._control_repo.save_if_status(updated, command.expected_current_status)
        except RiskEngineError as exc:
            logger.warning(
                "Control transition rejected",
                control_id=command.control_id,
                target_status=command.target_status.value,
                error_code=exc.error_code,
            )
            raise

        await self._audit_service.record(
            system_id=updated.system_id,
            activity_type="risk_control_transitioned",
            description=(
                f"Risk control '{updated.name}' moved from "
                f"{current.implementation_status.value} to {updated.implementation_status.value}"
            ),
            actor_id=command.actor_id,
            metadata={
                "control_id": updated.control_id,
                "from_status": current.implementation_status.value,
                "to_status": updated.implementation_status.value,
            },
        )
        logger.info(
            "Control transitioned",
            control_id=updated.control_id,
            from_status=current.implementation_status.value,
            to_status=updated.implementation_status.value,
        )
        return updated

    async def rate_effectiveness(
        self,
        control_id: str,
        effectiveness: ControlEffectiveness,
        actor_id: str,
    ) -> RiskControl:
        """Record an effectiveness rating for an implemented or verified control.

        Raises:
            NotFoundError: If the control does not exist.
            InvalidTransitionError: If the control is not yet implemented.
            ConcurrentModificationError: If the status changed in the meantime.
        """
        current = await self._control_repo.get(control_id)
        try:
            updated = self._lifecycle.rate_effectiveness(current, effectiveness)
            updated = await self._control_repo.save_if_status(updated, current.implementation_status)
        except RiskEngineError as exc:
            logger.warning("Effectiveness rating rejected", control_id=control_id, error_code=exc.error_code)
            raise

        await self._audit_service.record(
            system_id=updated.system_id,
            activity_type="risk_control_effectiveness_rated",
            description=f"Risk control '{updated.name}' rated {effectiveness.value}",
            actor_id=actor_id,
            metadata={
                "control_id": control_id,
                "from_effectiveness": current.effectiveness.value,
                "to_effectiveness": effectiveness.value,
            },
        )
        logger.info("Control effectiveness rated", control_id=control_id, effectiveness=effectiveness.value)
        return updated

    async def reset(
        self,
        control_id: str,
        expected_current_status: ImplementationStatus,
        actor_id: str,
    ) -> RiskControl:
        """Re-open a verified or failed control as a new implementation cycle.

        Raises:
            NotFoundError: If the control does not exist.
            ConcurrentModificationError: If the status is not the expected one.
            InvalidTransitionError: If the control is not terminal.
        """
        current = await self._control_repo.get(control_id)
        try:
            updated = self._lifecycle.reset(current, expected_current_status)
            updated = await self._control_repo.save_if_status(updated, expected_current_status)
        except RiskEngineError as exc:
            logger.warning("Control reset rejected", control_id=control_id, error_code=exc.error_code)
            raise

        await self._audit_service.record(
            system_id=updated.system_id,
            activity_type="risk_control_reset",
            description=f"Risk control '{updated.name}' reset to planned",
            actor_id=actor_id,
            metadata={
                "control_id": control_id,
                "from_status": current.implementation_status.value,
                "implementation_cycle": updated.implementation_cycle,
            },
        )
        return updated

    async def generate_from_gaps(self, system_id: str, actor_id: str) -> list[RiskControl]:
        """Create planned controls for unresolved gaps of the latest assessment.

        Gaps already referenced by an existing control's ``related_gaps`` are
        skipped, so calling this repeatedly does not duplicate controls.

        Returns:
            The newly created controls; empty when the system has no assessment.

        Raises:
            NotFoundError: If the system does not exist.
        """
        await self._system_repo.get(system_id)
        assessment = latest_assessment(await self._assessment_repo.list_by_system(system_id))
        if assessment is None:
            logger.info("No assessment to generate controls from", system_id=system_id)
            return []

        gaps = await self._gap_repo.list_by_assessment(assessment.assessment_id)
        existing = await self._control_repo.list_by_system(system_id)
        referenced = {gap_id for control in existing for gap_id in control.related_gaps}

        now = self._clock()
        created: list[RiskControl] = []
        for gap in gaps:
            if gap.status not in UNRESOLVED_STATUSES or gap.gap_id in referenced:
                continue
            requirement = get_requirement(gap.requirement)
            control = await self._control_repo.add(
                RiskControl(
                    control_id=new_id("ctrl"),
                    system_id=system_id,
                    name=f"{requirement.title} control",
                    description=requirement.remediation,
                    control_type=requirement.preferred_control_type,
                    safeguard_categories=[gap.requirement],
                    related_gaps=[gap.gap_id],
                    created_at=now,
                    updated_at=now,
                )
            )
            created.append(control)

        if created:
            await self._audit_service.record(
                system_id=system_id,
                activity_type="risk_controls_generated",
                description=f"{len(created)} risk controls generated from compliance gaps",
                actor_id=actor_id,
                metadata={
                    "assessment_id": assessment.assessment_id,
                    "control_ids": [control.control_id for control in created],
                },
            )
        logger.info(
            "Controls generated from gaps",
            system_id=system_id,
            assessment_id=assessment.assessment_id,
            created_count=len(created),
        )
        return created


class EventService:
    """Risk event recording and investigation.

    Args:
        system_repo: Repository for AiSystem persistence.
        event_repo: Repository for RiskEvent persistence.
        audit_service: Service for activity trail writes.
        clock: Source of the current time.
    """

    def __init__(
        self,
        system_repo: ISystemRepository,
        event_repo: IEventRepository,
        audit_service: AuditService,
        clock: Clock = _utcnow,
    ) -> None:
        self._system_repo = system_repo
        self._event_repo = event_repo
        self._audit_service = audit_service
        self._lifecycle = EventLifecycle(clock)
        self._clock = clock

    async def record(
        self,
        system_id: str,
        event_type: EventType,
        severity: Severity,
        description: str,
        actor_id: str,
        detection_date: datetime | None = None,
        impact: str | None = None,
        related_controls: Sequence[str] = (),
    ) -> RiskEvent:
        """Record a new risk event in status ``new``.

        A detection date without a timezone is taken to be UTC.

        Raises:
            NotFoundError: If the system does not exist.
        """
        await self._system_repo.get(system_id)
        now = self._clock()
        event = await self._event_repo.add(
            RiskEvent(
                event_id=new_id("evt"),
                system_id=system_id,
                event_type=event_type,
                severity=severity,
                description=description,
                detection_date=as_utc(detection_date) if detection_date is not None else now,
                reported_by=actor_id,
                impact=impact,
                related_controls=list(related_controls),
                created_at=now,
                updated_at=now,
            )
        )
        await self._audit_service.record(
            system_id=system_id,
            activity_type="risk_event_recorded",
            description=f"{severity.value.capitalize()} {event_type.value} risk event recorded",
            actor_id=actor_id,
            metadata={"event_id": event.event_id, "severity": severity.value},
        )
        logger.info(
            "Risk event recorded",
            event_id=event.event_id,
            system_id=system_id,
            severity=severity.value,
        )
        return event

    async def get(self, event_id: str) -> RiskEvent:
        return await self._event_repo.get(event_id)

    async def list_for_system(self, system_id: str) -> list[RiskEvent]:
        await self._system_repo.get(system_id)
        return await self._event_repo.list_by_system(system_id)

    async def transition(self, command: TransitionEventCommand) -> RiskEvent:
        """Move an event along its investigation lifecycle.

        Raises:
            NotFoundError: If the event does not exist.
            ConcurrentModificationError: If the status is not the expected one.
            InvalidTransitionError: If the move skips or reverses a step.
            IncompleteResolutionError: If resolving without a resolution note.
        """
        current = await self._event_repo.get(command.event_id)
        try:
            updated = self._lifecycle.apply(current, command)
            updated = await self._event_repo.save_if_status(updated, command.expected_current_status)
        except RiskEngineError as exc:
            logger.warning(
                "Event transition rejected",
                event_id=command.event_id,
                target_status=command.target_status.value,
                error_code=exc.error_code,
            )
            raise

        await self._audit_service.record(
            system_id=updated.system_id,
            activity_type="risk_event_transitioned",
            description=f"Risk event moved from {current.status.value} to {updated.status.value}",
            actor_id=command.actor_id,
            metadata={
                "event_id": updated.event_id,
                "from_status": current.status.value,
                "to_status": updated.status.value,
            },
        )
        logger.info(
            "Event transitioned",
            event_id=updated.event_id,
            from_status=current.status.value,
            to_status=updated.status.value,
        )
        return updated


class ReportService:
    """Compliance report generation.

    Reads one snapshot of a system through the repositories and hands it to
    ReportAggregator. Nothing is written.

    Args:
        system_repo: Repository for AiSystem persistence.
        assessment_repo: Repository for RiskAssessment persistence.
        control_repo: Repository for RiskControl persistence.
        event_repo: Repository for RiskEvent persistence.
        gap_repo: Repository for ComplianceGap persistence.
        rms_repo: Repository for RiskManagementSystem persistence.
        aggregator: Report aggregator.
        clock: Source of the current time.
    """

    def __init__(
        self,
        system_repo: ISystemRepository,
        assessment_repo: IAssessmentRepository,
        control_repo: IControlRepository,
        event_repo: IEventRepository,
        gap_repo: IGapRepository,
        rms_repo: IRiskManagementRepository,
        aggregator: ReportAggregator,
        clock: Clock = _utcnow,
    ) -> None:
        self._system_repo = system_repo
        self._assessment_repo = assessment_repo
        self._control_repo = control_repo
        self._event_repo = event_repo
        self._gap_repo = gap_repo
        self._rms_repo = rms_repo
        self._aggregator = aggregator
        self._clock = clock

    async def generate(self, system_id: str) -> ComplianceReport:
        """Build the compliance report of a system.

        Raises:
            NotFoundError: If the system does not exist.
        """
        system = await self._system_repo.get(system_id)
        assessment = latest_assessment(await self._assessment_repo.list_by_system(system_id))
        gaps = await self._gap_repo.list_by_assessment(assessment.assessment_id) if assessment else []
        snapshot = RiskSnapshot(
            system=system,
            assessment=assessment,
            controls=await self._control_repo.list_by_system(system_id),
            events=await self._event_repo.list_by_system(system_id),
            gaps=gaps,
            rms=await self._rms_repo.get_by_system(system_id),
        )
        report = self._aggregator.build(snapshot, self._clock())
        logger.info(
            "Compliance report generated",
            system_id=system_id,
            compliance_status=report.compliance_status,
            open_gap_count=report.open_gap_count,
        )
        return report
