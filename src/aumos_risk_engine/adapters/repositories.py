"""SQLAlchemy repositories for the risk engine.

Each repository implements the corresponding protocol from core/interfaces.py
over one AsyncSession. The session is owned by the request (see
database.session_scope), so every repository call within one request is
part of the same transaction.

Compare-and-set is a conditional UPDATE:

    UPDATE risk_controls SET ..., revision = :revision + 1
    WHERE control_id = :id AND implementation_status = :expected AND revision = :revision

The revision check stops a writer holding a stale read from overwriting
columns another writer changed without moving the status. A zero rowcount
means the row is missing (NotFoundError) or was changed by another writer
(ConcurrentModificationError).

Repositories:
- SqlSystemRepository
- SqlAssessmentRepository
- SqlRiskManagementRepository
- SqlControlRepository
- SqlEventRepository
- SqlGapRepository
- SqlActivityRepository   — append-only, no update or delete
"""

from collections.abc import Sequence
from typing import Any, TypeVar

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from aumos_risk_engine.adapters.orm import (
    ActivityRow,
    AiSystemRow,
    Base,
    ComplianceGapRow,
    RiskAssessmentRow,
    RiskControlRow,
    RiskEventRow,
    RiskManagementSystemRow,
)
from aumos_risk_engine.core.interfaces import RepositoryBundle
from aumos_risk_engine.core.models import (
    ActivityRecord,
    AiSystem,
    AssessmentStatus,
    ComplianceGap,
    EventStatus,
    GapStatus,
    ImplementationStatus,
    RiskAssessment,
    RiskControl,
    RiskEvent,
    RiskManagementSystem,
)
from aumos_risk_engine.errors import ConcurrentModificationError, DuplicateEntityError, NotFoundError
from aumos_risk_engine.observability import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _to_domain(model_cls: type[ModelT], row: Base) -> ModelT:
    return model_cls.model_validate({column.name: getattr(row, column.name) for column in row.__table__.columns})


def _column_values(row_cls: type[Base], model: BaseModel) -> dict[str, Any]:
    data = model.model_dump()
    return {column.name: data[column.name] for column in row_cls.__table__.columns if column.name in data}


async def _insert(session: AsyncSession, row: Base, entity_type: str, key: str) -> None:
    session.add(row)
    try:
        await session.flush()
    except IntegrityError as exc:
        raise DuplicateEntityError(entity_type, key) from exc


async def _save_if_current(
    session: AsyncSession,
    row_cls: type[Base],
    key_name: str,
    status_name: str,
    model: ModelT,
    expected_status: Any,
    entity_type: str,
) -> ModelT:
    """Conditional UPDATE on status and revision; returns the model at its next revision."""
    key = getattr(model, key_name)
    key_column = getattr(row_cls, key_name)
    status_column = getattr(row_cls, status_name)
    stored = model.model_copy(update={"revision": model.revision + 1})
    values = _column_values(row_cls, stored)
    values.pop(key_name)
    result = await session.execute(
        update(row_cls)
        .where(key_column == key, status_column == expected_status, row_cls.revision == model.revision)
        .values(**values)
    )
    if result.rowcount == 0:
        actual_status = await session.scalar(select(status_column).where(key_column == key))
        if actual_status is None:
            raise NotFoundError(entity_type, key)
        if actual_status != expected_status:
            raise ConcurrentModificationError(entity_type, key, expected_status, actual_status)
        # Same status, but another writer saved in between.
        actual_revision = await session.scalar(select(row_cls.revision).where(key_column == key))
        raise ConcurrentModificationError(
            entity_type, key, f"revision {model.revision}", f"revision {actual_revision}"
        )
    return stored


class SqlSystemRepository:
    """AiSystem persistence.

    Args:
        session: The request-scoped async session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, system: AiSystem) -> AiSystem:
        await _insert(self._session, AiSystemRow(**_column_values(AiSystemRow, system)), "AiSystem", system.system_id)
        return system

    async def get(self, system_id: str) -> AiSystem:
        row = await self._session.get(AiSystemRow, system_id)
        if row is None:
            raise NotFoundError("AiSystem", system_id)
        return _to_domain(AiSystem, row)

    async def list_all(self) -> list[AiSystem]:
        result = await self._session.execute(
            select(AiSystemRow).order_by(AiSystemRow.created_at, AiSystemRow.system_id)
        )
        return [_to_domain(AiSystem, row) for row in result.scalars().all()]

    async def update(self, system: AiSystem) -> AiSystem:
        values = _column_values(AiSystemRow, system)
        values.pop("system_id")
        result = await self._session.execute(
            update(AiSystemRow).where(AiSystemRow.system_id == system.system_id).values(**values)
        )
        if result.rowcount == 0:
            raise NotFoundError("AiSystem", system.system_id)
        return system


class SqlAssessmentRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, assessment: RiskAssessment) -> RiskAssessment:
        await _insert(
            self._session,
            RiskAssessmentRow(**_column_values(RiskAssessmentRow, assessment)),
            "RiskAssessment",
            assessment.assessment_id,
        )
        return assessment

    async def get(self, assessment_id: str) -> RiskAssessment:
        row = await self._session.get(RiskAssessmentRow, assessment_id)
        if row is None:
            raise NotFoundError("RiskAssessment", assessment_id)
        return _to_domain(RiskAssessment, row)

    async def list_by_system(self, system_id: str) -> list[RiskAssessment]:
        result = await self._session.execute(
            select(RiskAssessmentRow)
            .where(RiskAssessmentRow.system_id == system_id)
            .order_by(RiskAssessmentRow.created_at, RiskAssessmentRow.assessment_id)
        )
        return [_to_domain(RiskAssessment, row) for row in result.scalars().all()]

    async def save_if_status(self, assessment: RiskAssessment, expected_status: AssessmentStatus) -> RiskAssessment:
        return await _save_if_current(
            self._session, RiskAssessmentRow, "assessment_id", "status", assessment, expected_status, "RiskAssessment"
        )


class SqlRiskManagementRepository:
    """RiskManagementSystem persistence guarded by the ``version`` column."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, rms: RiskManagementSystem) -> RiskManagementSystem:
        stored = rms.model_copy(update={"version": 1})
        await _insert(
            self._session,
            RiskManagementSystemRow(**_column_values(RiskManagementSystemRow, stored)),
            "RiskManagementSystem",
            rms.system_id,
        )
        return stored

    async def get_by_system(self, system_id: str) -> RiskManagementSystem | None:
        row = await self._session.scalar(
            select(RiskManagementSystemRow).where(RiskManagementSystemRow.system_id == system_id)
        )
        return _to_domain(RiskManagementSystem, row) if row is not None else None

    async def update(self, rms: RiskManagementSystem, expected_version: int) -> RiskManagementSystem:
        stored = rms.model_copy(update={"version": expected_version + 1})
        values = _column_values(RiskManagementSystemRow, stored)
        values.pop("rms_id")
        result = await self._session.execute(
            update(RiskManagementSystemRow)
            .where(
                RiskManagementSystemRow.rms_id == rms.rms_id,
                RiskManagementSystemRow.version == expected_version,
            )
            .values(**values)
        )
        if result.rowcount == 0:
            actual = await self._session.scalar(
                select(RiskManagementSystemRow.version).where(RiskManagementSystemRow.rms_id == rms.rms_id)
            )
            if actual is None:
                raise NotFoundError("RiskManagementSystem", rms.rms_id)
            raise ConcurrentModificationError("RiskManagementSystem", rms.rms_id, expected_version, actual)
        logger.debug("RMS version advanced", rms_id=rms.rms_id, version=stored.version)
        return stored


class SqlControlRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, control: RiskControl) -> RiskControl:
        await _insert(
            self._session,
            RiskControlRow(**_column_values(RiskControlRow, control)),
            "RiskControl",
            control.control_id,
        )
        return control

    async def get(self, control_id: str) -> RiskControl:
        row = await self._session.get(RiskControlRow, control_id)
        if row is None:
            raise NotFoundError("RiskControl", control_id)
        return _to_domain(RiskControl, row)

    async def list_by_system(self, system_id: str) -> list[RiskControl]:
        result = await self._session.execute(
            select(RiskControlRow)
            .where(RiskControlRow.system_id == system_id)
            .order_by(RiskControlRow.created_at, RiskControlRow.control_id)
        )
        return [_to_domain(RiskControl, row) for row in result.scalars().all()]

    async def save_if_status(self, control: RiskControl, expected_status: ImplementationStatus) -> RiskControl:
        return await _save_if_current(
            self._session,
            RiskControlRow,
            "control_id",
            "implementation_status",
            control,
            expected_status,
            "RiskControl",
        )


class SqlEventRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, event: RiskEvent) -> RiskEvent:
        await _insert(self._session, RiskEventRow(**_column_values(RiskEventRow, event)), "RiskEvent", event.event_id)
        return event

    async def get(self, event_id: str) -> RiskEvent:
        row = await self._session.get(RiskEventRow, event_id)
        if row is None:
            raise NotFoundError("RiskEvent", event_id)
        return _to_domain(RiskEvent, row)

    async def list_by_system(self, system_id: str) -> list[RiskEvent]:
        result = await self._session.execute(
            select(RiskEventRow)
            .where(RiskEventRow.system_id == system_id)
            .order_by(RiskEventRow.detection_date, RiskEventRow.event_id)
        )
        return [_to_domain(RiskEvent, row) for row in result.scalars().all()]

    async def save_if_status(self, event: RiskEvent, expected_status: EventStatus) -> RiskEvent:
        return await _save_if_current(
            self._session, RiskEventRow, "event_id", "status", event, expected_status, "RiskEvent"
        )


class SqlGapRepository:
    """Derived ComplianceGap rows, replaced wholesale on each analysis run."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, gap_id: str) -> ComplianceGap:
        row = await self._session.get(ComplianceGapRow, gap_id)
        if row is None:
            raise NotFoundError("ComplianceGap", gap_id)
        return _to_domain(ComplianceGap, row)

    async def list_by_assessment(self, assessment_id: str) -> list[ComplianceGap]:
        result = await self._session.execute(
            select(ComplianceGapRow)
            .where(ComplianceGapRow.assessment_id == assessment_id)
            .order_by(ComplianceGapRow.position)
        )
        return [_to_domain(ComplianceGap, row) for row in result.scalars().all()]

    async def replace_for_assessment(self, assessment_id: str, gaps: Sequence[ComplianceGap]) -> list[ComplianceGap]:
        # Regenerated gaps reuse their ids, so old rows must leave the identity map first.
        result = await self._session.execute(
            select(ComplianceGapRow).where(ComplianceGapRow.assessment_id == assessment_id)
        )
        for row in result.scalars().all():
            await self._session.delete(row)
        await self._session.flush()
        self._session.add_all(
            [
                ComplianceGapRow(position=position, **_column_values(ComplianceGapRow, gap))
                for position, gap in enumerate(gaps)
            ]
        )
        await self._session.flush()
        return list(gaps)

    async def save_if_status(self, gap: ComplianceGap, expected_status: GapStatus) -> ComplianceGap:
        # Derived columns belong to the analyzer; a remediation move writes the status only.
        result = await self._session.execute(
            update(ComplianceGapRow)
            .where(ComplianceGapRow.gap_id == gap.gap_id, ComplianceGapRow.status == expected_status)
            .values(status=gap.status)
        )
        if result.rowcount == 0:
            actual = await self._session.scalar(
                select(ComplianceGapRow.status).where(ComplianceGapRow.gap_id == gap.gap_id)
            )
            if actual is None:
                raise NotFoundError("ComplianceGap", gap.gap_id)
            raise ConcurrentModificationError("ComplianceGap", gap.gap_id, expected_status, actual)
        return await self.get(gap.gap_id)


class SqlActivityRepository:
    """Append-only activity trail. Exposes no update or delete."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, record: ActivityRecord) -> ActivityRecord:
        self._session.add(
            ActivityRow(
                activity_id=record.activity_id,
                system_id=record.system_id,
                activity_type=record.type,
                description=record.description,
                actor_id=record.actor_id,
                timestamp=record.timestamp,
                details=record.metadata,
            )
        )
        await self._session.flush()
        return record

    async def list_by_system(self, system_id: str, limit: int | None = None) -> list[ActivityRecord]:
        stmt = (
            select(ActivityRow)
            .where(ActivityRow.system_id == system_id)
            .order_by(ActivityRow.timestamp.desc(), ActivityRow.activity_id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return [
            ActivityRecord(
                activity_id=row.activity_id,
                type=row.activity_type,
                description=row.description,
                actor_id=row.actor_id,
                system_id=row.system_id,
                timestamp=row.timestamp,
                metadata=row.details,
            )
            for row in result.scalars().all()
        ]


def sql_repositories(session: AsyncSession) -> RepositoryBundle:
    """Return a RepositoryBundle whose repositories share one session."""
    return RepositoryBundle(
        systems=SqlSystemRepository(session),
        assessments=SqlAssessmentRepository(session),
        rms=SqlRiskManagementRepository(session),
        controls=SqlControlRepository(session),
        events=SqlEventRepository(session),
        gaps=SqlGapRepository(session),
        activities=SqlActivityRepository(session),
    )
