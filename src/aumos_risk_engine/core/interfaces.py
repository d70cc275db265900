"""Abstract interfaces (Protocol classes) for the risk engine.

Defines the contracts between the service layer and the storage adapters.
Services depend on these protocols, never on a concrete adapter, so the
same services run over the in-memory store and the SQLAlchemy repositories.

Compare-and-set lives in the contract: every ``save_if_status`` applies only
while the stored status still equals the caller's expected status. For
assessments, controls and events the stored revision must also equal the
revision the caller read. ``IRiskManagementRepository.update`` applies only
while the stored version equals the expected version. A lost race raises
ConcurrentModificationError.

Protocols defined:
- ISystemRepository
- IAssessmentRepository
- IRiskManagementRepository
- IControlRepository
- IEventRepository
- IGapRepository
- IActivityRepository
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

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


class ISystemRepository(Protocol):
    """Repository contract for AiSystem persistence."""

    async def add(self, system: AiSystem) -> AiSystem:
        """Persist a newly registered system.

        Raises:
            DuplicateEntityError: If the system id is already taken.
        """
        ...

    async def get(self, system_id: str) -> AiSystem:
        """Retrieve a system by id.

        Raises:
            NotFoundError: If no system exists with the given id.
        """
        ...

    async def list_all(self) -> list[AiSystem]:
        """List all systems ordered by creation time."""
        ...

    async def update(self, system: AiSystem) -> AiSystem:
        """Overwrite a system's mutable fields (name, cached tier, dates).

        Raises:
            NotFoundError: If the system does not exist.
        """
        ...


class IAssessmentRepository(Protocol):
    """Repository contract for RiskAssessment persistence."""

    async def add(self, assessment: RiskAssessment) -> RiskAssessment:
        """Persist a new assessment."""
        ...

    async def get(self, assessment_id: str) -> RiskAssessment:
        """Retrieve an assessment by id.

        Raises:
            NotFoundError: If no assessment exists with the given id.
        """
        ...

    async def list_by_system(self, system_id: str) -> list[RiskAssessment]:
        """List a system's assessments, oldest first."""
        ...

    async def save_if_status(self, assessment: RiskAssessment, expected_status: AssessmentStatus) -> RiskAssessment:
        """Store ``assessment`` only if the stored status equals ``expected_status``
        and the stored revision equals ``assessment.revision``.

        Returns:
            The stored assessment at its next revision.

        Raises:
            NotFoundError: If the assessment does not exist.
            ConcurrentModificationError: If the stored status or revision differs.
        """
        ...


class IRiskManagementRepository(Protocol):
    """Repository contract for RiskManagementSystem persistence (one per system)."""

    async def add(self, rms: RiskManagementSystem) -> RiskManagementSystem:
        """Persist a new RMS at version 1.

        Raises:
            DuplicateEntityError: If the system already has an RMS.
        """
        ...

    async def get_by_system(self, system_id: str) -> RiskManagementSystem | None:
        """Return the system's RMS, or None if it has none."""
        ...

    async def update(self, rms: RiskManagementSystem, expected_version: int) -> RiskManagementSystem:
        """Store ``rms`` if the stored version equals ``expected_version``.

        Returns:
            The stored record with ``version = expected_version + 1``.

        Raises:
            NotFoundError: If the RMS does not exist.
            ConcurrentModificationError: If the stored version differs.
        """
        ...


class IControlRepository(Protocol):
    """Repository contract for RiskControl persistence."""

    async def add(self, control: RiskControl) -> RiskControl:
        """Persist a new control."""
        ...

    async def get(self, control_id: str) -> RiskControl:
        """Retrieve a control by id.

        Raises:
            NotFoundError: If no control exists with the given id.
        """
        ...

    async def list_by_system(self, system_id: str) -> list[RiskControl]:
        """List a system's controls, oldest first."""
        ...

    async def save_if_status(self, control: RiskControl, expected_status: ImplementationStatus) -> RiskControl:
        """Store ``control`` only if the stored status equals ``expected_status``
        and the stored revision equals ``control.revision``.

        Returns:
            The stored control at its next revision.

        Raises:
            NotFoundError: If the control does not exist.
            ConcurrentModificationError: If the stored status or revision differs.
        """
        ...


class IEventRepository(Protocol):
    """Repository contract for RiskEvent persistence."""

    async def add(self, event: RiskEvent) -> RiskEvent:
        """Persist a new event."""
        ...

    async def get(self, event_id: str) -> RiskEvent:
        """Retrieve an event by id.

        Raises:
            NotFoundError: If no event exists with the given id.
        """
        ...

    async def list_by_system(self, system_id: str) -> list[RiskEvent]:
        """List a system's events, oldest detection first."""
        ...

    async def save_if_status(self, event: RiskEvent, expected_status: EventStatus) -> RiskEvent:
        """Store ``event`` only if the stored status equals ``expected_status``
        and the stored revision equals ``event.revision``.

        Returns:
            The stored event at its next revision.

        Raises:
            NotFoundError: If the event does not exist.
            ConcurrentModificationError: If the stored status or revision differs.
        """
        ...


class IGapRepository(Protocol):
    """Repository contract for derived ComplianceGap records."""

    async def get(self, gap_id: str) -> ComplianceGap:
        """Retrieve a gap by id.

        Raises:
            NotFoundError: If no gap exists with the given id.
        """
        ...

    async def list_by_assessment(self, assessment_id: str) -> list[ComplianceGap]:
        """List an assessment's gaps in the order they were derived."""
        ...

    async def replace_for_assessment(self, assessment_id: str, gaps: Sequence[ComplianceGap]) -> list[ComplianceGap]:
        """Atomically replace the full gap set of an assessment."""
        ...

    async def save_if_status(self, gap: ComplianceGap, expected_status: GapStatus) -> ComplianceGap:
        """Set the status of ``gap`` only if the stored status equals ``expected_status``.

        Derived fields stay as the last analysis run wrote them.

        Returns:
            The stored gap with its new status.

        Raises:
            NotFoundError: If the gap does not exist.
            ConcurrentModificationError: If the stored status differs.
        """
        ...


class IActivityRepository(Protocol):
    """Append-only repository contract for the activity trail.

    There is no update or delete.
    """

    async def append(self, record: ActivityRecord) -> ActivityRecord:
        """Append an immutable activity record."""
        ...

    async def list_by_system(self, system_id: str, limit: int | None = None) -> list[ActivityRecord]:
        """List a system's activities, newest first."""
        ...


@dataclass(frozen=True)
class RepositoryBundle:
    """All repositories of one storage backend, scoped to one unit of work."""

    systems: ISystemRepository
    assessments: IAssessmentRepository
    rms: IRiskManagementRepository
    controls: IControlRepository
    events: IEventRepository
    gaps: IGapRepository
    activities: IActivityRepository
