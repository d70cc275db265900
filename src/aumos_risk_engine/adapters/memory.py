"""In-memory storage backend.

Holds every entity as an immutable domain model in plain dicts keyed by id.
Repository methods never await anything, so each call runs to completion
without interleaving; compare-and-set checks and writes are therefore
atomic with respect to other coroutines on the same event loop. Saves also
match the revision the caller read, since a service may yield between its
read and its write.

This backend is the default and makes tests hermetic without database
infrastructure. The activity trail is append-only: no update or delete.
"""

from collections.abc import Sequence
from typing import Any

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


def _ensure_current(
    entity_type: str, key: str, status: Any, expected_status: Any, revision: int, read_revision: int
) -> None:
    if status != expected_status:
        raise ConcurrentModificationError(entity_type, key, expected_status, status)
    if revision != read_revision:
        raise ConcurrentModificationError(entity_type, key, f"revision {read_revision}", f"revision {revision}")


class InMemoryRiskStore:
    """Backing dicts shared by the in-memory repositories of one application."""

    def __init__(self) -> None:
        self.systems: dict[str, AiSystem] = {}
        self.assessments: dict[str, RiskAssessment] = {}
        # { system_id: RiskManagementSystem }
        self.rms: dict[str, RiskManagementSystem] = {}
        self.controls: dict[str, RiskControl] = {}
        self.events: dict[str, RiskEvent] = {}
        self.gaps: dict[str, ComplianceGap] = {}
        # { assessment_id: [gap_id, ...] } in derivation order
        self.gap_sets: dict[str, list[str]] = {}
        self.activities: list[ActivityRecord] = []

    def repositories(self) -> RepositoryBundle:
        """Return a RepositoryBundle backed by this store."""
        return RepositoryBundle(
            systems=InMemorySystemRepository(self),
            assessments=InMemoryAssessmentRepository(self),
            rms=InMemoryRiskManagementRepository(self),
            controls=InMemoryControlRepository(self),
            events=InMemoryEventRepository(self),
            gaps=InMemoryGapRepository(self),
            activities=InMemoryActivityRepository(self),
        )


class InMemorySystemRepository:
    def __init__(self, store: InMemoryRiskStore) -> None:
        self._store = store

    async def add(self, system: AiSystem) -> AiSystem:
        if system.system_id in self._store.systems:
            raise DuplicateEntityError("AiSystem", system.system_id)
        self._store.systems[system.system_id] = system
        return system

    async def get(self, system_id: str) -> AiSystem:
        system = self._store.systems.get(system_id)
        if system is None:
            raise NotFoundError("AiSystem", system_id)
        return system

    async def list_all(self) -> list[AiSystem]:
        return sorted(self._store.systems.values(), key=lambda s: (s.created_at, s.system_id))

    async def update(self, system: AiSystem) -> AiSystem:
        if system.system_id not in self._store.systems:
            raise NotFoundError("AiSystem", system.system_id)
        self._store.systems[system.system_id] = system
        return system


class InMemoryAssessmentRepository:
    def __init__(self, store: InMemoryRiskStore) -> None:
        self._store = store

    async def add(self, assessment: RiskAssessment) -> RiskAssessment:
        if assessment.assessment_id in self._store.assessments:
            raise DuplicateEntityError("RiskAssessment", assessment.assessment_id)
        self._store.assessments[assessment.assessment_id] = assessment
        return assessment

    async def get(self, assessment_id: str) -> RiskAssessment:
        assessment = self._store.assessments.get(assessment_id)
        if assessment is None:
            raise NotFoundError("RiskAssessment", assessment_id)
        return assessment

    async def list_by_system(self, system_id: str) -> list[RiskAssessment]:
        return sorted(
            (a for a in self._store.assessments.values() if a.system_id == system_id),
            key=lambda a: (a.created_at, a.assessment_id),
        )

    async def save_if_status(self, assessment: RiskAssessment, expected_status: AssessmentStatus) -> RiskAssessment:
        stored = await self.get(assessment.assessment_id)
        _ensure_current(
            "RiskAssessment",
            assessment.assessment_id,
            stored.status,
            expected_status,
            stored.revision,
            assessment.revision,
        )
        saved = assessment.model_copy(update={"revision": assessment.revision + 1})
        self._store.assessments[assessment.assessment_id] = saved
        return saved


class InMemoryRiskManagementRepository:
    def __init__(self, store: InMemoryRiskStore) -> None:
        self._store = store

    async def add(self, rms: RiskManagementSystem) -> RiskManagementSystem:
        if rms.system_id in self._store.rms:
            raise DuplicateEntityError("RiskManagementSystem", rms.system_id)
        stored = rms.model_copy(update={"version": 1})
        self._store.rms[rms.system_id] = stored
        return stored

    async def get_by_system(self, system_id: str) -> RiskManagementSystem | None:
        return self._store.rms.get(system_id)

    async def update(self, rms: RiskManagementSystem, expected_version: int) -> RiskManagementSystem:
        stored = self._store.rms.get(rms.system_id)
        if stored is None or stored.rms_id != rms.rms_id:
            raise NotFoundError("RiskManagementSystem", rms.rms_id)
        if stored.version != expected_version:
            raise ConcurrentModificationError("RiskManagementSystem", rms.rms_id, expected_version, stored.version)
        updated = rms.model_copy(update={"version": expected_version + 1})
        self._store.rms[rms.system_id] = updated
        return updated


class InMemoryControlRepository:
    def __init__(self, store: InMemoryRiskStore) -> None:
        self._store = store

    async def add(self, control: RiskControl) -> RiskControl:
        if control.control_id in self._store.controls:
            raise DuplicateEntityError("RiskControl", control.control_id)
        self._store.controls[control.control_id] = control
        return control

    async def get(self, control_id: str) -> RiskControl:
        control = self._store.controls.get(control_id)
        if control is None:
            raise NotFoundError("RiskControl", control_id)
        return control

    async def list_by_system(self, system_id: str) -> list[RiskControl]:
        return sorted(
            (c for c in self._store.controls.values() if c.system_id == system_id),
            key=lambda c: (c.created_at, c.control_id),
        )

    async def save_if_status(self, control: RiskControl, expected_status: ImplementationStatus) -> RiskControl:
        stored = await self.get(control.control_id)
        _ensure_current(
            "RiskControl",
            control.control_id,
            stored.implementation_status,
            expected_status,
            stored.revision,
            control.revision,
        )
        saved = control.model_copy(update={"revision": control.revision + 1})
        self._store.controls[control.control_id] = saved
        return saved


class InMemoryEventRepository:
    def __init__(self, store: InMemoryRiskStore) -> None:
        self._store = store

    async def add(self, event: RiskEvent) -> RiskEvent:
        if event.event_id in self._store.events:
            raise DuplicateEntityError("RiskEvent", event.event_id)
        self._store.events[event.event_id] = event
        return event

    async def get(self, event_id: str) -> RiskEvent:
        event = self._store.events.get(event_id)
        if event is None:
            raise NotFoundError("RiskEvent", event_id)
        return event

    async def list_by_system(self, system_id: str) -> list[RiskEvent]:
        return sorted(
            (e for e in self._store.events.values() if e.system_id == system_id),
            key=lambda e: (e.detection_date, e.event_id),
        )

    async def save_if_status(self, event: RiskEvent, expected_status: EventStatus) -> RiskEvent:
        stored = await self.get(event.event_id)
        _ensure_current("RiskEvent", event.event_id, stored.status, expected_status, stored.revision, event.revision)
        saved = event.model_copy(update={"revision": event.revision + 1})
        self._store.events[event.event_id] = saved
        return saved


class InMemoryGapRepository:
    def __init__(self, store: InMemoryRiskStore) -> None:
        self._store = store

    async def get(self, gap_id: str) -> ComplianceGap:
        gap = self._store.gaps.get(gap_id)
        if gap is None:
            raise NotFoundError("ComplianceGap", gap_id)
        return gap

    async def list_by_assessment(self, assessment_id: str) -> list[ComplianceGap]:
        return [self._store.gaps[gap_id] for gap_id in self._store.gap_sets.get(assessment_id, [])]

    async def replace_for_assessment(self, assessment_id: str, gaps: Sequence[ComplianceGap]) -> list[ComplianceGap]:
        for gap_id in self._store.gap_sets.pop(assessment_id, []):
            self._store.gaps.pop(gap_id, None)
        for gap in gaps:
            self._store.gaps[gap.gap_id] = gap
        self._store.gap_sets[assessment_id] = [gap.gap_id for gap in gaps]
        return list(gaps)

    async def save_if_status(self, gap: ComplianceGap, expected_status: GapStatus) -> ComplianceGap:
        stored = await self.get(gap.gap_id)
        if stored.status != expected_status:
            raise ConcurrentModificationError("ComplianceGap", gap.gap_id, expected_status, stored.status)
        saved = stored.model_copy(update={"status": gap.status})
        self._store.gaps[gap.gap_id] = saved
        return saved


class InMemoryActivityRepository:
    def __init__(self, store: InMemoryRiskStore) -> None:
        self._store = store

    async def append(self, record: ActivityRecord) -> ActivityRecord:
        self._store.activities.append(record)
        return record

    async def list_by_system(self, system_id: str, limit: int | None = None) -> list[ActivityRecord]:
        records = [record for record in reversed(self._store.activities) if record.system_id == system_id]
        return records[:limit] if limit is not None else records
