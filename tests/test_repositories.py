"""Tests for the adapter/repository layer.

Unit tests for the SQLAlchemy repositories using mock AsyncSession objects,
plus the in-memory repositories used by default.

Tests verify:
- Rows convert to and from the frozen domain models field-for-field
- Compare-and-set updates map a zero rowcount to NotFoundError or
  ConcurrentModificationError
- A save built from a stale read is rejected even when the status matches
- The activity trail is append-only
- Gap sets are replaced, never appended
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from aumos_risk_engine.adapters.memory import InMemoryActivityRepository, InMemoryRiskStore
from aumos_risk_engine.adapters.orm import ActivityRow, AiSystemRow, ComplianceGapRow, RiskControlRow
from aumos_risk_engine.adapters.repositories import (
    SqlActivityRepository,
    SqlControlRepository,
    SqlGapRepository,
    SqlRiskManagementRepository,
    SqlSystemRepository,
    sql_repositories,
)
from aumos_risk_engine.core.interfaces import RepositoryBundle
from aumos_risk_engine.core.models import (
    ActivityRecord,
    AiSystem,
    ControlEffectiveness,
    ControlType,
    EventStatus,
    GapStatus,
    ImplementationStatus,
    RiskControl,
    RiskEvent,
    RiskLevel,
    RiskManagementSystem,
    SafeguardCategory,
    Severity,
)
from aumos_risk_engine.engine.commands import TransitionControlCommand
from aumos_risk_engine.engine.control_lifecycle import ControlLifecycle
from aumos_risk_engine.engine.gap_analyzer import GapAnalyzer
from aumos_risk_engine.errors import ConcurrentModificationError, DuplicateEntityError, NotFoundError


def _mock_session(rowcount: int = 1, scalar: Any = None) -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()
    result = MagicMock()
    result.rowcount = rowcount
    session.execute = AsyncMock(return_value=result)
    session.scalar = AsyncMock(return_value=scalar)
    return session


# ---------------------------------------------------------------------------
# SQL repositories
# ---------------------------------------------------------------------------


class TestSqlSystemRepository:
    """Tests for SqlSystemRepository — row conversion and lookups."""

    @pytest.mark.asyncio()
    async def test_add_flushes_row_with_domain_fields(self, make_system: Callable[..., AiSystem]) -> None:
        """add() builds an AiSystemRow carrying every domain field."""
        session = _mock_session()
        system = make_system(risk_level=RiskLevel.HIGH, risk_score=14)

        await SqlSystemRepository(session).add(system)

        row = session.add.call_args[0][0]
        assert isinstance(row, AiSystemRow)
        assert row.system_id == "sys_test"
        assert row.risk_level == RiskLevel.HIGH
        session.flush.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_integrity_error_becomes_duplicate(self, make_system: Callable[..., AiSystem]) -> None:
        """A unique constraint violation surfaces as DuplicateEntityError."""
        session = _mock_session()
        session.flush.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

        with pytest.raises(DuplicateEntityError):
            await SqlSystemRepository(session).add(make_system())

    @pytest.mark.asyncio()
    async def test_get_converts_row(self, now: datetime) -> None:
        """get() returns the frozen domain model built from the row columns."""
        row = AiSystemRow(
            system_id="sys_1",
            name="Screening",
            department="HR",
            risk_level="limited",
            risk_score=19,
            created_at=now,
            updated_at=now,
        )
        session = _mock_session()
        session.get = AsyncMock(return_value=row)

        system = await SqlSystemRepository(session).get("sys_1")

        assert system.risk_level == RiskLevel.LIMITED
        assert system.risk_score == 19
        assert system.purpose is None

    @pytest.mark.asyncio()
    async def test_get_missing(self) -> None:
        """get() raises NotFoundError when no row exists."""
        session = _mock_session()
        session.get = AsyncMock(return_value=None)

        with pytest.raises(NotFoundError):
            await SqlSystemRepository(session).get("sys_missing")


class TestSqlCompareAndSet:
    """Tests for conditional UPDATE handling in SQL repositories."""

    @pytest.mark.asyncio()
    async def test_control_saved_when_status_matches(self, make_control: Callable[..., RiskControl]) -> None:
        """A matching expected status and revision updates one row and advances the revision."""
        session = _mock_session(rowcount=1)
        control = make_control(implementation_status=ImplementationStatus.IN_PROGRESS)

        saved = await SqlControlRepository(session).save_if_status(control, ImplementationStatus.PLANNED)

        assert saved == control.model_copy(update={"revision": 2})
        session.execute.assert_awaited_once()
        session.scalar.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_update_matches_status_and_read_revision(
        self, make_control: Callable[..., RiskControl]
    ) -> None:
        """The UPDATE is conditioned on the key, the expected status and the revision that was read."""
        session = _mock_session(rowcount=1)
        control = make_control(implementation_status=ImplementationStatus.VERIFIED, revision=4)

        await SqlControlRepository(session).save_if_status(control, ImplementationStatus.IMPLEMENTED)

        statement = session.execute.call_args[0][0]
        conditions = {clause.left.name: clause.right.value for clause in statement.whereclause.clauses}
        assert conditions == {
            "control_id": "ctrl_test",
            "implementation_status": ImplementationStatus.IMPLEMENTED,
            "revision": 4,
        }

    @pytest.mark.asyncio()
    async def test_stale_read_with_unchanged_status_is_rejected(
        self, make_control: Callable[..., RiskControl]
    ) -> None:
        """A writer whose read predates another save fails even though the status still matches."""
        session = _mock_session(rowcount=0)
        session.scalar = AsyncMock(side_effect=[ImplementationStatus.IMPLEMENTED, 2])
        stale = make_control(implementation_status=ImplementationStatus.VERIFIED, revision=1)

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await SqlControlRepository(session).save_if_status(stale, ImplementationStatus.IMPLEMENTED)

        assert exc_info.value.expected == "revision 1"
        assert exc_info.value.actual == "revision 2"

    @pytest.mark.asyncio()
    async def test_control_status_changed_by_another_writer(self, make_control: Callable[..., RiskControl]) -> None:
        """Zero rows updated with the row present means a concurrent modification."""
        session = _mock_session(rowcount=0, scalar="failed")

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await SqlControlRepository(session).save_if_status(make_control(), ImplementationStatus.PLANNED)

        assert exc_info.value.actual == "failed"

    @pytest.mark.asyncio()
    async def test_control_missing(self, make_control: Callable[..., RiskControl]) -> None:
        """Zero rows updated with no row present means NotFoundError."""
        session = _mock_session(rowcount=0, scalar=None)

        with pytest.raises(NotFoundError):
            await SqlControlRepository(session).save_if_status(make_control(), ImplementationStatus.PLANNED)

    @pytest.mark.asyncio()
    async def test_rms_update_increments_version(self, make_rms: Callable[..., RiskManagementSystem]) -> None:
        """A successful RMS update returns the next version."""
        session = _mock_session(rowcount=1)

        stored = await SqlRiskManagementRepository(session).update(make_rms(version=3), expected_version=3)

        assert stored.version == 4

    @pytest.mark.asyncio()
    async def test_rms_stale_version(self, make_rms: Callable[..., RiskManagementSystem]) -> None:
        """A stale expected version raises with the stored version attached."""
        session = _mock_session(rowcount=0, scalar=5)

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await SqlRiskManagementRepository(session).update(make_rms(), expected_version=4)

        assert exc_info.value.expected == 4
        assert exc_info.value.actual == 5

    @pytest.mark.asyncio()
    async def test_rms_add_starts_at_version_one(self, make_rms: Callable[..., RiskManagementSystem]) -> None:
        """add() always stores version 1."""
        session = _mock_session()

        stored = await SqlRiskManagementRepository(session).add(make_rms(version=7))

        assert stored.version == 1
        assert session.add.call_args[0][0].version == 1

    @pytest.mark.asyncio()
    async def test_gap_remediation_writes_status_only(self, now: datetime) -> None:
        """A gap status move leaves the derived columns to the analyzer."""
        gap = GapAnalyzer().analyze("ra_1", "sys_1", RiskLevel.HIGH, [], now=now)[0]
        moved = gap.model_copy(update={"status": GapStatus.IN_REMEDIATION, "severity": Severity.LOW})
        row_values = gap.model_dump()
        row_values["status"] = GapStatus.IN_REMEDIATION
        columns = {column.name for column in ComplianceGapRow.__table__.columns}
        session = _mock_session(rowcount=1)
        session.get = AsyncMock(
            return_value=ComplianceGapRow(position=0, **{k: v for k, v in row_values.items() if k in columns})
        )

        stored = await SqlGapRepository(session).save_if_status(moved, GapStatus.OPEN)

        set_clause = str(session.execute.call_args[0][0]).split(" WHERE ")[0]
        assert set_clause.endswith("SET status=:status")
        assert stored.severity == gap.severity
        assert stored.status == GapStatus.IN_REMEDIATION


class TestSqlGapRepository:
    """Tests for SqlGapRepository — wholesale replacement of a gap set."""

    @pytest.mark.asyncio()
    async def test_replace_deletes_then_inserts_in_order(self, now: datetime) -> None:
        """Old rows are deleted and flushed before the new set is added with positions."""
        gaps = GapAnalyzer().analyze("ra_1", "sys_1", RiskLevel.HIGH, [], now=now)
        old_row = MagicMock(spec=ComplianceGapRow)
        session = _mock_session()
        session.execute.return_value.scalars.return_value.all.return_value = [old_row]

        stored = await SqlGapRepository(session).replace_for_assessment("ra_1", gaps)

        session.delete.assert_awaited_once_with(old_row)
        rows = session.add_all.call_args[0][0]
        assert [row.position for row in rows] == list(range(len(gaps)))
        assert [row.requirement for row in rows] == [gap.requirement for gap in gaps]
        assert rows[0].status == GapStatus.OPEN
        assert session.flush.await_count == 2
        assert stored == gaps


class TestSqlActivityRepository:
    """Tests for SqlActivityRepository — append-only trail."""

    def test_repository_has_no_update_or_delete(self) -> None:
        """The activity trail must not expose any mutation besides append."""
        repo = SqlActivityRepository(AsyncMock())

        for name in ("update", "delete", "remove", "save_if_status"):
            assert not hasattr(repo, name), f"SqlActivityRepository must not have {name}()"

    @pytest.mark.asyncio()
    async def test_append_maps_metadata_to_details(self, now: datetime) -> None:
        """append() stores the metadata payload in the details attribute."""
        session = _mock_session()
        record = ActivityRecord(
            activity_id="act_1",
            type="risk_control_created",
            description="Risk control created",
            actor_id="usr_1",
            system_id="sys_1",
            timestamp=now,
            metadata={"control_id": "ctrl_1"},
        )

        await SqlActivityRepository(session).append(record)

        row = session.add.call_args[0][0]
        assert isinstance(row, ActivityRow)
        assert row.activity_type == "risk_control_created"
        assert row.details == {"control_id": "ctrl_1"}

    def test_bundle_shares_one_session(self) -> None:
        """sql_repositories() wires every repository to the same session."""
        session = AsyncMock()

        bundle = sql_repositories(session)

        assert isinstance(bundle, RepositoryBundle)
        assert isinstance(bundle.controls, SqlControlRepository)
        assert bundle.controls._session is session
        assert bundle.activities._session is session


def test_control_row_columns_cover_domain_fields() -> None:
    """Every RiskControl field has a column of the same name."""
    columns = {column.name for column in RiskControlRow.__table__.columns}

    assert set(RiskControl.model_fields) <= columns


# ---------------------------------------------------------------------------
# In-memory repositories
# ---------------------------------------------------------------------------


class TestInMemoryRepositories:
    """Tests for the in-memory backend."""

    @pytest.mark.asyncio()
    async def test_duplicate_ids_rejected(
        self, repos: RepositoryBundle, make_control: Callable[..., RiskControl]
    ) -> None:
        """Adding a second entity with the same id raises DuplicateEntityError."""
        await repos.controls.add(make_control())

        with pytest.raises(DuplicateEntityError):
            await repos.controls.add(make_control(name="Other"))

    @pytest.mark.asyncio()
    async def test_save_if_status(self, repos: RepositoryBundle, make_control: Callable[..., RiskControl]) -> None:
        """The first writer wins; the second sees a concurrent modification."""
        control = await repos.controls.add(make_control())
        in_progress = control.model_copy(update={"implementation_status": ImplementationStatus.IN_PROGRESS})
        failed = control.model_copy(update={"implementation_status": ImplementationStatus.FAILED})

        await repos.controls.save_if_status(in_progress, ImplementationStatus.PLANNED)

        with pytest.raises(ConcurrentModificationError):
            await repos.controls.save_if_status(failed, ImplementationStatus.PLANNED)
        assert (await repos.controls.get(control.control_id)).implementation_status == ImplementationStatus.IN_PROGRESS

    @pytest.mark.asyncio()
    async def test_stale_writer_cannot_overwrite_rating(
        self, repos: RepositoryBundle, make_control: Callable[..., RiskControl], now: datetime
    ) -> None:
        """A transition built from a read older than a rating save is rejected and the rating survives."""
        control = await repos.controls.add(make_control(implementation_status=ImplementationStatus.IMPLEMENTED))
        lifecycle = ControlLifecycle(clock=lambda: now)
        rater_read = await repos.controls.get(control.control_id)
        verifier_read = await repos.controls.get(control.control_id)

        await repos.controls.save_if_status(
            lifecycle.rate_effectiveness(rater_read, ControlEffectiveness.EFFECTIVE), ImplementationStatus.IMPLEMENTED
        )
        verified = lifecycle.apply(
            verifier_read,
            TransitionControlCommand(
                control.control_id, ImplementationStatus.IMPLEMENTED, ImplementationStatus.VERIFIED
            ),
        )

        with pytest.raises(ConcurrentModificationError):
            await repos.controls.save_if_status(verified, ImplementationStatus.IMPLEMENTED)

        stored = await repos.controls.get(control.control_id)
        assert stored.effectiveness == ControlEffectiveness.EFFECTIVE
        assert stored.implementation_status == ImplementationStatus.IMPLEMENTED
        assert stored.revision == 2

    @pytest.mark.asyncio()
    async def test_event_save_advances_revision(
        self, repos: RepositoryBundle, make_event: Callable[..., RiskEvent]
    ) -> None:
        """Each successful event save stores the next revision."""
        event = await repos.events.add(make_event())

        saved = await repos.events.save_if_status(
            event.model_copy(update={"status": EventStatus.UNDER_INVESTIGATION}), EventStatus.NEW
        )

        assert saved.revision == 2
        assert await repos.events.get(event.event_id) == saved

    @pytest.mark.asyncio()
    async def test_rms_versioning(
        self, repos: RepositoryBundle, make_rms: Callable[..., RiskManagementSystem]
    ) -> None:
        """RMS updates advance the version and reject stale writers."""
        rms = await repos.rms.add(make_rms())
        updated = await repos.rms.update(rms.model_copy(update={"notes": "first"}), expected_version=1)

        with pytest.raises(ConcurrentModificationError):
            await repos.rms.update(rms.model_copy(update={"notes": "second"}), expected_version=1)

        assert updated.version == 2
        assert (await repos.rms.get_by_system(rms.system_id)).notes == "first"

    @pytest.mark.asyncio()
    async def test_rms_one_per_system(
        self, repos: RepositoryBundle, make_rms: Callable[..., RiskManagementSystem]
    ) -> None:
        """A second RMS for the same system is rejected."""
        await repos.rms.add(make_rms())

        with pytest.raises(DuplicateEntityError):
            await repos.rms.add(make_rms(rms_id="rms_other"))

    @pytest.mark.asyncio()
    async def test_gap_set_replaced(self, repos: RepositoryBundle, now: datetime) -> None:
        """Replacing a gap set drops gaps that are no longer derived."""
        analyzer = GapAnalyzer()
        await repos.gaps.replace_for_assessment("ra_1", analyzer.analyze("ra_1", "sys_1", RiskLevel.HIGH, [], now=now))
        limited = analyzer.analyze("ra_1", "sys_1", RiskLevel.LIMITED, [], now=now)

        await repos.gaps.replace_for_assessment("ra_1", limited)

        stored = await repos.gaps.list_by_assessment("ra_1")
        assert [gap.requirement for gap in stored] == [SafeguardCategory.TRANSPARENCY]

    @pytest.mark.asyncio()
    async def test_gap_status_move_keeps_rederived_fields(self, repos: RepositoryBundle, now: datetime) -> None:
        """A status move built from an older read keeps the fields of the newer analysis run."""
        analyzer = GapAnalyzer()
        [stale] = await repos.gaps.replace_for_assessment(
            "ra_1", analyzer.analyze("ra_1", "sys_1", RiskLevel.LIMITED, [], now=now)
        )
        [rederived] = await repos.gaps.replace_for_assessment(
            "ra_1", [stale.model_copy(update={"partial": True, "severity": Severity.LOW})]
        )

        saved = await repos.gaps.save_if_status(
            stale.model_copy(update={"status": GapStatus.IN_REMEDIATION}), GapStatus.OPEN
        )

        assert saved.status == GapStatus.IN_REMEDIATION
        assert saved.severity == Severity.LOW
        assert saved.partial is True
        assert await repos.gaps.get(stale.gap_id) == saved

    def test_activity_repository_is_append_only(self) -> None:
        """The in-memory activity trail exposes no update or delete."""
        repo = InMemoryActivityRepository(InMemoryRiskStore())

        assert not hasattr(repo, "update")
        assert not hasattr(repo, "delete")

    @pytest.mark.asyncio()
    async def test_lists_are_scoped_to_system(
        self, repos: RepositoryBundle, make_control: Callable[..., RiskControl]
    ) -> None:
        """list_by_system only returns the requested system's records."""
        await repos.controls.add(make_control())
        await repos.controls.add(
            make_control(control_id="ctrl_other", system_id="sys_other", control_type=ControlType.TECHNICAL)
        )

        controls = await repos.controls.list_by_system("sys_test")

        assert [control.control_id for control in controls] == ["ctrl_test"]
