"""Tests for ControlLifecycle."""

from collections.abc import Callable
from datetime import datetime, timedelta

import pytest

from aumos_risk_engine.core.models import ControlEffectiveness, ImplementationStatus, RiskControl
from aumos_risk_engine.engine.commands import TransitionControlCommand
from aumos_risk_engine.engine.control_lifecycle import ControlLifecycle
from aumos_risk_engine.errors import ConcurrentModificationError, InvalidTransitionError

ControlFactory = Callable[..., RiskControl]

PLANNED = ImplementationStatus.PLANNED
IN_PROGRESS = ImplementationStatus.IN_PROGRESS
IMPLEMENTED = ImplementationStatus.IMPLEMENTED
VERIFIED = ImplementationStatus.VERIFIED
FAILED = ImplementationStatus.FAILED


@pytest.fixture()
def lifecycle(clock: Callable[[], datetime]) -> ControlLifecycle:
    return ControlLifecycle(clock=clock)


class TestTransitions:
    def test_full_path_to_verified(
        self, lifecycle: ControlLifecycle, make_control: ControlFactory, now: datetime
    ) -> None:
        control = make_control()

        for target in (IN_PROGRESS, IMPLEMENTED, VERIFIED):
            control = lifecycle.request_transition(control, target)

        assert control.implementation_status == VERIFIED
        assert control.implementation_date == now
        assert control.updated_at == now

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (PLANNED, VERIFIED),
            (PLANNED, IMPLEMENTED),
            (IN_PROGRESS, VERIFIED),
            (IMPLEMENTED, FAILED),
            (IMPLEMENTED, PLANNED),
            (VERIFIED, IN_PROGRESS),
            (FAILED, IN_PROGRESS),
        ],
    )
    def test_disallowed_moves_leave_control_unchanged(
        self,
        lifecycle: ControlLifecycle,
        make_control: ControlFactory,
        current: ImplementationStatus,
        target: ImplementationStatus,
    ) -> None:
        control = make_control(implementation_status=current)

        with pytest.raises(InvalidTransitionError) as exc_info:
            lifecycle.request_transition(control, target)

        assert exc_info.value.current_status == current
        assert exc_info.value.requested_status == target
        assert control.implementation_status == current

    @pytest.mark.parametrize("current", [PLANNED, IN_PROGRESS])
    def test_failure_allowed_before_implementation(
        self, lifecycle: ControlLifecycle, make_control: ControlFactory, current: ImplementationStatus
    ) -> None:
        control = lifecycle.request_transition(make_control(implementation_status=current), FAILED)

        assert control.implementation_status == FAILED

    def test_terminal_status_points_to_reset(self, lifecycle: ControlLifecycle, make_control: ControlFactory) -> None:
        with pytest.raises(InvalidTransitionError, match="use reset"):
            lifecycle.request_transition(make_control(implementation_status=VERIFIED), PLANNED)

    def test_implementation_date_is_never_overwritten(
        self, make_control: ControlFactory, now: datetime
    ) -> None:
        first_date = now - timedelta(days=30)
        control = make_control(implementation_status=IN_PROGRESS, implementation_date=first_date)

        control = ControlLifecycle(clock=lambda: now).request_transition(control, IMPLEMENTED)

        assert control.implementation_date == first_date

    def test_apply_rejects_stale_expected_status(
        self, lifecycle: ControlLifecycle, make_control: ControlFactory
    ) -> None:
        control = make_control(implementation_status=IN_PROGRESS)
        command = TransitionControlCommand(control.control_id, PLANNED, IN_PROGRESS)

        with pytest.raises(ConcurrentModificationError) as exc_info:
            lifecycle.apply(control, command)

        assert exc_info.value.expected == PLANNED
        assert exc_info.value.actual == IN_PROGRESS

    def test_apply_with_matching_status(self, lifecycle: ControlLifecycle, make_control: ControlFactory) -> None:
        control = make_control()

        updated = lifecycle.apply(control, TransitionControlCommand(control.control_id, PLANNED, IN_PROGRESS))

        assert updated.implementation_status == IN_PROGRESS


class TestEffectiveness:
    @pytest.mark.parametrize("status", [PLANNED, IN_PROGRESS, FAILED])
    def test_tested_rating_requires_implementation(
        self, lifecycle: ControlLifecycle, make_control: ControlFactory, status: ImplementationStatus
    ) -> None:
        with pytest.raises(InvalidTransitionError):
            lifecycle.rate_effectiveness(make_control(implementation_status=status), ControlEffectiveness.EFFECTIVE)

    @pytest.mark.parametrize("rating", [ControlEffectiveness.NOT_TESTED, ControlEffectiveness.NOT_IMPLEMENTED])
    def test_unrated_values_allowed_in_any_status(
        self, lifecycle: ControlLifecycle, make_control: ControlFactory, rating: ControlEffectiveness
    ) -> None:
        control = lifecycle.rate_effectiveness(make_control(), rating)

        assert control.effectiveness == rating

    def test_rating_an_implemented_control(self, lifecycle: ControlLifecycle, make_control: ControlFactory) -> None:
        control = lifecycle.rate_effectiveness(
            make_control(implementation_status=IMPLEMENTED), ControlEffectiveness.PARTIALLY_EFFECTIVE
        )

        assert control.effectiveness == ControlEffectiveness.PARTIALLY_EFFECTIVE


class TestReset:
    @pytest.mark.parametrize("terminal", [VERIFIED, FAILED])
    def test_reset_starts_new_cycle(
        self,
        lifecycle: ControlLifecycle,
        make_control: ControlFactory,
        now: datetime,
        terminal: ImplementationStatus,
    ) -> None:
        first_date = now - timedelta(days=90)
        control = make_control(
            implementation_status=terminal,
            effectiveness=ControlEffectiveness.INEFFECTIVE,
            implementation_date=first_date,
        )

        reset = lifecycle.reset(control, expected_current_status=terminal)

        assert reset.implementation_status == PLANNED
        assert reset.effectiveness == ControlEffectiveness.NOT_TESTED
        assert reset.implementation_cycle == 2
        assert reset.implementation_date == first_date

    def test_reset_requires_terminal_status(self, lifecycle: ControlLifecycle, make_control: ControlFactory) -> None:
        with pytest.raises(InvalidTransitionError):
            lifecycle.reset(make_control(implementation_status=IMPLEMENTED), expected_current_status=IMPLEMENTED)

    def test_reset_rejects_stale_expected_status(
        self, lifecycle: ControlLifecycle, make_control: ControlFactory
    ) -> None:
        with pytest.raises(ConcurrentModificationError):
            lifecycle.reset(make_control(implementation_status=FAILED), expected_current_status=VERIFIED)

    def test_reset_control_can_be_reimplemented(
        self, lifecycle: ControlLifecycle, make_control: ControlFactory
    ) -> None:
        control = lifecycle.reset(make_control(implementation_status=FAILED), expected_current_status=FAILED)

        control = lifecycle.request_transition(control, IN_PROGRESS)

        assert control.implementation_status == IN_PROGRESS
