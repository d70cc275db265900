"""Control implementation lifecycle.

    planned ──► in_progress ──► implemented ──► verified
       │             │
       └──► failed ◄─┘

``verified`` and ``failed`` are terminal. A terminal control can be brought
back to ``planned`` only through reset(), which starts a new implementation
cycle. Effectiveness ratings other than not_implemented / not_tested are only
accepted for implemented or verified controls.
"""

from collections.abc import Callable
from datetime import UTC, datetime

from aumos_risk_engine.core.models import ControlEffectiveness, ImplementationStatus, RiskControl
from aumos_risk_engine.engine.commands import TransitionControlCommand
from aumos_risk_engine.errors import ConcurrentModificationError, InvalidTransitionError
from aumos_risk_engine.observability import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]

ALLOWED_TRANSITIONS: dict[ImplementationStatus, frozenset[ImplementationStatus]] = {
    ImplementationStatus.PLANNED: frozenset({ImplementationStatus.IN_PROGRESS, ImplementationStatus.FAILED}),
    ImplementationStatus.IN_PROGRESS: frozenset({ImplementationStatus.IMPLEMENTED, ImplementationStatus.FAILED}),
    ImplementationStatus.IMPLEMENTED: frozenset({ImplementationStatus.VERIFIED}),
    ImplementationStatus.VERIFIED: frozenset(),
    ImplementationStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES: frozenset[ImplementationStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)

RATEABLE_STATUSES: frozenset[ImplementationStatus] = frozenset(
    {ImplementationStatus.IMPLEMENTED, ImplementationStatus.VERIFIED}
)

UNRATED_EFFECTIVENESS: frozenset[ControlEffectiveness] = frozenset(
    {ControlEffectiveness.NOT_IMPLEMENTED, ControlEffectiveness.NOT_TESTED}
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ControlLifecycle:
    """State machine for RiskControl.implementation_status.

    Methods return a new RiskControl; persistence and the compare-and-set
    against storage belong to the caller.

    Args:
        clock: Source of the current time. Tests inject a fixed clock.
    """

    def __init__(self, clock: Clock = _utcnow) -> None:
        self._clock = clock

    def request_transition(self, control: RiskControl, target: ImplementationStatus) -> RiskControl:
        """Move a control to ``target`` if the edge exists.

        Raises:
            InvalidTransitionError: If ``target`` is not reachable from the current status.
        """
        current = control.implementation_status
        if target not in ALLOWED_TRANSITIONS[current]:
            reason = "status is terminal, use reset" if current in TERMINAL_STATUSES else ""
            raise InvalidTransitionError("RiskControl", current, target, reason)

        now = self._clock()
        update: dict[str, object] = {"implementation_status": target, "updated_at": now}
        if target == ImplementationStatus.IMPLEMENTED and control.implementation_date is None:
            update["implementation_date"] = now
        if target == ImplementationStatus.FAILED and control.effectiveness not in UNRATED_EFFECTIVENESS:
            update["effectiveness"] = ControlEffectiveness.NOT_TESTED

        logger.debug(
            "Control transition applied",
            control_id=control.control_id,
            from_status=current.value,
            to_status=target.value,
        )
        return control.model_copy(update=update)

    def apply(self, control: RiskControl, command: TransitionControlCommand) -> RiskControl:
        """Apply a transition command after checking the expected current status.

        Raises:
            ConcurrentModificationError: If the control is no longer in the expected status.
            InvalidTransitionError: If the move is not allowed.
        """
        if control.implementation_status != command.expected_current_status:
            raise ConcurrentModificationError(
                "RiskControl",
                control.control_id,
                command.expected_current_status,
                control.implementation_status,
            )
        return self.request_transition(control, command.target_status)

    def rate_effectiveness(self, control: RiskControl, effectiveness: ControlEffectiveness) -> RiskControl:
        """Record an effectiveness rating.

        Raises:
            InvalidTransitionError: If a tested rating is given to a control that
                is not implemented or verified.
        """
        if (
            effectiveness not in UNRATED_EFFECTIVENESS
            and control.implementation_status not in RATEABLE_STATUSES
        ):
            raise InvalidTransitionError(
                "RiskControl",
                control.implementation_status,
                effectiveness,
                "effectiveness can only be rated once the control is implemented or verified",
            )
        return control.model_copy(update={"effectiveness": effectiveness, "updated_at": self._clock()})

    def reset(self, control: RiskControl, expected_current_status: ImplementationStatus) -> RiskControl:
        """Start a new implementation cycle for a terminal control.

        The control returns to ``planned`` with effectiveness ``not_tested``.
        ``implementation_date`` keeps its first value.

        Raises:
            ConcurrentModificationError: If the control is no longer in the expected status.
            InvalidTransitionError: If the control is not in a terminal status.
        """
        current = control.implementation_status
        if current != expected_current_status:
            raise ConcurrentModificationError("RiskControl", control.control_id, expected_current_status, current)
        if current not in TERMINAL_STATUSES:
            raise InvalidTransitionError(
                "RiskControl",
                current,
                ImplementationStatus.PLANNED,
                "only verified or failed controls can be reset",
            )
        logger.info(
            "Control reset",
            control_id=control.control_id,
            implementation_cycle=control.implementation_cycle + 1,
        )
        return control.model_copy(
            update={
                "implementation_status": ImplementationStatus.PLANNED,
                "effectiveness": ControlEffectiveness.NOT_TESTED,
                "implementation_cycle": control.implementation_cycle + 1,
                "updated_at": self._clock(),
            }
        )
