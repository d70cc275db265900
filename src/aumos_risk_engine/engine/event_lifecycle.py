"""Risk event investigation lifecycle.

    new ──► under_investigation ──► resolved ──► closed

Strictly linear. Resolving requires a non-blank resolution note and
``closure_date`` is stamped once, on the first entry into resolved or closed.
"""

from collections.abc import Callable
from datetime import UTC, datetime

from aumos_risk_engine.core.models import EventStatus, RiskEvent
from aumos_risk_engine.engine.commands import TransitionEventCommand
from aumos_risk_engine.errors import (
    ConcurrentModificationError,
    IncompleteResolutionError,
    InvalidTransitionError,
)
from aumos_risk_engine.observability import get_logger

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[EventStatus, frozenset[EventStatus]] = {
    EventStatus.NEW: frozenset({EventStatus.UNDER_INVESTIGATION}),
    EventStatus.UNDER_INVESTIGATION: frozenset({EventStatus.RESOLVED}),
    EventStatus.RESOLVED: frozenset({EventStatus.CLOSED}),
    EventStatus.CLOSED: frozenset(),
}

OPEN_STATUSES: frozenset[EventStatus] = frozenset({EventStatus.NEW, EventStatus.UNDER_INVESTIGATION})
_CLOSING_STATUSES: frozenset[EventStatus] = frozenset({EventStatus.RESOLVED, EventStatus.CLOSED})


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EventLifecycle:
    """State machine for RiskEvent.status.

    Args:
        clock: Source of the current time.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock

    def apply(self, event: RiskEvent, command: TransitionEventCommand) -> RiskEvent:
        """Apply a transition command to an event.

        Returns:
            The updated event.

        Raises:
            ConcurrentModificationError: If the event is no longer in the expected status.
            InvalidTransitionError: If the move skips or reverses a step.
            IncompleteResolutionError: If resolving without a resolution note.
        """
        current = event.status
        target = command.target_status
        if current != command.expected_current_status:
            raise ConcurrentModificationError("RiskEvent", event.event_id, command.expected_current_status, current)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError("RiskEvent", current, target)

        note = (command.resolution_note or "").strip()
        if target == EventStatus.RESOLVED and not note:
            raise IncompleteResolutionError(event.event_id)

        now = self._clock()
        update: dict[str, object] = {"status": target, "updated_at": now}
        if note:
            update["resolution_note"] = note
        if command.root_cause is not None and command.root_cause.strip():
            update["root_cause"] = command.root_cause.strip()
        if target in _CLOSING_STATUSES and event.closure_date is None:
            update["closure_date"] = now

        logger.debug(
            "Event transition applied",
            event_id=event.event_id,
            from_status=current.value,
            to_status=target.value,
        )
        return event.model_copy(update=update)
