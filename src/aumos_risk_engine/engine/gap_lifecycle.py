"""Compliance gap remediation lifecycle.

    open ◄──► in_remediation
      │             │
      └──► closed ◄─┘

``closed`` is terminal for a given analysis run. A closed gap that the next
gap analysis derives again comes back as a fresh ``open`` gap.
"""

from aumos_risk_engine.core.models import ComplianceGap, GapStatus
from aumos_risk_engine.engine.commands import TransitionGapCommand
from aumos_risk_engine.errors import ConcurrentModificationError, InvalidTransitionError

ALLOWED_TRANSITIONS: dict[GapStatus, frozenset[GapStatus]] = {
    GapStatus.OPEN: frozenset({GapStatus.IN_REMEDIATION, GapStatus.CLOSED}),
    GapStatus.IN_REMEDIATION: frozenset({GapStatus.OPEN, GapStatus.CLOSED}),
    GapStatus.CLOSED: frozenset(),
}

UNRESOLVED_STATUSES: frozenset[GapStatus] = frozenset({GapStatus.OPEN, GapStatus.IN_REMEDIATION})


class GapLifecycle:
    """State machine for ComplianceGap.status."""

    def apply(self, gap: ComplianceGap, command: TransitionGapCommand) -> ComplianceGap:
        """Apply a remediation status update to a gap.

        Raises:
            ConcurrentModificationError: If the gap is no longer in the expected status.
            InvalidTransitionError: If the move is not allowed.
        """
        if gap.status != command.expected_current_status:
            raise ConcurrentModificationError(
                "ComplianceGap", gap.gap_id, command.expected_current_status, gap.status
            )
        if command.target_status not in ALLOWED_TRANSITIONS[gap.status]:
            raise InvalidTransitionError("ComplianceGap", gap.status, command.target_status)
        return gap.model_copy(update={"status": command.target_status})
