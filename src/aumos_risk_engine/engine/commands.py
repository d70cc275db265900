"""Transition commands.

Every state change is requested through a command that names the status
the caller last observed. A mismatch with the stored status means another
writer got there first and the command is rejected rather than merged.
"""

from dataclasses import dataclass

from aumos_risk_engine.core.models import (
    AssessmentStatus,
    EventStatus,
    GapStatus,
    ImplementationStatus,
)


@dataclass(frozen=True)
class TransitionControlCommand:
    control_id: str
    expected_current_status: ImplementationStatus
    target_status: ImplementationStatus
    actor_id: str = "system"


@dataclass(frozen=True)
class TransitionEventCommand:
    """Move a risk event through its investigation lifecycle.

    Attributes:
        resolution_note: Required (non-blank) when the target is ``resolved``.
        root_cause: Optional root-cause finding recorded with the transition.
    """

    event_id: str
    expected_current_status: EventStatus
    target_status: EventStatus
    resolution_note: str | None = None
    root_cause: str | None = None
    actor_id: str = "system"


@dataclass(frozen=True)
class TransitionAssessmentCommand:
    assessment_id: str
    expected_current_status: AssessmentStatus
    target_status: AssessmentStatus
    actor_id: str = "system"


@dataclass(frozen=True)
class TransitionGapCommand:
    gap_id: str
    expected_current_status: GapStatus
    target_status: GapStatus
    actor_id: str = "system"
