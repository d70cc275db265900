"""Risk assessment workflow.

    draft ──► in_progress ──► completed ──► approved
                  ▲               │            │
                  │               ├──► rejected ─────┐
                  │               └──► requires_update
                  └──────────────────────┴─────────────┘

Answers are editable while the assessment is a draft, in progress, or flagged
for update. Every edit recomputes ``risk_level`` / ``risk_score`` from the
answers on the record; completing an assessment requires a full, valid
answer set.
"""

from collections.abc import Callable
from datetime import UTC, datetime

from aumos_risk_engine.core.models import AssessmentStatus, ClassificationInput, RiskAssessment
from aumos_risk_engine.engine.classification import ClassificationEngine
from aumos_risk_engine.engine.commands import TransitionAssessmentCommand
from aumos_risk_engine.errors import ConcurrentModificationError, InvalidTransitionError

ALLOWED_TRANSITIONS: dict[AssessmentStatus, frozenset[AssessmentStatus]] = {
    AssessmentStatus.DRAFT: frozenset({AssessmentStatus.IN_PROGRESS}),
    AssessmentStatus.IN_PROGRESS: frozenset({AssessmentStatus.COMPLETED}),
    AssessmentStatus.COMPLETED: frozenset(
        {AssessmentStatus.APPROVED, AssessmentStatus.REJECTED, AssessmentStatus.REQUIRES_UPDATE}
    ),
    AssessmentStatus.APPROVED: frozenset({AssessmentStatus.REQUIRES_UPDATE}),
    AssessmentStatus.REJECTED: frozenset({AssessmentStatus.IN_PROGRESS}),
    AssessmentStatus.REQUIRES_UPDATE: frozenset({AssessmentStatus.IN_PROGRESS}),
}

EDITABLE_STATUSES: frozenset[AssessmentStatus] = frozenset(
    {AssessmentStatus.DRAFT, AssessmentStatus.IN_PROGRESS, AssessmentStatus.REQUIRES_UPDATE}
)


class AssessmentLifecycle:
    """Answer editing and status workflow for RiskAssessment.

    Args:
        engine: Classifier used to derive tier and score from answers.
        clock: Source of the current time.
    """

    def __init__(
        self,
        engine: ClassificationEngine,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._engine = engine
        self._clock = clock

    def apply_answers(self, assessment: RiskAssessment, answers: ClassificationInput) -> RiskAssessment:
        """Replace the answer set and recompute the derived tier.

        Raises:
            InvalidTransitionError: If the assessment is not editable.
            InvalidParameterError: If a provided parameter label is unrecognized.
        """
        if assessment.status not in EDITABLE_STATUSES:
            raise InvalidTransitionError(
                "RiskAssessment",
                assessment.status,
                assessment.status,
                "answers can only be edited in draft, in_progress or requires_update",
            )
        result = self._engine.try_classify(answers)
        now = self._clock()
        return assessment.model_copy(
            update={
                "prohibited_use_flags": answers.prohibited_use_flags,
                "high_risk_category_flags": answers.high_risk_category_flags,
                "risk_parameters": answers.risk_parameters,
                "risk_level": result.risk_level if result else None,
                "risk_score": result.risk_score if result else None,
                "updated_at": now,
            }
        )

    def transition(self, assessment: RiskAssessment, command: TransitionAssessmentCommand) -> RiskAssessment:
        """Move an assessment through its workflow.

        Raises:
            ConcurrentModificationError: If the assessment is no longer in the expected status.
            InvalidTransitionError: If the move is not allowed.
            MissingInputError: If completing with unanswered inputs.
            InvalidParameterError: If completing with an unrecognized parameter label.
        """
        current = assessment.status
        target = command.target_status
        if current != command.expected_current_status:
            raise ConcurrentModificationError(
                "RiskAssessment", assessment.assessment_id, command.expected_current_status, current
            )
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError("RiskAssessment", current, target)

        now = self._clock()
        update: dict[str, object] = {"status": target, "updated_at": now}
        if target == AssessmentStatus.COMPLETED:
            result = self._engine.classify(assessment.classification_input())
            update["risk_level"] = result.risk_level
            update["risk_score"] = result.risk_score
            update["assessment_date"] = now
        return assessment.model_copy(update=update)
