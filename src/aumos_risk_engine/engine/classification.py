"""Risk tier classification.

Turns one assessment's answer set into a risk tier and a numeric score.
Rules are applied in strict priority order and the first match wins:

1. Any prohibited-use flag set     -> unacceptable, score = MAX_RISK_SCORE
2. Any high-risk category flag set -> high, score = weighted parameter sum
3. Otherwise                       -> limited if score >= threshold, else minimal

A parameter score alone never escalates a system to high; category
membership decides that. Every flag and parameter must be answered and every
parameter label must be valid before any tier is produced.
"""

from aumos_risk_engine.core.models import (
    ClassificationInput,
    ClassificationResult,
    HighRiskCategoryFlags,
    ProhibitedUseFlags,
    RiskLevel,
    RiskParameters,
)
from aumos_risk_engine.engine.parameter_scale import MAX_WEIGHT, MIN_WEIGHT, weight_for
from aumos_risk_engine.errors import MissingInputError
from aumos_risk_engine.observability import get_logger

logger = get_logger(__name__)

PROHIBITED_USE_FIELDS: tuple[str, ...] = tuple(ProhibitedUseFlags.model_fields)
HIGH_RISK_CATEGORY_FIELDS: tuple[str, ...] = tuple(HighRiskCategoryFlags.model_fields)
RISK_PARAMETER_FIELDS: tuple[str, ...] = tuple(RiskParameters.model_fields)

# Answer groups keyed by their camelCase name on the wire.
_ANSWER_GROUPS = {
    "prohibitedUseFlags": ProhibitedUseFlags,
    "highRiskCategoryFlags": HighRiskCategoryFlags,
    "riskParameters": RiskParameters,
}

MIN_RISK_SCORE = len(RISK_PARAMETER_FIELDS) * MIN_WEIGHT
MAX_RISK_SCORE = len(RISK_PARAMETER_FIELDS) * MAX_WEIGHT

# Illustrative boundary between minimal and limited; must be confirmed with
# legal stakeholders for a production deployment.
LIMITED_RISK_THRESHOLD = 18


def _wire_name(group: str, field_name: str) -> str:
    return f"{group}.{_ANSWER_GROUPS[group].model_fields[field_name].alias}"


def find_missing_inputs(answers: ClassificationInput) -> list[str]:
    """List every unanswered flag or parameter, in wire (camelCase) form.

    Args:
        answers: The answer set to inspect.

    Returns:
        Dotted field paths such as ``riskParameters.autonomyLevel``. Empty
        when the answer set is complete.
    """
    missing: list[str] = []
    for name in PROHIBITED_USE_FIELDS:
        if getattr(answers.prohibited_use_flags, name) is None:
            missing.append(_wire_name("prohibitedUseFlags", name))
    for name in HIGH_RISK_CATEGORY_FIELDS:
        if getattr(answers.high_risk_category_flags, name) is None:
            missing.append(_wire_name("highRiskCategoryFlags", name))
    for name in RISK_PARAMETER_FIELDS:
        if getattr(answers.risk_parameters, name) is None:
            missing.append(_wire_name("riskParameters", name))
    return missing


def weighted_parameter_score(parameters: RiskParameters) -> int:
    """Sum the ParameterScale weights of the five risk parameters (5-25).

    Raises:
        MissingInputError: If any parameter is unanswered.
        InvalidParameterError: If any parameter label is unrecognized.
    """
    missing = [
        _wire_name("riskParameters", name)
        for name in RISK_PARAMETER_FIELDS
        if getattr(parameters, name) is None
    ]
    if missing:
        raise MissingInputError(missing)
    return sum(
        weight_for(getattr(parameters, name), parameter=_wire_name("riskParameters", name))
        for name in RISK_PARAMETER_FIELDS
    )


class ClassificationEngine:
    """Deterministic risk tier classifier.

    Holds no state besides its threshold; identical inputs always produce
    identical results and no I/O is performed.

    Args:
        limited_threshold: Score at or above which an unflagged system is
            classified as limited risk.
    """

    def __init__(self, limited_threshold: int = LIMITED_RISK_THRESHOLD) -> None:
        if not MIN_RISK_SCORE <= limited_threshold <= MAX_RISK_SCORE:
            raise ValueError(
                f"limited_threshold must be within [{MIN_RISK_SCORE}, {MAX_RISK_SCORE}], "
                f"got {limited_threshold}"
            )
        self._limited_threshold = limited_threshold

    @property
    def limited_threshold(self) -> int:
        return self._limited_threshold

    def classify(self, answers: ClassificationInput) -> ClassificationResult:
        """Classify an answer set into a risk tier and score.

        Args:
            answers: Prohibited-use flags, high-risk category flags, and the
                five ordinal risk parameters.

        Returns:
            ClassificationResult with ``risk_level`` and ``risk_score``.

        Raises:
            MissingInputError: If any flag or parameter is unanswered.
            InvalidParameterError: If any parameter label is unrecognized.
        """
        missing = find_missing_inputs(answers)
        if missing:
            raise MissingInputError(missing)

        # Validates every label even when a flag decides the tier.
        parameter_score = weighted_parameter_score(answers.risk_parameters)

        if any(getattr(answers.prohibited_use_flags, name) for name in PROHIBITED_USE_FIELDS):
            result = ClassificationResult(risk_level=RiskLevel.UNACCEPTABLE, risk_score=MAX_RISK_SCORE)
        elif any(getattr(answers.high_risk_category_flags, name) for name in HIGH_RISK_CATEGORY_FIELDS):
            result = ClassificationResult(risk_level=RiskLevel.HIGH, risk_score=parameter_score)
        elif parameter_score >= self._limited_threshold:
            result = ClassificationResult(risk_level=RiskLevel.LIMITED, risk_score=parameter_score)
        else:
            result = ClassificationResult(risk_level=RiskLevel.MINIMAL, risk_score=parameter_score)

        logger.debug(
            "Classification computed",
            risk_level=result.risk_level.value,
            risk_score=result.risk_score,
        )
        return result

    def try_classify(self, answers: ClassificationInput) -> ClassificationResult | None:
        """Classify a possibly incomplete answer set.

        Returns None while answers are still missing; invalid labels are
        never tolerated.

        Raises:
            InvalidParameterError: If any provided parameter label is unrecognized.
        """
        if find_missing_inputs(answers):
            for name in RISK_PARAMETER_FIELDS:
                value = getattr(answers.risk_parameters, name)
                if value is not None:
                    weight_for(value, parameter=_wire_name("riskParameters", name))
            return None
        return self.classify(answers)
