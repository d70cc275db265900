"""Ordinal parameter scale.

Converts the five-point ordinal labels used by risk parameters into integer
weights. The lookup is total over OrdinalLevel and rejects anything else; it
never falls back to a default weight.
"""

from typing import Any

from aumos_risk_engine.core.models import OrdinalLevel
from aumos_risk_engine.errors import InvalidParameterError

_WEIGHTS: dict[OrdinalLevel, int] = {
    OrdinalLevel.VERY_LOW: 1,
    OrdinalLevel.LOW: 2,
    OrdinalLevel.MEDIUM: 3,
    OrdinalLevel.HIGH: 4,
    OrdinalLevel.VERY_HIGH: 5,
}

MIN_WEIGHT = min(_WEIGHTS.values())
MAX_WEIGHT = max(_WEIGHTS.values())


def parse_level(label: Any, parameter: str = "risk_parameter") -> OrdinalLevel:
    """Parse a raw label into an OrdinalLevel.

    Args:
        label: Raw value, usually a string such as "very_high".
        parameter: Parameter name used in the error message.

    Returns:
        The matching OrdinalLevel.

    Raises:
        InvalidParameterError: If the label is not one of the five levels.
    """
    if isinstance(label, OrdinalLevel):
        return label
    if not isinstance(label, str):
        raise InvalidParameterError(parameter, label)
    try:
        return OrdinalLevel(label)
    except ValueError as exc:
        raise InvalidParameterError(parameter, label) from exc


def weight_for(label: Any, parameter: str = "risk_parameter") -> int:
    """Return the integer weight (1-5) of an ordinal label.

    Args:
        label: Raw label or OrdinalLevel.
        parameter: Parameter name used in the error message.

    Returns:
        The weight for the label.

    Raises:
        InvalidParameterError: If the label is unrecognized.
    """
    return _WEIGHTS[parse_level(label, parameter)]
