"""Error taxonomy for the risk engine.

Every error raised by the engine derives from RiskEngineError and carries a
stable `error_code` that the API layer maps to an HTTP status. Errors are
surfaced to the caller unmodified; nothing in the engine recovers from them
by substituting defaults.
"""

from typing import Any


class RiskEngineError(Exception):
    """Base class for all risk engine errors.

    Args:
        message: Human-readable description of the failure.
        error_code: Stable machine-readable error identifier.
        details: Optional structured context for the caller.
    """

    error_code = "risk_engine_error"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        self.details: dict[str, Any] = details or {}


class InvalidParameterError(RiskEngineError):
    """An input field carried a value outside its allowed vocabulary."""

    error_code = "invalid_parameter"

    def __init__(self, parameter: str, value: Any) -> None:
        super().__init__(
            message=f"Unrecognized value {value!r} for '{parameter}'",
            details={"parameter": parameter, "value": value},
        )
        self.parameter = parameter
        self.value = value


class MissingInputError(RiskEngineError):
    """One or more required classification inputs are absent."""

    error_code = "missing_input"

    def __init__(self, missing_fields: list[str]) -> None:
        super().__init__(
            message=f"Missing required classification inputs: {', '.join(missing_fields)}",
            details={"missing_fields": missing_fields},
        )
        self.missing_fields = missing_fields


class InvalidTransitionError(RiskEngineError):
    """A state machine was asked to make a move it does not allow."""

    error_code = "invalid_transition"

    def __init__(self, entity_type: str, current_status: str, requested_status: str, reason: str = "") -> None:
        message = f"Cannot transition {entity_type} from '{current_status}' to '{requested_status}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            details={
                "entity_type": entity_type,
                "current_status": current_status,
                "requested_status": requested_status,
            },
        )
        self.entity_type = entity_type
        self.current_status = current_status
        self.requested_status = requested_status


class IncompleteResolutionError(RiskEngineError):
    """A risk event was resolved without a root-cause/resolution note."""

    error_code = "incomplete_resolution"

    def __init__(self, event_id: str) -> None:
        super().__init__(
            message=f"Risk event '{event_id}' cannot be resolved without a resolution note",
            details={"event_id": event_id},
        )
        self.event_id = event_id


class ConcurrentModificationError(RiskEngineError):
    """The stored entity changed after the caller read it."""

    error_code = "concurrent_modification"

    def __init__(self, entity_type: str, entity_id: str, expected: Any, actual: Any) -> None:
        super().__init__(
            message=(
                f"{entity_type} '{entity_id}' was modified concurrently "
                f"(expected {expected!r}, found {actual!r}); re-read and retry"
            ),
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "expected": expected,
                "actual": actual,
            },
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected = expected
        self.actual = actual


class NotFoundError(RiskEngineError):
    """No entity exists with the requested identifier."""

    error_code = "not_found"

    def __init__(self, entity_type: str, entity_id: str) -> None:
        super().__init__(
            message=f"{entity_type} '{entity_id}' not found",
            details={"entity_type": entity_type, "entity_id": entity_id},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class DuplicateEntityError(RiskEngineError):
    """An entity that must be unique already exists."""

    error_code = "duplicate_entity"

    def __init__(self, entity_type: str, key: str) -> None:
        super().__init__(
            message=f"{entity_type} already exists for '{key}'",
            details={"entity_type": entity_type, "key": key},
        )
        self.entity_type = entity_type
        self.key = key
