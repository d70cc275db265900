"""Translation of RiskEngineError subclasses into HTTP responses.

Every error kind maps to one status code and a ``{error, message, details}``
body. Unmapped RiskEngineError subclasses fall back to 400.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from aumos_risk_engine.api.schemas import ErrorResponse
from aumos_risk_engine.errors import (
    ConcurrentModificationError,
    DuplicateEntityError,
    IncompleteResolutionError,
    InvalidParameterError,
    InvalidTransitionError,
    MissingInputError,
    NotFoundError,
    RiskEngineError,
)
from aumos_risk_engine.observability import get_logger

logger = get_logger(__name__)

ERROR_STATUS_CODES: dict[type[RiskEngineError], int] = {
    NotFoundError: 404,
    InvalidTransitionError: 409,
    ConcurrentModificationError: 409,
    DuplicateEntityError: 409,
    InvalidParameterError: 422,
    MissingInputError: 422,
    IncompleteResolutionError: 422,
}


def status_code_for(exc: RiskEngineError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_type]
    return 400


async def risk_engine_error_handler(request: Request, exc: RiskEngineError) -> JSONResponse:
    """Render a RiskEngineError as a JSON error response."""
    status_code = status_code_for(exc)
    logger.info(
        "Request rejected",
        path=request.url.path,
        status_code=status_code,
        error_code=exc.error_code,
    )
    body = ErrorResponse(error=exc.error_code, message=exc.message, details=exc.details)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RiskEngineError, risk_engine_error_handler)  # type: ignore[arg-type]
