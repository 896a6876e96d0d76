from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Error payload returned for every ledger error:
    {
        "error": "invalid_transition",
        "message": "Cannot end a session that is pending",
        "code": 409,
        "details": {"state": "pending", "event": "end"}
    }
    """

    error: str = Field(..., description="Machine-readable error type")
    message: str = Field(..., description="Human-readable error message")
    code: int = Field(..., description="HTTP status code for this error")
    details: Optional[Dict[str, Any]] = None


class LedgerError(Exception):
    error = "ledger_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable = False

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_response(self) -> ErrorResponse:
        details = dict(self.details)
        if self.retryable:
            details["retryable"] = True
        return ErrorResponse(
            error=self.error,
            message=self.message,
            code=self.status_code,
            details=details or None,
        )


class NotFound(LedgerError):
    error = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDenied(LedgerError):
    error = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN


class ValidationFailed(LedgerError):
    error = "bad_request"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidTransition(LedgerError):
    error = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, event: str, state: str, message: Optional[str] = None):
        super().__init__(
            message or f"Cannot {event} a session that is {state}",
            details={"state": state, "event": event},
        )
        self.event = event
        self.state = state


class InconsistentState(LedgerError):
    error = "inconsistent_state"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class Conflict(LedgerError):
    error = "conflict"
    status_code = status.HTTP_409_CONFLICT
    retryable = True


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(),
    )
