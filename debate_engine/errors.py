"""
debate_engine/errors.py
Centralized Error Handling

Every business failure raised by the services is an APIError subclass, so
the HTTP layer renders it without translation.

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}

HTTP STATUS CODE DISCIPLINE:
- 400: Invalid input, aggregated validation violations, finalized ballot
- 401: Session missing or invalid
- 403: Role or assignment check failed
- 404: Referenced entity does not exist
- 409: Operation not allowed in the current state
- 500: Store failures only, never caused by user input
"""
import logging
from typing import Optional, Dict, Any, List

from fastapi import status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    ALREADY_FINALIZED = "ALREADY_FINALIZED"

    AUTH_INVALID = "AUTH_INVALID"
    FORBIDDEN = "FORBIDDEN"
    NOT_ASSIGNED = "NOT_ASSIGNED"

    NOT_FOUND = "NOT_FOUND"

    INVALID_STATE = "INVALID_STATE"
    STATE_TRANSITION_INVALID = "STATE_TRANSITION_INVALID"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class APIError(Exception):
    """Base API exception with consistent structure"""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            result["details"] = self.details
        return result

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


class AuthorizationError(APIError):
    """401 for an invalid session, 403 for a failed role or assignment check"""
    def __init__(
        self,
        message: str,
        code: str = ErrorCode.FORBIDDEN,
        authenticated: bool = True,
        details: Optional[Dict] = None
    ):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN if authenticated else status.HTTP_401_UNAUTHORIZED,
            error="Forbidden" if authenticated else "Unauthorized",
            message=message,
            code=code,
            details=details
        )


class NotFoundError(APIError):
    """404 Not Found - Resource does not exist"""
    def __init__(self, resource: str, identifier: Any = None, code: str = ErrorCode.NOT_FOUND):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error="Not Found",
            message=message,
            code=code
        )


class ValidationError(APIError):
    """400 Bad Request - one or more input violations"""
    def __init__(
        self,
        message: str,
        violations: Optional[List[str]] = None,
        code: str = ErrorCode.VALIDATION_ERROR,
        field: Optional[str] = None
    ):
        self.violations = list(violations) if violations else [message]
        self.field = field
        details: Dict[str, Any] = {"violations": self.violations}
        if field:
            details["field"] = field
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="Validation Error",
            message=message,
            code=code,
            details=details
        )


class AlreadyFinalizedError(ValidationError):
    """400 - a final ballot cannot be resubmitted"""
    def __init__(self, message: str = "Ballot already submitted and cannot be edited"):
        super().__init__(message, code=ErrorCode.ALREADY_FINALIZED)


class ConflictStateError(APIError):
    """409 Conflict - operation not allowed in the current state"""
    def __init__(self, message: str, code: str = ErrorCode.INVALID_STATE, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error="Invalid State",
            message=message,
            code=code,
            details=details
        )


class InvalidTransitionError(ConflictStateError):
    """409 - illegal status transition"""
    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move {entity} from {current} to {target}",
            code=ErrorCode.STATE_TRANSITION_INVALID,
            details={"entity": entity, "from": current, "to": target}
        )


def require(condition: bool, violations: List[str], message: str) -> None:
    """Append `message` to `violations` when `condition` is false."""
    if not condition:
        violations.append(message)


def raise_if_violations(violations: List[str], summary: str = "Validation failed") -> None:
    """Raise one aggregated ValidationError when any violation was collected."""
    if violations:
        logger.warning(f"{summary}: {'; '.join(violations)}")
        raise ValidationError(f"{summary}: {', '.join(violations)}", violations=violations)
