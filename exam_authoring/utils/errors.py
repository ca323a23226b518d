from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class ErrorCode(str, Enum):
    # 4xx - Client errors
    INVALID_REQUEST = "E4000"
    NO_CONTENT = "E4001"
    NOT_FOUND = "E4004"
    UNAUTHORIZED = "E4010"
    FORBIDDEN = "E4030"
    INVALID_TRANSITION = "E4090"
    VALIDATION_ERROR = "E4220"

    # 5xx - Service errors
    SERVICE_ERROR = "E5000"
    PERSISTENCE_ERROR = "E5001"
    GENERATION_PARSE_FAILED = "E5020"
    GENERATION_FAILED = "E5021"
    GENERATION_TIMEOUT = "E5040"
    ACCOUNT_PROVISIONING_FAILED = "E5030"


@dataclass(frozen=True)
class FieldError:
    field: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "reason": self.reason}

    def prefixed(self, prefix: str) -> "FieldError":
        if not prefix:
            return self
        if not self.field:
            return FieldError(field=prefix, reason=self.reason)
        sep = "" if self.field.startswith("[") else "."
        return FieldError(field=f"{prefix}{sep}{self.field}", reason=self.reason)


class AuthoringError(Exception):
    """Base error for the authoring pipeline."""

    code: ErrorCode = ErrorCode.SERVICE_ERROR
    status_code: int = 500

    def details(self) -> Optional[Dict[str, Any]]:
        return None


class FieldErrors(AuthoringError):
    """One or more field-level validation failures, reported together."""

    code = ErrorCode.VALIDATION_ERROR
    status_code = 422

    def __init__(self, errors: Iterable[FieldError], message: str = "Validation failed"):
        self.errors: List[FieldError] = list(errors)
        super().__init__(message)

    def details(self) -> Dict[str, Any]:
        return {"fieldErrors": [e.to_dict() for e in self.errors]}


class QuestionValidationError(FieldErrors):
    """A question draft failed shape validation."""


class SessionStepError(FieldErrors):
    """An authoring-session operation was invoked out of order."""


class UnauthorizedError(AuthoringError):
    code = ErrorCode.FORBIDDEN
    status_code = 403


class AuthenticationError(UnauthorizedError):
    code = ErrorCode.UNAUTHORIZED
    status_code = 401


class ContentNotFoundError(AuthoringError):
    code = ErrorCode.NOT_FOUND
    status_code = 404

    def __init__(self, kind: str, item_id: str):
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} {item_id} not found")


class InvalidTransitionError(AuthoringError):
    """A workflow action was attempted from a state that does not allow it."""

    code = ErrorCode.INVALID_TRANSITION
    status_code = 409

    def __init__(self, *, item_id: Optional[str], current: Optional[str], action: str):
        self.item_id = item_id
        self.current = current
        self.action = action
        super().__init__(f"cannot {action} from status {current or 'not_persisted'}")

    def details(self) -> Dict[str, Any]:
        return {"item_id": self.item_id, "current_status": self.current, "action": self.action}


class GenerationError(AuthoringError):
    """Base error for the generative content adapter."""

    code = ErrorCode.GENERATION_FAILED
    status_code = 502


class NoContentError(GenerationError):
    code = ErrorCode.NO_CONTENT
    status_code = 400

    def __init__(self, message: str = "No source material provided"):
        super().__init__(message)


class GenerationParseError(GenerationError):
    code = ErrorCode.GENERATION_PARSE_FAILED
    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        raw_response: str,
        errors: Optional[Iterable[FieldError]] = None,
    ):
        self.raw_response = raw_response
        self.errors: List[FieldError] = list(errors or [])
        super().__init__(message)

    def details(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"raw_response": self.raw_response}
        if self.errors:
            out["fieldErrors"] = [e.to_dict() for e in self.errors]
        return out


class GenerationServiceError(GenerationError):
    def __init__(self, message: str, *, timeout: bool = False):
        self.timeout = timeout
        if timeout:
            self.code = ErrorCode.GENERATION_TIMEOUT
            self.status_code = 504
        super().__init__(message)


class PersistenceError(AuthoringError):
    code = ErrorCode.PERSISTENCE_ERROR
    status_code = 503


class AccountProvisioningError(AuthoringError):
    code = ErrorCode.ACCOUNT_PROVISIONING_FAILED
    status_code = 500

    def __init__(self, message: str, *, rolled_back: bool, user_id: Optional[str] = None):
        self.rolled_back = rolled_back
        self.user_id = user_id
        super().__init__(message)

    def details(self) -> Dict[str, Any]:
        return {"rolled_back": self.rolled_back}


def error_code_for_http_status(status_code: int) -> ErrorCode:
    if status_code == 401:
        return ErrorCode.UNAUTHORIZED
    if status_code == 403:
        return ErrorCode.FORBIDDEN
    if status_code == 404:
        return ErrorCode.NOT_FOUND
    if status_code == 409:
        return ErrorCode.INVALID_TRANSITION
    if status_code == 422:
        return ErrorCode.VALIDATION_ERROR
    if 400 <= int(status_code) < 500:
        return ErrorCode.INVALID_REQUEST
    return ErrorCode.SERVICE_ERROR


def build_error_payload(
    *,
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Canonical error shape for HTTP JSON responses.

    `error` is the primary string message; `message` is kept as an alias.
    """
    payload: Dict[str, Any] = {"code": str(code.value), "error": str(message), "message": str(message)}
    if details is not None:
        payload["details"] = details
    if request_id:
        payload["request_id"] = str(request_id)
    return payload
