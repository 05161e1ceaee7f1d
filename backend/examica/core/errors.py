"""
Exception taxonomy shared by the exam engine and the HTTP layer.

Every error carries the HTTP status it maps to; the handlers registered in
``examica.main`` turn them into JSON responses.
"""
from typing import Any, Dict, Optional


class ExamicaError(Exception):
    status_code = 500
    code = "internal_error"
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": self.code, "message": self.message}
        payload.update(self.details)
        return payload


class AuthenticationRequired(ExamicaError):
    status_code = 401
    code = "authentication_required"
    default_message = "Could not validate credentials"


class AccessDenied(ExamicaError):
    status_code = 403
    code = "access_denied"
    default_message = "You do not have access to this resource"


class NotFound(ExamicaError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found"


class AlreadyCompleted(ExamicaError):
    status_code = 409
    code = "already_completed"
    default_message = "You have already completed this exam"


class InvalidSessionState(ExamicaError):
    status_code = 409
    code = "invalid_session_state"
    default_message = "Operation not allowed in the current session state"


class VerificationRequired(ExamicaError):
    status_code = 403
    code = "verification_required"
    default_message = "No valid facial verification found"

    def __init__(self, message: Optional[str] = None, **details: Any):
        details.setdefault("requires_verification", True)
        super().__init__(message, **details)


class VerificationExpired(VerificationRequired):
    code = "verification_expired"
    default_message = "Facial verification has expired"


class RateLimited(ExamicaError):
    status_code = 429
    code = "rate_limited"
    default_message = "Too many requests"

    def __init__(self, action: str, retry_after: int, reset_at: float, message: Optional[str] = None):
        self.retry_after = retry_after
        self.reset_at = reset_at
        super().__init__(
            message or f"Rate limit exceeded for {action}. Retry in {retry_after} seconds.",
            action=action,
            retry_after=retry_after,
            reset_at=reset_at,
        )


class ValidationError(ExamicaError):
    status_code = 422
    code = "validation_error"
    default_message = "Invalid request"


class ReconciliationPartialFailure(ExamicaError):
    status_code = 207
    code = "reconciliation_partial_failure"
    default_message = "Some answers could not be reconciled"

    def __init__(self, result, message: Optional[str] = None):
        self.result = result
        super().__init__(message, failed=result.failed, processed=result.processed)


class EvaluationError(ExamicaError):
    code = "evaluation_error"
    default_message = "Question could not be evaluated"


class DependencyUnavailable(ExamicaError):
    status_code = 503
    code = "dependency_unavailable"
    default_message = "A required service is unavailable"
