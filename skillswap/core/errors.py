"""Domain error taxonomy.

Every failure the engine reports to a caller is a DomainError subclass
with a stable machine-readable ``code`` and the HTTP status the routing
layer maps it to.  Messages are meant for end users and never include
storage details.

TransientStorageError is the one internal-only kind: storage adapters
raise it for connection hiccups, core.retry retries it, and it surfaces
as Unavailable once retries are exhausted.
"""

from __future__ import annotations


class DomainError(Exception):
    code = "DOMAIN_ERROR"
    status_code = 400
    default_message = "request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


# ---- 404 ----


class NotFound(DomainError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "resource not found"


class UserNotFound(NotFound):
    code = "USER_NOT_FOUND"
    default_message = "user not found"


class SkillNotFound(NotFound):
    code = "SKILL_NOT_FOUND"
    default_message = "skill not found"


class CourseNotFound(NotFound):
    code = "COURSE_NOT_FOUND"
    default_message = "course not found"


class LessonNotFound(NotFound):
    code = "LESSON_NOT_FOUND"
    default_message = "lesson not found"


class EnrollmentNotFound(NotFound):
    code = "ENROLLMENT_NOT_FOUND"
    default_message = "enrollment not found"


class SessionNotFound(NotFound):
    code = "SESSION_NOT_FOUND"
    default_message = "session not found"


# ---- 403 ----


class Forbidden(DomainError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "not allowed"


# ---- lifecycle ----


class InvalidState(DomainError):
    code = "INVALID_STATE"
    status_code = 400
    default_message = "operation not valid in the current state"


class NotAvailable(InvalidState):
    code = "NOT_AVAILABLE"
    default_message = "course is not available for enrollment"


class InsufficientContent(InvalidState):
    code = "INSUFFICIENT_CONTENT"
    default_message = "course must have at least one lesson before publishing"


class SessionNotCompleted(InvalidState):
    code = "SESSION_NOT_COMPLETED"
    default_message = "session must be completed before it is settled"


class CourseNotCompleted(DomainError):
    code = "COURSE_NOT_COMPLETED"
    status_code = 400
    default_message = "course must be completed to generate a certificate"


# ---- input ----


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"
    status_code = 422
    default_message = "invalid input"


class InvalidPrice(ValidationError):
    code = "INVALID_PRICE"
    default_message = "price cannot be negative"


class LessonNotInCourse(ValidationError):
    code = "LESSON_NOT_IN_COURSE"
    default_message = "lesson does not belong to the enrolled course"


# ---- ledger / enrollment ----


class InsufficientFunds(DomainError):
    code = "INSUFFICIENT_FUNDS"
    status_code = 402
    default_message = "insufficient credits"


class PaymentFailed(DomainError):
    code = "PAYMENT_FAILED"
    status_code = 402
    default_message = "payment processing failed"


class AlreadyEnrolled(DomainError):
    code = "ALREADY_ENROLLED"
    status_code = 409
    default_message = "user is already enrolled in this course"


class SelfEnrollmentNotAllowed(DomainError):
    code = "SELF_ENROLLMENT_NOT_ALLOWED"
    status_code = 400
    default_message = "you cannot enroll in your own course"


class IdempotencyConflict(DomainError):
    code = "IDEMPOTENCY_CONFLICT"
    status_code = 409
    default_message = "idempotency key reuse with a different request"


class NotImplementedPayment(DomainError):
    code = "NOT_IMPLEMENTED"
    status_code = 501
    default_message = "money payment is not implemented"


# ---- infrastructure ----


class Unavailable(DomainError):
    code = "UNAVAILABLE"
    status_code = 503
    default_message = "service temporarily unavailable"


class TransientStorageError(Exception):
    """Connection-level storage failure that is safe to retry."""
