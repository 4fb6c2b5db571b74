from __future__ import annotations


class PollyError(Exception):
    """Base error for Polly.

    Every subclass carries a stable ``code`` and a ``message`` that is safe to
    show to end users. Internal detail goes to the log or the audit trail,
    never into ``message``.
    """

    code = "UNKNOWN_ERROR"
    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        super().__init__(self.message)


class ValidationError(PollyError):
    """Malformed, oversized or forbidden input; returned verbatim."""

    code = "VALIDATION_ERROR"
    status_code = 422
    default_message = "Invalid input"


class AuthorizationError(PollyError):
    """Denied by policy; the real reason only reaches the audit trail."""

    code = "NOT_PERMITTED"
    status_code = 403
    default_message = "Not permitted"


class AuthenticationRequiredError(AuthorizationError):
    """The operation needs a signed-in principal."""

    code = "LOGIN_REQUIRED"
    status_code = 401
    default_message = "Please log in to continue"


class ConflictError(PollyError):
    """Duplicate vote or duplicate content; user-correctable."""

    code = "CONFLICT"
    status_code = 409
    default_message = "Conflict"


class RateLimitError(PollyError):
    """Transient ceiling hit; retry after the advertised delay."""

    code = "RATE_LIMITED"
    status_code = 429
    default_message = "Too many requests. Please wait a moment."

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        retry_after_ms: int = 0,
    ) -> None:
        super().__init__(message, code=code)
        self.retry_after_ms = retry_after_ms


class NotFoundError(PollyError):
    """Resource absent, or deliberately indistinguishable from absent."""

    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class StorageError(PollyError):
    """Backend failure; full detail is logged server-side only."""

    code = "STORAGE_UNAVAILABLE"
    status_code = 503
    default_message = "Something went wrong. Please try again."


class ConstraintViolation(Exception):
    """Raised by stores when an insert breaks a uniqueness constraint."""

    def __init__(self, constraint: str) -> None:
        self.constraint = constraint
        super().__init__(f"constraint violated: {constraint}")
