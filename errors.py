"""Exceptions that carry a user-facing message.

The Streamlit UI shows ``message`` as-is; the API server turns ``status_code``
and ``code`` into the JSON error body.
"""


class FinoraError(Exception):
    status_code = 500
    code = "SERVER_ERROR"

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code


class ValidationError(FinoraError):
    status_code = 400
    code = "INVALID_INPUT"


class AuthError(FinoraError):
    status_code = 401
    code = "UNAUTHORIZED"


class NotFoundError(FinoraError):
    status_code = 404
    code = "NOT_FOUND"


class RateLimitExceeded(FinoraError):
    status_code = 429
    code = "RATE_LIMITED"

    def __init__(self, message: str, limit: int = 0, reset_at=None):
        super().__init__(message)
        self.limit = limit
        self.reset_at = reset_at


class ConfigurationError(FinoraError):
    status_code = 500
    code = "CONFIGURATION_ERROR"


class AIProviderError(FinoraError):
    status_code = 502
    code = "AI_PROVIDER_ERROR"

    def __init__(self, message: str, status_code: int | None = None, detail: str = ""):
        super().__init__(message, status_code=status_code)
        self.detail = detail


class AIQuotaExceeded(AIProviderError):
    status_code = 429
    code = "QUOTA_EXCEEDED"


class PayloadError(ValidationError):
    """Request body is missing figures; carries what was received and parsed."""

    def __init__(self, message: str, hint: str = "", received=None, parsed=None):
        super().__init__(message)
        self.hint = hint
        self.received = received or {}
        self.parsed = parsed or {}
