"""
Conversation Service Exceptions

Custom exceptions for consultation errors. Each carries the HTTP status and a
stable machine-readable code; the REST layer and the real-time gateway both
render them as `{"success": false, "message", "code"}`.
"""


class ConsultationError(Exception):
    """Base exception for consultation errors"""
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "", code: str = None):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.code
        if code:
            self.code = code


class AuthenticationError(ConsultationError):
    """Raised when the bearer credential is missing, invalid or expired"""
    status_code = 401
    code = "authentication_failed"


class NotFoundError(ConsultationError):
    """Raised when a conversation, partner or user is absent"""
    status_code = 404
    code = "not_found"


class AccessDeniedError(ConsultationError):
    """Raised when the caller is not a participant or has the wrong role"""
    status_code = 403
    code = "access_denied"


class ValidationError(ConsultationError):
    """Raised when required fields are missing or malformed"""
    status_code = 400
    code = "validation_error"


class CapacityError(ConsultationError):
    """Raised when a partner is at the maximum number of concurrent conversations"""
    status_code = 409
    code = "capacity_reached"


class InsufficientCreditsError(ConsultationError):
    """Raised when a user without credits requests a consultation"""
    status_code = 402
    code = "insufficient_credits"


class ConflictError(ConsultationError):
    """Raised when an action is repeated on a settled or terminal conversation"""
    status_code = 409
    code = "conflict"
