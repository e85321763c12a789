"""Error types raised by the library services.

Each error carries the HTTP status it maps to and a short ``code`` that
clients can branch on (``book_unavailable``, ``pending_payment``, ...).
"""


class LibraryError(Exception):
    status_code = 500
    code = "error"

    def __init__(self, message, code=None, details=None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self):
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(LibraryError):
    """Malformed or missing input."""
    status_code = 400
    code = "invalid"


class NotFoundError(LibraryError):
    status_code = 404
    code = "not_found"


class ForbiddenError(LibraryError):
    status_code = 403
    code = "forbidden"


class StateConflictError(LibraryError):
    """A business precondition does not hold (book out, loan closed, ...)."""
    status_code = 400
    code = "conflict"


class PendingPaymentError(StateConflictError):
    status_code = 403
    code = "pending_payment"
