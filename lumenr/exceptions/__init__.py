"""Custom exceptions for the LumenR billing API."""


class LumenrError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class ValidationError(LumenrError):
    """Raised for malformed or missing request fields."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class UnauthorizedError(LumenrError):
    """Raised when the request carries no valid identity."""
    def __init__(self, message="Authentication required"):
        super().__init__(message, 401)


class NotFoundError(LumenrError):
    """Exception raised when a resource is not found (or belongs to someone else)."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class IllegalStateTransitionError(LumenrError):
    """Raised when a status change or conversion violates the document lifecycle."""
    def __init__(self, message, current_status=None, requested_status=None):
        payload = {}
        if current_status is not None:
            payload['current_status'] = current_status
        if requested_status is not None:
            payload['requested_status'] = requested_status
        super().__init__(message, 409, payload)
        self.current_status = current_status
        self.requested_status = requested_status


class PersistenceError(LumenrError):
    """Raised when the database rejects a write; the session has been rolled back."""
    def __init__(self, message="Internal server error"):
        super().__init__(message, 500)


class ServiceUnavailableError(LumenrError):
    """Raised when an upstream dependency (the identity provider) cannot be reached."""
    def __init__(self, message="Service temporarily unavailable"):
        super().__init__(message, 503)
