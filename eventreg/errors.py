"""Custom exception classes for the application."""

from __future__ import annotations


class AppError(Exception):
    """Base application error class."""

    def __init__(self, message, status_code=400):
        """Initialize the error."""
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def to_dict(self):
        """Return the JSON body describing this error."""
        return {"success": False, "message": self.message}


class ValidationError(AppError):
    """Raised when a record fails validation."""

    def __init__(self, message="Validation failed.", field=None):
        """Initialize the error."""
        super().__init__(message, 400)
        self.field = field

    def to_dict(self):
        """Return the JSON body, naming the offending field."""
        body = super().to_dict()
        body["field"] = self.field
        return body


class NotFoundError(AppError):
    """Raised when a record or a referenced record does not exist."""

    def __init__(self, message="Resource not found."):
        """Initialize the error."""
        super().__init__(message, 404)


class ConflictError(AppError):
    """Raised when a write conflicts with the current state of the data."""

    def __init__(self, message="Request conflicts with existing data."):
        """Initialize the error."""
        super().__init__(message, 409)


class UniquenessConflict(ConflictError):
    """Raised when a unique value (registrationId, email) is already taken."""

    def __init__(self, message="Resource already exists.", field=None):
        """Initialize the error."""
        super().__init__(message)
        self.field = field

    def to_dict(self):
        """Return the JSON body, naming the duplicated field."""
        body = super().to_dict()
        body["field"] = self.field
        return body


class CapacityExceededError(ConflictError):
    """Raised when a section has no seats left for a registration."""

    def __init__(self, message="This section is full."):
        """Initialize the error."""
        super().__init__(message)


class RegistrationClosedError(ConflictError):
    """Raised when registering after the event's registration deadline."""

    def __init__(self, message="Registration for this event is closed."):
        """Initialize the error."""
        super().__init__(message)


class StorageUnavailableError(AppError):
    """Raised when the document store cannot be reached."""

    def __init__(self, message="The database is temporarily unavailable."):
        """Initialize the error."""
        super().__init__(message, 503)
