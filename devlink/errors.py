"""Custom exception classes for the application."""


class AppError(Exception):
    """Base application error class."""

    def __init__(self, message, status_code=400):
        """Initialize the error."""
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ValidationError(AppError):
    """Raised when user input fails validation."""

    def __init__(self, message="Validation failed."):
        """Initialize the error."""
        super().__init__(message, 400)


class AuthorizationError(AppError):
    """Raised when the actor is not the expected participant or recipient."""

    def __init__(self, message="You are not allowed to do that."):
        """Initialize the error."""
        super().__init__(message, 403)


class NotFoundError(AppError):
    """Raised when a resource is not found."""

    def __init__(self, message="Resource not found."):
        """Initialize the error."""
        super().__init__(message, 404)


class DuplicateResourceError(AppError):
    """Raised when trying to create a resource that already exists."""

    def __init__(self, message="Resource already exists."):
        """Initialize the error."""
        super().__init__(message, 409)


class InvalidStateError(AppError):
    """Raised when a resource is no longer in a state that allows the action."""

    def __init__(self, message="Resource is not in a valid state."):
        """Initialize the error."""
        super().__init__(message, 409)


class BackendUnavailableError(AppError):
    """Raised when the backing store stays unavailable after retries."""

    def __init__(self, message="Service temporarily unavailable."):
        """Initialize the error."""
        super().__init__(message, 503)
