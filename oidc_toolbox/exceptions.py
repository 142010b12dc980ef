"""Domain-specific exceptions with user-ready messages."""


class ConfigurationError(Exception):
    """Raised when application configuration is invalid."""

    pass


class BusinessLogicException(Exception):
    """Base exception class for business logic errors."""

    def __init__(self, message: str, error_code: str) -> None:
        self.message = message
        self.error_code = error_code
        super().__init__(message)
