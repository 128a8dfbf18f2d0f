# FILE: utils/exceptions.py


class SkyBrainError(Exception):
    """Base exception for the decision core."""
    pass


class ValidationError(SkyBrainError):
    """Raised when an input record is malformed or missing a required field."""
    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class NotFoundError(SkyBrainError):
    """Raised when an operation references an unregistered agent or task."""
    pass


class ConfigError(SkyBrainError):
    """Raised when the core is constructed with invalid configuration."""
    pass
