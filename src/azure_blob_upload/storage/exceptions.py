"""Errors raised by the Azure blob storage engine."""

from typing import List, Optional


class StorageError(Exception):
    """Base class for storage engine errors."""
    pass


class ConfigurationError(StorageError):
    """Raised synchronously when the engine options are incomplete or invalid."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = list(missing or [])


class ContainerSetupError(StorageError):
    """The target container could not be verified or created.

    Once raised, the engine instance is unusable and every store/remove
    call completes with this error.
    """

    def __init__(self, message: str = "Cannot use container. Check if provided options are correct."):
        super().__init__(message)


class UploadValidationError(StorageError):
    """An upload request was rejected before anything was stored."""
    pass
