"""Error types for the request id guard."""

from typing import Optional


class DedupError(Exception):
    """Base class for all guard errors."""


class RequestIdExists(DedupError):
    """The scoped request id is already claimed by an in-flight request."""

    def __init__(self, key: str):
        super().__init__(f"Request id already exist: {key}")
        self.key = key


class BackendError(DedupError):
    """The token store could not be reached or answered inconsistently."""

    def __init__(self, message: str, key: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.key = key
        self.operation = operation


class StoreClosedError(DedupError):
    """Store used before init or after destroy."""


class ComponentNotLoaded(DedupError):
    """A named environment component required by a store is missing."""

    def __init__(self, name: str):
        super().__init__(f"component {name} isn't loaded")
        self.name = name


class ConfigError(DedupError):
    """Configuration failed validation."""

    def __init__(self, errors: list):
        super().__init__(f"Invalid configuration: {errors}")
        self.errors = errors
