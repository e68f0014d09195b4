"""
OpenSoul Errors

Exception hierarchy shared by the registry server and the CLI.
Each class carries the HTTP status the server answers with.
"""

from typing import List, Optional, Sequence

__all__ = [
    "OpenSoulError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "StorageError",
    "RegistryError",
    "ResolutionAmbiguity",
    "ConfigurationError",
]


class OpenSoulError(RuntimeError):
    """Base exception for registry, storage and client failures."""
    status_code: int = 500


class ValidationError(OpenSoulError):
    """Malformed input (bad rating, missing field). Never reaches storage."""
    status_code = 400


class AuthenticationError(OpenSoulError):
    """Missing or unknown bearer token."""
    status_code = 401


class AuthorizationError(OpenSoulError):
    """Caller is not the owner of the soul it tries to modify."""
    status_code = 403


class NotFoundError(OpenSoulError):
    """Unknown soul, missing content, missing local file or backup."""
    status_code = 404

    def __init__(self, message: str, suggestions: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.suggestions: List[str] = list(suggestions or [])


class ConflictError(OpenSoulError):
    """A unique value (label) is already taken."""
    status_code = 409


class StorageError(OpenSoulError):
    """Object storage rejected a write."""
    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class RegistryError(OpenSoulError):
    """Registry answered with an unexpected status."""
    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ResolutionAmbiguity(OpenSoulError):
    """Fuzzy cache matches exist but none is exact."""
    status_code = 409

    def __init__(self, message: str, candidates: Sequence[str]):
        super().__init__(message)
        self.candidates: List[str] = list(candidates)


class ConfigurationError(OpenSoulError):
    """Unknown config key or invalid config value."""
    status_code = 400
