"""
Exception types raised by the localization editor.

Every error carries a human-readable message plus a ``details`` dict holding
the path, key or chunk index the caller needs to present a precise message.
"""
from typing import Any, Dict, Optional


class L10nEditorError(Exception):
    """Base class for all editor errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            context = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} ({context})"
        return self.message


class StructuralError(L10nEditorError):
    """Malformed document, bad leaf path or an invalid project export."""

    def __init__(self, message: str, path: Optional[str] = None, **details):
        if path is not None:
            details['path'] = path
        super().__init__(message, details)
        self.path = path


class PatternError(L10nEditorError):
    """Invalid regular expression inside a ``#reg`` query clause."""

    def __init__(self, message: str, pattern: str):
        super().__init__(message, {'pattern': pattern})
        self.pattern = pattern


class ConfigurationError(L10nEditorError):
    """Project hosting settings are incomplete."""


class TransportError(L10nEditorError):
    """A document could not be fetched or committed."""

    def __init__(self, message: str, path: Optional[str] = None, **details):
        if path is not None:
            details['path'] = path
        super().__init__(message, details)
        self.path = path


class NotFoundError(TransportError):
    """The requested document does not exist."""


class AuthError(L10nEditorError):
    """Credentials are missing or were rejected."""


class ConflictError(TransportError):
    """The remote revision moved since it was last read."""


class ProviderError(L10nEditorError):
    """The suggestion provider failed for a whole request."""

    def __init__(self, message: str, chunk_index: Optional[int] = None, **details):
        if chunk_index is not None:
            details['chunk_index'] = chunk_index
        super().__init__(message, details)
        self.chunk_index = chunk_index


class ShareLinkTooLongError(L10nEditorError):
    """An exported project does not fit into a share URL."""

    def __init__(self, length: int, max_length: int):
        super().__init__(
            "Project is too large to be shared via URL; export it as a file instead.",
            {'length': length, 'max_length': max_length}
        )
        self.length = length
        self.max_length = max_length
