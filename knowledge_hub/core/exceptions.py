"""Custom exceptions for the application."""


class NotFoundError(Exception):
    """Raised when a document, version or chat session does not exist."""

    pass


class ValidationError(Exception):
    """Raised when input is rejected before anything is persisted."""

    pass


class PermissionDeniedError(Exception):
    """Raised when the requester may not modify a document."""

    pass


class VersionConflictError(Exception):
    """Raised when version sequencing exhausts its retry budget."""

    pass


class DatabaseError(Exception):
    """Raised when database operations fail."""

    pass


class DuplicateVersionError(DatabaseError):
    """Raised when a (document_id, version_number) pair already exists."""

    pass


class CacheError(Exception):
    """Raised when cache operations fail."""

    pass


class ProviderError(Exception):
    """Raised when the external AI provider fails or times out."""

    pass


class EmbeddingError(ProviderError):
    """Raised when embedding generation fails."""

    pass


class GenerationError(ProviderError):
    """Raised when text generation fails."""

    pass
