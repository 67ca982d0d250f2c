"""Shared exceptions for the document version lifecycle."""
from uuid import UUID


class VersionLifecycleError(Exception):
    """Base class for all lifecycle failures surfaced to callers."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class VersionNotFoundError(VersionLifecycleError):
    """Raised when a referenced version (or its family) does not exist."""

    def __init__(self, version_id: UUID | str, message: str | None = None) -> None:
        self.version_id = version_id
        super().__init__(message or f"Version not found: {version_id}")


class VersionPermissionError(VersionLifecycleError):
    """Raised when the caller does not own the version family."""

    def __init__(self, version_id: UUID | str) -> None:
        self.version_id = version_id
        super().__init__(f"Not authorized to modify version: {version_id}")


class VersionValidationError(VersionLifecycleError):
    """
    Raised for malformed content or an operation that is illegal for the row's state.

    Examples: activating a draft, promoting something that is not a draft,
    drafting against a version number that has no published version.
    """


class TransactionFailureError(VersionLifecycleError):
    """
    Raised when the storage transaction for an operation aborted.

    The operation's savepoint has been rolled back, so no partial state is left
    behind and the whole operation may be retried by the caller.
    """
