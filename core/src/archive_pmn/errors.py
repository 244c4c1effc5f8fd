from __future__ import annotations


class ArchiveError(Exception):
    """Base class for domain failures raised below the HTTP layer."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ArchiveError):
    status_code = 404


class PermissionDeniedError(ArchiveError):
    status_code = 403


class ConflictError(ArchiveError):
    status_code = 409


class InvalidInputError(ArchiveError):
    status_code = 422


class ShareLinkError(ArchiveError):
    """A public share link could not be honoured (404, 403 or 410)."""

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class StorageError(ArchiveError):
    """Stored bytes could not be read back."""

    status_code = 502
