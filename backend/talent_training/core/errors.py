from __future__ import annotations


class TrainingError(Exception):
    """Base class for errors raised by the training core."""


class ValidationError(TrainingError):
    """Rejected input or an illegal session transition. State is left unchanged."""


class StorageError(TrainingError):
    """A record-store operation failed (connection, permission, constraint)."""


class NotificationError(TrainingError):
    """The completion notification could not be delivered."""


class AccessDeniedError(TrainingError):
    """The gate does not allow this action yet (e.g. quiz before all sections)."""


class SessionNotFoundError(TrainingError):
    """No live quiz session for the user, or it no longer matches the question bank."""
