"""Typed errors raised by the Frame domain and surfaced over HTTP."""

from __future__ import annotations


class FrameError(Exception):
    """Base error carrying a stable ``kind`` tag and a human-readable message."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class NotFoundError(FrameError):
    """A referenced account, user or status id does not resolve."""

    kind = "not_found"
    status_code = 404


class IntegrityError(NotFoundError):
    """A stored link points to an aggregate that no longer exists."""


class ConflictError(FrameError):
    """The operation would break the one-to-one account/user link."""

    kind = "conflict"
    status_code = 409


class ValidationError(FrameError):
    """Malformed or missing input, detected before any write."""

    kind = "validation"
    status_code = 400


class UnauthorizedError(FrameError):
    kind = "unauthorized"
    status_code = 401


class ForbiddenError(FrameError):
    kind = "forbidden"
    status_code = 403


class DuplicateIdError(ConflictError):
    """A document with the same ``_id`` is already stored."""
