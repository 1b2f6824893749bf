"""
Error taxonomy for contact store operations.

Every failure that reaches a caller is expressed as a ContactsError carrying
one of a small, fixed set of codes. Store adapters translate their transport
errors into this taxonomy so that callers never need to understand the
backing store's own error model.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Classification of contact store failures."""

    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    STORE = "store"
    UNKNOWN = "unknown"


class ContactsError(Exception):
    """
    Typed error for contact operations.

    Attributes:
        code: ErrorCode classifying the failure
        message: Human-readable detail (may be empty)

    Usage:
        raise ContactsError(ErrorCode.NOT_FOUND, "contact not found")

        try:
            ...
        except ContactsError as e:
            if e.code == ErrorCode.CONFLICT:
                ...
    """

    def __init__(self, code: ErrorCode, message: str = ""):
        self.code = ErrorCode(code)
        self.message = (message or "").strip()
        super().__init__(str(self))

    def __str__(self) -> str:
        if not self.message:
            return f"contacts: {self.code.value}"
        return f"contacts: {self.code.value}: {self.message}"

    def __repr__(self) -> str:
        return f"ContactsError(code={self.code.value!r}, message={self.message!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ContactsError):
            return NotImplemented
        return self.code == other.code and self.message == other.message

    def __hash__(self) -> int:
        return hash((self.code, self.message))


def validation_error(message: str) -> ContactsError:
    """Build a validation error (malformed caller input)."""
    return ContactsError(ErrorCode.VALIDATION, message)


def not_found_error(message: str) -> ContactsError:
    """Build a not-found error (missing contact or group)."""
    return ContactsError(ErrorCode.NOT_FOUND, message)


def as_contacts_error(error: BaseException) -> ContactsError:
    """
    Coerce an arbitrary exception into the taxonomy.

    ContactsError instances pass through unchanged; anything else is wrapped
    as an UNKNOWN error with the original message.

    Args:
        error: Exception raised by a collaborator

    Returns:
        ContactsError describing the failure
    """
    if isinstance(error, ContactsError):
        return error
    return ContactsError(ErrorCode.UNKNOWN, str(error) or type(error).__name__)


__all__ = [
    "ErrorCode",
    "ContactsError",
    "validation_error",
    "not_found_error",
    "as_contacts_error",
]
