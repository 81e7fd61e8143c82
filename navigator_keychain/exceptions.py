"""Keychain errors.

Every failure the keychain reports belongs to one of the kinds in
:class:`ErrorKind`. A missing domain is not an error: ``get`` returns
``None`` and ``remove`` returns ``False``.
"""
from enum import Enum


class ErrorKind(str, Enum):
    NOT_READY = "not_ready"
    INTEGRITY_FAILURE = "integrity_failure"
    AUTH_FAILURE = "auth_failure"
    VALUE_TOO_LONG = "value_too_long"
    MALFORMED_REPRESENTATION = "malformed_representation"


class KeychainError(Exception):
    """Base exception for the keychain."""

    kind: ErrorKind

    def __init__(self, message: str = "") -> None:
        super().__init__(message or type(self).__name__)


class NotReady(KeychainError):
    """Raised when the keychain is used before ``init`` or ``load``."""

    kind = ErrorKind.NOT_READY


class IntegrityFailure(KeychainError):
    """Raised when the outer digest or the whole-store tag does not match."""

    kind = ErrorKind.INTEGRITY_FAILURE


class AuthFailure(KeychainError):
    """Raised when a stored record fails authenticated decryption."""

    kind = ErrorKind.AUTH_FAILURE


class MalformedRecord(AuthFailure):
    """Raised when a record decrypts but its padding is not valid."""


class ValueTooLong(KeychainError, ValueError):
    """Raised when a value does not fit in the padded record size."""

    kind = ErrorKind.VALUE_TOO_LONG


class MalformedRepresentation(KeychainError, ValueError):
    """Raised when a serialized keychain cannot be parsed."""

    kind = ErrorKind.MALFORMED_REPRESENTATION
