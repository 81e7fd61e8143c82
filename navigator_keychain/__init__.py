"""Navigator Keychain — password-protected store of domain credentials.

Security Note (Threat Model):
    A dump reveals the number of records and nothing else: domains are
    replaced by an HMAC under a password-derived key, values are padded to a
    fixed size before encryption, and any change to the dump is detected on
    load. Decrypted keys live in process memory while the keychain is open;
    a memory dump of the process exposes them. This is an accepted
    limitation.
"""

from .config import KeychainConfig
from .exceptions import (
    AuthFailure,
    ErrorKind,
    IntegrityFailure,
    KeychainError,
    MalformedRecord,
    MalformedRepresentation,
    NotReady,
    ValueTooLong,
)
from .keychain import Keychain, KeychainState
from .version import __version__

__all__ = [
    "Keychain",
    "KeychainState",
    "KeychainConfig",
    "ErrorKind",
    "KeychainError",
    "NotReady",
    "IntegrityFailure",
    "AuthFailure",
    "MalformedRecord",
    "ValueTooLong",
    "MalformedRepresentation",
    "__version__",
]
