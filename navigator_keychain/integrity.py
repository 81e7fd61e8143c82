"""
Keychain Integrity — whole-store tag and outer digest.

- Tag: HMAC-SHA256(mac_key, canonical JSON of {salt, kvs, ivs, version}).
  Binds every blinded key to its ciphertext and IV, so records moved
  between keys are detected even though each still decrypts on its own.
- Digest: SHA-256 of the serialized keychain, for callers that keep a
  trusted copy out of band.
"""
import base64
import binascii

import orjson
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import constant_time, hashes, hmac

from .exceptions import MalformedRepresentation
from .state import PersistedState


def canonical_bytes(
    salt: str,
    kvs: dict[str, str],
    ivs: dict[str, str],
    version: str,
) -> bytes:
    """Serialize the tagged fields of a keychain with sorted keys."""
    return orjson.dumps(
        {"salt": salt, "kvs": kvs, "ivs": ivs, "version": version},
        option=orjson.OPT_SORT_KEYS,
    )


def _mac(state: PersistedState, mac_key: bytes) -> hmac.HMAC:
    h = hmac.HMAC(mac_key, hashes.SHA256())
    h.update(canonical_bytes(state.salt, state.kvs, state.ivs, state.version))
    return h


def compute_tag(state: PersistedState, mac_key: bytes) -> str:
    """Compute the whole-store tag. The stored ``tag`` field is ignored.

    Returns:
        Base64 HMAC-SHA256.
    """
    return base64.b64encode(_mac(state, mac_key).finalize()).decode("ascii")


def verify_tag(state: PersistedState, mac_key: bytes) -> bool:
    """Check the stored tag against a recomputation, in constant time."""
    if not state.tag:
        return False
    try:
        expected = base64.b64decode(state.tag, validate=True)
    except binascii.Error:
        return False
    try:
        _mac(state, mac_key).verify(expected)
    except InvalidSignature:
        return False
    return True


def compute_digest(serialized: str | bytes) -> str:
    """SHA-256 of a serialized keychain, as hex text.

    Raises:
        MalformedRepresentation: If serialized is neither str nor bytes.
    """
    if isinstance(serialized, str):
        serialized = serialized.encode("utf-8")
    elif not isinstance(serialized, (bytes, bytearray, memoryview)):
        raise MalformedRepresentation(
            f"serialized keychain must be str or bytes, got {type(serialized).__name__}"
        )
    digest = hashes.Hash(hashes.SHA256())
    digest.update(serialized)
    return digest.finalize().hex()


def verify_digest(serialized: str | bytes, trusted_digest: str | bytes) -> bool:
    """Compare the digest of ``serialized`` with a trusted one.

    ``trusted_digest`` is hex text, as str or ASCII bytes.

    Raises:
        MalformedRepresentation: If either argument is neither str nor bytes.
    """
    if isinstance(trusted_digest, (bytes, bytearray)):
        trusted = bytes(trusted_digest).lower()
    elif isinstance(trusted_digest, str):
        trusted = trusted_digest.lower().encode("utf-8")
    else:
        raise MalformedRepresentation(
            f"trusted digest must be str or bytes, got {type(trusted_digest).__name__}"
        )
    return constant_time.bytes_eq(
        compute_digest(serialized).encode("ascii"), trusted,
    )
