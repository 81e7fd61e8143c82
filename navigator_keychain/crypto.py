"""
Keychain Crypto Core — Key derivation, domain blinding and record encryption.

- Key derivation: PBKDF2-SHA256(password, salt) → master secret,
  HKDF(master, "keychain-enc" | "keychain-mac") → independent subkeys
- Domain blinding: HMAC-SHA256(mac_key, domain) → opaque lookup key
- Records: value → [value][0x80][0x00 ...] → AES-256-GCM(enc_key, random IV)

Security Note:
    Never log plaintext, ciphertext, blinded keys or key material.
    IVs are random 96-bit and generated per record; collision probability
    is negligible under normal usage.
"""
import os
import base64
import logging
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import DEFAULT_MAX_VALUE_LENGTH, DEFAULT_SALT_SIZE, MIN_PBKDF2_ITERATIONS
from .exceptions import AuthFailure, MalformedRecord, ValueTooLong

logger = logging.getLogger("navigator.keychain")

NONCE_SIZE = 12  # 96-bit IV
KEY_LENGTH = 32  # AES-256 / HMAC-SHA256
TAG_SIZE = 16  # GCM authentication tag

PAD_SENTINEL = 0x80
PAD_FILLER = 0x00

ENC_CONTEXT = "keychain-enc"
MAC_CONTEXT = "keychain-mac"


@dataclass(frozen=True, repr=False)
class SecretMaterial:
    """Subkeys derived from the master password. Never serialized."""

    enc_key: bytes
    mac_key: bytes

    def __repr__(self) -> str:
        return "<SecretMaterial enc_key=*** mac_key=***>"


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def generate_salt(size: int = DEFAULT_SALT_SIZE) -> bytes:
    """Generate a random salt for a new keychain."""
    return os.urandom(size)


def derive_key(seed: bytes, context: str) -> bytes:
    """Expand a 32-byte subkey from a master secret using HKDF-SHA256.

    Args:
        seed: Input key material (the PBKDF2 output).
        context: Context string for domain separation (e.g. "keychain-enc").

    Returns:
        32-byte derived key.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,  # seed is already salted by PBKDF2
        info=context.encode("utf-8"),
    )
    return hkdf.derive(seed)


def derive_keys(
    password: str,
    salt: bytes,
    iterations: int = MIN_PBKDF2_ITERATIONS,
) -> SecretMaterial:
    """Derive the encryption and MAC subkeys from a password.

    A wrong password is not detected here; it yields different keys and the
    mismatch surfaces when the whole-store tag is verified.

    Args:
        password: Master password.
        salt: Salt stored with the keychain.
        iterations: PBKDF2 iteration count (at least 100,000).

    Returns:
        SecretMaterial holding both subkeys.
    """
    if iterations < MIN_PBKDF2_ITERATIONS:
        raise ValueError(
            f"PBKDF2 iterations must be at least {MIN_PBKDF2_ITERATIONS}"
        )
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    master = kdf.derive(password.encode("utf-8"))
    return SecretMaterial(
        enc_key=derive_key(master, ENC_CONTEXT),
        mac_key=derive_key(master, MAC_CONTEXT),
    )


# ---------------------------------------------------------------------------
# Domain blinding
# ---------------------------------------------------------------------------

def blind_domain(domain: str, mac_key: bytes) -> str:
    """Map a domain name to its opaque lookup key.

    Args:
        domain: Domain name as given by the caller.
        mac_key: MAC subkey of the keychain.

    Returns:
        Base64 HMAC-SHA256 of the domain.
    """
    h = hmac.HMAC(mac_key, hashes.SHA256())
    h.update(domain.encode("utf-8"))
    return base64.b64encode(h.finalize()).decode("ascii")


# ---------------------------------------------------------------------------
# Padding
# ---------------------------------------------------------------------------

def pad_value(data: bytes, max_length: int = DEFAULT_MAX_VALUE_LENGTH) -> bytes:
    """Pad data to ``max_length + 1`` bytes.

    Format: [data][0x80][0x00 * (max_length - len(data))]

    Raises:
        ValueTooLong: If data is longer than ``max_length`` bytes.
    """
    if len(data) > max_length:
        raise ValueTooLong(
            f"value is {len(data)} bytes, maximum is {max_length}"
        )
    filler = bytes([PAD_FILLER]) * (max_length - len(data))
    return data + bytes([PAD_SENTINEL]) + filler


def unpad_value(padded: bytes) -> bytes:
    """Strip the filler and sentinel added by :func:`pad_value`.

    Raises:
        MalformedRecord: If no sentinel precedes the filler.
    """
    end = len(padded)
    while end > 0 and padded[end - 1] == PAD_FILLER:
        end -= 1
    if end == 0 or padded[end - 1] != PAD_SENTINEL:
        raise MalformedRecord("record padding is invalid")
    return padded[:end - 1]


# ---------------------------------------------------------------------------
# Record encryption
# ---------------------------------------------------------------------------

def encode_record(
    value: str,
    enc_key: bytes,
    max_length: int = DEFAULT_MAX_VALUE_LENGTH,
    associated_data: bytes | None = None,
) -> tuple[bytes, bytes]:
    """Pad and encrypt a value.

    Args:
        value: Secret to store.
        enc_key: Encryption subkey.
        max_length: Largest accepted value, in UTF-8 bytes.
        associated_data: Optional data authenticated with the record.

    Returns:
        Tuple of (ciphertext, iv). The ciphertext carries the GCM tag.

    Raises:
        ValueTooLong: If the encoded value exceeds ``max_length`` bytes.
    """
    padded = pad_value(value.encode("utf-8"), max_length)
    iv = os.urandom(NONCE_SIZE)
    ciphertext = AESGCM(enc_key).encrypt(iv, padded, associated_data)
    return ciphertext, iv


def decode_record(
    ciphertext: bytes,
    iv: bytes,
    enc_key: bytes,
    associated_data: bytes | None = None,
) -> str:
    """Decrypt and unpad a record.

    Raises:
        AuthFailure: If the record was tampered with or the key is wrong.
    """
    try:
        padded = AESGCM(enc_key).decrypt(iv, ciphertext, associated_data)
    except InvalidTag as err:
        raise AuthFailure("record failed authentication") from err
    except ValueError as err:
        # raised by AESGCM for an IV of unusable length
        raise AuthFailure(f"record is not decryptable: {err}") from err
    data = unpad_value(padded)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as err:
        raise MalformedRecord("record is not valid UTF-8") from err
