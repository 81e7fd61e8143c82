"""
Keychain — password-protected store of domain credentials.

Provides the public API:
- ``init(password)`` — start an empty keychain
- ``load(password, serialized, trusted_digest)`` — open a dumped keychain
- ``dump()`` — serialize the keychain and its SHA-256 digest
- ``get(domain)`` / ``set(domain, value)`` / ``remove(domain)``
- ``create()`` / ``restore()`` — factories returning a ready keychain

Security Note:
    Never log passwords, domains, values or anything derived from them.
    Only log record counts, lifecycle transitions and failure kinds.
"""
import asyncio
import logging
from enum import Enum
from typing import Optional

from .config import KeychainConfig
from .crypto import (
    TAG_SIZE,
    SecretMaterial,
    blind_domain,
    decode_record,
    derive_keys,
    encode_record,
    generate_salt,
)
from .exceptions import AuthFailure, IntegrityFailure, MalformedRepresentation, NotReady
from .integrity import compute_digest, compute_tag, verify_digest, verify_tag
from .state import PersistedState

logger = logging.getLogger("navigator.keychain")


def _check_text(name: str, value: object) -> None:
    if not isinstance(value, str):
        raise TypeError(f"Keychain {name} must be str, got {type(value).__name__}")


class KeychainState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class Keychain:
    """Encrypted domain → value store unlocked by a master password.

    Domains are stored under an HMAC of their name, values are padded to a
    fixed size and encrypted with AES-256-GCM under a fresh IV, and the whole
    store is covered by an HMAC tag checked before ``load`` succeeds.

    A new instance is ``UNINITIALIZED``; ``init`` or a successful ``load``
    makes it ``READY``. Every operation on the store holds an instance lock,
    so ``kvs`` and ``ivs`` never diverge and ``dump`` always tags the state it
    serializes.
    """

    def __init__(self, config: Optional[KeychainConfig] = None):
        self._config = config or KeychainConfig()
        self._secrets: Optional[SecretMaterial] = None
        self._persisted: Optional[PersistedState] = None
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<Keychain [{self.state.value}] records={len(self)}>"

    def __len__(self) -> int:
        if self._persisted is None:
            return 0
        return len(self._persisted)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> KeychainConfig:
        return self._config

    @property
    def state(self) -> KeychainState:
        if self._secrets is None or self._persisted is None:
            return KeychainState.UNINITIALIZED
        return KeychainState.READY

    @property
    def ready(self) -> bool:
        return self.state is KeychainState.READY

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _derive(self, password: str, salt: bytes) -> SecretMaterial:
        """Run PBKDF2 off the event loop."""
        return await asyncio.to_thread(
            derive_keys, password, salt, self._config.pbkdf2_iterations,
        )

    def _require_ready(self) -> tuple[SecretMaterial, PersistedState]:
        if self._secrets is None or self._persisted is None:
            raise NotReady("Keychain is not initialized; call init() or load()")
        return self._secrets, self._persisted

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self, password: str) -> None:
        """Start an empty keychain protected by ``password``.

        A fresh random salt is generated here and kept for the lifetime of
        the keychain.
        """
        salt = generate_salt(self._config.salt_size)
        secrets = await self._derive(password, salt)
        persisted = PersistedState.create(salt)
        async with self._lock:
            self._secrets = secrets
            self._persisted = persisted
        logger.info("Keychain initialized")

    async def load(
        self,
        password: str,
        serialized: str | bytes,
        trusted_digest: Optional[str | bytes] = None,
    ) -> None:
        """Open a keychain produced by :meth:`dump`.

        The instance is left untouched unless every check passes.

        Args:
            password: Master password.
            serialized: First element returned by ``dump()``.
            trusted_digest: Optional digest returned by ``dump()``.

        Raises:
            IntegrityFailure: If the digest or the whole-store tag does not
                match (a wrong password fails here).
            MalformedRepresentation: If ``serialized`` cannot be parsed, or its
                records were padded for another ``max_value_length``.
        """
        if trusted_digest is not None and not verify_digest(serialized, trusted_digest):
            logger.warning("Keychain load rejected: digest mismatch")
            raise IntegrityFailure("Serialized keychain does not match trusted digest")

        persisted = PersistedState.from_json(serialized)
        secrets = await self._derive(password, persisted.salt_bytes)
        if not verify_tag(persisted, secrets.mac_key):
            logger.warning("Keychain load rejected: integrity tag mismatch")
            raise IntegrityFailure(
                "Keychain integrity check failed (wrong password or tampered data)"
            )

        expected = self._config.padded_length + TAG_SIZE
        lengths = persisted.ciphertext_lengths()
        if lengths and lengths != {expected}:
            logger.warning("Keychain load rejected: record size mismatch")
            raise MalformedRepresentation(
                f"Keychain records are {sorted(lengths)} bytes, this configuration "
                f"expects {expected} (max_value_length={self._config.max_value_length})"
            )

        async with self._lock:
            self._secrets = secrets
            self._persisted = persisted
        logger.info("Keychain loaded: %d record(s)", len(persisted))

    async def dump(self) -> Optional[tuple[str, str]]:
        """Serialize the keychain.

        Returns:
            Tuple of (serialized, sha256_hex), or None when the keychain is
            not ready.
        """
        async with self._lock:
            secrets, persisted = self._secrets, self._persisted
            if secrets is None or persisted is None:
                return None
            persisted.tag = compute_tag(persisted, secrets.mac_key)
            serialized = persisted.to_json()
        logger.debug("Keychain dumped: %d record(s)", len(persisted))
        return serialized, compute_digest(serialized)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, domain: str) -> Optional[str]:
        """Return the value stored for ``domain``, or None if there is none.

        Raises:
            NotReady: If the keychain is not initialized.
            AuthFailure: If the stored record was tampered with.
        """
        _check_text("domains", domain)
        async with self._lock:
            secrets, persisted = self._require_ready()
            record = persisted.record(blind_domain(domain, secrets.mac_key))
            if record is None:
                return None
            ciphertext, iv = record
            try:
                return decode_record(ciphertext, iv, secrets.enc_key)
            except AuthFailure as err:
                logger.warning("Keychain record failed authentication: %s", err.kind.value)
                raise

    async def set(self, domain: str, value: str) -> None:
        """Store ``value`` for ``domain``, replacing any previous value.

        Raises:
            NotReady: If the keychain is not initialized.
            ValueTooLong: If ``value`` exceeds ``config.max_value_length``
                UTF-8 bytes. Nothing is stored in that case.
        """
        _check_text("domains", domain)
        _check_text("values", value)
        async with self._lock:
            secrets, persisted = self._require_ready()
            key = blind_domain(domain, secrets.mac_key)
            ciphertext, iv = encode_record(
                value, secrets.enc_key, self._config.max_value_length,
            )
            persisted.put_record(key, ciphertext, iv)
        logger.debug("Keychain set: %d record(s)", len(persisted))

    async def remove(self, domain: str) -> bool:
        """Remove ``domain``. Returns True if it was present.

        Raises:
            NotReady: If the keychain is not initialized.
        """
        _check_text("domains", domain)
        async with self._lock:
            secrets, persisted = self._require_ready()
            found = persisted.drop_record(blind_domain(domain, secrets.mac_key))
        logger.debug("Keychain remove: found=%s", found)
        return found

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    async def create(
        cls,
        password: str,
        config: Optional[KeychainConfig] = None,
    ) -> "Keychain":
        """Return a new, empty, ready keychain."""
        keychain = cls(config)
        await keychain.init(password)
        return keychain

    @classmethod
    async def restore(
        cls,
        password: str,
        serialized: str | bytes,
        trusted_digest: Optional[str | bytes] = None,
        config: Optional[KeychainConfig] = None,
    ) -> "Keychain":
        """Return a ready keychain loaded from ``dump()`` output.

        Raises:
            IntegrityFailure: See :meth:`load`.
            MalformedRepresentation: See :meth:`load`.
        """
        keychain = cls(config)
        await keychain.load(password, serialized, trusted_digest)
        return keychain
