"""
PersistedState — the serializable half of a keychain.

Holds only values that are safe to publish: the salt, blinded keys,
ciphertexts, IVs, the whole-store tag and the format version. Binary fields
are kept as base64 text so that the model maps directly onto JSON.
"""
import base64
from typing import Optional

import orjson
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .exceptions import MalformedRepresentation

FORMAT_VERSION = "Navigator Keychain v1.0"


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(data: str) -> bytes:
    return base64.b64decode(data, validate=True)


class PersistedState(BaseModel):
    """Public keychain state: salt, records, tag and version.

    ``kvs`` and ``ivs`` are both keyed by blinded domain and always share
    the same key set; use :meth:`put_record` and :meth:`drop_record` to
    change them.
    """

    salt: str = Field(frozen=True)
    kvs: dict[str, str] = Field(default_factory=dict)
    ivs: dict[str, str] = Field(default_factory=dict)
    tag: Optional[str] = None
    version: str = FORMAT_VERSION

    model_config = {"extra": "forbid", "strict": True}

    @field_validator("salt")
    @classmethod
    def validate_salt(cls, v: str) -> str:
        """Salt must be non-empty base64."""
        if not b64decode(v):
            raise ValueError("salt is empty")
        return v

    @field_validator("kvs", "ivs")
    @classmethod
    def validate_records(cls, v: dict[str, str]) -> dict[str, str]:
        """Every record value must be base64."""
        for value in v.values():
            b64decode(value)
        return v

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        if v != FORMAT_VERSION:
            raise ValueError(f"Unsupported keychain version: {v!r}")
        return v

    @model_validator(mode="after")
    def validate_aligned(self) -> "PersistedState":
        """Ensure every ciphertext has an IV and every IV a ciphertext."""
        if self.kvs.keys() != self.ivs.keys():
            raise ValueError("kvs and ivs must have the same keys")
        return self

    @classmethod
    def create(cls, salt: bytes) -> "PersistedState":
        """Build an empty state for a new keychain."""
        return cls(salt=b64encode(salt))

    @property
    def salt_bytes(self) -> bytes:
        return b64decode(self.salt)

    def __len__(self) -> int:
        return len(self.kvs)

    def record(self, key: str) -> Optional[tuple[bytes, bytes]]:
        """Return (ciphertext, iv) stored under a blinded key, or None."""
        if key not in self.kvs:
            return None
        return b64decode(self.kvs[key]), b64decode(self.ivs[key])

    def put_record(self, key: str, ciphertext: bytes, iv: bytes) -> None:
        """Insert or replace the ciphertext and IV of a blinded key."""
        encoded_ct = b64encode(ciphertext)
        encoded_iv = b64encode(iv)
        self.kvs[key] = encoded_ct
        self.ivs[key] = encoded_iv

    def ciphertext_lengths(self) -> set[int]:
        """Distinct ciphertext sizes, in bytes, across all records."""
        return {len(b64decode(value)) for value in self.kvs.values()}

    def drop_record(self, key: str) -> bool:
        """Remove a blinded key from both maps. Returns False if absent."""
        if key not in self.kvs:
            return False
        del self.kvs[key]
        del self.ivs[key]
        return True

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_json(self) -> str:
        """Serialize the full state, tag included, as sorted-key JSON."""
        return orjson.dumps(
            self.model_dump(), option=orjson.OPT_SORT_KEYS
        ).decode("utf-8")

    @classmethod
    def from_json(cls, raw: str | bytes) -> "PersistedState":
        """Parse a serialized keychain.

        Raises:
            MalformedRepresentation: If raw is not valid JSON or does not
                describe a keychain of the supported version.
        """
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as err:
            raise MalformedRepresentation(
                f"keychain is not valid JSON: {err}"
            ) from err
        try:
            return cls.model_validate(data)
        except ValidationError as err:
            raise MalformedRepresentation(
                f"keychain has an invalid structure: {err.error_count()} error(s)"
            ) from err
