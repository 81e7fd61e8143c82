"""
Keychain Configuration — validated settings for key derivation and padding.

Reads optional overrides from environment variables:
    KEYCHAIN_PBKDF2_ITERATIONS = <integer, at least 100000>
    KEYCHAIN_MAX_VALUE_LENGTH = <integer, bytes>
    KEYCHAIN_SALT_SIZE = <integer, bytes>

Security Note:
    The iteration count is not stored with a dump. A keychain must be loaded
    with the same iteration count it was created with, otherwise the derived
    keys differ and ``load`` fails its integrity check. Records are padded
    to ``max_value_length``; a non-empty keychain loaded with another value
    raises ``MalformedRepresentation`` so every record keeps the same size.
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("navigator.keychain")

MIN_PBKDF2_ITERATIONS = 100_000
DEFAULT_MAX_VALUE_LENGTH = 64
DEFAULT_SALT_SIZE = 16


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable.

    Raises:
        ValueError: If the variable is set but is not an integer.
    """
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


class KeychainConfig(BaseModel):
    """Validated keychain configuration."""

    pbkdf2_iterations: int = Field(default=MIN_PBKDF2_ITERATIONS)
    max_value_length: int = Field(default=DEFAULT_MAX_VALUE_LENGTH, ge=1, le=4096)
    salt_size: int = Field(default=DEFAULT_SALT_SIZE, ge=16, le=64)

    model_config = {"frozen": True}

    @field_validator("pbkdf2_iterations")
    @classmethod
    def validate_iterations(cls, v: int) -> int:
        """Refuse iteration counts below the derivation floor."""
        if v < MIN_PBKDF2_ITERATIONS:
            raise ValueError(
                f"pbkdf2_iterations must be at least {MIN_PBKDF2_ITERATIONS}, "
                f"got {v}"
            )
        return v

    @property
    def padded_length(self) -> int:
        """Size of every padded record: the value, its sentinel and filler."""
        return self.max_value_length + 1

    @classmethod
    def from_env(cls) -> "KeychainConfig":
        """Create KeychainConfig by loading values from environment.

        Returns:
            Populated KeychainConfig instance.
        """
        config = cls(
            pbkdf2_iterations=_env_int(
                "KEYCHAIN_PBKDF2_ITERATIONS", MIN_PBKDF2_ITERATIONS
            ),
            max_value_length=_env_int(
                "KEYCHAIN_MAX_VALUE_LENGTH", DEFAULT_MAX_VALUE_LENGTH
            ),
            salt_size=_env_int("KEYCHAIN_SALT_SIZE", DEFAULT_SALT_SIZE),
        )
        logger.debug(
            "Keychain config: iterations=%d max_value_length=%d salt_size=%d",
            config.pbkdf2_iterations,
            config.max_value_length,
            config.salt_size,
        )
        return config
