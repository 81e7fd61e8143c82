"""
Tests for PersistedState and the integrity guard.

Tests cover:
- Structural validation of serialized keychains
- Record helpers keeping kvs and ivs aligned
- Whole-store tag computation and verification
- Outer digest
"""
import orjson
import pytest
from pydantic import ValidationError

from navigator_keychain.exceptions import MalformedRepresentation
from navigator_keychain.integrity import (
    canonical_bytes,
    compute_digest,
    compute_tag,
    verify_digest,
    verify_tag,
)
from navigator_keychain.state import FORMAT_VERSION, PersistedState, b64encode


MAC_KEY = b"\x07" * 32


@pytest.fixture
def state():
    """Create a state holding two records."""
    st = PersistedState.create(b"\x01" * 16)
    st.put_record("key-a", b"ciphertext-a", b"\x00" * 12)
    st.put_record("key-b", b"ciphertext-b", b"\x01" * 12)
    return st


# --- Test PersistedState ---

class TestPersistedState:
    """Tests for the serializable keychain state."""

    def test_create_empty(self):
        """Test a new state is empty and versioned."""
        st = PersistedState.create(b"\x01" * 16)
        assert len(st) == 0
        assert st.version == FORMAT_VERSION
        assert st.tag is None
        assert st.salt_bytes == b"\x01" * 16

    def test_put_and_drop_keep_maps_aligned(self, state):
        """Test kvs and ivs always share keys."""
        assert state.kvs.keys() == state.ivs.keys()
        assert state.record("key-a") == (b"ciphertext-a", b"\x00" * 12)
        assert state.drop_record("key-a") is True
        assert state.drop_record("key-a") is False
        assert state.kvs.keys() == state.ivs.keys() == {"key-b"}
        assert state.record("key-a") is None

    def test_salt_is_immutable(self, state):
        """Test the salt cannot be reassigned."""
        with pytest.raises(ValidationError):
            state.salt = b64encode(b"\x02" * 16)

    def test_json_round_trip(self, state):
        """Test to_json / from_json."""
        state.tag = compute_tag(state, MAC_KEY)
        restored = PersistedState.from_json(state.to_json())
        assert restored.model_dump() == state.model_dump()

    def test_json_has_no_secrets_fields(self, state):
        """Test only the public fields are serialized."""
        data = orjson.loads(state.to_json())
        assert set(data) == {"salt", "kvs", "ivs", "tag", "version"}

    @pytest.mark.parametrize("raw", [
        "not json",
        "[]",
        "{}",
        '{"salt": 5, "kvs": {}, "ivs": {}, "tag": null, "version": "x"}',
    ])
    def test_malformed(self, raw):
        """Test structurally invalid input is rejected."""
        with pytest.raises(MalformedRepresentation):
            PersistedState.from_json(raw)

    def test_unknown_version(self, state):
        """Test another format version is rejected."""
        data = orjson.loads(state.to_json())
        data["version"] = "CS 255 Password Manager v1.0"
        with pytest.raises(MalformedRepresentation):
            PersistedState.from_json(orjson.dumps(data))

    def test_unaligned_maps(self, state):
        """Test an orphaned ciphertext is rejected."""
        data = orjson.loads(state.to_json())
        del data["ivs"]["key-a"]
        with pytest.raises(MalformedRepresentation):
            PersistedState.from_json(orjson.dumps(data))

    def test_bad_base64(self, state):
        """Test record values must be base64."""
        data = orjson.loads(state.to_json())
        data["kvs"]["key-a"] = "not base64!"
        with pytest.raises(MalformedRepresentation):
            PersistedState.from_json(orjson.dumps(data))

    def test_extra_field(self, state):
        """Test unknown fields are rejected."""
        data = orjson.loads(state.to_json())
        data["encKey"] = "AAAA"
        with pytest.raises(MalformedRepresentation):
            PersistedState.from_json(orjson.dumps(data))


# --- Test Whole-Store Tag ---

class TestTag:
    """Tests for compute_tag / verify_tag."""

    def test_canonical_ignores_order(self):
        """Test canonical bytes do not depend on insertion order."""
        first = canonical_bytes("s", {"a": "1", "b": "2"}, {"a": "x", "b": "y"}, "v")
        second = canonical_bytes("s", {"b": "2", "a": "1"}, {"b": "y", "a": "x"}, "v")
        assert first == second

    def test_tag_excludes_tag_field(self, state):
        """Test the stored tag does not influence the computed tag."""
        before = compute_tag(state, MAC_KEY)
        state.tag = "anything"
        assert compute_tag(state, MAC_KEY) == before

    def test_verify(self, state):
        """Test a fresh tag verifies."""
        state.tag = compute_tag(state, MAC_KEY)
        assert verify_tag(state, MAC_KEY) is True

    def test_missing_tag(self, state):
        """Test a state without tag never verifies."""
        assert verify_tag(state, MAC_KEY) is False

    def test_garbage_tag(self, state):
        """Test a non-base64 tag does not verify."""
        state.tag = "***"
        assert verify_tag(state, MAC_KEY) is False

    def test_wrong_key(self, state):
        """Test another MAC key does not verify."""
        state.tag = compute_tag(state, MAC_KEY)
        assert verify_tag(state, b"\x08" * 32) is False

    def test_swap_detected(self, state):
        """Test exchanging two records invalidates the tag."""
        state.tag = compute_tag(state, MAC_KEY)
        state.kvs["key-a"], state.kvs["key-b"] = state.kvs["key-b"], state.kvs["key-a"]
        state.ivs["key-a"], state.ivs["key-b"] = state.ivs["key-b"], state.ivs["key-a"]
        assert verify_tag(state, MAC_KEY) is False

    def test_record_change_detected(self, state):
        """Test changing a record invalidates the tag."""
        state.tag = compute_tag(state, MAC_KEY)
        state.put_record("key-a", b"ciphertext-A", b"\x00" * 12)
        assert verify_tag(state, MAC_KEY) is False


# --- Test Outer Digest ---

class TestDigest:
    """Tests for compute_digest / verify_digest."""

    def test_sha256_hex(self):
        """Test digest of a known input."""
        assert compute_digest("abc") == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )

    def test_str_and_bytes_agree(self):
        """Test str and bytes inputs give the same digest."""
        assert compute_digest("keychain") == compute_digest(b"keychain")

    def test_verify(self):
        """Test verify_digest accepts the digest and rejects others."""
        digest = compute_digest("keychain")
        assert verify_digest("keychain", digest) is True
        assert verify_digest("keychain", digest.upper()) is True
        assert verify_digest("keychain!", digest) is False
        assert verify_digest("keychain", "") is False

    def test_verify_bytes_digest(self):
        """Test a bytes digest is accepted."""
        digest = compute_digest("keychain")
        assert verify_digest("keychain", digest.encode("ascii")) is True
        assert verify_digest(b"keychain", digest.upper().encode("ascii")) is True
        assert verify_digest("keychain!", digest.encode("ascii")) is False

    @pytest.mark.parametrize("serialized,digest", [
        (None, "00"),
        (["keychain"], "00"),
        ("keychain", 42),
    ])
    def test_invalid_types(self, serialized, digest):
        """Test non-text arguments raise MalformedRepresentation."""
        with pytest.raises(MalformedRepresentation):
            verify_digest(serialized, digest)
