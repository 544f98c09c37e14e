import hashlib

import pytest

from sealer.app.utils.hashing import (
    DIGEST_HEX_LENGTH,
    digest,
    digest_file,
    is_hex_digest,
)


def test_empty_input_has_defined_digest():
    value = digest(b"")

    assert value == hashlib.sha512(b"").hexdigest()
    assert value.startswith("cf83e135")


def test_digest_is_128_lowercase_hex():
    value = digest(b"hello")

    assert len(value) == DIGEST_HEX_LENGTH
    assert value == value.lower()
    assert is_hex_digest(value)


def test_digest_is_deterministic():
    assert digest(b"same bytes") == digest(b"same bytes")
    assert digest(b"same bytes") != digest(b"other bytes")


def test_digest_accepts_buffer_types():
    expected = digest(b"abc")

    assert digest(bytearray(b"abc")) == expected
    assert digest(memoryview(b"abc")) == expected


@pytest.mark.parametrize("value", ["text", 123, None])
def test_digest_rejects_non_bytes(value):
    with pytest.raises(TypeError):
        digest(value)


def test_digest_file_matches_in_memory_digest(tmp_path):
    data = b"x" * 5000
    path = tmp_path / "evidence.bin"
    path.write_bytes(data)

    assert digest_file(path, chunk_size=1024) == digest(data)


def test_is_hex_digest_rejects_wrong_shapes():
    assert not is_hex_digest("abc")
    assert not is_hex_digest("G" * DIGEST_HEX_LENGTH)
    assert not is_hex_digest("A" * DIGEST_HEX_LENGTH)
