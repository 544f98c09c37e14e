"""
Cryptographic primitives for evidence sealing.

Current scope:
- SHA-512 digests of evidence bytes (upload time)
- SHA-512 digest of the finished sealed document (post-construction)

Explicit non-scope:
- Reading uploads or deciding which files are hashed
- PDF parsing or manipulation

IMPORTANT DESIGN RULE:
- This module hashes bytes, and bytes only.
"""

import hashlib
from pathlib import Path
from typing import Union


DIGEST_HEX_LENGTH = 128

_CHUNK_SIZE = 1024 * 1024


def digest(data: Union[bytes, bytearray, memoryview]) -> str:
    """
    Compute the SHA-512 digest of ``data``.

    Deterministic and pure. Zero-length input is valid and yields the
    digest of the empty string.

    Returns:
        128 lowercase hexadecimal characters.
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError(
            "digest expects bytes, "
            f"got {type(data).__name__}"
        )

    return hashlib.sha512(data).hexdigest()


def digest_file(path: Path, chunk_size: int = _CHUNK_SIZE) -> str:
    """Stream ``path`` through SHA-512 without loading it whole."""
    hasher = hashlib.sha512()
    with Path(path).open("rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def is_hex_digest(value: str) -> bool:
    """True when ``value`` looks like a lowercase SHA-512 hex digest."""
    if len(value) != DIGEST_HEX_LENGTH:
        return False
    return all(c in "0123456789abcdef" for c in value)
