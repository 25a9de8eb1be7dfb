"""Content-addressed identity for code spans and whole files."""

import hashlib


def fingerprint_bytes(data: bytes) -> str:
    """Hex SHA-256 digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def fingerprint(text: str) -> str:
    """Hex SHA-256 digest of the UTF-8 encoding of ``text``.

    The empty string is hashed like any other input.
    """
    return fingerprint_bytes(text.encode("utf-8"))


def fingerprint_file(path: str) -> str:
    """Digest of a file's full contents, used for change detection.

    Raises OSError if the file cannot be read.
    """
    with open(path, "rb") as f:
        data = f.read()
    return fingerprint_bytes(data)


def to_point_id(digest: str) -> int:
    """Maps a digest onto the unsigned 64-bit id space of the vector store.

    Re-hashes the digest and reads the first 8 bytes as a big-endian integer.
    Collisions are possible and not detected.
    """
    rehashed = hashlib.sha256(digest.encode("utf-8")).digest()
    return int.from_bytes(rehashed[:8], byteorder="big", signed=False)
