"""File hashing with SHA-1 or SHA-256, reported as hex and base64."""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from enum import Enum
from os import PathLike

_BUF_SIZE = 65536


class HashAlgorithm(Enum):
    """Supported digest algorithms."""

    SHA1 = "sha1"
    SHA256 = "sha256"


@dataclass(frozen=True)
class HashResult:
    """Digest of a file in two encodings."""

    hex: str
    base64: str


def hash_file(path: str | PathLike[str], algorithm: HashAlgorithm) -> HashResult:
    """Hash the file at ``path``; raises ``OSError`` if it cannot be read."""
    hasher = hashlib.new(algorithm.value)
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(_BUF_SIZE), b""):
            hasher.update(chunk)
    digest = hasher.digest()
    return HashResult(
        hex=digest.hex(),
        base64=base64.b64encode(digest).decode("ascii"),
    )