"""Conversion between SHA-256 digests and OSTree object paths."""

from __future__ import annotations

import os
import re
from pathlib import PurePath

_HEX = re.compile(r"[0-9a-fA-F]+")


def object_path_to_checksum(path) -> bytes:
    """Turn an object path such as ``ab/cdef....file`` into a 32-byte digest."""
    p = PurePath(os.fspath(path))
    prefix = p.parent.name
    rest = p.stem
    if len(prefix) != 2 or len(rest) != 62:
        raise ValueError(f"Malformed object path {str(p)!r}")
    hexstr = prefix + rest
    if not _HEX.fullmatch(hexstr):
        raise ValueError(f"Malformed object path {str(p)!r}")
    return bytes.fromhex(hexstr)


def checksum_to_object_path(checksum: bytes) -> str:
    """Turn a 32-byte digest into its relative object path ``ab/cdef....file``."""
    checksum = bytes(checksum)
    if len(checksum) != 32:
        raise ValueError(f"expected a 32-byte digest, got {len(checksum)} bytes")
    return f"{checksum[0]:02x}/{checksum[1:].hex()}.file"