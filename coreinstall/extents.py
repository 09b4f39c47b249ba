"""File extent mapping through the FS_IOC_FIEMAP ioctl."""

from __future__ import annotations

import fcntl
import os
import struct
from dataclasses import dataclass

FIEMAP_EXTENT_LAST = 0x00000001
FIEMAP_EXTENT_UNKNOWN = 0x00000002
FIEMAP_EXTENT_DELALLOC = 0x00000004
FIEMAP_EXTENT_ENCODED = 0x00000008
FIEMAP_EXTENT_DATA_ENCRYPTED = 0x00000080
FIEMAP_EXTENT_NOT_ALIGNED = 0x00000100
FIEMAP_EXTENT_DATA_INLINE = 0x00000200
FIEMAP_EXTENT_DATA_TAIL = 0x00000400
FIEMAP_EXTENT_UNWRITTEN = 0x00000800
FIEMAP_EXTENT_MERGED = 0x00001000
FIEMAP_EXTENT_SHARED = 0x00002000

# Extents requested per ioctl call; small files on an unfragmented
# filesystem rarely need more.
EXTENT_COUNT = 32

_HEADER = struct.Struct("=QQIIII")
_EXTENT = struct.Struct("=QQQ16xI12x")


def _iowr(kind: int, nr: int, size: int) -> int:
    return (3 << 30) | (size << 16) | (kind << 8) | nr


FS_IOC_FIEMAP = _iowr(ord("f"), 11, _HEADER.size)

# Checked in order; the first matching flag decides the error.
_REJECTED_FLAGS = (
    (FIEMAP_EXTENT_NOT_ALIGNED, "extent not aligned"),
    (FIEMAP_EXTENT_MERGED, "file does not support extents"),
    (FIEMAP_EXTENT_ENCODED, "extent encoded"),
    (FIEMAP_EXTENT_DELALLOC, "extent not allocated yet"),
    (FIEMAP_EXTENT_UNWRITTEN, "extent preallocated"),
    (FIEMAP_EXTENT_UNKNOWN, "extent inaccessible"),
)


class ExtentError(Exception):
    """A file's extents could not be mapped or are unusable."""


@dataclass
class Extent:
    """A contiguous run of a file; physical is relative to the partition."""

    logical: int
    physical: int
    length: int


def check_extent_flags(flags: int) -> bool:
    """Reject extents we can't reuse; return whether this is the last one."""
    for flag, message in _REJECTED_FLAGS:
        if flags & flag:
            raise ExtentError(message)
    return bool(flags & FIEMAP_EXTENT_LAST)


def fiemap(fd: int) -> list[Extent]:
    """Return the extents of the open file ``fd``."""
    extents: list[Extent] = []
    while True:
        start = extents[-1].logical + extents[-1].length if extents else 0
        buf = bytearray(_HEADER.size + EXTENT_COUNT * _EXTENT.size)
        _HEADER.pack_into(buf, 0, start, 2**64 - 1, 0, 0, EXTENT_COUNT, 0)
        try:
            fcntl.ioctl(fd, FS_IOC_FIEMAP, buf, True)
        except OSError as e:
            raise ExtentError(f"ioctl(FS_IOC_FIEMAP): {e}") from e
        mapped = _HEADER.unpack_from(buf, 0)[3]
        if mapped == 0:
            break

        found_last = False
        for logical, physical, length, flags in _EXTENT.iter_unpack(
            bytes(buf[_HEADER.size : _HEADER.size + mapped * _EXTENT.size])
        ):
            if check_extent_flags(flags):
                found_last = True
            extents.append(Extent(logical, physical, length))
        if found_last:
            break
    return extents


def fiemap_path(path) -> list[Extent]:
    """Return the extents of the file at ``path``."""
    with open(os.fspath(path), "rb") as f:
        try:
            return fiemap(f.fileno())
        except ExtentError as e:
            raise ExtentError(f"mapping {os.fsdecode(path)!r}: {e}") from e