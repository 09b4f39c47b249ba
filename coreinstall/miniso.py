"""Minimal ISO data: a packed delta of a minimal ISO against the full ISO.

The minimal ISO shares most of its files with the full ISO.  The data file
records where those shared files live in both images and stores everything
else xz-compressed, so the minimal ISO can be rebuilt from the full one.
"""

from __future__ import annotations

import hashlib
import io
import lzma
import os
import struct
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import BinaryIO

SECTOR_SIZE = 2048

# Magic header value for the miniso data file.
HEADER_MAGIC = b"MINISO\0\0"

# Bumped whenever the format changes.
HEADER_VERSION = 1

# Largest data file we agree to write or read.
DATA_MAX_SIZE = 1024 * 1024

APP_VERSION = "0.1.0"

_DIGEST_SIZE = 32
_BUFFER_SIZE = 256 * 1024


class MinisoError(Exception):
    """Miniso data is malformed, inconsistent or cannot be applied."""


@dataclass(frozen=True)
class IsoFile:
    """A file inside an ISO9660 image: its starting sector and byte length."""

    address: int
    length: int

    @property
    def offset(self) -> int:
        return self.address * SECTOR_SIZE


@dataclass(frozen=True)
class TableEntry:
    """A file shared by both ISOs: its sector in each and its length."""

    minimal: int
    full: int
    length: int

    @property
    def minimal_offset(self) -> int:
        return self.minimal * SECTOR_SIZE

    @property
    def full_offset(self) -> int:
        return self.full * SECTOR_SIZE


@dataclass
class Table:
    """Shared files, sorted by their position in the minimal ISO."""

    entries: list[TableEntry] = field(default_factory=list)

    def validate(self) -> None:
        """Check the table is non-empty and its minimal-ISO files don't overlap."""
        if not self.entries:
            raise MinisoError("table is empty; ISOs have no files in common?")
        for e, next_e in zip(self.entries, self.entries[1:]):
            if e.minimal_offset + e.length > next_e.minimal_offset:
                raise MinisoError(
                    f"Files at offsets {e.minimal_offset} and "
                    f"{next_e.minimal_offset} overlap"
                )


def build_table(
    full_files: Mapping[str, IsoFile], minimal_files: Mapping[str, IsoFile]
) -> tuple[Table, int]:
    """Match minimal-ISO files with full-ISO files.

    Returns the table and the number of extraneous matches dropped
    (zero-length files and hardlink duplicates).
    """
    entries = []
    for path, minimal_entry in minimal_files.items():
        full_entry = full_files.get(path)
        if full_entry is None:
            raise MinisoError(f"missing minimal file {path} in full ISO")
        if full_entry.length != minimal_entry.length:
            raise MinisoError(
                f"File {path} has different lengths in full and minimal ISOs"
            )
        entries.append(
            TableEntry(
                minimal=minimal_entry.address,
                full=full_entry.address,
                length=full_entry.length,
            )
        )

    entries.sort(key=lambda e: e.minimal)
    size = len(entries)
    deduped: list[TableEntry] = []
    for entry in entries:
        if entry.length == 0:
            continue
        if deduped and deduped[-1] == entry:
            continue
        deduped.append(entry)

    table = Table(deduped)
    try:
        table.validate()
    except MinisoError as e:
        raise MinisoError(f"validating table: {e}") from e
    return table, size - len(deduped)


def _chunks(src: BinaryIO, n: int) -> Iterator[bytes]:
    """Yield exactly ``n`` bytes from ``src`` in chunks."""
    remaining = n
    while remaining > 0:
        chunk = src.read(min(remaining, _BUFFER_SIZE))
        if not chunk:
            raise EOFError(f"unexpected end of input: {remaining} of {n} bytes missing")
        yield chunk
        remaining -= len(chunk)


def _all_chunks(src: BinaryIO) -> Iterator[bytes]:
    while chunk := src.read(_BUFFER_SIZE):
        yield chunk


def _u32(value: int) -> bytes:
    return struct.pack("<I", value)


def _u64(value: int) -> bytes:
    return struct.pack("<Q", value)


class _LimitedReader:
    """Reads exact byte counts, refusing to go past the data size limit."""

    def __init__(self, r: BinaryIO, limit: int) -> None:
        self._r = r
        self._remaining = limit

    def exact(self, n: int) -> bytes:
        if n > self._remaining:
            raise MinisoError("data size limit exceeded")
        data = self._r.read(n)
        if len(data) != n:
            raise MinisoError("unexpected end of data")
        self._remaining -= n
        return data

    def u32(self) -> int:
        return struct.unpack("<I", self.exact(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self.exact(8))[0]

    def string(self) -> str:
        n = self.u64()
        try:
            return self.exact(n).decode("utf-8")
        except UnicodeDecodeError as e:
            raise MinisoError(f"invalid UTF-8 string: {e}") from e


@dataclass
class MinisoData:
    """Shared-file table, digest of the minimal ISO and its xz-packed remainder."""

    table: Table
    digest: bytes
    xzpacked: bytes

    def serialize(self, w: BinaryIO) -> None:
        """Write the header and data to ``w``."""
        if len(self.digest) != _DIGEST_SIZE:
            raise MinisoError(
                f"failed to serialize data: digest must be {_DIGEST_SIZE} bytes"
            )
        app = APP_VERSION.encode("utf-8")
        header = HEADER_MAGIC + _u32(HEADER_VERSION) + _u64(len(app)) + app
        parts = [_u64(len(self.table.entries))]
        for entry in self.table.entries:
            parts.append(_u32(entry.minimal) + _u32(entry.full) + _u32(entry.length))
        parts.append(bytes(self.digest))
        parts.append(_u64(len(self.xzpacked)))
        parts.append(bytes(self.xzpacked))
        encoded = header + b"".join(parts)
        if len(encoded) > DATA_MAX_SIZE:
            raise MinisoError("failed to serialize data: data size limit exceeded")
        w.write(encoded)

    @classmethod
    def deserialize(cls, r: BinaryIO) -> "MinisoData":
        """Read and validate header and data from ``r``."""
        limiter = _LimitedReader(r, DATA_MAX_SIZE)
        try:
            magic = limiter.exact(len(HEADER_MAGIC))
            version = limiter.u32()
            app_version = limiter.string()
        except MinisoError as e:
            raise MinisoError(f"failed to deserialize header: {e}") from e
        if magic != HEADER_MAGIC:
            raise MinisoError("validating header: not a miniso file!")
        if version != HEADER_VERSION:
            raise MinisoError(
                f"validating header: incompatible miniso file version: "
                f"{HEADER_VERSION} vs {version} (created by {app_version})"
            )

        try:
            count = limiter.u64()
            entries = []
            for _ in range(count):
                entries.append(
                    TableEntry(minimal=limiter.u32(), full=limiter.u32(), length=limiter.u32())
                )
            digest = limiter.exact(_DIGEST_SIZE)
            xzpacked = limiter.exact(limiter.u64())
        except MinisoError as e:
            raise MinisoError(f"failed to deserialize data: {e}") from e

        data = cls(Table(entries), digest, xzpacked)
        try:
            data.table.validate()
        except MinisoError as e:
            raise MinisoError(f"validating table: {e}") from e
        return data

    def unxzpack(self, fulliso: BinaryIO, w: BinaryIO | None) -> None:
        """Rebuild the minimal ISO into ``w`` and verify its digest.

        ``w`` may be None to only verify.
        """
        hasher = hashlib.sha256()

        def emit(chunk: bytes) -> None:
            hasher.update(chunk)
            if w is not None:
                w.write(chunk)

        try:
            with lzma.LZMAFile(io.BytesIO(self.xzpacked), "rb") as xzr:
                offset = 0
                for entry in self.table.entries:
                    minimal_addr = entry.minimal_offset
                    full_addr = entry.full_offset
                    if minimal_addr > offset:
                        n = minimal_addr - offset
                        try:
                            for chunk in _chunks(xzr, n):
                                emit(chunk)
                        except EOFError as e:
                            raise MinisoError(
                                f"copying {n} packed bytes at offset {offset}: {e}"
                            ) from e
                        offset += n
                    fulliso.seek(full_addr)
                    try:
                        for chunk in _chunks(fulliso, entry.length):
                            emit(chunk)
                    except EOFError as e:
                        raise MinisoError(
                            f"copying full ISO file at offset {full_addr}: {e}"
                        ) from e
                    offset += entry.length
                for chunk in _all_chunks(xzr):
                    emit(chunk)
        except lzma.LZMAError as e:
            raise MinisoError(f"copying remaining packed bytes: {e}") from e

        digest = hasher.digest()
        if digest != bytes(self.digest):
            raise MinisoError(
                f"wrong final digest: expected {bytes(self.digest).hex()}, "
                f"found {digest.hex()}"
            )


class _CountingCompressor:
    def __init__(self) -> None:
        self._compressor = lzma.LZMACompressor(format=lzma.FORMAT_XZ, preset=9)
        self._parts: list[bytes] = []
        self.total_in = 0

    def write(self, data: bytes) -> None:
        self.total_in += len(data)
        self._parts.append(self._compressor.compress(data))

    def finish(self) -> bytes:
        self._parts.append(self._compressor.flush())
        return b"".join(self._parts)


def pack_miniso(
    miniso: BinaryIO,
    full_files: Mapping[str, IsoFile],
    minimal_files: Mapping[str, IsoFile],
) -> tuple[MinisoData, int, int, int, int]:
    """Pack a minimal ISO against the full ISO's file list.

    Returns the data, the number of matched files, the bytes skipped, the
    bytes written before compression and the bytes written after it.
    """
    table, extraneous = build_table(full_files, minimal_files)

    miniso.seek(0)
    hasher = hashlib.sha256()
    for chunk in _all_chunks(miniso):
        hasher.update(chunk)
    digest = hasher.digest()
    offset = miniso.seek(0)

    xzw = _CountingCompressor()
    skipped = 0
    for entry in table.entries:
        addr = entry.minimal_offset
        if addr < offset:
            raise MinisoError(f"file at offset {addr} precedes current offset {offset}")
        if addr > offset:
            n = addr - offset
            try:
                for chunk in _chunks(miniso, n):
                    xzw.write(chunk)
            except EOFError as e:
                raise MinisoError(f"copying {n} miniso bytes at offset {offset}: {e}") from e
        # zeroes in padding compress so well that rounding to sectors isn't worth it
        offset = miniso.seek(entry.length, os.SEEK_CUR)
        skipped += entry.length

    for chunk in _all_chunks(miniso):
        xzw.write(chunk)

    xzpacked = xzw.finish()
    matches = len(table.entries) + extraneous
    return (
        MinisoData(table=table, digest=digest, xzpacked=xzpacked),
        matches,
        skipped,
        xzw.total_in,
        len(xzpacked),
    )