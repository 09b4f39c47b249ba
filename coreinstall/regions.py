"""Byte regions of an ISO image that can be read, modified and written back."""

from __future__ import annotations

import os
import shutil
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import BinaryIO

_BUFFER_SIZE = 256 * 1024


class EmbedAreaError(Exception):
    """An embed area or region is missing, malformed or out of bounds."""


@dataclass(order=True)
class Region:
    """A run of bytes at a fixed offset; sorted by offset, then length."""

    offset: int
    length: int
    contents: bytes = field(default=b"", repr=False)
    modified: bool = False

    @classmethod
    def read(cls, file: BinaryIO, offset: int, length: int) -> "Region":
        """Read ``length`` bytes at ``offset``, failing if they aren't all there."""
        try:
            file.seek(offset)
        except (OSError, ValueError) as e:
            raise EmbedAreaError(f"seeking to offset {offset}: {e}") from e
        contents = file.read(length)
        if len(contents) != length:
            raise EmbedAreaError(
                f"reading {length} bytes at {offset}: only {len(contents)} available"
            )
        return cls(offset=offset, length=length, contents=contents, modified=False)

    def validate(self) -> None:
        """Check that the contents have the region's length."""
        if self.length != len(self.contents):
            raise EmbedAreaError(
                f"expected region contents length {self.length}, "
                f"found {len(self.contents)}"
            )

    def write(self, file: BinaryIO) -> None:
        """Write the contents back at the region's offset, if modified."""
        self.validate()
        if self.modified:
            file.seek(self.offset)
            file.write(self.contents)


def _copy_exactly_n(src: BinaryIO, dst: BinaryIO, n: int) -> None:
    remaining = n
    while remaining > 0:
        chunk = src.read(min(remaining, _BUFFER_SIZE))
        if not chunk:
            raise EOFError(f"unexpected end of input: {remaining} of {n} bytes missing")
        dst.write(chunk)
        remaining -= len(chunk)


def stream_regions(regions: Iterable[Region], input: BinaryIO, writer: BinaryIO) -> None:
    """Copy ``input`` to ``writer``, substituting the modified regions."""
    input.seek(0)
    modified = sorted(r for r in regions if r.modified)

    cursor = 0
    for region in modified:
        region.validate()
        if region.offset < cursor:
            raise EmbedAreaError(
                f"region starting at {region.offset} precedes current offset {cursor}"
            )
        cursor = region.offset + region.length

    cursor = 0
    for region in modified:
        try:
            _copy_exactly_n(input, writer, region.offset - cursor)
        except EOFError as e:
            raise EmbedAreaError(
                f"copying bytes from {cursor} to {region.offset}: {e}"
            ) from e
        writer.write(region.contents)
        cursor = input.seek(region.length, os.SEEK_CUR)

    shutil.copyfileobj(input, writer, _BUFFER_SIZE)
    flush = getattr(writer, "flush", None)
    if flush is not None:
        flush()