"""Osmet data model, extent canonicalization and packed image writing.

Terms used here:

- the "unpacked" image is the full metal image as read from a block device
- extents for which we already have a mapping are "skipped"
- the "packed" image is the metal image with all mapped extents skipped
"""

from __future__ import annotations

import json
import os
import shutil
import sys
from dataclasses import asdict, dataclass, field
from typing import BinaryIO

from coreinstall.extents import Extent, fiemap_path

_BUFFER_SIZE = 8192


@dataclass
class Mapping:
    """An extent on disk whose contents are those of an OSTree object."""

    extent: Extent
    object: bytes


@dataclass
class OsmetPartition:
    """A partition's byte range on disk and the mappings found inside it."""

    start_offset: int
    end_offset: int
    mappings: list[Mapping] = field(default_factory=list)


@dataclass
class Osmet:
    """Everything needed to rebuild a disk image from a packed image."""

    partitions: list[OsmetPartition]
    checksum: bytes
    size: int


def _copy_exactly_n(src: BinaryIO, dst: BinaryIO, n: int) -> int:
    """Copy exactly ``n`` bytes from ``src`` to ``dst``."""
    remaining = n
    while remaining > 0:
        chunk = src.read(min(remaining, _BUFFER_SIZE))
        if not chunk:
            raise EOFError(f"unexpected end of input: {remaining} of {n} bytes missing")
        dst.write(chunk)
        remaining -= len(chunk)
    return n


def canonicalize(mappings: list[Mapping]) -> None:
    """Sort mappings by physical offset and remove or clamp overlaps in place."""
    if not mappings:
        # nothing to do, but this is highly suspicious
        print("No mappings to canonicalize", file=sys.stderr)
        return

    mappings.sort(key=lambda m: (m.extent.physical, -m.extent.length))

    kept = [mappings[0]]
    dropped = 0
    clamped = 0
    last_end = mappings[0].extent.physical + mappings[0].extent.length
    for mapping in mappings[1:]:
        extent = mapping.extent
        end = extent.physical + extent.length
        if end <= last_end:
            # wholly contained in the previous extent
            dropped += 1
            continue
        if extent.physical < last_end:
            n = last_end - extent.physical
            extent.logical += n
            extent.physical += n
            extent.length -= n
            clamped += 1
        last_end = end
        kept.append(mapping)

    print(f"Duplicate extents dropped: {dropped}", file=sys.stderr)
    print(f"Overlapping extents clamped: {clamped}", file=sys.stderr)
    mappings[:] = kept


def write_packed_image_partition(
    dev: BinaryIO, w: BinaryIO, partition: OsmetPartition
) -> int:
    """Write one partition with its mapped extents skipped; return bytes skipped.

    ``dev`` must be positioned at the partition's start offset.
    """
    skipped = 0
    cursor = partition.start_offset
    for mapping in partition.mappings:
        extent_start = mapping.extent.physical + partition.start_offset
        if extent_start < cursor:
            raise ValueError(
                f"extent at {extent_start} precedes current offset {cursor}"
            )
        if cursor < extent_start:
            try:
                cursor += _copy_exactly_n(dev, w, extent_start - cursor)
            except EOFError as e:
                raise EOFError(f"while writing in between extents: {e}") from e
        # the space-saving step: skip over the extent we have a mapping for
        dev.seek(mapping.extent.length, os.SEEK_CUR)
        skipped += mapping.extent.length
        cursor += mapping.extent.length

    if cursor > partition.end_offset:
        raise ValueError(
            f"extents end at {cursor}, past partition end {partition.end_offset}"
        )
    try:
        _copy_exactly_n(dev, w, partition.end_offset - cursor)
    except EOFError as e:
        raise EOFError(f"copying remainder of partition: {e}") from e
    return skipped


def write_packed_image(
    dev: BinaryIO, w: BinaryIO, partitions: list[OsmetPartition]
) -> int:
    """Write the whole device with mapped extents skipped; return bytes skipped."""
    cursor = 0
    skipped = 0
    for i, partition in enumerate(partitions):
        if partition.start_offset < cursor:
            raise ValueError(
                f"partition {i} starts at {partition.start_offset}, "
                f"before current offset {cursor}"
            )
        try:
            _copy_exactly_n(dev, w, partition.start_offset - cursor)
            skipped += write_packed_image_partition(dev, w, partition)
        except EOFError as e:
            raise EOFError(f"packing partition {i}: {e}") from e
        cursor = partition.end_offset

    shutil.copyfileobj(dev, w)
    return skipped


def dev_show_fiemap(path) -> None:
    """Print the extents of a file as pretty JSON on standard output."""
    extents = fiemap_path(path)
    output = {"extents": [asdict(e) for e in extents]}
    sys.stdout.write(json.dumps(output, indent=2))
    sys.stdout.write("\n")
    sys.stdout.flush()