"""Kernel argument embed areas of a live ISO image."""

from __future__ import annotations

import json
import struct
from dataclasses import dataclass, field
from typing import Any, BinaryIO

from coreinstall.regions import EmbedAreaError, Region

COREOS_INITRD_HEADER_SIZE = 24
COREOS_KARG_EMBED_AREA_HEADER_MAGIC = b"coreKarg"
COREOS_KARG_EMBED_AREA_HEADER_SIZE = 72
COREOS_KARG_EMBED_AREA_HEADER_MAX_OFFSETS = 6
COREOS_KARG_EMBED_AREA_MAX_SIZE = 2048
COREOS_KARG_EMBED_INFO_PATH = "COREOS/KARGS.JSO"

# The ISO 9660 System Area is 32 KiB; the karg header sits just before the
# initrd embed area header at its end.
SYSTEM_AREA_SIZE = 32768
KARG_HEADER_OFFSET = (
    SYSTEM_AREA_SIZE - COREOS_INITRD_HEADER_SIZE - COREOS_KARG_EMBED_AREA_HEADER_SIZE
)


def parse_karg_area(contents: bytes) -> str:
    """Decode the kargs stored in an embed area, dropping padding and whitespace."""
    try:
        text = bytes(contents).decode("utf-8")
    except UnicodeDecodeError as e:
        raise EmbedAreaError(f"invalid UTF-8 in karg area: {e}") from e
    return text.rstrip("#").strip()


@dataclass
class KargEmbedAreas:
    """The writable karg areas of an ISO, all holding the same arguments."""

    length: int
    default: str
    regions: list[Region] = field(default_factory=list)
    args: str = ""

    @classmethod
    def build(cls, length: int, default: str, regions: list[Region]) -> "KargEmbedAreas":
        """Build from read regions, checking that all of them agree."""
        if not regions:
            raise EmbedAreaError("No karg embed areas found; corrupted CoreOS ISO image.")
        args = parse_karg_area(regions[0].contents)
        for region in regions[1:]:
            current = parse_karg_area(region.contents)
            if current != args:
                raise EmbedAreaError(
                    f"kargs don't match at all offsets! (expected '{args}', "
                    f"but offset {region.offset} has: '{current}')"
                )
        return cls(length=length, default=default, regions=list(regions), args=args)

    @classmethod
    def from_system_area(cls, file: BinaryIO) -> "KargEmbedAreas | None":
        """Locate karg areas through the header in the ISO System Area.

        Returns None if the header's magic is absent.  The header holds the
        magic, the area length, the offset of the default kargs and up to six
        offsets of writable areas, all as little-endian 64-bit values.
        """
        try:
            header = Region.read(
                file, KARG_HEADER_OFFSET, COREOS_KARG_EMBED_AREA_HEADER_SIZE
            ).contents
        except EmbedAreaError as e:
            raise EmbedAreaError(f"reading karg embed header: {e}") from e

        magic_len = len(COREOS_KARG_EMBED_AREA_HEADER_MAGIC)
        if header[:magic_len] != COREOS_KARG_EMBED_AREA_HEADER_MAGIC:
            return None
        values = struct.unpack_from(
            f"<{2 + COREOS_KARG_EMBED_AREA_HEADER_MAX_OFFSETS}Q", header, magic_len
        )
        length, default_offset, *offsets = values
        if length > COREOS_KARG_EMBED_AREA_MAX_SIZE:
            raise EmbedAreaError(
                f"karg embed area length larger than {COREOS_KARG_EMBED_AREA_MAX_SIZE} "
                f"(found {length})"
            )

        try:
            default_region = Region.read(file, default_offset, length)
        except EmbedAreaError as e:
            raise EmbedAreaError(f"reading default kargs: {e}") from e
        default = parse_karg_area(default_region.contents)

        regions = []
        for offset in offsets:
            if offset == 0:
                break
            try:
                regions.append(Region.read(file, offset, length))
            except EmbedAreaError as e:
                raise EmbedAreaError(f"reading kargs embed area: {e}") from e

        return cls.build(length, default, regions)

    @property
    def kargs(self) -> str:
        return self.args

    @property
    def kargs_default(self) -> str:
        return self.default

    def set_kargs(self, kargs: str) -> None:
        """Store new kargs in every area, padded with ``#``."""
        unformatted = kargs.strip()
        formatted = (unformatted + "\n").encode("utf-8")
        if len(formatted) > self.length:
            raise EmbedAreaError(
                f"kargs too large for area: {len(formatted)} vs {self.length}"
            )
        contents = formatted + b"#" * (self.length - len(formatted))
        for region in self.regions:
            region.contents = contents
            region.modified = True
        self.args = unformatted

    def write(self, file: BinaryIO) -> None:
        """Write modified areas back to the file."""
        for region in self.regions:
            region.write(file)


def _require(value: Any, kind: type, what: str) -> Any:
    if not isinstance(value, kind) or isinstance(value, bool):
        raise EmbedAreaError(f"decoding kargs embed area info: invalid {what}")
    return value


@dataclass
class KargEmbedInfo:
    """Contents of the kargs JSON file describing where karg areas live.

    ``files`` holds (path, offset) pairs.
    """

    default: str
    files: list[tuple[str, int]]
    size: int

    @classmethod
    def from_json(cls, data) -> "KargEmbedInfo":
        """Parse the JSON description."""
        try:
            doc = json.loads(data)
        except ValueError as e:
            raise EmbedAreaError(f"decoding kargs embed area info: {e}") from e
        _require(doc, dict, "document")
        for key in ("default", "files", "size"):
            if key not in doc:
                raise EmbedAreaError(f"decoding kargs embed area info: missing field `{key}`")
        default = _require(doc["default"], str, "default")
        size = _require(doc["size"], int, "size")
        if size < 0:
            raise EmbedAreaError("decoding kargs embed area info: invalid size")
        files = []
        for entry in _require(doc["files"], list, "files"):
            _require(entry, dict, "file entry")
            path = _require(entry.get("path"), str, "file path")
            offset = _require(entry.get("offset"), int, "file offset")
            if offset < 0:
                raise EmbedAreaError("decoding kargs embed area info: invalid file offset")
            files.append((path, offset))
        return cls(default=default, files=files, size=size)

    def to_padded_json(self, length: int) -> bytes:
        """Serialize as pretty JSON, padded with spaces to exactly ``length`` bytes."""
        doc = {
            "default": self.default,
            "files": [{"path": p, "offset": o} for p, o in self.files],
            "size": self.size,
        }
        encoded = json.dumps(doc, indent=2, ensure_ascii=False).encode("utf-8")
        if len(encoded) > length:
            raise EmbedAreaError(
                f"New version of {COREOS_KARG_EMBED_INFO_PATH} does not fit in space "
                f"({len(encoded)} vs {length})"
            )
        return encoded + b" " * (length - len(encoded))