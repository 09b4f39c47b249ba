import io
import json
import struct

import pytest

from coreinstall.kargs_area import (
    KargEmbedAreas,
    KargEmbedInfo,
    parse_karg_area,
)
from coreinstall.regions import EmbedAreaError, Region

DEFAULT_OFFSET = 1000
AREA_OFFSETS = (2000, 3000)
LENGTH = 64


def _area(text: bytes, length: int = LENGTH) -> bytes:
    data = text + b"\n"
    return data + b"#" * (length - len(data))


def make_image(
    default=b"quiet",
    kargs=(b"console=ttyS0", b"console=ttyS0"),
    length=LENGTH,
    magic=b"coreKarg",
):
    buf = bytearray(40000)
    buf[DEFAULT_OFFSET:DEFAULT_OFFSET + length] = _area(default, length)
    for offset, text in zip(AREA_OFFSETS, kargs):
        buf[offset:offset + length] = _area(text, length)
    header = magic + struct.pack("<QQ", length, DEFAULT_OFFSET)
    header += b"".join(struct.pack("<Q", o) for o in AREA_OFFSETS)
    buf[32672:32672 + len(header)] = header
    return io.BytesIO(bytes(buf))


def test_parse_karg_area_strips_padding():
    assert parse_karg_area(b"foo bar\n#######") == "foo bar"


def test_parse_karg_area_invalid_utf8():
    with pytest.raises(EmbedAreaError):
        parse_karg_area(b"\xff\xfe###")


def test_from_system_area_reads_header():
    areas = KargEmbedAreas.from_system_area(make_image())
    assert areas.length == LENGTH
    assert areas.default == "quiet"
    assert areas.args == "console=ttyS0"
    assert [r.offset for r in areas.regions] == list(AREA_OFFSETS)
    assert all(r.length == LENGTH for r in areas.regions)


def test_from_system_area_without_magic():
    assert KargEmbedAreas.from_system_area(make_image(magic=b"\0" * 8)) is None


def test_from_system_area_length_too_large():
    with pytest.raises(EmbedAreaError):
        KargEmbedAreas.from_system_area(make_image(length=4096))


def test_from_system_area_mismatched_kargs():
    image = make_image(kargs=(b"a=1", b"a=2"))
    with pytest.raises(EmbedAreaError, match="don't match"):
        KargEmbedAreas.from_system_area(image)


def test_build_requires_regions():
    with pytest.raises(EmbedAreaError):
        KargEmbedAreas.build(LENGTH, "quiet", [])


def test_set_kargs_and_write_round_trip():
    image = make_image()
    areas = KargEmbedAreas.from_system_area(image)
    areas.set_kargs("  console=tty0 foo=bar  ")
    assert areas.kargs == "console=tty0 foo=bar"
    assert all(r.modified and len(r.contents) == LENGTH for r in areas.regions)
    areas.write(image)

    reread = KargEmbedAreas.from_system_area(image)
    assert reread.args == "console=tty0 foo=bar"
    assert reread.default == "quiet"
    region = Region.read(image, AREA_OFFSETS[0], LENGTH)
    assert region.contents.startswith(b"console=tty0 foo=bar\n#")


def test_set_kargs_too_large():
    areas = KargEmbedAreas.from_system_area(make_image())
    with pytest.raises(EmbedAreaError, match="too large"):
        areas.set_kargs("x" * LENGTH)
    assert areas.args == "console=ttyS0"


def test_info_json_round_trip():
    info = KargEmbedInfo(
        default="quiet", files=[("isolinux/isolinux.cfg", 10)], size=1139
    )
    padded = info.to_padded_json(500)
    assert len(padded) == 500
    assert padded.rstrip(b" ").endswith(b"}")
    assert KargEmbedInfo.from_json(padded) == info


def test_info_json_does_not_fit():
    info = KargEmbedInfo(default="quiet", files=[], size=1139)
    with pytest.raises(EmbedAreaError, match="does not fit"):
        info.to_padded_json(10)


def test_info_json_missing_field():
    with pytest.raises(EmbedAreaError):
        KargEmbedInfo.from_json(json.dumps({"default": "x", "size": 1}))