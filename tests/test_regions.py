import io

import pytest

from coreinstall.regions import EmbedAreaError, Region, stream_regions

DATA = bytes(range(100))


def test_read_region():
    region = Region.read(io.BytesIO(DATA), 10, 5)
    assert region.offset == 10
    assert region.length == 5
    assert region.contents == DATA[10:15]
    assert region.modified is False


def test_read_out_of_bounds():
    with pytest.raises(EmbedAreaError, match="reading 5 bytes at 98"):
        Region.read(io.BytesIO(DATA), 98, 5)


def test_validate_length_mismatch():
    region = Region(0, 4, b"abc", True)
    with pytest.raises(EmbedAreaError, match="expected region contents length 4, found 3"):
        region.validate()
    with pytest.raises(EmbedAreaError):
        region.write(io.BytesIO(bytearray(DATA)))


def test_write_only_when_modified():
    f = io.BytesIO(bytearray(DATA))
    Region(10, 3, b"xyz", False).write(f)
    assert f.getvalue() == DATA
    Region(10, 3, b"xyz", True).write(f)
    expected = bytearray(DATA)
    expected[10:13] = b"xyz"
    assert f.getvalue() == bytes(expected)


def test_regions_sort_by_offset_then_length():
    a = Region(50, 3, b"aaa")
    b = Region(10, 5, b"bbbbb")
    c = Region(10, 2, b"cc")
    assert sorted([a, b, c]) == [c, b, a]


def test_stream_regions_substitutes_modified():
    r1 = Region(10, 5, b"AAAAA", True)
    r2 = Region(50, 3, b"BBB", True)
    r3 = Region(20, 2, b"ZZ", False)
    out = io.BytesIO()
    stream_regions([r2, r3, r1], io.BytesIO(DATA), out)
    expected = bytearray(DATA)
    expected[10:15] = b"AAAAA"
    expected[50:53] = b"BBB"
    assert out.getvalue() == bytes(expected)
    assert len(out.getvalue()) == len(DATA)


def test_stream_regions_no_modifications_copies_input():
    out = io.BytesIO()
    stream_regions([Region(5, 2, b"QQ", False)], io.BytesIO(DATA), out)
    assert out.getvalue() == DATA


def test_stream_regions_overlap():
    regions = [Region(10, 10, b"a" * 10, True), Region(15, 5, b"b" * 5, True)]
    with pytest.raises(EmbedAreaError, match="precedes current offset 20"):
        stream_regions(regions, io.BytesIO(DATA), io.BytesIO())


def test_stream_regions_past_end():
    with pytest.raises(EmbedAreaError, match="copying bytes from 0 to 200"):
        stream_regions([Region(200, 1, b"x", True)], io.BytesIO(DATA), io.BytesIO())