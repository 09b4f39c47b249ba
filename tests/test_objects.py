from pathlib import Path

import pytest

from coreinstall.objects import checksum_to_object_path, object_path_to_checksum


def test_checksum_to_object_path_all_zeros():
    assert (
        checksum_to_object_path(bytes(32))
        == "00/00000000000000000000000000000000000000000000000000000000000000.file"
    )


def test_checksum_to_object_path_not_all_zeros():
    chksum = bytearray(32)
    chksum[0] = 0xFF
    chksum[1] = 0xFE
    chksum[31] = 0xFD
    assert (
        checksum_to_object_path(bytes(chksum))
        == "ff/fe0000000000000000000000000000000000000000000000000000000000fd.file"
    )


def test_object_path_to_checksum_from_full_path():
    path = Path(
        "/repo/objects/ff/fe0000000000000000000000000000000000000000000000000000000000fd.file"
    )
    chksum = object_path_to_checksum(path)
    assert len(chksum) == 32
    assert chksum[0] == 0xFF
    assert chksum[1] == 0xFE
    assert chksum[31] == 0xFD
    assert chksum[2:31] == bytes(29)


@pytest.mark.parametrize(
    "digest",
    [bytes(32), bytes(range(32)), bytes(range(224, 256)), b"\xab" * 32],
)
def test_round_trip(digest):
    assert object_path_to_checksum(checksum_to_object_path(digest)) == digest


@pytest.mark.parametrize(
    "path",
    [
        "abc/fe0000000000000000000000000000000000000000000000000000000000fd.file",
        "ff/fe00.file",
        "ff/zz0000000000000000000000000000000000000000000000000000000000fd.file",
        "gg/fe0000000000000000000000000000000000000000000000000000000000fd.file",
    ],
)
def test_malformed_paths(path):
    with pytest.raises(ValueError):
        object_path_to_checksum(path)


def test_wrong_digest_length():
    with pytest.raises(ValueError):
        checksum_to_object_path(bytes(31))