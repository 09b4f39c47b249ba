"""Helpers for reading and writing live ISO and PXE images."""

from __future__ import annotations

import contextlib
import os
import shutil
import sys
import tempfile
from pathlib import Path, PurePath
from typing import BinaryIO

_BUFFER_SIZE = 256 * 1024


def open_live_iso(input_path, writable: bool = False) -> BinaryIO:
    """Open a live ISO for reading, or for reading and writing when modifying in place."""
    return open(input_path, "r+b" if writable else "rb")


def verify_stdout_not_tty() -> None:
    """Refuse to continue if binary output would go to a terminal."""
    if sys.stdout.isatty():
        raise RuntimeError("Refusing to write binary data to terminal")


def _persist_noclobber(tmp: str, output_path: str) -> None:
    try:
        os.link(tmp, output_path)
    finally:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp)


def write_live_iso(config, input: BinaryIO, output_path: str | None) -> None:
    """Write a modified ISO configuration.

    With no output path the input, opened writable, is modified in place;
    with ``-`` the modified image is streamed to standard output; otherwise
    a new file is created, never replacing an existing one.
    """
    if output_path is None:
        config.write(input)
        input.flush()
        return

    if output_path == "-":
        verify_stdout_not_tty()
        out = sys.stdout.buffer
        config.stream(input, out)
        out.flush()
        return

    output_dir = Path(output_path).parent
    fd, tmp = tempfile.mkstemp(prefix=".coreinstall-temp-", dir=output_dir)
    try:
        with os.fdopen(fd, "w+b") as out:
            input.seek(0)
            shutil.copyfileobj(input, out, _BUFFER_SIZE)
            config.write(out)
            out.flush()
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp)
        raise
    _persist_noclobber(tmp, output_path)


def write_live_pxe(data: bytes, output_path: str | None) -> None:
    """Write an initrd image to a file, or to standard output if no path is given.

    When writing to standard output the caller is expected to have called
    verify_stdout_not_tty().
    """
    if output_path is not None:
        with open(output_path, "wb") as f:
            f.write(data)
        return
    out = sys.stdout.buffer
    out.write(data)
    out.flush()


def filename(path) -> str:
    """Return the final component of a path, raising ValueError if there is none."""
    name = PurePath(os.fspath(path)).name
    if name in ("", ".."):
        raise ValueError(f"missing filename in {path}")
    return name