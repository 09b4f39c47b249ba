# coreinstall

`coreinstall` is a Python library for working with CoreOS installation
media. It covers:

- the kernel-argument embed areas of a live ISO and the byte regions they
  occupy;
- packing a minimal ISO against a full ISO and rebuilding it again;
- the osmet data model: mapping file extents to OSTree objects,
  canonicalizing those mappings and writing a disk image with the mapped
  extents skipped;
- small helpers for writing modified live ISO and PXE images.

It uses only the standard library. Python 3.10 or later is required;
extent mapping needs Linux.

## Installation

```
pip install coreinstall
```

## Modules

### `coreinstall.regions`

`Region` is a run of bytes at a fixed offset. `Region.read(file, offset,
length)` reads it and raises `EmbedAreaError` if the bytes are not all
there; `validate()` checks that the contents have the region's length;
`write(file)` writes the contents back only if `modified` is set.
`stream_regions(regions, input, writer)` copies `input` to `writer`,
substituting the modified regions in offset order and raising
`EmbedAreaError` if they overlap.

### `coreinstall.kargs_area`

`KargEmbedAreas.from_system_area(file)` finds the kernel-argument areas
through the header stored in the ISO System Area, returning `None` when
the header's magic is absent. `KargEmbedAreas.build()` checks that every
area holds the same arguments. The `kargs` and `kargs_default` properties
give the current and default arguments; `set_kargs()` stores new arguments
in every area, padded with `#`, and raises `EmbedAreaError` if they do not
fit; `write(file)` writes the modified areas back.

`KargEmbedInfo.from_json()` parses the JSON description of where the areas
live, and `to_padded_json(length)` serializes it padded with spaces to an
exact length. `parse_karg_area()` decodes one area's contents.

### `coreinstall.miniso`

`build_table(full_files, minimal_files)` matches the files of a minimal ISO
(`IsoFile` values keyed by path) with those of the full ISO, dropping
zero-length files and hardlink duplicates. `pack_miniso(miniso, full_files,
minimal_files)` returns a `MinisoData` holding the table, the SHA-256 digest
of the minimal ISO and its xz-compressed remainder, together with the match
count, bytes skipped and bytes written before and after compression.
`MinisoData.serialize()` and `MinisoData.deserialize()` write and read the
data file (capped at 1 MiB); `unxzpack(fulliso, w)` rebuilds the minimal
ISO from the full one and raises `MinisoError` if the digest does not
match. Pass `None` as `w` to verify only.

### `coreinstall.osmet` and `coreinstall.extents`

`Mapping`, `OsmetPartition` and `Osmet` describe a disk image in terms of
extents whose contents are OSTree objects. `canonicalize(mappings)` sorts
mappings by physical offset, drops extents wholly contained in a previous
one and clamps overlapping ones. `write_packed_image(dev, w, partitions)`
copies a device to `w` with all mapped extents skipped and returns the
number of bytes skipped.

`fiemap_path(path)` returns a file's `Extent`s through the `FS_IOC_FIEMAP`
ioctl, raising `ExtentError` for extents that cannot be reused (unaligned,
encoded, delayed, unwritten and so on). `dev_show_fiemap(path)` prints them
as JSON.

### `coreinstall.objects`

```python
from coreinstall.objects import checksum_to_object_path, object_path_to_checksum

path = checksum_to_object_path(bytes(32))   # "00/000...000.file"
object_path_to_checksum(path) == bytes(32)  # True
```

### `coreinstall.liveutil`

`open_live_iso()`, `write_live_iso()` (in place, to standard output with
`-`, or to a new file that never replaces an existing one),
`write_live_pxe()`, `verify_stdout_not_tty()` and `filename()`.

## What this package does not do

There is no command-line program. The package does not download images or
stream metadata, does not read or write osmet files or unpack a disk image
from one, does not parse ISO9660 directory trees or initramfs archives, and
does not run the s390x boot tools. It provides the building blocks listed
above for code that does.

## Running the tests

```
pip install -e ".[test]"
pytest
```