# squashback

Read the superblock, inode table, directory blocks and id table of
SquashFS 4.0 images from Python, including the big-endian and vendor
variants found in firmware.

## Reading an image

```python
from squashback.squashfs import Squashfs

with open("rootfs.squashfs", "rb") as fh:
    image = Squashfs.from_reader(fh)

    print(image.superblock.block_size, image.superblock.inode_count)
    for number, inode in image.inodes.items():
        print(number, inode.id, inode.header.permissions)
```

`Squashfs.from_reader` reads the superblock, checks that the block size is
a power of two between 4 KiB and 1 MiB that agrees with `block_log`, checks
that every table offset lies inside the stream, and then reads:

- `superblock`: a `SuperBlock`, with flag queries such as
  `nfs_export_table_exists()` and `compressor_options_are_present()`;
- `compression_options`: the raw bytes of the compressor options block, or
  `None`;
- `inodes`: a dict of inode number to `Inode`;
- `root_inode`: the root directory inode;
- `dir_blocks`: `(offset, bytes)` pairs of uncompressed directory metadata;
- `fragment_table_ptr` and `export_table_ptr`: pointers to those tables, or
  `None`;
- `id`: the list of `Id` entries.

An image inside a larger file (a firmware blob, an AppImage) is read from
its offset; positions are then counted from that offset:

```python
image = Squashfs.from_reader_with_offset(fh, 0x2DFE8)
```

`Squashfs.symlink(inode)`, `char_device(inode)` and `block_device(inode)`
return a symlink's target path or a device's number, and raise
`EntryNotFoundError` for an inode of another type.

## Image kinds

The on-disk layout is described by a `Kind`: its magic, the byte order of
its fields, the byte order of metadata lengths, its version, and the
compressor used to unpack blocks. `with_*` methods return new kinds.

```python
from squashback.kinds import Kind, Magic, Endian, DefaultCompressor

big = Kind.from_target("be_v4_0")
custom = (
    Kind.new(DefaultCompressor())
    .with_magic(Magic.BIG)
    .with_all_endian(Endian.BIG)
)
image = Squashfs.from_reader_with_offset_and_kind(fh, 0, big)
```

The recognised targets are `le_v4_0` (the default), `be_v4_0`, and
`avm_be_v4_0` (big-endian fields with little-endian metadata lengths). Any
other name raises `InvalidKindError`.

`DefaultCompressor` handles no compression, gzip (zlib), xz and lzma using
the standard library. To support another algorithm, subclass
`CompressionAction` and implement `compress(data, compressor, block_size)`
and `decompress(data, compressor)`, then pass it to `Kind.new` or
`Kind.new_with_const`.

## Low-level pieces

- `squashback.metadata`: `read_block` reads one metadata block;
  `MetadataWriter` cuts written bytes into 8 KiB blocks, keeping each one
  compressed only when that makes it smaller, and `finalize(out)` writes them.
- `squashback.inode`: the inode records, `read_inode` to parse one, and
  `Inode.to_bytes` to encode one.
- `squashback.ids`: `Id`, with `pack` and `unpack`.
- `squashback.reader`: `SquashfsReader`, which walks the inode, directory
  and lookup tables, and `OffsetReader`, a stream view starting at an offset.
- `squashback.errors`: every failure is raised as a subclass of
  `SquashfsError`, for example `CorruptedImageError` for an image whose
  tables point outside the file, and `IncompleteDataError` for truncated data.

## What it does not do

- It does not build a file tree: directory blocks are returned as bytes,
  not parsed into named entries.
- It does not extract file contents, and does not parse the fragment or
  export tables beyond their pointers.
- It does not write whole images; only metadata blocks and single inodes
  can be encoded.
- `DefaultCompressor` does not support lzo, lz4 or zstd.
- There is no command-line tool.