"""Reading the superblock and tables of an on-disk squashfs image."""

from __future__ import annotations

import io
import logging
import struct
from dataclasses import astuple, dataclass
from enum import IntFlag
from pathlib import PurePosixPath
from typing import Any, Optional

from squashback.errors import (
    CorruptedImageError,
    EntryNotFoundError,
    FieldAssertionError,
    IncompleteDataError,
)
from squashback.inode import BasicDeviceSpecialFile, BasicSymlink, Inode, InodeId
from squashback.kinds import Compressor, Kind
from squashback.metadata import read_block
from squashback.reader import OffsetReader, SquashfsReader

log = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 0x20000
"""128 KiB."""

DEFAULT_PAD_LEN = 0x1000
"""4 KiB."""

DEFAULT_BLOCK_LOG = 0x11
"""log2 of 128 KiB."""

MAX_BLOCK_SIZE = 0x10_0000
"""1 MiB."""

MIN_BLOCK_SIZE = 0x1000
"""4 KiB."""

NOT_SET = 0xFFFF_FFFF_FFFF_FFFF

SUPERBLOCK_SIZE = 96


class Flags(IntFlag):
    """Bits of the superblock ``flags`` field."""

    INODES_STORED_UNCOMPRESSED = 0b0000_0000_0000_0001
    DATA_BLOCK_STORED_UNCOMPRESSED = 0b0000_0000_0000_0010
    UNUSED = 0b0000_0000_0000_0100
    FRAGMENTS_STORED_UNCOMPRESSED = 0b0000_0000_0000_1000
    FRAGMENTS_ARE_NOT_USED = 0b0000_0000_0001_0000
    FRAGMENTS_ARE_ALWAYS_GENERATED = 0b0000_0000_0010_0000
    DATA_HAS_BEEN_DEDUPLICATED = 0b0000_0000_0100_0000
    NFS_EXPORT_TABLE_EXISTS = 0b0000_0000_1000_0000
    XATTRS_ARE_STORED_UNCOMPRESSED = 0b0000_0001_0000_0000
    NO_XATTRS_IN_ARCHIVE = 0b0000_0010_0000_0000
    COMPRESSOR_OPTIONS_ARE_PRESENT = 0b0000_0100_0000_0000


@dataclass(frozen=True)
class SuperBlock:
    """The image header, holding its sizes and the locations of every table."""

    magic: bytes
    inode_count: int
    mod_time: int
    block_size: int
    frag_count: int
    compressor: Compressor
    block_log: int
    flags: int
    id_count: int
    version_major: int
    version_minor: int
    root_inode: int
    bytes_used: int
    id_table: int
    xattr_table: int
    inode_table: int
    dir_table: int
    frag_table: int
    export_table: int

    _FORMAT = "4sIIIIHHHHHHQQQQQQQQ"

    @classmethod
    def new(cls, compressor, kind):
        """An empty superblock for ``kind`` using ``compressor``."""
        return cls(
            magic=kind.magic,
            inode_count=0,
            mod_time=0,
            block_size=DEFAULT_BLOCK_SIZE,
            frag_count=0,
            compressor=Compressor(compressor),
            block_log=DEFAULT_BLOCK_LOG,
            flags=0,
            id_count=0,
            version_major=kind.version_major,
            version_minor=kind.version_minor,
            root_inode=0,
            bytes_used=0,
            id_table=0,
            xattr_table=NOT_SET,
            inode_table=0,
            dir_table=0,
            frag_table=NOT_SET,
            export_table=NOT_SET,
        )

    def pack(self, endian):
        """Encode the superblock as its 96 on-disk bytes."""
        return struct.pack(endian.prefix + self._FORMAT, *astuple(self))

    @classmethod
    def unpack(cls, data, kind):
        """Decode a superblock, checking magic and version against ``kind``."""
        st = struct.Struct(kind.type_endian.prefix + cls._FORMAT)
        if len(data) < st.size:
            raise IncompleteDataError(f"need {st.size} bytes for a superblock, got {len(data)}")
        fields = list(st.unpack_from(data))
        if fields[0] != kind.magic:
            raise FieldAssertionError(f"magic {fields[0]!r} does not match {kind.magic!r}")
        try:
            fields[5] = Compressor(fields[5])
        except ValueError:
            raise CorruptedImageError(f"unknown compressor id {fields[5]}") from None
        block = cls(*fields)
        if block.version_major != kind.version_major:
            raise FieldAssertionError(
                f"major version {block.version_major} does not match {kind.version_major}"
            )
        if block.version_minor != kind.version_minor:
            raise FieldAssertionError(
                f"minor version {block.version_minor} does not match {kind.version_minor}"
            )
        return block

    def _has(self, flag):
        return bool(self.flags & flag)

    def inodes_uncompressed(self):
        return self._has(Flags.INODES_STORED_UNCOMPRESSED)

    def data_block_stored_uncompressed(self):
        return self._has(Flags.DATA_BLOCK_STORED_UNCOMPRESSED)

    def fragments_stored_uncompressed(self):
        return self._has(Flags.FRAGMENTS_STORED_UNCOMPRESSED)

    def fragments_are_not_used(self):
        return self._has(Flags.FRAGMENTS_ARE_NOT_USED)

    def fragments_are_always_generated(self):
        return self._has(Flags.FRAGMENTS_ARE_ALWAYS_GENERATED)

    def data_has_been_duplicated(self):
        return self._has(Flags.DATA_HAS_BEEN_DEDUPLICATED)

    def nfs_export_table_exists(self):
        return self._has(Flags.NFS_EXPORT_TABLE_EXISTS)

    def xattrs_are_stored_uncompressed(self):
        return self._has(Flags.XATTRS_ARE_STORED_UNCOMPRESSED)

    def no_xattrs_in_archive(self):
        return self._has(Flags.NO_XATTRS_IN_ARCHIVE)

    def compressor_options_are_present(self):
        return self._has(Flags.COMPRESSOR_OPTIONS_ARE_PRESENT)


_FLAG_MESSAGES = [
    (SuperBlock.inodes_uncompressed, "inodes uncompressed"),
    (SuperBlock.data_block_stored_uncompressed, "data blocks stored uncompressed"),
    (SuperBlock.fragments_stored_uncompressed, "fragments stored uncompressed"),
    (SuperBlock.fragments_are_not_used, "fragments are not used"),
    (SuperBlock.fragments_are_always_generated, "fragments are always generated"),
    (SuperBlock.data_has_been_duplicated, "data has been duplicated"),
    (SuperBlock.nfs_export_table_exists, "nfs export table exists"),
    (SuperBlock.xattrs_are_stored_uncompressed, "xattrs are stored uncompressed"),
    (SuperBlock.compressor_options_are_present, "compressor options are present"),
]


def _check_within(name, value, total_length, optional=False):
    if optional and value == NOT_SET:
        return
    if value > total_length:
        log.error("corrupted or invalid %s", name)
        raise CorruptedImageError(f"corrupted or invalid {name}")


@dataclass
class Squashfs:
    """An image with its superblock and tables read, file data still on disk.

    ``compression_options`` holds the raw bytes of the compressor options block
    when the image carries one.
    """

    kind: Kind
    superblock: SuperBlock
    compression_options: Optional[bytes]
    inodes: dict
    root_inode: Inode
    dir_blocks: list
    fragment_table_ptr: Optional[int]
    export_table_ptr: Optional[int]
    id: list
    file: Any

    @staticmethod
    def superblock_and_compression_options(reader, kind):
        """Read the superblock and any compression options at the reader's position."""
        raw = reader.read(SUPERBLOCK_SIZE)
        if raw is None or len(raw) < SUPERBLOCK_SIZE:
            raise IncompleteDataError("truncated superblock")
        superblock = SuperBlock.unpack(raw, kind)

        block_size = superblock.block_size
        power_of_two = block_size != 0 and block_size & (block_size - 1) == 0
        if not MIN_BLOCK_SIZE <= block_size <= MAX_BLOCK_SIZE or not power_of_two:
            log.error("block_size(%#x) invalid", block_size)
            raise CorruptedImageError(f"invalid block size {block_size:#x}")
        if block_size.bit_length() - 1 != superblock.block_log:
            log.error("block size log2 does not match block_log")
            raise CorruptedImageError("block size does not match block_log")

        options = None
        if (
            superblock.compressor is not Compressor.NONE
            and superblock.compressor_options_are_present()
        ):
            log.info("reading compression options")
            options = read_block(reader, superblock.compressor, kind)
        return superblock, options

    @classmethod
    def from_reader(cls, reader):
        """Read an image that starts at the beginning of ``reader``."""
        return cls.from_reader_with_offset(reader, 0)

    @classmethod
    def from_reader_with_offset(cls, reader, offset):
        """Read a default little-endian v4.0 image starting ``offset`` bytes in."""
        return cls.from_reader_with_offset_and_kind(reader, offset, Kind())

    @classmethod
    def from_reader_with_offset_and_kind(cls, reader, offset, kind):
        """Read an image of ``kind`` starting ``offset`` bytes into ``reader``."""
        stream = reader if offset == 0 else OffsetReader(reader, offset)
        superblock, options = cls.superblock_and_compression_options(stream, kind)

        total_length = stream.seek(0, io.SEEK_END)
        stream.seek(0)
        _check_within("bytes_used", superblock.bytes_used, total_length)
        _check_within("id_table", superblock.id_table, total_length)
        _check_within("inode_table", superblock.inode_table, total_length)
        _check_within("dir_table", superblock.dir_table, total_length)
        _check_within("xattr_table", superblock.xattr_table, total_length, optional=True)
        _check_within("frag_table", superblock.frag_table, total_length, optional=True)
        _check_within("export_table", superblock.export_table, total_length, optional=True)

        tables = SquashfsReader(stream)
        log.info("reading inodes")
        inodes = tables.inodes(superblock, kind)
        log.info("reading root inode")
        root_inode = tables.root_inode(superblock, kind)

        fragment_ptr = None
        if superblock.frag_count != 0 and superblock.frag_table != NOT_SET:
            fragment_ptr = tables.table_pointer(superblock.frag_table, kind)
        export_ptr = None
        if superblock.nfs_export_table_exists() and superblock.export_table != NOT_SET:
            export_ptr = tables.table_pointer(superblock.export_table, kind)

        log.info("reading ids")
        id_ptr, ids = tables.id_table(superblock, kind)

        if fragment_ptr is not None:
            last_dir_position = fragment_ptr
        elif export_ptr is not None:
            last_dir_position = export_ptr
        else:
            last_dir_position = id_ptr

        log.info("reading dirs")
        dir_blocks = tables.dir_blocks(superblock, last_dir_position, kind)

        for check, message in _FLAG_MESSAGES:
            if check(superblock):
                log.info("flag: %s", message)
        log.info("successful read")

        return cls(
            kind=kind,
            superblock=superblock,
            compression_options=options,
            inodes=inodes,
            root_inode=root_inode,
            dir_blocks=dir_blocks,
            fragment_table_ptr=fragment_ptr,
            export_table_ptr=export_ptr,
            id=ids,
            file=stream,
        )

    def symlink(self, inode):
        """The target path of a symlink inode."""
        if inode.id is InodeId.BASIC_SYMLINK and isinstance(inode.inner, BasicSymlink):
            return PurePosixPath(inode.inner.target_path.decode("utf-8", "surrogateescape"))
        log.error("symlink not found")
        raise EntryNotFoundError()

    def char_device(self, inode):
        """The device number of a character device inode."""
        return self._device_number(inode, InodeId.BASIC_CHARACTER_DEVICE, "char dev")

    def block_device(self, inode):
        """The device number of a block device inode."""
        return self._device_number(inode, InodeId.BASIC_BLOCK_DEVICE, "block dev")

    @staticmethod
    def _device_number(inode, inode_id, label):
        if inode.id is inode_id and isinstance(inode.inner, BasicDeviceSpecialFile):
            return inode.inner.device_number
        log.error("%s not found", label)
        raise EntryNotFoundError()