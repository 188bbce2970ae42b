"""Index nodes: the on-disk records describing files and directories."""

from __future__ import annotations

import struct
from dataclasses import astuple, dataclass, field
from enum import IntEnum
from typing import ClassVar, Union

from squashback.errors import CorruptedImageError, FieldAssertionError, IncompleteDataError

TIB1 = 0x100_0000_0000
NO_FRAGMENT = 0xFFFF_FFFF


def _require(condition, message):
    if not condition:
        raise FieldAssertionError(message)


class _Cursor:
    """Sequential reader over a byte buffer in a fixed byte order."""

    def __init__(self, data, endian):
        self._view = memoryview(data)
        self._prefix = endian.prefix
        self.pos = 0

    def _claim(self, size):
        end = self.pos + size
        if end > len(self._view):
            raise IncompleteDataError(
                f"need {size} bytes at offset {self.pos}, have {len(self._view) - self.pos}"
            )
        start, self.pos = self.pos, end
        return start

    def unpack(self, fmt):
        st = struct.Struct(self._prefix + fmt)
        start = self._claim(st.size)
        return st.unpack_from(self._view, start)

    def u32_array(self, count):
        start = self._claim(count * 4)
        return list(struct.unpack_from(f"{self._prefix}{count}I", self._view, start))

    def take(self, size):
        start = self._claim(size)
        return bytes(self._view[start : start + size])


def block_count(block_size, block_log, fragment, file_size):
    """Number of full data blocks a file of ``file_size`` bytes occupies."""
    if fragment == NO_FRAGMENT:
        return (file_size + block_size - 1) >> block_log
    return file_size >> block_log


class InodeId(IntEnum):
    BASIC_DIRECTORY = 1
    BASIC_FILE = 2
    BASIC_SYMLINK = 3
    BASIC_BLOCK_DEVICE = 4
    BASIC_CHARACTER_DEVICE = 5
    EXTENDED_DIRECTORY = 8
    EXTENDED_FILE = 9

    def into_base_type(self):
        """Map extended variants onto their basic counterparts."""
        if self is InodeId.EXTENDED_DIRECTORY:
            return InodeId.BASIC_DIRECTORY
        if self is InodeId.EXTENDED_FILE:
            return InodeId.BASIC_FILE
        return self


@dataclass(frozen=True)
class InodeHeader:
    permissions: int = 0
    uid: int = 0
    gid: int = 0
    mtime: int = 0
    inode_number: int = 0

    _FORMAT: ClassVar[str] = "HHHII"

    @classmethod
    def _read(cls, cur):
        return cls(*cur.unpack(cls._FORMAT))

    def _pack(self, endian):
        return struct.pack(endian.prefix + self._FORMAT, *astuple(self))


@dataclass
class DirectoryIndex:
    index: int
    start: int
    name: bytes

    @property
    def name_size(self):
        return len(self.name) - 1

    @classmethod
    def _read(cls, cur):
        index, start, name_size = cur.unpack("III")
        return cls(index, start, cur.take(name_size + 1))

    def _pack(self, endian):
        return struct.pack(endian.prefix + "III", self.index, self.start, self.name_size) + self.name


@dataclass
class BasicDirectory:
    block_index: int
    link_count: int
    file_size: int
    block_offset: int
    parent_inode: int

    _FORMAT: ClassVar[str] = "IIHHI"

    @classmethod
    def _read(cls, cur):
        return cls(*cur.unpack(cls._FORMAT))

    def _pack(self, endian):
        return struct.pack(endian.prefix + self._FORMAT, *astuple(self))


@dataclass
class ExtendedDirectory:
    link_count: int
    file_size: int
    block_index: int
    parent_inode: int
    block_offset: int
    xattr_index: int
    dir_index: list = field(default_factory=list)

    _FORMAT: ClassVar[str] = "IIIIHHI"

    @property
    def index_count(self):
        return len(self.dir_index)

    @classmethod
    def _read(cls, cur):
        link, size, block, parent, count, offset, xattr = cur.unpack(cls._FORMAT)
        _require(count < 256, f"directory index count {count} must be below 256")
        entries = [DirectoryIndex._read(cur) for _ in range(count)]
        return cls(link, size, block, parent, offset, xattr, entries)

    def _pack(self, endian):
        _require(self.index_count < 256, "directory index count must be below 256")
        head = struct.pack(
            endian.prefix + self._FORMAT,
            self.link_count,
            self.file_size,
            self.block_index,
            self.parent_inode,
            self.index_count,
            self.block_offset,
            self.xattr_index,
        )
        return head + b"".join(entry._pack(endian) for entry in self.dir_index)


@dataclass
class BasicFile:
    blocks_start: int
    frag_index: int
    block_offset: int
    file_size: int
    block_sizes: list = field(default_factory=list)

    @classmethod
    def from_extended(cls, ex_file):
        """Narrow an extended file to the basic layout, truncating to 32 bits."""
        return cls(
            blocks_start=ex_file.blocks_start & 0xFFFF_FFFF,
            frag_index=ex_file.frag_index,
            block_offset=ex_file.block_offset,
            file_size=ex_file.file_size & 0xFFFF_FFFF,
            block_sizes=list(ex_file.block_sizes),
        )

    @classmethod
    def _read(cls, cur, block_size, block_log):
        start, frag, offset, size = cur.unpack("IIII")
        _require(size < TIB1, "file size must be below 1 TiB")
        count = block_count(block_size, block_log, frag, size)
        return cls(start, frag, offset, size, cur.u32_array(count))

    def _pack(self, endian):
        head = struct.pack(
            endian.prefix + "IIII",
            self.blocks_start,
            self.frag_index,
            self.block_offset,
            self.file_size,
        )
        return head + struct.pack(f"{endian.prefix}{len(self.block_sizes)}I", *self.block_sizes)


@dataclass
class ExtendedFile:
    blocks_start: int
    file_size: int
    sparse: int
    link_count: int
    frag_index: int
    block_offset: int
    xattr_index: int
    block_sizes: list = field(default_factory=list)

    _FORMAT: ClassVar[str] = "QQQIIII"

    @classmethod
    def _read(cls, cur, bytes_used, block_size, block_log):
        start, size, sparse, link, frag, offset, xattr = cur.unpack(cls._FORMAT)
        _require(size < TIB1 and size < bytes_used, "file size must be below 1 TiB and bytes used")
        count = block_count(block_size, block_log, frag, size)
        return cls(start, size, sparse, link, frag, offset, xattr, cur.u32_array(count))

    def _pack(self, endian):
        _require(self.file_size < TIB1, "file size must be below 1 TiB")
        head = struct.pack(
            endian.prefix + self._FORMAT,
            self.blocks_start,
            self.file_size,
            self.sparse,
            self.link_count,
            self.frag_index,
            self.block_offset,
            self.xattr_index,
        )
        return head + struct.pack(f"{endian.prefix}{len(self.block_sizes)}I", *self.block_sizes)


@dataclass
class BasicSymlink:
    link_count: int
    target_path: bytes

    @property
    def target_size(self):
        return len(self.target_path)

    def target(self):
        """The link target as text."""
        return self.target_path.decode("utf-8")

    def __repr__(self):
        return (
            f"BasicSymlink(link_count={self.link_count}, "
            f"target_size={self.target_size}, target_path={self.target_path!r})"
        )

    @classmethod
    def _read(cls, cur):
        link, size = cur.unpack("II")
        _require(size < 256, f"symlink target size {size} must be below 256")
        return cls(link, cur.take(size))

    def _pack(self, endian):
        _require(self.target_size < 256, "symlink target size must be below 256")
        return struct.pack(endian.prefix + "II", self.link_count, self.target_size) + self.target_path


@dataclass
class BasicDeviceSpecialFile:
    link_count: int
    device_number: int

    @classmethod
    def _read(cls, cur):
        return cls(*cur.unpack("II"))

    def _pack(self, endian):
        return struct.pack(endian.prefix + "II", self.link_count, self.device_number)


InodeInner = Union[
    BasicDirectory,
    ExtendedDirectory,
    BasicFile,
    ExtendedFile,
    BasicSymlink,
    BasicDeviceSpecialFile,
]


@dataclass
class Inode:
    id: InodeId
    header: InodeHeader
    inner: InodeInner

    def to_bytes(self, block_size, block_log, endian):
        """Encode the inode, type id first."""
        return (
            struct.pack(endian.prefix + "H", self.id)
            + self.header._pack(endian)
            + self.inner._pack(endian)
        )


def read_inode(data, bytes_used, block_size, block_log, endian):
    """Parse one inode from the start of ``data``.

    Returns the inode and the number of bytes it occupied.
    """
    cur = _Cursor(data, endian)
    (raw_id,) = cur.unpack("H")
    try:
        inode_id = InodeId(raw_id)
    except ValueError:
        raise CorruptedImageError(f"unknown inode type {raw_id}") from None
    header = InodeHeader._read(cur)
    if inode_id is InodeId.BASIC_DIRECTORY:
        inner = BasicDirectory._read(cur)
    elif inode_id is InodeId.BASIC_FILE:
        inner = BasicFile._read(cur, block_size, block_log)
    elif inode_id is InodeId.BASIC_SYMLINK:
        inner = BasicSymlink._read(cur)
    elif inode_id in (InodeId.BASIC_BLOCK_DEVICE, InodeId.BASIC_CHARACTER_DEVICE):
        inner = BasicDeviceSpecialFile._read(cur)
    elif inode_id is InodeId.EXTENDED_DIRECTORY:
        inner = ExtendedDirectory._read(cur)
    else:
        inner = ExtendedFile._read(cur, bytes_used, block_size, block_log)
    return Inode(inode_id, header, inner), cur.pos