"""Reading the tables of a squashfs image from a seekable stream."""

from __future__ import annotations

import io
import logging
import math
import struct

from squashback.errors import CorruptedImageError, IncompleteDataError, SquashfsError
from squashback.ids import Id
from squashback.inode import read_inode
from squashback.metadata import METADATA_MAXSIZE, read_block

log = logging.getLogger(__name__)


class OffsetReader:
    """A view of a stream in which position 0 sits at ``offset``."""

    def __init__(self, io_obj, offset):
        self._io = io_obj
        self.offset = offset
        self._io.seek(offset)

    def read(self, size=-1):
        return self._io.read(size)

    def seek(self, pos, whence=io.SEEK_SET):
        if whence == io.SEEK_SET:
            return self._io.seek(self.offset + pos) - self.offset
        return self._io.seek(pos, whence) - self.offset

    def tell(self):
        return self._io.tell() - self.offset


class SquashfsReader:
    """Extracts inodes, directory blocks and lookup tables from an image stream.

    The superblock passed to each method needs the table offsets, ``bytes_used``,
    ``block_size``, ``block_log``, ``root_inode``, ``compressor`` and ``id_count``.
    """

    def __init__(self, io_obj):
        self._io = io_obj

    def _read_block(self, superblock, kind):
        return read_block(self._io, superblock.compressor, kind)

    def _parse_inode(self, data, superblock, kind):
        return read_inode(
            data,
            superblock.bytes_used,
            superblock.block_size,
            superblock.block_log,
            kind.type_endian,
        )

    def inodes(self, superblock, kind):
        """Parse the inode table into a dict keyed by inode number."""
        self._io.seek(superblock.inode_table)
        found = {}
        pending = b""
        while self._io.tell() < superblock.dir_table:
            buf = pending + self._read_block(superblock, kind)
            view = memoryview(buf)
            pos = 0
            while pos < len(buf):
                try:
                    inode, used = self._parse_inode(view[pos:], superblock, kind)
                except IncompleteDataError:
                    # the inode continues in the next metadata block
                    break
                found[inode.header.inode_number] = inode
                pos += used
            pending = buf[pos:]
        return found

    def root_inode(self, superblock, kind):
        """Parse the root directory inode referenced by the superblock."""
        start = superblock.root_inode >> 16
        offset = superblock.root_inode & 0xFFFF
        if start > superblock.bytes_used:
            log.error("root inode start beyond bytes_used")
            raise CorruptedImageError()

        self._io.seek(superblock.inode_table + start)
        data = self._read_block(superblock, kind)
        if offset > len(data):
            log.error("root inode offset beyond metadata block")
            raise CorruptedImageError()
        try:
            inode, _ = self._parse_inode(memoryview(data)[offset:], superblock, kind)
            return inode
        except SquashfsError:
            pass

        # the root inode spans into the following block
        data += self._read_block(superblock, kind)
        if offset > len(data):
            log.error("root inode offset beyond metadata blocks")
            raise CorruptedImageError()
        inode, _ = self._parse_inode(memoryview(data)[offset:], superblock, kind)
        return inode

    def dir_blocks(self, superblock, end_ptr, kind):
        """Read directory metadata blocks up to ``end_ptr``.

        Returns ``(offset_from_dir_table, bytes)`` pairs.
        """
        base = superblock.dir_table
        self._io.seek(base)
        blocks = []
        while self._io.tell() != end_ptr:
            block_start = self._io.tell()
            blocks.append((block_start - base, self._read_block(superblock, kind)))
        return blocks

    def table_pointer(self, seek, kind):
        """Read the 64 bit pointer stored at ``seek``."""
        self._io.seek(seek)
        raw = self._io.read(8)
        if raw is None or len(raw) < 8:
            raise IncompleteDataError("truncated lookup table pointer")
        (ptr,) = struct.unpack(kind.type_endian.prefix + "Q", raw)
        return ptr

    def id_table(self, superblock, kind):
        """Parse the id table, returning its block pointer and the ids."""
        return self.lookup_table(
            superblock,
            superblock.id_table,
            superblock.id_count,
            kind,
            lambda data, endian: (Id.unpack(data, endian), Id.SIZE),
        )

    def lookup_table(self, superblock, seek, size, kind, parse):
        """Follow the pointer at ``seek`` and parse the table behind it.

        ``parse(data, endian)`` returns an item and the bytes it consumed.
        Returns the pointer and the parsed items.
        """
        ptr = self.table_pointer(seek, kind)
        count = math.ceil(size / METADATA_MAXSIZE)
        return ptr, self.metadata_with_count(superblock, ptr, count, kind, parse)

    def metadata_with_count(self, superblock, seek, count, kind, parse):
        """Read ``count`` metadata blocks at ``seek`` and parse items until one fails."""
        self._io.seek(seek)
        data = b"".join(self._read_block(superblock, kind) for _ in range(count))
        view = memoryview(data)
        items = []
        pos = 0
        while True:
            try:
                item, used = parse(view[pos:], kind.type_endian)
            except SquashfsError:
                break
            if used <= 0:
                break
            items.append(item)
            pos += used
        return items