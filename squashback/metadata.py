"""Metadata blocks: length-prefixed, optionally compressed chunks of at most 8 KiB."""

from __future__ import annotations

import struct

from squashback.errors import IncompleteDataError
from squashback.kinds import Compressor

METADATA_MAXSIZE = 0x2000

_UNCOMPRESSED_BIT = 1 << 15


def is_compressed(length):
    """Whether the raw length header marks its block as compressed."""
    return length & _UNCOMPRESSED_BIT == 0


def data_length(length):
    """The byte length of the block that follows a raw length header."""
    return length & ~_UNCOMPRESSED_BIT & 0xFFFF


def set_if_uncompressed(length):
    """Mark a length header as describing an uncompressed block."""
    return length | _UNCOMPRESSED_BIT


def _read_exact(reader, size):
    data = reader.read(size)
    if data is None or len(data) < size:
        got = 0 if data is None else len(data)
        raise IncompleteDataError(f"expected {size} bytes, got {got}")
    return bytes(data)


def read_block(reader, compressor, kind):
    """Read one metadata block from ``reader`` and return its uncompressed bytes."""
    (raw_length,) = struct.unpack(kind.data_endian.prefix + "H", _read_exact(reader, 2))
    payload = _read_exact(reader, data_length(raw_length))
    if is_compressed(raw_length):
        return bytes(kind.compressor.decompress(payload, compressor))
    return payload


class MetadataWriter:
    """Collects bytes and cuts them into metadata blocks.

    ``metadata_start`` is the offset, from the start of the table, of the block
    that the next written byte will land in.
    """

    def __init__(self, compressor, block_size, kind):
        self.compressor = Compressor(compressor)
        self.block_size = block_size
        self.kind = kind
        self.metadata_start = 0
        self.uncompressed_bytes = bytearray()
        self.final_bytes = []

    def _add_block(self):
        size = min(len(self.uncompressed_bytes), METADATA_MAXSIZE)
        if size == 0:
            return
        chunk = bytes(self.uncompressed_bytes[:size])
        packed = self.kind.compressor.compress(chunk, self.compressor, self.block_size)
        del self.uncompressed_bytes[:size]
        if len(packed) > size:
            entry = (False, chunk)
        else:
            entry = (True, bytes(packed))
        self.metadata_start += 2 + len(entry[1])
        self.final_bytes.append(entry)

    def write(self, data):
        """Append ``data``, emitting full blocks as they fill up."""
        self.uncompressed_bytes += data
        while len(self.uncompressed_bytes) >= METADATA_MAXSIZE:
            self._add_block()
        return len(data)

    def finalize(self, out):
        """Flush what is left and write every block to ``out``."""
        while self.uncompressed_bytes:
            self._add_block()
        prefix = self.kind.data_endian.prefix
        for compressed, block in self.final_bytes:
            length = len(block) if compressed else set_if_uncompressed(len(block))
            out.write(struct.pack(prefix + "H", length))
            out.write(block)