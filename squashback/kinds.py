"""Image kinds: magic, byte order, version and compression."""

from __future__ import annotations

import lzma
import zlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum, IntEnum

from squashback.errors import InvalidKindError, SquashfsError


class Magic(Enum):
    """The first four bytes of an image."""

    LITTLE = b"hsqs"
    BIG = b"sqsh"


class Endian(Enum):
    """Byte order, valued by its ``struct`` prefix."""

    LITTLE = "<"
    BIG = ">"

    @property
    def prefix(self):
        return self.value


class Compressor(IntEnum):
    """Compression algorithm id stored in the superblock."""

    NONE = 0
    GZIP = 1
    LZMA = 2
    LZO = 3
    XZ = 4
    LZ4 = 5
    ZSTD = 6


class CompressionAction(ABC):
    """Compresses and decompresses blocks for an image."""

    @abstractmethod
    def compress(self, data, compressor, block_size):
        """Return ``data`` compressed with ``compressor``."""

    @abstractmethod
    def decompress(self, data, compressor):
        """Return ``data`` decompressed with ``compressor``."""


class DefaultCompressor(CompressionAction):
    """Compression using the algorithms available in the standard library."""

    def compress(self, data, compressor, block_size):
        compressor = Compressor(compressor)
        if compressor is Compressor.NONE:
            return bytes(data)
        if compressor is Compressor.GZIP:
            return zlib.compress(bytes(data), 9)
        if compressor is Compressor.XZ:
            filters = [{"id": lzma.FILTER_LZMA2, "preset": 6, "dict_size": max(block_size, 4096)}]
            return lzma.compress(
                bytes(data), format=lzma.FORMAT_XZ, check=lzma.CHECK_CRC32, filters=filters
            )
        if compressor is Compressor.LZMA:
            return lzma.compress(bytes(data), format=lzma.FORMAT_ALONE)
        raise SquashfsError(f"unsupported compressor: {compressor.name.lower()}")

    def decompress(self, data, compressor):
        compressor = Compressor(compressor)
        try:
            if compressor is Compressor.NONE:
                return bytes(data)
            if compressor is Compressor.GZIP:
                return zlib.decompress(bytes(data))
            if compressor is Compressor.XZ:
                return lzma.decompress(bytes(data), format=lzma.FORMAT_XZ)
            if compressor is Compressor.LZMA:
                return lzma.decompress(bytes(data), format=lzma.FORMAT_ALONE)
        except (zlib.error, lzma.LZMAError) as exc:
            raise SquashfsError(f"decompression failed: {exc}") from exc
        raise SquashfsError(f"unsupported compressor: {compressor.name.lower()}")


@dataclass(frozen=True)
class InnerKind:
    """The settings that make up a kind."""

    magic: bytes
    type_endian: Endian
    data_endian: Endian
    version_major: int
    version_minor: int
    compressor: CompressionAction


_DEFAULT_COMPRESSOR = DefaultCompressor()

LE_V4_0 = InnerKind(b"hsqs", Endian.LITTLE, Endian.LITTLE, 4, 0, _DEFAULT_COMPRESSOR)
BE_V4_0 = InnerKind(b"sqsh", Endian.BIG, Endian.BIG, 4, 0, _DEFAULT_COMPRESSOR)
AVM_BE_V4_0 = InnerKind(b"sqsh", Endian.BIG, Endian.LITTLE, 4, 0, _DEFAULT_COMPRESSOR)

_TARGETS = {
    "avm_be_v4_0": AVM_BE_V4_0,
    "be_v4_0": BE_V4_0,
    "le_v4_0": LE_V4_0,
}


@dataclass(frozen=True)
class Kind:
    """A squashfs version, including vendor variants. ``with_*`` return new kinds."""

    inner: InnerKind = LE_V4_0

    @classmethod
    def new(cls, compressor):
        """The default little-endian v4.0 kind with a custom compressor."""
        return cls(replace(LE_V4_0, compressor=compressor))

    @classmethod
    def new_with_const(cls, compressor, inner):
        """``inner`` with a custom compressor."""
        return cls(replace(inner, compressor=compressor))

    @classmethod
    def from_target(cls, name):
        """Look a kind up by name: ``le_v4_0``, ``be_v4_0`` or ``avm_be_v4_0``."""
        try:
            return cls(_TARGETS[name])
        except KeyError:
            raise InvalidKindError() from None

    @classmethod
    def from_const(cls, inner):
        return cls(inner)

    @classmethod
    def from_kind(cls, kind):
        return cls(kind.inner)

    def with_magic(self, magic):
        return Kind(replace(self.inner, magic=Magic(magic).value))

    def with_type_endian(self, endian):
        return Kind(replace(self.inner, type_endian=Endian(endian)))

    def with_data_endian(self, endian):
        return Kind(replace(self.inner, data_endian=Endian(endian)))

    def with_all_endian(self, endian):
        endian = Endian(endian)
        return Kind(replace(self.inner, type_endian=endian, data_endian=endian))

    def with_version(self, major, minor):
        return Kind(replace(self.inner, version_major=major, version_minor=minor))

    @property
    def magic(self):
        return self.inner.magic

    @property
    def type_endian(self):
        return self.inner.type_endian

    @property
    def data_endian(self):
        return self.inner.data_endian

    @property
    def version_major(self):
        return self.inner.version_major

    @property
    def version_minor(self):
        return self.inner.version_minor

    @property
    def compressor(self):
        return self.inner.compressor