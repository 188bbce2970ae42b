import io
import struct

import pytest

from squashback.errors import IncompleteDataError
from squashback.kinds import Compressor, Endian, Kind
from squashback.metadata import (
    METADATA_MAXSIZE,
    MetadataWriter,
    data_length,
    is_compressed,
    read_block,
    set_if_uncompressed,
)

BLOCK_SIZE = 0x20000


def finalize_to_bytes(writer):
    out = io.BytesIO()
    writer.finalize(out)
    return out.getvalue()


def test_uncompressed_flag_is_high_bit():
    assert set_if_uncompressed(0) == 0x8000
    assert is_compressed(0x8000) is False
    assert is_compressed(0x0010) is True


@pytest.mark.parametrize("length", [0, 1, 100, METADATA_MAXSIZE])
def test_length_round_trip(length):
    raw = set_if_uncompressed(length)
    assert data_length(raw) == length
    assert not is_compressed(raw)
    assert data_length(length) == length
    assert is_compressed(length)


def test_write_returns_length():
    writer = MetadataWriter(Compressor.NONE, BLOCK_SIZE, Kind())
    assert writer.write(b"hello") == 5
    assert bytes(writer.uncompressed_bytes) == b"hello"


def test_round_trip_gzip_compressible():
    kind = Kind()
    data = b"a" * 1000
    writer = MetadataWriter(Compressor.GZIP, BLOCK_SIZE, kind)
    writer.write(data)
    raw = finalize_to_bytes(writer)
    (header,) = struct.unpack("<H", raw[:2])
    assert is_compressed(header)
    assert data_length(header) < len(data)
    assert read_block(io.BytesIO(raw), Compressor.GZIP, kind) == data


def test_incompressible_data_stored_raw():
    kind = Kind()
    data = bytes(range(64))
    writer = MetadataWriter(Compressor.GZIP, BLOCK_SIZE, kind)
    writer.write(data)
    raw = finalize_to_bytes(writer)
    assert raw[:2] == struct.pack("<H", set_if_uncompressed(len(data)))
    assert raw[2:] == data
    assert read_block(io.BytesIO(raw), Compressor.GZIP, kind) == data


def test_big_endian_length_header():
    kind = Kind().with_data_endian(Endian.BIG)
    data = bytes(range(64))
    writer = MetadataWriter(Compressor.GZIP, BLOCK_SIZE, kind)
    writer.write(data)
    raw = finalize_to_bytes(writer)
    assert raw[:2] == struct.pack(">H", set_if_uncompressed(len(data)))
    assert read_block(io.BytesIO(raw), Compressor.GZIP, kind) == data


def test_large_write_splits_into_blocks():
    kind = Kind()
    data = bytes(i % 251 for i in range(METADATA_MAXSIZE * 2 + 10))
    writer = MetadataWriter(Compressor.GZIP, BLOCK_SIZE, kind)
    writer.write(data)
    assert len(writer.final_bytes) == 2
    assert len(writer.uncompressed_bytes) == 10
    assert writer.metadata_start == sum(2 + len(block) for _, block in writer.final_bytes)
    raw = finalize_to_bytes(writer)
    stream = io.BytesIO(raw)
    blocks = [read_block(stream, Compressor.GZIP, kind) for _ in range(3)]
    assert [len(b) for b in blocks] == [METADATA_MAXSIZE, METADATA_MAXSIZE, 10]
    assert b"".join(blocks) == data
    assert stream.tell() == len(raw)


def test_none_compressor_round_trip():
    kind = Kind()
    data = b"metadata" * 10
    writer = MetadataWriter(Compressor.NONE, BLOCK_SIZE, kind)
    writer.write(data)
    raw = finalize_to_bytes(writer)
    assert len(raw) == len(data) + 2
    assert read_block(io.BytesIO(raw), Compressor.NONE, kind) == data


def test_empty_writer_writes_nothing():
    writer = MetadataWriter(Compressor.GZIP, BLOCK_SIZE, Kind())
    assert finalize_to_bytes(writer) == b""
    assert writer.metadata_start == 0


def test_read_block_truncated_payload():
    raw = struct.pack("<H", set_if_uncompressed(10)) + b"abc"
    with pytest.raises(IncompleteDataError):
        read_block(io.BytesIO(raw), Compressor.NONE, Kind())


def test_read_block_truncated_header():
    with pytest.raises(IncompleteDataError):
        read_block(io.BytesIO(b"\x01"), Compressor.NONE, Kind())