import pytest

from squashback.errors import IncompleteDataError
from squashback.ids import Id
from squashback.kinds import Endian


def test_root_table():
    assert Id.root() == [Id(0)]


def test_pack_little_endian():
    assert Id(1).pack(Endian.LITTLE) == b"\x01\x00\x00\x00"


def test_pack_big_endian():
    assert Id(1).pack(Endian.BIG) == b"\x00\x00\x00\x01"


@pytest.mark.parametrize("endian", list(Endian))
@pytest.mark.parametrize("num", [0, 1, 1000, 0xFFFF_FFFF])
def test_round_trip(endian, num):
    packed = Id(num).pack(endian)
    assert len(packed) == Id.SIZE
    assert Id.unpack(packed, endian) == Id(num)


def test_unpack_ignores_trailing_bytes():
    data = Id(7).pack(Endian.LITTLE) + b"\xff\xff"
    assert Id.unpack(data, Endian.LITTLE) == Id(7)


def test_unpack_short_data():
    with pytest.raises(IncompleteDataError):
        Id.unpack(b"\x01\x02", Endian.LITTLE)