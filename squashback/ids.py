"""User and group id table entries."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import ClassVar

from squashback.errors import IncompleteDataError
from squashback.kinds import Endian


@dataclass(frozen=True)
class Id:
    """A 32 bit user or group id."""

    num: int

    SIZE: ClassVar[int] = 4

    @classmethod
    def root(cls):
        """The id table holding only the root id."""
        return [cls(0)]

    def pack(self, endian):
        """Encode the id as four bytes."""
        return struct.pack(endian.prefix + "I", self.num)

    @classmethod
    def unpack(cls, data, endian):
        """Decode an id from the first four bytes of ``data``."""
        if len(data) < cls.SIZE:
            raise IncompleteDataError(f"need {cls.SIZE} bytes for an id, got {len(data)}")
        (num,) = struct.unpack_from(endian.prefix + "I", data)
        return cls(num)


__all__ = ["Id", "Endian"]