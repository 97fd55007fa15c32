# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import enum
import struct
import typing
import dataclasses


class DecodeError(ValueError):
    """
    An inbound envelope is malformed: truncated, carries trailing garbage, has an unknown operation code,
    a non-map body, or lacks a required body key.
    The transceiver drops such messages without affecting other pending requests.
    """


class NmpOp(enum.IntEnum):
    READ = 0
    READ_RSP = 1
    WRITE = 2
    WRITE_RSP = 3

    @property
    def is_response(self) -> bool:
        return self in (NmpOp.READ_RSP, NmpOp.WRITE_RSP)

    @property
    def response(self) -> NmpOp:
        """
        The response operation matching this request operation.

        >>> NmpOp.WRITE.response
        <NmpOp.WRITE_RSP: 3>
        """
        return NmpOp(int(self) | 1)


class NmpGroup(enum.IntEnum):
    """
    Command groups (subsystems) known to the library. Other values are valid on the wire.
    """

    DEFAULT = 0
    IMAGE = 1
    STAT = 2
    CONFIG = 3
    LOG = 4
    CRASH = 5
    RUN = 7
    FS = 8
    SHELL = 9


NMP_HEADER_SIZE = 8


@dataclasses.dataclass(frozen=True)
class NmpHeader:
    op: NmpOp
    flags: int
    length: int
    group: int
    seq: int
    id: int

    _STRUCT: typing.ClassVar[struct.Struct] = struct.Struct(
        ">"  # big-endian
        "B"  # op
        "B"  # flags
        "H"  # length of the CBOR body
        "H"  # group
        "B"  # seq
        "B"  # id
    )

    def __post_init__(self) -> None:
        if not isinstance(self.op, NmpOp):
            raise TypeError(f"Invalid op: {self.op!r}")
        for name, limit in (("flags", 0xFF), ("length", 0xFFFF), ("group", 0xFFFF), ("seq", 0xFF), ("id", 0xFF)):
            value = getattr(self, name)
            if not (0 <= value <= limit):
                raise ValueError(f"Invalid NMP header {name}: {value}")

    def compile(self) -> bytes:
        out = self._STRUCT.pack(int(self.op), self.flags, self.length, self.group, self.seq, self.id)
        assert len(out) == NMP_HEADER_SIZE
        return out

    @staticmethod
    def parse(image: typing.Union[bytes, bytearray, memoryview]) -> NmpHeader:
        """
        Parses the first :data:`NMP_HEADER_SIZE` bytes of the image. The body length is not validated here.

        >>> NmpHeader.parse(bytes([2, 0, 0, 5, 0, 0, 42, 0]))
        NmpHeader(op=<NmpOp.WRITE: 2>, flags=0, length=5, group=0, seq=42, id=0)
        """
        if len(image) < NMP_HEADER_SIZE:
            raise DecodeError(f"NMP header truncated: {len(image)} bytes")
        op, flags, length, group, seq, ident = NmpHeader._STRUCT.unpack_from(image)
        try:
            nmp_op = NmpOp(op)
        except ValueError:
            raise DecodeError(f"Unknown NMP op: {op}") from None
        return NmpHeader(op=nmp_op, flags=flags, length=length, group=group, seq=seq, id=ident)


def _unittest_header() -> None:
    import pytest

    hdr = NmpHeader(op=NmpOp.READ_RSP, flags=0, length=0x1234, group=0x0102, seq=0xFE, id=7)
    image = hdr.compile()
    assert image == bytes([1, 0, 0x12, 0x34, 0x01, 0x02, 0xFE, 7])
    assert NmpHeader.parse(image) == hdr
    assert NmpHeader.parse(image + b"extra") == hdr
    assert hdr.op.is_response
    assert not NmpOp.READ.is_response
    assert NmpOp.READ.response == NmpOp.READ_RSP

    with pytest.raises(DecodeError, match="op"):
        NmpHeader.parse(bytes([9, 0, 0, 0, 0, 0, 0, 0]))
    with pytest.raises(ValueError):
        NmpHeader(op=NmpOp.READ, flags=0, length=0, group=0, seq=256, id=0)
    with pytest.raises(TypeError):
        NmpHeader(op=0, flags=0, length=0, group=0, seq=0, id=0)  # type: ignore
