# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import io
import typing
import dataclasses
import cbor2
import pynmxact.util
from ._header import NmpOp, NmpHeader, DecodeError, NMP_HEADER_SIZE


Body = typing.Dict[str, typing.Any]


def encode_body(body: Body) -> bytes:
    """
    >>> encode_body({"d": "hi"}).hex()
    'a16164626869'
    """
    return cbor2.dumps(body)


def decode_body(image: typing.Union[bytes, bytearray, memoryview]) -> Body:
    """
    Decodes a CBOR map. The entire image must be consumed by exactly one map.

    >>> decode_body(bytes.fromhex("a16164626869"))
    {'d': 'hi'}
    """
    fp = io.BytesIO(bytes(image))
    try:
        out = cbor2.CBORDecoder(fp).decode()
    except (cbor2.CBORDecodeError, ValueError, EOFError) as ex:
        raise DecodeError(f"Malformed CBOR body: {ex}") from ex
    if not isinstance(out, dict):
        raise DecodeError(f"The body is not a map: {type(out).__name__}")
    if fp.tell() != len(image):
        raise DecodeError(f"Trailing bytes after the body: {len(image) - fp.tell()}")
    if not all(isinstance(k, str) for k in out):
        raise DecodeError(f"Body keys shall be strings: {list(out)!r}")
    return out


@dataclasses.dataclass(frozen=True)
class NmpMessage:
    """
    A plain management envelope. The body length of the header is derived from the body at compile time,
    so it is not part of the message model.

    >>> msg = NmpMessage(op=NmpOp.WRITE, group=0, id=0, seq=3, body={"d": "hi"})
    >>> msg.compile().hex()
    '0200000600000300a16164626869'
    >>> NmpMessage.parse(msg.compile()) == msg
    True
    """

    op: NmpOp
    group: int
    id: int
    seq: int = 0
    body: Body = dataclasses.field(default_factory=dict)
    flags: int = 0

    @property
    def header(self) -> NmpHeader:
        return NmpHeader(
            op=self.op,
            flags=self.flags,
            length=len(encode_body(self.body)),
            group=self.group,
            seq=self.seq,
            id=self.id,
        )

    def with_seq(self, seq: int) -> NmpMessage:
        return dataclasses.replace(self, seq=seq)

    def compile(self) -> bytes:
        body = encode_body(self.body)
        header = NmpHeader(op=self.op, flags=self.flags, length=len(body), group=self.group, seq=self.seq, id=self.id)
        return header.compile() + body

    @staticmethod
    def parse(image: typing.Union[bytes, bytearray, memoryview]) -> NmpMessage:
        header = NmpHeader.parse(image)
        body_image = memoryview(image)[NMP_HEADER_SIZE:]
        if len(body_image) < header.length:
            raise DecodeError(f"NMP body truncated: expected {header.length} bytes, got {len(body_image)}")
        if len(body_image) > header.length:
            raise DecodeError(f"NMP message has {len(body_image) - header.length} trailing bytes")
        return NmpMessage.from_header(header, decode_body(body_image))

    @staticmethod
    def from_header(header: NmpHeader, body: Body) -> NmpMessage:
        return NmpMessage(op=header.op, group=header.group, id=header.id, seq=header.seq, body=body, flags=header.flags)

    def __repr__(self) -> str:
        return pynmxact.util.repr_attributes_noexcept(
            self, op=self.op.name, group=self.group, id=self.id, seq=self.seq, body=self.body
        )


def _unittest_message() -> None:
    import pytest

    msg = NmpMessage(op=NmpOp.READ_RSP, group=1, id=0, seq=255, body={"images": [], "rc": 0})
    image = msg.compile()
    assert image[:8] == bytes([1, 0, 0, len(image) - 8, 0, 1, 255, 0])
    assert NmpMessage.parse(image) == msg
    assert NmpMessage.parse(image).compile() == image
    assert msg.header.length == len(image) - 8

    empty = NmpMessage(op=NmpOp.WRITE, group=0, id=5)
    assert empty.compile() == bytes([2, 0, 0, 1, 0, 0, 0, 5, 0xA0])
    assert NmpMessage.parse(empty.compile()) == empty

    with pytest.raises(DecodeError, match="truncated"):
        NmpMessage.parse(image[:-1])
    with pytest.raises(DecodeError, match="trailing"):
        NmpMessage.parse(image + b"\x00")
    with pytest.raises(DecodeError, match="truncated"):
        NmpMessage.parse(image[:5])
    with pytest.raises(DecodeError, match="not a map"):
        NmpMessage.parse(bytes([1, 0, 0, 1, 0, 0, 0, 0, 0x01]))
    with pytest.raises(DecodeError):
        NmpMessage.parse(bytes([1, 0, 0, 1, 0, 0, 0, 0, 0xFF]))

    assert msg.with_seq(7).seq == 7
    assert msg.seq == 255
    assert "READ_RSP" in repr(msg)
