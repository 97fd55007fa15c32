# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import enum
import struct
import typing
import dataclasses
import pynmxact.util
from pynmxact.nmp import DecodeError


class CoapType(enum.IntEnum):
    CON = 0
    NON = 1
    ACK = 2
    RST = 3


class CoapCode(enum.IntEnum):
    """
    The code byte is ``class << 5 | detail``; e.g., 2.05 Content is ``2 << 5 | 5``.
    Codes that are not listed here are still accepted on the wire.
    """

    EMPTY = 0
    GET = 1
    POST = 2
    PUT = 3
    DELETE = 4

    CREATED = 65
    DELETED = 66
    VALID = 67
    CHANGED = 68
    CONTENT = 69

    BAD_REQUEST = 128
    UNAUTHORIZED = 129
    NOT_FOUND = 132
    METHOD_NOT_ALLOWED = 133
    INTERNAL_SERVER_ERROR = 160
    NOT_IMPLEMENTED = 161


class CoapOption(enum.IntEnum):
    OBSERVE = 6
    URI_PATH = 11
    CONTENT_FORMAT = 12
    URI_QUERY = 15


CONTENT_FORMAT_CBOR = 60

_VERSION = 1
_PAYLOAD_MARKER = 0xFF
_MAX_TOKEN_LENGTH = 8

_DATAGRAM_HEADER = struct.Struct(
    ">"  # big-endian
    "B"  # version, type, token length
    "B"  # code
    "H"  # message ID
)


@dataclasses.dataclass(frozen=True, repr=False)
class CoapMessage:
    """
    A CoAP message as used by the management protocol; only the features required by the management
    protocol are modeled. Options are kept in wire order (ascending option number, stable for repeated options).

    The same model is serialized in two ways:

    - :meth:`compile_datagram`/:meth:`parse_datagram` -- RFC 7252 framing for datagram media, with type and message ID;
    - :meth:`compile_stream`/:meth:`parse_stream` -- RFC 8323 framing for reliable stream media,
      where the type and message ID do not exist on the wire (they parse as ``CON`` and zero).

    >>> msg = CoapMessage.make(CoapCode.GET, "omgr", b"\\xa0", token=b"\\x01")
    >>> msg.compile_datagram().hex()
    '4101000001b46f6d6772ffa0'
    >>> CoapMessage.parse_datagram(msg.compile_datagram()) == msg
    True
    >>> msg.path
    'omgr'
    """

    code: int
    token: bytes = b""
    options: typing.Tuple[typing.Tuple[int, bytes], ...] = ()
    payload: bytes = b""
    type: CoapType = CoapType.CON
    message_id: int = 0

    def __post_init__(self) -> None:
        if not (0 <= self.code <= 0xFF):
            raise ValueError(f"Invalid CoAP code: {self.code}")
        if len(self.token) > _MAX_TOKEN_LENGTH:
            raise ValueError(f"CoAP token is too long: {len(self.token)} bytes")
        if not (0 <= self.message_id <= 0xFFFF):
            raise ValueError(f"Invalid CoAP message ID: {self.message_id}")
        if not isinstance(self.type, CoapType):
            raise TypeError(f"Invalid CoAP type: {self.type!r}")
        numbers = [n for n, _ in self.options]
        if numbers != sorted(numbers):
            raise ValueError(f"CoAP options are not in ascending order: {numbers}")

    @staticmethod
    def make(
        code: int,
        path: str,
        payload: bytes,
        token: bytes = b"",
        type: CoapType = CoapType.CON,  # pylint: disable=redefined-builtin
        message_id: int = 0,
        content_format: typing.Optional[int] = None,
        observe: typing.Optional[int] = None,
    ) -> CoapMessage:
        options: typing.List[typing.Tuple[int, bytes]] = []
        if observe is not None:
            options.append((CoapOption.OBSERVE, _encode_uint(observe)))
        for segment in filter(None, path.split("/")):
            options.append((CoapOption.URI_PATH, segment.encode()))
        if content_format is not None:
            options.append((CoapOption.CONTENT_FORMAT, _encode_uint(content_format)))
        return CoapMessage(
            code=code,
            token=bytes(token),
            options=tuple((int(n), v) for n, v in options),
            payload=bytes(payload),
            type=type,
            message_id=message_id,
        )

    def get_options(self, number: int) -> typing.List[bytes]:
        return [v for n, v in self.options if n == number]

    @property
    def path(self) -> str:
        return "/".join(v.decode(errors="replace") for v in self.get_options(CoapOption.URI_PATH))

    @property
    def observe(self) -> typing.Optional[int]:
        values = self.get_options(CoapOption.OBSERVE)
        return int.from_bytes(values[0], "big") if values else None

    @property
    def is_request(self) -> bool:
        return 1 <= self.code <= 31

    @property
    def is_response(self) -> bool:
        return 2 <= (self.code >> 5) <= 5

    def compile_datagram(self) -> bytes:
        first = (_VERSION << 6) | (int(self.type) << 4) | len(self.token)
        return _DATAGRAM_HEADER.pack(first, self.code, self.message_id) + self.token + self._compile_tail()

    @staticmethod
    def parse_datagram(image: typing.Union[bytes, bytearray, memoryview]) -> CoapMessage:
        image = bytes(image)
        if len(image) < _DATAGRAM_HEADER.size:
            raise DecodeError(f"CoAP datagram truncated: {len(image)} bytes")
        first, code, message_id = _DATAGRAM_HEADER.unpack_from(image)
        if first >> 6 != _VERSION:
            raise DecodeError(f"Unsupported CoAP version: {first >> 6}")
        tkl = first & 0x0F
        if tkl > _MAX_TOKEN_LENGTH:
            raise DecodeError(f"Invalid CoAP token length: {tkl}")
        offset = _DATAGRAM_HEADER.size
        token = image[offset : offset + tkl]
        if len(token) != tkl:
            raise DecodeError("CoAP token truncated")
        options, payload = _parse_tail(image[offset + tkl :])
        return CoapMessage(
            code=code,
            token=token,
            options=options,
            payload=payload,
            type=CoapType((first >> 4) & 0x03),
            message_id=message_id,
        )

    def compile_stream(self) -> bytes:
        tail = self._compile_tail()
        length = len(tail)
        if length < 13:
            head = bytes([(length << 4) | len(self.token)])
        elif length < 269:
            head = bytes([(13 << 4) | len(self.token), length - 13])
        elif length < 65805:
            head = bytes([(14 << 4) | len(self.token)]) + struct.pack(">H", length - 269)
        else:
            head = bytes([(15 << 4) | len(self.token)]) + struct.pack(">I", length - 65805)
        return head + bytes([self.code]) + self.token + tail

    @staticmethod
    def parse_stream(image: typing.Union[bytes, bytearray, memoryview]) -> CoapMessage:
        """
        The image shall contain exactly one message.

        >>> msg = CoapMessage.make(CoapCode.CONTENT, "", b"\\xa0", token=b"\\x07\\x08")
        >>> msg.compile_stream().hex()
        '22450708ffa0'
        >>> CoapMessage.parse_stream(msg.compile_stream()) == msg
        True
        """
        image = bytes(image)
        if not image:
            raise DecodeError("CoAP stream message is empty")
        nibble, tkl = image[0] >> 4, image[0] & 0x0F
        offset = 1
        if nibble < 13:
            length = nibble
        else:
            ext_size = {13: 1, 14: 2, 15: 4}[nibble]
            ext = image[offset : offset + ext_size]
            if len(ext) != ext_size:
                raise DecodeError("CoAP stream length truncated")
            length = int.from_bytes(ext, "big") + {13: 13, 14: 269, 15: 65805}[nibble]
            offset += ext_size
        if tkl > _MAX_TOKEN_LENGTH:
            raise DecodeError(f"Invalid CoAP token length: {tkl}")
        expected = offset + 1 + tkl + length
        if len(image) != expected:
            raise DecodeError(f"CoAP stream message size mismatch: expected {expected} bytes, got {len(image)}")
        code = image[offset]
        token = image[offset + 1 : offset + 1 + tkl]
        options, payload = _parse_tail(image[offset + 1 + tkl :])
        return CoapMessage(code=code, token=token, options=options, payload=payload)

    def _compile_tail(self) -> bytes:
        out = bytearray()
        previous = 0
        for number, value in self.options:
            delta_nibble, delta_ext = _encode_option_field(number - previous)
            length_nibble, length_ext = _encode_option_field(len(value))
            out.append((delta_nibble << 4) | length_nibble)
            out += delta_ext + length_ext + value
            previous = number
        if self.payload:
            out.append(_PAYLOAD_MARKER)
            out += self.payload
        return bytes(out)

    def __repr__(self) -> str:
        try:
            code_name = CoapCode(self.code).name
        except ValueError:
            code_name = f"{self.code >> 5}.{self.code & 0x1F:02d}"
        return pynmxact.util.repr_attributes_noexcept(
            self,
            code_name,
            type=self.type.name,
            message_id=self.message_id,
            token=self.token.hex(),
            path=repr(self.path),
            payload=self.payload.hex(),
        )


def _encode_uint(value: int) -> bytes:
    """
    CoAP uint options use the shortest big-endian representation; zero is empty.

    >>> _encode_uint(0), _encode_uint(60), _encode_uint(0x1234)
    (b'', b'<', b'\\x124')
    """
    return value.to_bytes((value.bit_length() + 7) // 8, "big")


def _encode_option_field(value: int) -> typing.Tuple[int, bytes]:
    if value < 13:
        return value, b""
    if value < 269:
        return 13, bytes([value - 13])
    if value < 65805:
        return 14, struct.pack(">H", value - 269)
    raise ValueError(f"CoAP option field is too large: {value}")


def _parse_tail(image: bytes) -> typing.Tuple[typing.Tuple[typing.Tuple[int, bytes], ...], bytes]:
    options: typing.List[typing.Tuple[int, bytes]] = []
    number = 0
    offset = 0
    while offset < len(image):
        first = image[offset]
        offset += 1
        if first == _PAYLOAD_MARKER:
            payload = image[offset:]
            if not payload:
                raise DecodeError("CoAP payload marker is followed by an empty payload")
            return tuple(options), payload
        delta, offset = _parse_option_field(image, first >> 4, offset)
        length, offset = _parse_option_field(image, first & 0x0F, offset)
        value = image[offset : offset + length]
        if len(value) != length:
            raise DecodeError("CoAP option value truncated")
        offset += length
        number += delta
        options.append((number, value))
    return tuple(options), b""


def _parse_option_field(image: bytes, nibble: int, offset: int) -> typing.Tuple[int, int]:
    if nibble < 13:
        return nibble, offset
    if nibble == 13:
        if offset + 1 > len(image):
            raise DecodeError("CoAP option extension truncated")
        return image[offset] + 13, offset + 1
    if nibble == 14:
        if offset + 2 > len(image):
            raise DecodeError("CoAP option extension truncated")
        return struct.unpack_from(">H", image, offset)[0] + 269, offset + 2
    raise DecodeError("Reserved CoAP option nibble 15")


def _unittest_coap_options() -> None:
    import pytest

    long_path = "x" * 20
    msg = CoapMessage(
        code=CoapCode.PUT,
        token=b"\xAA\xBB\xCC\xDD",
        options=((CoapOption.URI_PATH, b"omgr"), (CoapOption.URI_PATH, long_path.encode()), (300, b"v" * 300)),
        payload=b"hello",
        type=CoapType.NON,
        message_id=0xBEEF,
    )
    assert CoapMessage.parse_datagram(msg.compile_datagram()) == msg
    assert CoapMessage.parse_stream(msg.compile_stream()) == dataclasses.replace(
        msg, type=CoapType.CON, message_id=0
    )
    assert msg.path == f"omgr/{long_path}"
    assert msg.is_request and not msg.is_response

    rsp = CoapMessage.make(CoapCode.CHANGED, "", b"\xa0", observe=5)
    assert rsp.is_response
    assert rsp.observe == 5
    assert CoapMessage.parse_datagram(rsp.compile_datagram()).observe == 5
    assert CoapMessage.make(CoapCode.GET, "a", b"").observe is None

    big = CoapMessage.make(CoapCode.CONTENT, "omgr", b"z" * 70000)
    assert CoapMessage.parse_stream(big.compile_stream()) == big
    assert big.compile_stream()[0] >> 4 == 15

    with pytest.raises(DecodeError):
        CoapMessage.parse_datagram(b"\x41\x01\x00")
    with pytest.raises(DecodeError, match="version"):
        CoapMessage.parse_datagram(b"\x81\x01\x00\x00\x00")
    with pytest.raises(DecodeError, match="token"):
        CoapMessage.parse_datagram(b"\x44\x01\x00\x00\x00")
    with pytest.raises(DecodeError, match="empty payload"):
        CoapMessage.parse_datagram(b"\x40\x01\x00\x00\xff")
    with pytest.raises(DecodeError, match="nibble"):
        CoapMessage.parse_datagram(b"\x40\x01\x00\x00\xf0")
    with pytest.raises(DecodeError, match="mismatch"):
        CoapMessage.parse_stream(msg.compile_stream() + b"\x00")
    with pytest.raises(ValueError):
        CoapMessage(code=CoapCode.GET, token=b"123456789")
    with pytest.raises(ValueError):
        CoapMessage(code=CoapCode.GET, options=((12, b""), (11, b"")))
