# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

"""
Management packets on a serial console are interleaved with ordinary text output. A packet is prefixed with
its length (big-endian, including the CRC) and suffixed with the CRC-16/XMODEM of its data (big-endian);
the result is base64-encoded and split into newline-terminated lines. The first line of a packet starts with
``0x06 0x09``, continuation lines start with ``0x04 0x14``. A line is at most 127 bytes long.
"""

from __future__ import annotations
import base64
import struct
import typing
import binascii
import logging
from pynmxact.util import CRC16XMODEM


FRAME_START = b"\x06\x09"
FRAME_CONTINUATION = b"\x04\x14"
LINE_TERMINATOR = 0x0A

MAX_LINE_LENGTH = 127

_LENGTH_FORMAT = struct.Struct(">H")
_CRC_SIZE = 2

# Raw bytes per line: the base64 text must fit between the two-byte prefix and the terminator.
# A multiple of three keeps every line independently decodable.
_RAW_BYTES_PER_LINE = (MAX_LINE_LENGTH - len(FRAME_START) - 1) // 4 * 3

_logger = logging.getLogger(__name__)


def encode_packet(data: typing.Union[bytes, bytearray, memoryview]) -> bytes:
    """
    Wraps one management message into console frames.

    >>> encode_packet(b"\\x00")
    b'\\x06\\tAAMAAAA=\\n'
    >>> lines = encode_packet(bytes(200)).splitlines(keepends=True)
    >>> [ln[:2] for ln in lines]
    [b'\\x06\\t', b'\\x04\\x14', b'\\x04\\x14']
    >>> max(map(len, lines)) <= MAX_LINE_LENGTH
    True
    """
    data = bytes(data)
    if len(data) + _CRC_SIZE > 0xFFFF:
        raise ValueError(f"Packet too large for serial framing: {len(data)} bytes")
    packet = _LENGTH_FORMAT.pack(len(data) + _CRC_SIZE) + data + CRC16XMODEM.new(data).value_as_bytes
    out = bytearray()
    for offset in range(0, len(packet), _RAW_BYTES_PER_LINE):
        out += FRAME_START if offset == 0 else FRAME_CONTINUATION
        out += base64.b64encode(packet[offset : offset + _RAW_BYTES_PER_LINE])
        out.append(LINE_TERMINATOR)
    return bytes(out)


class StreamParser:
    """
    A stream parser is fed with bytes received from the serial port.
    Whenever a complete packet with a valid CRC is reassembled, the callback receives the raw lines
    and the packet data. Lines that are not part of a valid packet are delivered with None instead of the data;
    such lines are usually the console output of the device (out-of-band data).
    """

    def __init__(
        self,
        callback: typing.Callable[[bytes, typing.Optional[bytes]], None],
        max_packet_size: int,
    ) -> None:
        """
        :param max_packet_size: Packets declaring a larger size are dropped without buffering their contents.
        """
        if not (callable(callback) and max_packet_size > 0):
            raise ValueError("Invalid parameters")
        self._callback = callback
        self._max_packet_size = int(max_packet_size)
        self._max_line_length = self._max_packet_size * 2 + MAX_LINE_LENGTH
        self._line = bytearray()
        self._raw = bytearray()  # Lines of the packet being reassembled.
        self._packet: typing.Optional[bytearray] = None  # Decoded bytes of the packet being reassembled.

    def process_next_chunk(self, chunk: typing.Union[bytes, bytearray, memoryview]) -> None:
        for b in bytes(chunk):
            self._line.append(b)
            if b == LINE_TERMINATOR:
                line, self._line = bytes(self._line), bytearray()
                self._process_line(line)
        if len(self._line) > self._max_line_length:
            line, self._line = bytes(self._line), bytearray()
            self._abandon()
            self._callback(line, None)

    def _process_line(self, line: bytes) -> None:
        start = line.find(FRAME_START)
        if start >= 0:
            self._abandon()
            if start > 0:  # E.g., the shell prompt printed right before the packet.
                self._callback(line[:start], None)
                line = line[start:]
            self._packet = bytearray()
        elif not (line.startswith(FRAME_CONTINUATION) and self._packet is not None):
            self._callback(line, None)
            return
        assert self._packet is not None
        self._raw += line
        try:
            self._packet += base64.b64decode(line[len(FRAME_START) :].strip(), validate=True)
        except (binascii.Error, ValueError) as ex:
            _logger.debug("Invalid base64 in a serial frame: %r", ex)
            self._abandon()
            return
        self._try_complete()

    def _try_complete(self) -> None:
        assert self._packet is not None
        if len(self._packet) < _LENGTH_FORMAT.size:
            return
        (length,) = _LENGTH_FORMAT.unpack_from(self._packet)
        if length < _CRC_SIZE or length > self._max_packet_size + _CRC_SIZE:
            _logger.debug("Serial packet of invalid length %d dropped", length)
            self._abandon()
            return
        body = self._packet[_LENGTH_FORMAT.size :]
        if len(body) < length:
            return
        if len(body) > length:
            _logger.debug("Serial packet has %d excess bytes", len(body) - length)
            self._abandon()
            return
        raw = bytes(self._raw)
        self._raw, self._packet = bytearray(), None
        if CRC16XMODEM.new(body).check_residue():
            self._callback(raw, bytes(body[:-_CRC_SIZE]))
        else:
            _logger.debug("Serial packet CRC error")
            self._callback(raw, None)

    def _abandon(self) -> None:
        if self._raw:
            self._callback(bytes(self._raw), None)
        self._raw, self._packet = bytearray(), None


def _unittest_stream_parser() -> None:
    from pytest import raises

    outputs: typing.List[typing.Tuple[bytes, typing.Optional[bytes]]] = []

    with raises(ValueError):
        StreamParser(lambda *_: None, 0)

    sp = StreamParser(lambda raw, data: outputs.append((raw, data)), 300)

    def proc(b: bytes) -> typing.List[typing.Tuple[bytes, typing.Optional[bytes]]]:
        sp.process_next_chunk(b)
        out = outputs[:]
        outputs.clear()
        return out

    assert [(b"uart:~$ help\n", None)] == proc(b"uart:~$ help\n")
    assert [] == proc(b"")

    image = encode_packet(b"hello")
    assert [(image, b"hello")] == proc(image)

    # Byte-by-byte delivery with console noise before and after.
    big = bytes(range(256))
    image = encode_packet(big)
    out: typing.List[typing.Tuple[bytes, typing.Optional[bytes]]] = []
    for b in b"boot\r\n" + image + b"done\n":
        out += proc(bytes([b]))
    assert out == [(b"boot\r\n", None), (image, big), (b"done\n", None)]

    # A packet that follows other text on the same line.
    image = encode_packet(b"hi")
    assert proc(b"uart:~$ " + image) == [(b"uart:~$ ", None), (image, b"hi")]
    lines = encode_packet(bytes(200)).splitlines(keepends=True)
    assert proc(b"\x1b[1;32muart:~$ \x1b[m" + b"".join(lines)) == [
        (b"\x1b[1;32muart:~$ \x1b[m", None),
        (b"".join(lines), bytes(200)),
    ]

    # A new packet abandons the incomplete one.
    first = encode_packet(bytes(200)).splitlines(keepends=True)[0]
    assert proc(first) == []
    assert proc(encode_packet(b"x")) == [(first, None), (encode_packet(b"x"), b"x")]

    # CRC mismatch.
    corrupted = bytearray(encode_packet(b"\x00"))
    corrupted[2:-1] = base64.b64encode(b"\x00\x03\x00\x00\x01")
    assert proc(bytes(corrupted)) == [(bytes(corrupted), None)]

    # Declared size above the limit.
    huge = FRAME_START + base64.b64encode(b"\xff\xff\x00") + b"\n"
    assert proc(huge) == [(huge, None)]

    # Continuation without a start is out-of-band.
    orphan = FRAME_CONTINUATION + b"AAAA\n"
    assert proc(orphan) == [(orphan, None)]

    # Overlong garbage without a terminator is flushed.
    assert proc(b"z" * 1000) == [(b"z" * 1000, None)]
