# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import abc
import typing


class CRCAlgorithm(abc.ABC):
    """
    Implementations are default-constructible.
    """

    @abc.abstractmethod
    def add(self, data: typing.Union[bytes, bytearray, memoryview]) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def check_residue(self) -> bool:
        """
        True if the CRC computed over the data followed by its own CRC matches the residue of the algorithm.
        """
        raise NotImplementedError

    @property
    @abc.abstractmethod
    def value(self) -> int:
        raise NotImplementedError

    @property
    @abc.abstractmethod
    def value_as_bytes(self) -> bytes:
        """
        The current value in the byte order used on the wire.
        """
        raise NotImplementedError

    @classmethod
    def new(cls, *fragments: typing.Union[bytes, bytearray, memoryview]) -> CRCAlgorithm:
        self = cls()
        for frag in fragments:
            self.add(frag)
        return self


class CRC16XMODEM(CRCAlgorithm):
    """
    CRC-16/XMODEM: polynomial 0x1021, initial value zero, no reflection, no output XOR; big-endian on the wire.
    This is the checksum of the serial management framing.

    >>> assert CRC16XMODEM().value == 0
    >>> c = CRC16XMODEM()
    >>> c.add(b"123")
    >>> c.add(b"")
    >>> c.add(b"456789")
    >>> hex(c.value)
    '0x31c3'
    >>> c.value_as_bytes
    b'1\\xc3'
    >>> c.check_residue()
    False
    >>> CRC16XMODEM.new(b"123456789", c.value_as_bytes).check_residue()
    True
    """

    def __init__(self) -> None:
        self._value = 0

    def add(self, data: typing.Union[bytes, bytearray, memoryview]) -> None:
        val = self._value
        for b in data:
            val = ((val << 8) & 0xFFFF) ^ _TABLE[(val >> 8) ^ b]
        self._value = val

    def check_residue(self) -> bool:
        return self._value == 0

    @property
    def value(self) -> int:
        return self._value

    @property
    def value_as_bytes(self) -> bytes:
        return self._value.to_bytes(2, "big")


def _make_table() -> typing.List[int]:
    table = []
    for i in range(256):
        crc = i << 8
        for _ in range(8):
            crc = ((crc << 1) ^ 0x1021) if crc & 0x8000 else (crc << 1)
        table.append(crc & 0xFFFF)
    return table


_TABLE = _make_table()
