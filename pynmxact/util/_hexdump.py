# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

import typing


def hexdump(data: typing.Union[bytes, bytearray, memoryview], width: int = 16) -> str:
    """
    Renders a block of bytes as a multi-line hex dump for debug logging of raw frames.

    >>> print(hexdump(b"\\x02\\x00\\x00\\x03hello"))
    00000000  02 00 00 03 68 65 6c 6c 6f                       |....hello|
    >>> hexdump(b"")
    ''
    """
    data = bytes(data)
    lines = []
    for offset in range(0, len(data), width):
        chunk = data[offset : offset + width]
        hex_part = " ".join(f"{b:02x}" for b in chunk).ljust(width * 3 - 1)
        text_part = "".join(chr(b) if 0x20 <= b < 0x7F else "." for b in chunk)
        lines.append(f"{offset:08x}  {hex_part}  |{text_part}|")
    return "\n".join(lines)
