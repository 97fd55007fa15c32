# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

"""
The util package contains small helpers shared across the library.
"""

from ._repr import repr_attributes as repr_attributes
from ._repr import repr_attributes_noexcept as repr_attributes_noexcept

from ._hexdump import hexdump as hexdump

from ._crc import CRCAlgorithm as CRCAlgorithm
from ._crc import CRC16XMODEM as CRC16XMODEM
