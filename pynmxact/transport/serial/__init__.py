# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

"""
Serial console transport. Requires `PySerial <https://pypi.org/project/pyserial>`_
(the ``transport-serial`` extra).

>>> from pynmxact.transport.serial import SerialTransport, parse_serial_conn_string
>>> tr = SerialTransport(parse_serial_conn_string("loop://,baud=9600", SerialTransport.DEFAULT_CONFIG))
>>> tr.config.baudrate
9600
"""

from ._serial import SerialTransport as SerialTransport
from ._serial import SerialSession as SerialSession
from ._serial import SerialTransportConfig as SerialTransportConfig
from ._serial import parse_serial_conn_string as parse_serial_conn_string

from ._frame import StreamParser as StreamParser
from ._frame import encode_packet as encode_packet
