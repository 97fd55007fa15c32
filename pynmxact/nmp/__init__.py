# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

"""
Plain management protocol (NMP) envelope
++++++++++++++++++++++++++++++++++++++++

Every management request and response is an NMP message: a fixed 8-byte big-endian header
followed by a CBOR-encoded map whose keys are short stable tokens rather than field names::

    +------+-------+-----------+-----------+------+------+----------------+
    |  op  | flags |  length   |   group   | seq  |  id  |   CBOR body    |
    |  u8  |  u8   |  u16 BE   |  u16 BE   |  u8  |  u8  |  length bytes  |
    +------+-------+-----------+-----------+------+------+----------------+

The request/response pair is correlated by the sequence number; the transceiver assigns it.
The same header is embedded into the CoAP-wrapped variant, see :mod:`pynmxact.omp`.

Typed command bodies are modeled by :class:`Command` subclasses,
e.g. :class:`Echo`, whose request and response types declare the wire key of each field.
"""

from ._header import NmpOp as NmpOp
from ._header import NmpGroup as NmpGroup
from ._header import NmpHeader as NmpHeader
from ._header import DecodeError as DecodeError
from ._header import NMP_HEADER_SIZE as NMP_HEADER_SIZE

from ._message import NmpMessage as NmpMessage
from ._message import encode_body as encode_body
from ._message import decode_body as decode_body

from ._command import CommandBody as CommandBody
from ._command import Command as Command
from ._command import Echo as Echo
from ._command import Reset as Reset
from ._command import call as call
