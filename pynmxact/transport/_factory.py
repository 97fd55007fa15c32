# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import typing
import logging
from ._error import InvalidTransportConfigurationError

if typing.TYPE_CHECKING:
    from ._transport import Transport


_logger = logging.getLogger(__name__)


def make_transport(conn_type: str, conn_string: str = "") -> Transport:
    """
    Constructs and starts a transport from its type name and connection string.
    The concrete transport module is imported only when requested, so optional dependencies
    (e.g., pyserial) are needed only by the applications that use the corresponding transport.

    - ``isotp``: ``bus=<if>,receive=<rx>:<tx>,send=<rx>:<tx>,mtu=<n>``, e.g. ``bus=can0,mtu=256``;
    - ``serial``: ``dev=<port>,baud=<n>,mtu=<n>``, e.g. ``/dev/ttyACM0``;
    - ``udp``: ``<host>:<port>``, e.g. ``192.0.2.1:1337``;
    - ``loopback``: empty.

    >>> tr = make_transport("loopback")
    >>> tr.is_started
    True
    >>> tr.stop()
    """
    conn_type = conn_type.strip().lower()
    if conn_type == "isotp":
        from .isotp import ISOTPTransport, parse_conn_string

        out: Transport = ISOTPTransport(parse_conn_string(conn_string, ISOTPTransport.DEFAULT_CONFIG))
    elif conn_type == "serial":
        from .serial import SerialTransport, parse_serial_conn_string

        out = SerialTransport(parse_serial_conn_string(conn_string, SerialTransport.DEFAULT_CONFIG))
    elif conn_type == "udp":
        from .udp import UDPTransport, parse_udp_conn_string

        out = UDPTransport(parse_udp_conn_string(conn_string))
    elif conn_type == "loopback":
        from .loopback import LoopbackTransport

        if conn_string.strip():
            raise InvalidTransportConfigurationError(
                f"The loopback transport takes no connection string, got {conn_string!r}"
            )
        out = LoopbackTransport()
    else:
        raise InvalidTransportConfigurationError(f"Unknown transport type: {conn_type!r}")
    out.start()
    _logger.debug("Constructed %s from %r", out, conn_string)
    return out
