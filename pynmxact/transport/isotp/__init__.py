# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

"""
ISO-TP transport over Linux SocketCAN.

>>> from pynmxact.transport.isotp import ISOTPTransport, parse_conn_string
>>> tr = ISOTPTransport(parse_conn_string("bus=vcan0,mtu=128", ISOTPTransport.DEFAULT_CONFIG))
>>> tr.config.receive_address
EndpointAddress(rx_id=255, tx_id=254)
"""

from ._config import EndpointAddress as EndpointAddress
from ._config import ISOTPTransportConfig as ISOTPTransportConfig
from ._config import parse_conn_string as parse_conn_string
from ._config import format_conn_string as format_conn_string

from ._isotp import ISOTPTransport as ISOTPTransport
from ._isotp import ISOTPSession as ISOTPSession
