# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from ._udp import UDPTransport as UDPTransport
from ._udp import UDPSession as UDPSession
from ._udp import UDPTransportConfig as UDPTransportConfig
from ._udp import parse_udp_conn_string as parse_udp_conn_string
