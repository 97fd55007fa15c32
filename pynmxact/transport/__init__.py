# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

"""
Abstract transport model
++++++++++++++++++++++++

A :class:`Transport` owns the configuration of a physical medium (a CAN bus with ISO-TP addressing,
a serial port, a UDP peer) and creates :class:`Session` instances over it.
A session is the duplex channel the application talks to the remote device through:

- :meth:`Session.tx_rx_mgmt` sends a management request and awaits the response
  matched by sequence number, with timeout and retransmission;
- :meth:`Session.tx_rx_mgmt_async` does the same in a background task that reports into queues;
- :meth:`Session.tx_notification` and :meth:`Session.listen_notification` exchange CoAP messages
  that are not correlated with requests.

..  doctest::
    :hide:

    >>> import asyncio

The loopback transport serves as the peer in the example below; other transports follow the same interface:

>>> from pynmxact.nmp import Echo, call
>>> from pynmxact.transport.loopback import LoopbackTransport, echo_responder
>>> async def main() -> object:
...     tr = make_transport("loopback")
...     assert isinstance(tr, LoopbackTransport)
...     tr.responder = echo_responder
...     ses = tr.new_session(SessionConfig())
...     ses.open()
...     try:
...         return await call(ses, Echo, Echo.Request("hello"), timeout=1.0)
...     finally:
...         tr.stop()
>>> asyncio.run(main())
Echo.Response(payload='hello', rc=0)


Implementing new transports
+++++++++++++++++++++++++++

Each transport resides in its own submodule under :mod:`pynmxact.transport`, which is never auto-imported.
A new session type subclasses :class:`Session` and implements four methods:
:meth:`Session._connect`, :meth:`Session._disconnect`, :meth:`Session._read`, and :meth:`Session._write`.
The base class provides the read loop thread, the serialized write path,
and the link failure handling.
"""

# Please keep the imports well-ordered because the management layer depends on the exceptions.

# Exceptions.
from ._error import TransportError as TransportError
from ._error import InvalidTransportConfigurationError as InvalidTransportConfigurationError
from ._error import InvalidConnectionStringError as InvalidConnectionStringError
from ._error import InvalidMediaConfigurationError as InvalidMediaConfigurationError
from ._error import UnsupportedOperationError as UnsupportedOperationError
from ._error import TransportIOError as TransportIOError
from ._error import ResourceClosedError as ResourceClosedError
from ._error import SessionClosedError as SessionClosedError
from ._error import SessionAlreadyOpenError as SessionAlreadyOpenError
from ._error import TransportAlreadyStartedError as TransportAlreadyStartedError
from ._error import TransportNotStartedError as TransportNotStartedError

# Core transport.
from ._transport import Transport as Transport

from ._session import Session as Session
from ._session import SessionConfig as SessionConfig

from pynmxact.mgmt import MgmtProtocol as MgmtProtocol
from pynmxact.mgmt import TxFilter as TxFilter
from pynmxact.mgmt import RxFilter as RxFilter
from pynmxact.mgmt import DEFAULT_RETRIES as DEFAULT_RETRIES

# Configuration.
from ._conn_string import split_conn_string as split_conn_string
from ._factory import make_transport as make_transport
