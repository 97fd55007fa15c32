# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import errno
import typing
import socket
import select
import logging
import contextlib
import pynmxact.transport
from pynmxact.transport import Session, SessionConfig
from ._config import ISOTPTransportConfig, EndpointAddress, format_conn_string

# Disable unused ignore warning for this file only because the CAN constants are only available on GNU/Linux.
# mypy: warn_unused_ignores=False


_logger = logging.getLogger(__name__)


class ISOTPTransport(pynmxact.transport.Transport):
    """
    ISO-TP (ISO 15765-2) over Linux SocketCAN. Requires the ``can-isotp`` kernel module (mainline since Linux 5.10).
    Segmentation, flow control, and reassembly are performed by the kernel;
    each read or write on the socket is one complete management message.

    Each session dials two sockets on the bus: one bound to the receive address pair and one bound to the send
    address pair. Raw transmission via :meth:`tx` is not supported because the transport is connection-oriented.

    A virtual bus is sufficient for experimentation::

        modprobe can-isotp
        ip link add dev vcan0 type vcan
        ip link set up vcan0
    """

    DEFAULT_CONFIG = ISOTPTransportConfig(
        bus_name="can0",
        receive_address=EndpointAddress(rx_id=255, tx_id=254),
        send_address=EndpointAddress(rx_id=254, tx_id=255),
        mtu=256,
    )

    def __init__(self, config: ISOTPTransportConfig = DEFAULT_CONFIG) -> None:
        if not isinstance(config, ISOTPTransportConfig):
            raise TypeError(f"Invalid ISO-TP transport config: {config!r}")
        self._config = config
        super().__init__()

    @property
    def config(self) -> ISOTPTransportConfig:
        return self._config

    def _make_session(self, config: SessionConfig) -> ISOTPSession:
        return ISOTPSession(self._config, config)

    def _get_repr_fields(self) -> typing.Tuple[typing.List[typing.Any], typing.Dict[str, typing.Any]]:
        return [repr(format_conn_string(self._config))], {}


class ISOTPSession(Session):
    READ_BUFFER_SIZE = 4095
    """
    The maximum size of a classic ISO-TP message.
    """

    def __init__(self, transport_config: ISOTPTransportConfig, config: SessionConfig) -> None:
        self._transport_config = transport_config
        self._receive_sock: typing.Optional[socket.socket] = None
        self._send_sock: typing.Optional[socket.socket] = None
        self._ctl_main: typing.Optional[socket.socket] = None
        self._ctl_worker: typing.Optional[socket.socket] = None
        super().__init__(config, mtu=transport_config.mtu, stream=False)

    @property
    def transport_config(self) -> ISOTPTransportConfig:
        return self._transport_config

    def _connect(self) -> None:
        bus = self._transport_config.bus_name
        try:
            socket.if_nametoindex(bus)
        except OSError as ex:
            raise pynmxact.transport.InvalidMediaConfigurationError(f"CAN bus {bus!r} not found: {ex}") from ex

        ctl_main, ctl_worker = socket.socketpair()  # This is used for waking up the read loop.
        acquired = [ctl_main, ctl_worker]
        try:
            receive = _make_socket(bus, self._transport_config.receive_address)
            acquired.append(receive)
            send = _make_socket(bus, self._transport_config.send_address)
        except BaseException:
            for s in acquired:
                s.close()
            raise
        self._ctl_main, self._ctl_worker = ctl_main, ctl_worker
        self._receive_sock, self._send_sock = receive, send
        _logger.debug("%s: dialled %s", self, format_conn_string(self._transport_config))

    def _disconnect(self) -> None:
        socks = (self._ctl_main, self._ctl_worker, self._receive_sock, self._send_sock)
        self._ctl_main, self._ctl_worker, self._receive_sock, self._send_sock = None, None, None, None
        try:
            if socks[0] is not None and socks[0].fileno() >= 0:
                socks[0].send(b"stop")  # The actual data is irrelevant, we just need it to unblock the select().
        finally:
            for s in socks:
                if s is not None:
                    with contextlib.suppress(OSError):
                        s.close()

    def _read(self, timeout: float) -> typing.Optional[bytes]:
        receive, ctl = self._receive_sock, self._ctl_worker
        if receive is None or ctl is None:
            raise pynmxact.transport.ResourceClosedError(repr(self))
        read_ready, _, _ = select.select((receive, ctl), (), (), timeout)
        if ctl in read_ready:
            return None
        if receive in read_ready:
            data = receive.recv(self.READ_BUFFER_SIZE)
            _logger.debug("%s: read %d bytes", self, len(data))
            return data
        return None

    def _write(self, image: bytes) -> None:
        send = self._send_sock
        if send is None:
            raise OSError(errno.EBADF, "The send socket is closed")
        send.send(image)

    def _get_repr_fields(self) -> typing.Tuple[typing.List[typing.Any], typing.Dict[str, typing.Any]]:
        return [repr(self._transport_config.bus_name)], {
            "receive": str(self._transport_config.receive_address),
            "send": str(self._transport_config.send_address),
        }


def _make_socket(bus: str, address: EndpointAddress) -> socket.socket:
    proto = getattr(socket, "CAN_ISOTP", None)
    if proto is None or not hasattr(socket, "PF_CAN"):
        raise pynmxact.transport.InvalidMediaConfigurationError("ISO-TP sockets are not supported on this platform")
    try:
        s = socket.socket(socket.PF_CAN, socket.SOCK_DGRAM, proto)  # type: ignore
    except OSError as ex:
        raise pynmxact.transport.TransportIOError(f"Could not create an ISO-TP socket: {ex}") from ex
    try:
        s.bind((bus, address.rx_id, address.tx_id))
    except OSError as ex:
        with contextlib.suppress(Exception):
            s.close()
        raise pynmxact.transport.TransportIOError(f"Could not bind to {bus} {address}: {ex}") from ex
    return s
