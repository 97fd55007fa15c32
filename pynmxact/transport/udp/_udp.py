# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import errno
import typing
import socket
import select
import logging
import contextlib
import dataclasses
import pynmxact.transport
from pynmxact.transport import Session, SessionConfig, InvalidConnectionStringError


_READ_SIZE = 0xFFFF

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class UDPTransportConfig:
    host: str
    port: int
    mtu: int = 1024

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("The host shall not be empty")
        if not (0 < self.port <= 0xFFFF):
            raise ValueError(f"Invalid UDP port: {self.port}")
        if self.mtu <= 0:
            raise ValueError(f"Invalid MTU: {self.mtu}")


def parse_udp_conn_string(text: str) -> UDPTransportConfig:
    """
    The connection string is ``<host>:<port>``; IPv6 addresses are enclosed in brackets.

    >>> parse_udp_conn_string("192.0.2.1:1337")
    UDPTransportConfig(host='192.0.2.1', port=1337, mtu=1024)
    >>> parse_udp_conn_string("[::1]:1337").host
    '::1'
    """
    host, sep, port = text.strip().rpartition(":")
    host = host.strip()
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if not sep or not host:
        raise InvalidConnectionStringError(f"Expected <host>:<port>, got {text!r}", "host", text)
    try:
        return UDPTransportConfig(host=host, port=int(port, 10))
    except ValueError:
        raise InvalidConnectionStringError(f"Invalid UDP port: {port!r}", "port", port) from None


class UDPTransport(pynmxact.transport.Transport):
    """
    Management over UDP, the way the mcumgr UDP server expects it: one message per datagram.
    The session socket is connected to the peer, so datagrams from other sources are dropped by the IP stack.
    """

    def __init__(self, config: UDPTransportConfig) -> None:
        self._config = config
        super().__init__()

    @property
    def config(self) -> UDPTransportConfig:
        return self._config

    def _make_session(self, config: SessionConfig) -> UDPSession:
        return UDPSession(self._config, config)

    def _get_repr_fields(self) -> typing.Tuple[typing.List[typing.Any], typing.Dict[str, typing.Any]]:
        return [f"{self._config.host}:{self._config.port}"], {"mtu": self._config.mtu}


class UDPSession(Session):
    def __init__(self, transport_config: UDPTransportConfig, config: SessionConfig) -> None:
        self._transport_config = transport_config
        self._sock: typing.Optional[socket.socket] = None
        self._ctl_main: typing.Optional[socket.socket] = None
        self._ctl_worker: typing.Optional[socket.socket] = None
        super().__init__(config, mtu=transport_config.mtu, stream=False)

    def _connect(self) -> None:
        host, port = self._transport_config.host, self._transport_config.port
        try:
            family, kind, proto, _, address = socket.getaddrinfo(host, port, type=socket.SOCK_DGRAM)[0]
        except (socket.gaierror, IndexError) as ex:
            raise pynmxact.transport.InvalidMediaConfigurationError(f"Could not resolve {host!r}: {ex}") from ex
        ctl_main, ctl_worker = socket.socketpair()  # This is used for waking up the read loop.
        try:
            sock = socket.socket(family, kind, proto)
            try:
                sock.connect(address)
            except OSError:
                sock.close()
                raise
        except OSError as ex:
            ctl_main.close()
            ctl_worker.close()
            raise pynmxact.transport.TransportIOError(f"Could not connect to {address}: {ex}") from ex
        self._sock = sock
        self._ctl_main, self._ctl_worker = ctl_main, ctl_worker
        _logger.debug("%s: connected to %s from %s", self, address, sock.getsockname())

    def _disconnect(self) -> None:
        socks = (self._ctl_main, self._ctl_worker, self._sock)
        self._ctl_main, self._ctl_worker, self._sock = None, None, None
        try:
            if socks[0] is not None and socks[0].fileno() >= 0:
                socks[0].send(b"stop")
        finally:
            for s in socks:
                if s is not None:
                    with contextlib.suppress(OSError):
                        s.close()

    def _read(self, timeout: float) -> typing.Optional[bytes]:
        sock, ctl = self._sock, self._ctl_worker
        if sock is None or ctl is None:
            raise pynmxact.transport.ResourceClosedError(repr(self))
        read_ready, _, _ = select.select((sock, ctl), (), (), timeout)
        if ctl in read_ready:
            return None
        if sock in read_ready:
            try:
                return sock.recv(_READ_SIZE)
            except ConnectionRefusedError as ex:
                # An ICMP port unreachable for an earlier datagram; the peer may not be listening yet.
                _logger.info("%s: %s", self, ex)
        return None

    def _write(self, image: bytes) -> None:
        sock = self._sock
        if sock is None:
            raise OSError(errno.EBADF, "The socket is closed")
        try:
            sock.send(image)
        except ConnectionRefusedError as ex:
            # The error belongs to an earlier datagram and this one was not sent.
            _logger.info("%s: %s; sending again", self, ex)
            sock.send(image)

    def _get_repr_fields(self) -> typing.Tuple[typing.List[typing.Any], typing.Dict[str, typing.Any]]:
        return [f"{self._transport_config.host}:{self._transport_config.port}"], {}
