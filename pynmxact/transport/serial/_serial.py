# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import typing
import logging
import collections
import dataclasses
import serial
import pynmxact.transport
from pynmxact.transport import Session, SessionConfig, InvalidConnectionStringError, split_conn_string
from pynmxact.transport._conn_string import parse_positive_int, unrecognized_key
from ._frame import StreamParser, encode_packet


_MAX_PACKET_SIZE = 0xFFFF - 2  # The length prefix also covers the CRC.

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class SerialTransportConfig:
    port: str
    """
    Either a device name like ``/dev/ttyACM0`` or ``COM9``, or a URL accepted by :func:`serial.serial_for_url`,
    e.g., ``socket://localhost:50905`` or ``loop://``.
    """

    baudrate: int = 115200
    mtu: int = 512

    def __post_init__(self) -> None:
        if not self.port:
            raise ValueError("The serial port name shall not be empty")
        if self.baudrate <= 0:
            raise ValueError(f"Invalid baud rate: {self.baudrate}")
        if self.mtu <= 0:
            raise ValueError(f"Invalid MTU: {self.mtu}")


def parse_serial_conn_string(text: str, default: SerialTransportConfig) -> SerialTransportConfig:
    """
    Keys: ``dev`` (a bare token is treated as ``dev``), ``baud``, ``mtu``. Omitted keys are taken from the default.

    >>> default = SerialTransportConfig("/dev/ttyUSB0")
    >>> parse_serial_conn_string("/dev/ttyACM0,baud=1000000", default)
    SerialTransportConfig(port='/dev/ttyACM0', baudrate=1000000, mtu=512)
    >>> parse_serial_conn_string("mtu=128", default).port
    '/dev/ttyUSB0'
    """
    fields = dataclasses.asdict(default)
    for key, value in split_conn_string(text):
        if key == "dev":
            if not value:
                raise InvalidConnectionStringError("Empty serial port name", key, value)
            fields["port"] = value
        elif key == "baud":
            fields["baudrate"] = parse_positive_int(key, value)
        elif key == "mtu":
            fields["mtu"] = parse_positive_int(key, value)
        else:
            raise unrecognized_key(key, value)
    return SerialTransportConfig(**fields)


class SerialTransport(pynmxact.transport.Transport):
    """
    Management over a serial console (UART, USB CDC ACM) using the base64 line framing of mcumgr.
    The port is opened by each session through :func:`serial.serial_for_url`, so every URL scheme supported
    by PySerial is accepted; ``loop://`` is handy for testing.
    Text output of the device between packets is logged and otherwise ignored.

    Because the console is a byte stream, OMP uses the CoAP-over-TCP message layout here.
    """

    DEFAULT_CONFIG = SerialTransportConfig(port="/dev/ttyUSB0")

    def __init__(self, config: SerialTransportConfig = DEFAULT_CONFIG) -> None:
        if not isinstance(config, SerialTransportConfig):
            raise TypeError(f"Invalid serial transport config: {config!r}")
        self._config = config
        super().__init__()

    @property
    def config(self) -> SerialTransportConfig:
        return self._config

    def _make_session(self, config: SessionConfig) -> SerialSession:
        return SerialSession(self._config, config)

    def _get_repr_fields(self) -> typing.Tuple[typing.List[typing.Any], typing.Dict[str, typing.Any]]:
        return [repr(self._config.port)], {"baudrate": self._config.baudrate, "mtu": self._config.mtu}


class SerialSession(Session):
    def __init__(self, transport_config: SerialTransportConfig, config: SessionConfig) -> None:
        self._transport_config = transport_config
        self._port: typing.Optional[serial.SerialBase] = None
        self._parser: typing.Optional[StreamParser] = None
        self._rx_queue: typing.Deque[bytes] = collections.deque()
        super().__init__(config, mtu=transport_config.mtu, stream=True)

    @property
    def serial_port(self) -> typing.Optional[serial.SerialBase]:
        return self._port

    def _connect(self) -> None:
        name = self._transport_config.port
        try:
            port = serial.serial_for_url(name, baudrate=self._transport_config.baudrate, timeout=self.READ_TIMEOUT)
        except ValueError as ex:
            raise pynmxact.transport.InvalidMediaConfigurationError(f"Invalid serial port {name!r}: {ex}") from ex
        except serial.SerialException as ex:
            raise pynmxact.transport.TransportIOError(f"Could not open serial port {name!r}: {ex}") from ex
        self._rx_queue.clear()
        self._parser = StreamParser(self._on_parsed, max_packet_size=_MAX_PACKET_SIZE)
        self._port = port
        _logger.debug("%s: opened %s", self, port)

    def _disconnect(self) -> None:
        port, self._port = self._port, None
        if port is not None and port.is_open:
            port.close()  # Unblocks the reader.

    def _read(self, timeout: float) -> typing.Optional[bytes]:  # The port timeout is configured when opened.
        if self._rx_queue:
            return self._rx_queue.popleft()
        port, parser = self._port, self._parser
        if port is None or parser is None:
            raise pynmxact.transport.ResourceClosedError(repr(self))
        chunk = port.read(max(1, port.in_waiting))
        if chunk:
            parser.process_next_chunk(chunk)
        return self._rx_queue.popleft() if self._rx_queue else None

    def _write(self, image: bytes) -> None:
        port = self._port
        if port is None:
            raise serial.PortNotOpenError()
        port.write(encode_packet(image))
        port.flush()

    def _on_parsed(self, raw: bytes, data: typing.Optional[bytes]) -> None:
        if data is not None:
            self._rx_queue.append(data)
        else:
            _logger.debug("%s: out-of-band data: %r", self, raw)

    def _get_repr_fields(self) -> typing.Tuple[typing.List[typing.Any], typing.Dict[str, typing.Any]]:
        return [repr(self._transport_config.port)], {"baudrate": self._transport_config.baudrate}
