# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import re
import dataclasses
from pynmxact.transport import InvalidConnectionStringError, split_conn_string
from pynmxact.transport._conn_string import parse_positive_int, unrecognized_key


CAN_ID_MASK = 2**29 - 1

_ADDRESS_PAIR = re.compile(r"^\s*(\d+)\s*:\s*(\d+)\s*$")


@dataclasses.dataclass(frozen=True)
class EndpointAddress:
    """
    An ISO-TP socket is bound to a pair of CAN identifiers: the one it receives on and the one it transmits on.
    Extended (29-bit) identifiers are allowed.

    >>> EndpointAddress(0x7E8, 0x7E0)
    EndpointAddress(rx_id=2024, tx_id=2016)
    """

    rx_id: int
    tx_id: int

    def __post_init__(self) -> None:
        for name in ("rx_id", "tx_id"):
            value = getattr(self, name)
            if not isinstance(value, int) or not (0 <= value <= CAN_ID_MASK):
                raise ValueError(f"Invalid CAN ID {name}: {value!r}")

    def __str__(self) -> str:
        return f"{self.rx_id}:{self.tx_id}"


@dataclasses.dataclass(frozen=True)
class ISOTPTransportConfig:
    """
    Built once from a connection string and shared by every session of the transport.
    """

    bus_name: str
    receive_address: EndpointAddress
    send_address: EndpointAddress
    mtu: int

    def __post_init__(self) -> None:
        if not self.bus_name:
            raise ValueError("The bus name shall not be empty")
        if self.mtu <= 0:
            raise ValueError(f"Invalid MTU: {self.mtu}")


def parse_conn_string(text: str, default: ISOTPTransportConfig) -> ISOTPTransportConfig:
    """
    Parses an ISO-TP connection string. Omitted keys take their values from the default configuration.

    ========= ====================================================
    Key       Value
    ========= ====================================================
    bus       CAN interface name, e.g. ``can0``.
    dev       Alias of ``bus``; a bare token is treated as ``dev``.
    receive   ``<rx_id>:<tx_id>`` of the receiving endpoint.
    send      ``<rx_id>:<tx_id>`` of the sending endpoint.
    mtu       Positive decimal integer.
    ========= ====================================================

    >>> default = ISOTPTransportConfig("can0", EndpointAddress(255, 254), EndpointAddress(254, 255), 256)
    >>> cfg = parse_conn_string("bus=can1,receive=10:20,send=20:10,mtu=512", default)
    >>> cfg.bus_name, str(cfg.receive_address), str(cfg.send_address), cfg.mtu
    ('can1', '10:20', '20:10', 512)
    >>> parse_conn_string("vcan0", default) == parse_conn_string("bus=vcan0", default)
    True
    >>> parse_conn_string("", default) == default
    True
    """
    fields = {f.name: getattr(default, f.name) for f in dataclasses.fields(default)}
    for key, value in split_conn_string(text):
        if key in ("bus", "dev"):
            if not value:
                raise InvalidConnectionStringError(f"Empty bus name for {key!r}", key, value)
            fields["bus_name"] = value
        elif key == "receive":
            fields["receive_address"] = _parse_address(key, value)
        elif key == "send":
            fields["send_address"] = _parse_address(key, value)
        elif key == "mtu":
            fields["mtu"] = parse_positive_int(key, value)
        else:
            raise unrecognized_key(key, value)
    return ISOTPTransportConfig(**fields)


def format_conn_string(config: ISOTPTransportConfig) -> str:
    """
    The canonical form accepted by :func:`parse_conn_string`.

    >>> format_conn_string(ISOTPTransportConfig("can0", EndpointAddress(1, 2), EndpointAddress(2, 1), 64))
    'bus=can0,receive=1:2,send=2:1,mtu=64'
    """
    return (
        f"bus={config.bus_name},receive={config.receive_address},send={config.send_address},mtu={config.mtu}"
    )


def _parse_address(key: str, value: str) -> EndpointAddress:
    match = _ADDRESS_PAIR.match(value)
    if not match:
        raise InvalidConnectionStringError(f"Invalid {key} address pair: {value!r}", key, value)
    try:
        return EndpointAddress(int(match.group(1)), int(match.group(2)))
    except ValueError as ex:
        raise InvalidConnectionStringError(f"Invalid {key} address pair: {value!r}: {ex}", key, value) from None
