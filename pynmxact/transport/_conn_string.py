# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

import typing
from ._error import InvalidConnectionStringError


def split_conn_string(text: str) -> typing.List[typing.Tuple[str, str]]:
    """
    Splits a ``key=value,key=value`` connection string into pairs, preserving order and repetitions.
    A segment without ``=`` is the legacy form naming the device: it is returned as ``("dev", segment)``.

    >>> split_conn_string("bus=can0,mtu=256")
    [('bus', 'can0'), ('mtu', '256')]
    >>> split_conn_string("can1")
    [('dev', 'can1')]
    >>> split_conn_string("a=b=c")
    [('a', 'b=c')]
    >>> split_conn_string("")
    []
    """
    if not text:
        return []
    out = []
    for segment in text.split(","):
        key, sep, value = segment.partition("=")
        out.append((key.strip(), value.strip()) if sep else ("dev", segment.strip()))
    return out


def parse_positive_int(key: str, value: str) -> int:
    """
    >>> parse_positive_int("mtu", "256")
    256
    """
    try:
        out = int(value, 10)
    except ValueError:
        raise InvalidConnectionStringError(f"Invalid {key}: {value!r}", key, value) from None
    if out <= 0:
        raise InvalidConnectionStringError(f"Invalid {key}: {value!r} is not positive", key, value)
    return out


def unrecognized_key(key: str, value: str) -> InvalidConnectionStringError:
    return InvalidConnectionStringError(f"Unrecognized key: {key!r}", key, value)


def _unittest_conn_string() -> None:
    import pytest

    assert split_conn_string(" bus = can0 , mtu=8") == [("bus", "can0"), ("mtu", "8")]
    assert split_conn_string("dev=/dev/ttyACM0") == split_conn_string("/dev/ttyACM0")

    with pytest.raises(InvalidConnectionStringError, match="mtu") as ei:
        parse_positive_int("mtu", "abc")
    assert ei.value.key == "mtu"
    assert ei.value.value == "abc"
    with pytest.raises(InvalidConnectionStringError, match="positive"):
        parse_positive_int("baud", "0")
    with pytest.raises(InvalidConnectionStringError):
        parse_positive_int("mtu", "0x10")
