# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import typing
import logging
import dataclasses
from ._header import NmpOp, NmpGroup, DecodeError
from ._message import NmpMessage, Body

if typing.TYPE_CHECKING:
    import pynmxact.transport  # pylint: disable=cyclic-import

T = typing.TypeVar("T", bound="CommandBody")


_logger = logging.getLogger(__name__)


def key(token: str, **kwargs: typing.Any) -> typing.Any:
    """
    Declares a body field that is serialized under the short wire ``token`` rather than under its Python name.
    The keyword arguments are passed through to :func:`dataclasses.field`.
    """
    metadata = dict(kwargs.pop("metadata", {}))
    metadata["key"] = token
    return dataclasses.field(metadata=metadata, **kwargs)


@dataclasses.dataclass(frozen=True)
class CommandBody:
    """
    Base of typed request and response bodies.
    Unknown keys in an inbound body are ignored; a field without a default must be present.

    >>> @dataclasses.dataclass(frozen=True)
    ... class Status(CommandBody):
    ...     code: int = key("rc", default=0)
    ...     text: str = key("t", default="")
    >>> Status(code=3).to_body()
    {'rc': 3, 't': ''}
    >>> Status.from_body({"rc": 1, "unknown": None})
    Status(code=1, text='')
    """

    def to_body(self) -> Body:
        return {_wire_key(f): getattr(self, f.name) for f in dataclasses.fields(self)}

    @classmethod
    def from_body(cls: typing.Type[T], body: Body) -> T:
        kwargs: typing.Dict[str, typing.Any] = {}
        for f in dataclasses.fields(cls):
            k = _wire_key(f)
            if k in body:
                kwargs[f.name] = body[k]
            elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
                raise DecodeError(f"{cls.__name__}: required key {k!r} is missing from {body!r}")
        return cls(**kwargs)


def _wire_key(f: dataclasses.Field) -> str:  # type: ignore
    return str(f.metadata.get("key", f.name))


class Command:
    """
    A command type: its group, identifier, and request operation, plus the nested ``Request`` and ``Response``
    body types. Subclasses only set the class attributes; instances are never created.
    """

    GROUP: int
    ID: int
    OP: NmpOp = NmpOp.WRITE

    Request: typing.Type[CommandBody]
    Response: typing.Type[CommandBody]

    @classmethod
    def make_request(cls, request: CommandBody) -> NmpMessage:
        if not isinstance(request, cls.Request):
            raise TypeError(f"{cls.__name__} expects {cls.Request.__name__}, got {type(request).__name__}")
        return NmpMessage(op=cls.OP, group=int(cls.GROUP), id=cls.ID, body=request.to_body())

    @classmethod
    def parse_response(cls, message: NmpMessage) -> CommandBody:
        if message.op != cls.OP.response or message.group != cls.GROUP or message.id != cls.ID:
            raise DecodeError(
                f"{cls.__name__}: unexpected response {message.op.name} group={message.group} id={message.id}"
            )
        return cls.Response.from_body(message.body)


class Echo(Command):
    """
    The peer sends back the payload unchanged.

    >>> Echo.make_request(Echo.Request("hi")).compile().hex()
    '0200000600000000a16164626869'
    """

    GROUP = NmpGroup.DEFAULT
    ID = 0

    @dataclasses.dataclass(frozen=True)
    class Request(CommandBody):
        payload: str = key("d")

    @dataclasses.dataclass(frozen=True)
    class Response(CommandBody):
        payload: str = key("r", default="")
        rc: int = key("rc", default=0)


class Reset(Command):
    """
    The peer reboots after sending the response.
    """

    GROUP = NmpGroup.DEFAULT
    ID = 5

    @dataclasses.dataclass(frozen=True)
    class Request(CommandBody):
        pass

    @dataclasses.dataclass(frozen=True)
    class Response(CommandBody):
        rc: int = key("rc", default=0)


async def call(
    session: pynmxact.transport.Session,
    command: typing.Type[Command],
    request: CommandBody,
    timeout: float,
) -> CommandBody:
    """
    Sends one typed request through the session and decodes the matched response.
    Raises the same errors as :meth:`pynmxact.transport.Session.tx_rx_mgmt`,
    and :class:`DecodeError` if the response body does not fit the command's response type.
    """
    response = await session.tx_rx_mgmt(command.make_request(request), timeout)
    out = command.parse_response(response)
    _logger.debug("%s: %s -> %s", command.__name__, request, out)
    return out


def _unittest_command() -> None:
    import pytest

    msg = Echo.make_request(Echo.Request(payload="hello"))
    assert msg.op == NmpOp.WRITE
    assert (msg.group, msg.id) == (0, 0)
    assert msg.body == {"d": "hello"}

    rsp = NmpMessage(op=NmpOp.WRITE_RSP, group=0, id=0, seq=9, body={"r": "hello", "extra": 1})
    out = Echo.parse_response(rsp)
    assert out == Echo.Response(payload="hello", rc=0)

    with pytest.raises(DecodeError):
        Echo.parse_response(NmpMessage(op=NmpOp.READ_RSP, group=0, id=0, body={}))
    with pytest.raises(DecodeError, match="'d'"):
        Echo.Request.from_body({"r": "x"})
    with pytest.raises(TypeError):
        Echo.make_request(Reset.Request())

    assert Reset.make_request(Reset.Request()).compile() == bytes([2, 0, 0, 1, 0, 0, 0, 5, 0xA0])
    assert Reset.parse_response(NmpMessage(op=NmpOp.WRITE_RSP, group=0, id=5, body={"rc": 0})) == Reset.Response()
