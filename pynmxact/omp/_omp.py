# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import typing
import pynmxact.nmp
from pynmxact.nmp import NmpMessage, NmpOp, NmpHeader, DecodeError, NMP_HEADER_SIZE
from ._coap import CoapMessage, CoapCode, CoapType


OMP_MSG_OVERHEAD = 13
"""
The number of bytes the CoAP wrapping adds on top of the plain envelope;
subtracted from the configured MTU when a session speaks the wrapped protocol.
"""

OMP_PATH = "omgr"

HEADER_KEY = "_h"


def encode_omp(msg: NmpMessage, token: bytes = b"", message_id: int = 0, stream: bool = False) -> bytes:
    """
    Wraps a plain envelope into a CoAP request. The NMP header travels inside the CBOR payload under ``_h``,
    next to the body fields; reads map onto GET and writes onto PUT.

    >>> msg = NmpMessage(op=NmpOp.READ, group=0, id=0, seq=1, body={})
    >>> coap = CoapMessage.parse_datagram(encode_omp(msg, token=b"\\x01"))
    >>> coap.code == CoapCode.GET, coap.path, coap.token
    (True, 'omgr', b'\\x01')
    >>> decode_omp(coap) == msg
    True
    """
    coap = make_omp(msg, token=token, message_id=message_id)
    return coap.compile_stream() if stream else coap.compile_datagram()


def make_omp(msg: NmpMessage, token: bytes = b"", message_id: int = 0) -> CoapMessage:
    if msg.op.is_response:
        code = CoapCode.CONTENT if msg.op == NmpOp.READ_RSP else CoapCode.CHANGED
        kind = CoapType.ACK
    else:
        code = CoapCode.GET if msg.op == NmpOp.READ else CoapCode.PUT
        kind = CoapType.CON
    payload: typing.Dict[str, typing.Any] = {HEADER_KEY: msg.header.compile()}
    payload.update(msg.body)
    return CoapMessage.make(
        code,
        "" if msg.op.is_response else OMP_PATH,
        pynmxact.nmp.encode_body(payload),
        token=token,
        type=kind,
        message_id=message_id,
    )


def decode_omp(coap: CoapMessage) -> NmpMessage:
    """
    Extracts the plain envelope from a CoAP message. The header length field is not validated
    because the body is re-encoded by the peer together with the header.
    """
    if not coap.payload:
        raise DecodeError(f"CoAP message carries no management payload: {coap}")
    payload = pynmxact.nmp.decode_body(coap.payload)
    raw_header = payload.pop(HEADER_KEY, None)
    if not isinstance(raw_header, bytes):
        raise DecodeError(f"Management payload lacks the {HEADER_KEY!r} header: {list(payload)!r}")
    if len(raw_header) != NMP_HEADER_SIZE:
        raise DecodeError(f"Invalid embedded header size: {len(raw_header)} bytes")
    return NmpMessage.from_header(NmpHeader.parse(raw_header), payload)


def decode_omp_image(
    image: typing.Union[bytes, bytearray, memoryview], stream: bool
) -> typing.Tuple[CoapMessage, NmpMessage]:
    coap = CoapMessage.parse_stream(image) if stream else CoapMessage.parse_datagram(image)
    return coap, decode_omp(coap)


def _unittest_omp() -> None:
    import pytest

    req = NmpMessage(op=NmpOp.WRITE, group=0, id=0, seq=42, body={"d": "ping"})
    image = encode_omp(req, token=b"\xAB\xCD", message_id=7)
    coap, msg = decode_omp_image(image, stream=False)
    assert msg == req
    assert coap.code == CoapCode.PUT
    assert coap.type == CoapType.CON
    assert coap.message_id == 7
    assert coap.token == b"\xAB\xCD"

    coap, msg = decode_omp_image(encode_omp(req, stream=True), stream=True)
    assert msg == req
    assert coap.path == OMP_PATH

    rsp = NmpMessage(op=NmpOp.WRITE_RSP, group=0, id=0, seq=42, body={"r": "ping"})
    coap = make_omp(rsp, token=b"\x01")
    assert coap.code == CoapCode.CHANGED
    assert coap.is_response
    assert decode_omp(coap) == rsp

    with pytest.raises(DecodeError, match="no management payload"):
        decode_omp(CoapMessage.make(CoapCode.CONTENT, "", b""))
    with pytest.raises(DecodeError, match="_h"):
        decode_omp(CoapMessage.make(CoapCode.CONTENT, "", pynmxact.nmp.encode_body({"r": 1})))
    with pytest.raises(DecodeError, match="size"):
        decode_omp(CoapMessage.make(CoapCode.CONTENT, "", pynmxact.nmp.encode_body({"_h": b"\x01"})))
