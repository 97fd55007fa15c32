# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

import pytest
from pynmxact.nmp import NmpMessage, NmpOp, NmpGroup, DecodeError, encode_body, decode_body
from pynmxact.omp import CoapMessage, CoapCode, CoapType, CoapOption, OMP_PATH
from pynmxact.omp import encode_omp, make_omp, decode_omp, decode_omp_image


def _unittest_coap_datagram_errors() -> None:
    good = CoapMessage.make(CoapCode.GET, "omgr", b"\xa0", token=b"\x01\x02", message_id=0x1234)
    image = good.compile_datagram()
    assert CoapMessage.parse_datagram(image) == good

    with pytest.raises(DecodeError, match="truncated"):
        CoapMessage.parse_datagram(image[:3])
    with pytest.raises(DecodeError, match="version"):
        CoapMessage.parse_datagram(bytes([image[0] & 0x3F | 0x80]) + image[1:])
    with pytest.raises(DecodeError, match="token length"):
        CoapMessage.parse_datagram(bytes([0x49]) + image[1:])
    with pytest.raises(DecodeError, match="token truncated"):
        CoapMessage.parse_datagram(bytes([0x48, 0x01, 0x00, 0x00, 0xAA]))
    with pytest.raises(DecodeError, match="empty payload"):
        CoapMessage.parse_datagram(bytes([0x40, 0x01, 0x00, 0x00, 0xFF]))
    with pytest.raises(DecodeError, match="option value truncated"):
        CoapMessage.parse_datagram(bytes([0x40, 0x01, 0x00, 0x00, 0xB4, ord("o")]))
    with pytest.raises(DecodeError, match="nibble 15"):
        CoapMessage.parse_datagram(bytes([0x40, 0x01, 0x00, 0x00, 0xF1, 0x00]))


def _unittest_coap_stream_lengths() -> None:
    for size in (0, 1, 11, 12, 13, 268, 269, 1000, 70000):
        msg = CoapMessage.make(CoapCode.PUT, "omgr", b"\x5A" * size, token=b"\x42")
        image = msg.compile_stream()
        parsed = CoapMessage.parse_stream(image)
        assert parsed == msg
        with pytest.raises(DecodeError, match="size mismatch"):
            CoapMessage.parse_stream(image + b"\x00")
        with pytest.raises(DecodeError):
            CoapMessage.parse_stream(image[:-1])

    with pytest.raises(DecodeError, match="empty"):
        CoapMessage.parse_stream(b"")
    with pytest.raises(DecodeError, match="length truncated"):
        CoapMessage.parse_stream(bytes([0xE0, 0x00]))


def _unittest_coap_model() -> None:
    with pytest.raises(ValueError):
        CoapMessage(code=256)
    with pytest.raises(ValueError):
        CoapMessage(code=1, token=bytes(9))
    with pytest.raises(ValueError):
        CoapMessage(code=1, message_id=0x10000)
    with pytest.raises(ValueError):
        CoapMessage(code=1, options=((CoapOption.URI_PATH, b"a"), (CoapOption.OBSERVE, b"")))

    msg = CoapMessage.make(
        CoapCode.GET, "/a/b/", b"", token=b"\x09", content_format=60, observe=0, type=CoapType.NON
    )
    assert msg.path == "a/b"
    assert msg.observe == 0
    assert msg.get_options(CoapOption.CONTENT_FORMAT) == [b"\x3c"]
    assert msg.is_request and not msg.is_response
    assert CoapMessage.parse_datagram(msg.compile_datagram()) == msg

    unknown = CoapMessage(code=0x44 + 0x20)  # 3.04 is not a registered code
    assert "3.04" in repr(unknown)
    assert not unknown.is_request
    assert unknown.is_response


def _unittest_omp_mapping() -> None:
    read = NmpMessage(op=NmpOp.READ, group=NmpGroup.STAT, id=1, seq=1, body={"name": "g"})
    coap = make_omp(read, token=b"\x01")
    assert coap.code == CoapCode.GET
    assert coap.type == CoapType.CON
    assert coap.path == OMP_PATH
    payload = decode_body(coap.payload)
    assert payload["name"] == "g"
    assert payload["_h"] == read.header.compile()

    read_rsp = NmpMessage(op=NmpOp.READ_RSP, group=NmpGroup.STAT, id=1, seq=1, body={"rc": 0})
    coap = make_omp(read_rsp, token=b"\x01", message_id=9)
    assert coap.code == CoapCode.CONTENT
    assert coap.type == CoapType.ACK
    assert coap.path == ""
    assert coap.message_id == 9
    assert decode_omp(coap) == read_rsp

    write_rsp = NmpMessage(op=NmpOp.WRITE_RSP, group=0, id=0, seq=2, body={"r": "x"})
    assert make_omp(write_rsp).code == CoapCode.CHANGED

    image = encode_omp(read, token=b"\x02", stream=True)
    coap, msg = decode_omp_image(image, stream=True)
    assert coap.token == b"\x02"
    assert msg == read

    with pytest.raises(DecodeError):
        decode_omp_image(image, stream=False)  # Wrong framing.
    with pytest.raises(DecodeError):
        decode_omp(CoapMessage.make(CoapCode.CONTENT, "", b"\x01"))  # Not a map.
    with pytest.raises(DecodeError, match="_h"):
        decode_omp(CoapMessage.make(CoapCode.CONTENT, "", encode_body({"_h": "text"})))
