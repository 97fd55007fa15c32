# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

import typing
import asyncio
import pytest
import pynmxact.transport
from pynmxact.nmp import NmpMessage, NmpOp, Echo, Reset
from pynmxact.omp import CoapMessage, CoapCode, CoapType, make_omp
from pynmxact.mgmt import Transceiver, TransceiverStatistics, MgmtProtocol, MsgCriteria
from pynmxact.mgmt import ResponseTimeoutError, SequenceNumberExhaustedError, RequestAbortedError
from pynmxact.mgmt import MessageRejectedError, MessageTooLargeError
from pynmxact.transport.loopback import MgmtResponder, echo_handler


_Reply = typing.Callable[[bytes], typing.Iterable[bytes]]


class _Peer:
    """
    Plays the medium: records every written image and feeds the replies back into the transceiver.
    """

    def __init__(self, transceiver: Transceiver, reply: typing.Optional[_Reply] = None) -> None:
        self.transceiver = transceiver
        self.reply = reply
        self.written: typing.List[bytes] = []

    async def __call__(self, image: bytes) -> None:
        self.written.append(image)
        if self.reply is not None:
            for rep in self.reply(image):
                asyncio.get_running_loop().call_soon(self.transceiver.dispatch, rep)


def _echo(text: str) -> NmpMessage:
    return Echo.make_request(Echo.Request(text))


def _nmp_transceiver(**kwargs: typing.Any) -> Transceiver:
    return Transceiver(tx_filter=None, rx_filter=None, stream=False, mgmt_protocol=MgmtProtocol.NMP, **kwargs)


async def _unittest_transceiver_nmp() -> None:
    tr = _nmp_transceiver()
    peer = _Peer(tr, MgmtResponder(echo_handler))
    assert tr.sample_statistics() == TransceiverStatistics()
    assert "NMP" in repr(tr)

    for i in range(3):
        rsp = await tr.tx_rx_mgmt(peer, _echo(f"hi{i}").with_seq(123), mtu=1024, timeout=1.0)
        assert rsp.op == NmpOp.WRITE_RSP
        assert rsp.seq == i  # The caller's sequence number is replaced.
        assert Echo.parse_response(rsp) == Echo.Response(payload=f"hi{i}")
    assert [NmpMessage.parse(w).seq for w in peer.written] == [0, 1, 2]
    assert tr.pending_count == 0

    stats = tr.sample_statistics()
    assert stats.sent_requests == 3
    assert stats.responses == 3
    assert stats.retransmissions == 0
    stats.responses = 999  # The sample is a copy.
    assert tr.sample_statistics().responses == 3

    with pytest.raises(ValueError):
        await tr.tx_rx_mgmt(peer, _echo("x"), mtu=1024, timeout=0)


async def _unittest_transceiver_out_of_order() -> None:
    tr = _nmp_transceiver()
    held: typing.List[bytes] = []
    responder = MgmtResponder(echo_handler)

    def hold(image: bytes) -> typing.List[bytes]:
        held.extend(responder(image))
        return []

    peer = _Peer(tr, hold)
    tasks = [asyncio.create_task(tr.tx_rx_mgmt(peer, _echo(str(i)), 1024, 2.0)) for i in range(3)]
    while len(held) < 3:
        await asyncio.sleep(0.01)
    assert tr.pending_count == 3
    for image in reversed(held):
        tr.dispatch(image)
    results = await asyncio.gather(*tasks)
    assert [Echo.parse_response(r) for r in results] == [Echo.Response(payload=str(i)) for i in range(3)]
    assert tr.pending_count == 0

    # A duplicate of an already matched response is reported but harmless.
    tr.dispatch(held[0])
    assert tr.sample_statistics().unexpected_responses == 1
    assert tr.sample_statistics().unmatched_messages == 1


async def _unittest_transceiver_retries() -> None:
    tr = _nmp_transceiver(retries=2)
    peer = _Peer(tr)
    with pytest.raises(ResponseTimeoutError):
        await tr.tx_rx_mgmt(peer, _echo("lost"), 1024, 0.05)
    assert len(peer.written) == 3
    assert len(set(peer.written)) == 1  # The same image is repeated.
    stats = tr.sample_statistics()
    assert (stats.sent_requests, stats.retransmissions, stats.timeouts) == (1, 2, 1)
    assert tr.pending_count == 0

    # The response to the second attempt completes the request.
    responder = MgmtResponder(echo_handler)
    attempts = 0

    def second_only(image: bytes) -> typing.List[bytes]:
        nonlocal attempts
        attempts += 1
        return responder(image) if attempts == 2 else []

    peer = _Peer(tr, second_only)
    rsp = await tr.tx_rx_mgmt(peer, _echo("late"), 1024, 0.05)
    assert Echo.parse_response(rsp) == Echo.Response(payload="late")
    assert len(peer.written) == 2

    # No retries at all.
    tr = _nmp_transceiver(retries=0)
    peer = _Peer(tr)
    with pytest.raises(ResponseTimeoutError):
        await tr.tx_rx_mgmt(peer, _echo("once"), 1024, 0.05)
    assert len(peer.written) == 1

    with pytest.raises(ValueError):
        _nmp_transceiver(retries=-1)


async def _unittest_transceiver_sequence_exhaustion() -> None:
    tr = _nmp_transceiver(retries=0)
    peer = _Peer(tr)
    tasks = [asyncio.create_task(tr.tx_rx_mgmt(peer, _echo("x"), 1024, 10.0)) for _ in range(256)]
    while tr.pending_count < 256:
        await asyncio.sleep(0.01)

    with pytest.raises(SequenceNumberExhaustedError):
        await tr.tx_rx_mgmt(peer, _echo("one too many"), 1024, 10.0)

    # Freeing one sequence number makes it available to the next request, skipping all pending ones.
    tr.abort_rx(77)
    with pytest.raises(RequestAbortedError):
        await tasks[77]
    rsp_task = asyncio.create_task(tr.tx_rx_mgmt(peer, _echo("reuse"), 1024, 10.0))
    await asyncio.sleep(0.01)
    assert NmpMessage.parse(peer.written[-1]).seq == 77

    err = pynmxact.transport.TransportIOError("link lost")
    tr.error_all(err)
    assert tr.pending_count == 0
    results = await asyncio.gather(*tasks, rsp_task, return_exceptions=True)
    assert sum(r is err for r in results) == 256  # The aborted one reports its own error.

    # The transceiver remains usable.
    peer.reply = MgmtResponder(echo_handler)
    rsp = await tr.tx_rx_mgmt(peer, _echo("after"), 1024, 1.0)
    assert Echo.parse_response(rsp) == Echo.Response(payload="after")


async def _unittest_transceiver_abort_and_cancel() -> None:
    tr = _nmp_transceiver(retries=0)
    peer = _Peer(tr)
    a = asyncio.create_task(tr.tx_rx_mgmt(peer, _echo("a"), 1024, 5.0))
    b = asyncio.create_task(tr.tx_rx_mgmt(peer, Reset.make_request(Reset.Request()), 1024, 5.0))
    await asyncio.sleep(0.01)
    seq_a, seq_b = (NmpMessage.parse(w).seq for w in peer.written)

    tr.abort_rx(200)  # Unknown sequence numbers are ignored.
    assert tr.pending_count == 2
    tr.abort_rx(seq_a)
    with pytest.raises(RequestAbortedError):
        await a
    assert not b.done()

    b.cancel()
    with pytest.raises(asyncio.CancelledError):
        await b
    assert tr.pending_count == 0

    # A response that arrives after the cancellation is unexpected.
    tr.dispatch(NmpMessage(op=NmpOp.WRITE_RSP, group=0, id=5, seq=seq_b, body={}).compile())
    assert tr.sample_statistics().unexpected_responses == 1


async def _unittest_transceiver_decode_isolation() -> None:
    tr = _nmp_transceiver()
    responder = MgmtResponder(echo_handler)

    def noisy(image: bytes) -> typing.List[bytes]:
        return [b"\xFF\x00", b"", b"\x01\x00\x00\x05\x00\x00\x00\x00\xa1"] + responder(image)

    rsp = await tr.tx_rx_mgmt(_Peer(tr, noisy), _echo("clean"), 1024, 1.0)
    assert Echo.parse_response(rsp) == Echo.Response(payload="clean")
    assert tr.sample_statistics().decode_failures == 3

    # Inbound requests are not responses.
    tr.dispatch(_echo("req").compile())
    assert tr.sample_statistics().unmatched_messages == 1


async def _unittest_transceiver_filters() -> None:
    marker = b"\xAA"

    def tx_filter(image: bytes) -> typing.Optional[bytes]:
        return marker + image

    def rx_filter(image: bytes) -> typing.Optional[bytes]:
        return image[1:] if image.startswith(marker) else None

    responder = MgmtResponder(echo_handler)

    def reply(image: bytes) -> typing.List[bytes]:
        assert image.startswith(marker)
        return [marker + r for r in responder(image[1:])] + [b"unmarked"]

    tr = Transceiver(tx_filter, rx_filter, stream=False, mgmt_protocol=MgmtProtocol.NMP)
    assert tr.filters == (tx_filter, rx_filter)
    rsp = await tr.tx_rx_mgmt(_Peer(tr, reply), _echo("f"), 1024, 1.0)
    assert Echo.parse_response(rsp) == Echo.Response(payload="f")
    await asyncio.sleep(0.01)
    assert tr.sample_statistics().filtered_messages == 1  # The unmarked reply.
    assert tr.sample_statistics().decode_failures == 0

    tr.set_filters(lambda _: None, None)
    peer = _Peer(tr, responder)
    with pytest.raises(MessageRejectedError):
        await tr.tx_rx_mgmt(peer, _echo("dropped"), 1024, 1.0)
    assert not peer.written
    assert tr.pending_count == 0
    assert tr.sample_statistics().filtered_messages == 2

    tr.set_filters(None, None)
    assert tr.filters == (None, None)
    rsp = await tr.tx_rx_mgmt(peer, _echo("plain"), 1024, 1.0)
    assert Echo.parse_response(rsp) == Echo.Response(payload="plain")


async def _unittest_transceiver_mtu() -> None:
    big = _echo("x" * 100)
    size = len(big.compile())

    tr = _nmp_transceiver()
    peer = _Peer(tr, MgmtResponder(echo_handler))
    with pytest.raises(MessageTooLargeError):
        await tr.tx_rx_mgmt(peer, big, size - 1, 1.0)
    assert not peer.written
    assert tr.pending_count == 0
    assert await tr.tx_rx_mgmt(peer, big, size, 1.0)

    # Stream media are not limited.
    tr = Transceiver(None, None, stream=True, mgmt_protocol=MgmtProtocol.NMP)
    peer = _Peer(tr, MgmtResponder(echo_handler))
    assert await tr.tx_rx_mgmt(peer, big, 8, 1.0)

    # On datagram media the CoAP payload of a notification is limited.
    tr = Transceiver(None, None, stream=False, mgmt_protocol=MgmtProtocol.OMP)
    peer = _Peer(tr)
    with pytest.raises(MessageTooLargeError):
        await tr.tx_coap(peer, CoapMessage.make(CoapCode.PUT, "x", bytes(11)), 10)
    await tr.tx_coap(peer, CoapMessage.make(CoapCode.PUT, "x", bytes(10)), 10)
    assert len(peer.written) == 1


@pytest.mark.parametrize("stream", [False, True])  # type: ignore
async def _unittest_transceiver_omp(stream: bool) -> None:
    tr = Transceiver(None, None, stream=stream, mgmt_protocol=MgmtProtocol.OMP)
    peer = _Peer(tr, MgmtResponder(echo_handler, MgmtProtocol.OMP, stream=stream))

    rsp = await tr.tx_rx_mgmt(peer, _echo("wrapped"), 1024, 1.0)
    assert Echo.parse_response(rsp) == Echo.Response(payload="wrapped")
    parse = CoapMessage.parse_stream if stream else CoapMessage.parse_datagram
    requests = [parse(w) for w in peer.written]
    assert requests[0].code == CoapCode.PUT
    assert requests[0].path == "omgr"
    assert len(requests[0].token) == 8

    def compile_coap(msg: CoapMessage) -> bytes:
        return msg.compile_stream() if stream else msg.compile_datagram()

    # Notifications are routed to listeners by token; two matching listeners both receive it.
    by_token = tr.listen_coap(MsgCriteria(token=b"\x01"))
    by_path = tr.listen_coap(MsgCriteria(path="events"))
    with pytest.raises(ValueError):
        tr.listen_coap(MsgCriteria(token=b"\x01"))

    note = CoapMessage.make(CoapCode.CONTENT, "events", b"\xa0", token=b"\x01", observe=3, type=CoapType.NON)
    tr.dispatch(compile_coap(note))
    got_token = await by_token.receive(1.0)
    got_path = await by_path.receive(1.0)
    assert got_token is not None and got_path is not None
    assert got_token.observe == 3
    assert got_token.payload == b"\xa0"
    assert got_path.token == b"\x01"
    assert await by_token.receive(0.01) is None

    # A response with an observe option is a notification even if it carries a management envelope.
    wrapped = make_omp(NmpMessage(op=NmpOp.WRITE_RSP, group=0, id=0, seq=0, body={}), token=b"\x01")
    observed = CoapMessage.make(wrapped.code, "", wrapped.payload, token=b"\x01", observe=4)
    tr.dispatch(compile_coap(observed))
    got = await by_token.receive(1.0)
    assert got is not None and got.observe == 4
    assert tr.sample_statistics().unexpected_responses == 0

    # Nobody is interested.
    tr.dispatch(compile_coap(CoapMessage.make(CoapCode.CONTENT, "", b"\xa0", token=b"\x09")))
    stats = tr.sample_statistics()
    assert stats.unmatched_messages == 1
    assert stats.delivered_notifications == 3

    tr.stop_listen_coap(MsgCriteria(path="events"))
    tr.stop_listen_coap(MsgCriteria(path="events"))  # Idempotent.
    with pytest.raises(pynmxact.transport.ResourceClosedError):
        await by_path.receive(1.0)
    assert by_path.failed

    tr.error_all(pynmxact.transport.TransportIOError("gone"))
    with pytest.raises(pynmxact.transport.TransportIOError):
        await by_token.receive(1.0)
    with pytest.raises(pynmxact.transport.TransportIOError):
        await by_token.receive(1.0)  # The failure is sticky.
    tr.listen_coap(MsgCriteria(token=b"\x01"))  # The criteria are free again.

    # One-way transmission.
    peer.reply = None
    await tr.tx_coap(peer, CoapMessage.make(CoapCode.PUT, "x", b"\x01", message_id=1), 1024)
    await tr.tx_coap(peer, CoapMessage.make(CoapCode.PUT, "x", b"\x02", message_id=1), 1024)
    sent = [parse(w) for w in peer.written[-2:]]
    assert [s.payload for s in sent] == [b"\x01", b"\x02"]
    if not stream:
        assert sent[0].message_id != sent[1].message_id  # Assigned by the transceiver.

    tr.stop()
    assert "OMP" in repr(tr)
