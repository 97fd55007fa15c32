# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import typing
import logging
from pynmxact.nmp import NmpMessage, Echo, Reset, DecodeError
from pynmxact.omp import decode_omp_image, make_omp
from pynmxact.mgmt import MgmtProtocol


Handler = typing.Callable[[NmpMessage], typing.Optional[NmpMessage]]

MGMT_ERR_ENOTSUP = 8


_logger = logging.getLogger(__name__)


class MgmtResponder:
    """
    A loopback responder that emulates a management server. Each request is decoded and passed to the handler;
    the returned message (if any) is sent back with the sequence number of the request and, for the wrapped
    protocol, with the CoAP token and message ID of the request. Undecodable images are ignored.

    >>> responder = MgmtResponder(echo_handler)
    >>> rsp = responder(Echo.make_request(Echo.Request("hi")).with_seq(9).compile())
    >>> NmpMessage.parse(rsp[0]).body, NmpMessage.parse(rsp[0]).seq
    ({'r': 'hi', 'rc': 0}, 9)
    """

    def __init__(
        self,
        handler: Handler,
        mgmt_protocol: MgmtProtocol = MgmtProtocol.NMP,
        stream: bool = False,
    ) -> None:
        self._handler = handler
        self._mgmt_protocol = mgmt_protocol
        self._stream = stream
        self.request_count = 0

    def __call__(self, image: bytes) -> typing.List[bytes]:
        try:
            if self._mgmt_protocol == MgmtProtocol.OMP:
                coap, req = decode_omp_image(image, self._stream)
            else:
                coap, req = None, NmpMessage.parse(image)
        except DecodeError as ex:
            _logger.info("%r: ignoring an undecodable request: %s", self, ex)
            return []
        self.request_count += 1
        rsp = self._handler(req)
        if rsp is None:
            return []
        rsp = rsp.with_seq(req.seq)
        if coap is None:
            return [rsp.compile()]
        out = make_omp(rsp, token=coap.token, message_id=coap.message_id)
        return [out.compile_stream() if self._stream else out.compile_datagram()]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._mgmt_protocol.name}, stream={self._stream})"


def echo_handler(req: NmpMessage) -> NmpMessage:
    """
    Implements the echo and reset commands; everything else is answered with ``rc`` set to ENOTSUP.
    """
    if (req.group, req.id) == (Echo.GROUP, Echo.ID):
        body = Echo.Response(payload=Echo.Request.from_body(req.body).payload).to_body()
    elif (req.group, req.id) == (Reset.GROUP, Reset.ID):
        body = Reset.Response().to_body()
    else:
        body = {"rc": MGMT_ERR_ENOTSUP}
    return NmpMessage(op=req.op.response, group=req.group, id=req.id, seq=req.seq, body=body)


echo_responder = MgmtResponder(echo_handler)
"""
Answers echo and reset requests of the plain protocol.
"""
