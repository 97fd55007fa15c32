# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import os
import enum
import typing
import asyncio
import logging
import dataclasses
import pynmxact.util
import pynmxact.transport
from pynmxact.nmp import NmpMessage, DecodeError
from pynmxact.omp import CoapMessage, encode_omp, decode_omp
from ._error import ResponseTimeoutError, SequenceNumberExhaustedError, RequestAbortedError
from ._error import MessageRejectedError, MessageTooLargeError
from ._listener import Listener, MsgCriteria


TxFilter = typing.Callable[[bytes], typing.Optional[bytes]]
"""
Admission filter for outbound images. Returns the (possibly rewritten) image, or None to discard it.
"""

RxFilter = typing.Callable[[bytes], typing.Optional[bytes]]
"""
Admission filter for inbound images. Returns the (possibly rewritten) image, or None to discard it.
"""

TxRaw = typing.Callable[[bytes], typing.Awaitable[None]]

DEFAULT_RETRIES = 3

SEQUENCE_NUMBER_MODULO = 256

_TOKEN_LENGTH = 8


_logger = logging.getLogger(__name__)


class MgmtProtocol(enum.Enum):
    """
    The envelope shape a session speaks.
    """

    NMP = enum.auto()
    """Plain envelope: 8-byte header followed by the CBOR body."""

    OMP = enum.auto()
    """The plain envelope wrapped into CoAP; see :mod:`pynmxact.omp`."""


@dataclasses.dataclass
class TransceiverStatistics:
    sent_requests: int = 0
    retransmissions: int = 0  #: Repeated writes of a request whose response did not arrive in time.
    responses: int = 0  #: Responses matched with a pending request.
    timeouts: int = 0  #: Requests that failed after exhausting the retry budget.
    decode_failures: int = 0  #: Inbound images that could not be decoded and were dropped.
    filtered_messages: int = 0  #: Images in either direction discarded by an admission filter.
    unexpected_responses: int = 0  #: Responses whose sequence number was not pending.
    delivered_notifications: int = 0  #: Deliveries to listeners; a message matching two listeners counts twice.
    unmatched_messages: int = 0  #: Inbound messages that neither fulfilled a request nor matched a listener.


class Transceiver:
    """
    The transport-independent core of a session. It owns the pending-request table and the listener registry;
    both are mutated only from the event loop. The owning session supplies a coroutine that writes one raw image
    to the medium, and feeds every inbound image into :meth:`dispatch` from the event loop.

    The sequence number of every outgoing request is assigned here; the caller's value is ignored.
    Each sequence number held by a pending request is skipped, so at most 256 requests can be pending at once.
    """

    def __init__(
        self,
        tx_filter: typing.Optional[TxFilter],
        rx_filter: typing.Optional[RxFilter],
        stream: bool,
        mgmt_protocol: MgmtProtocol,
        retries: int = DEFAULT_RETRIES,
    ) -> None:
        if retries < 0:
            raise ValueError(f"Invalid retry count: {retries}")
        self._tx_filter = tx_filter
        self._rx_filter = rx_filter
        self._stream = bool(stream)
        self._mgmt_protocol = MgmtProtocol(mgmt_protocol)
        self._retries = int(retries)

        self._seq = 0
        self._message_id = 0
        self._pending: typing.Dict[int, asyncio.Future[NmpMessage]] = {}
        self._listeners: typing.Dict[MsgCriteria, Listener] = {}
        self._stats = TransceiverStatistics()

    @property
    def mgmt_protocol(self) -> MgmtProtocol:
        return self._mgmt_protocol

    @property
    def stream(self) -> bool:
        return self._stream

    @property
    def retries(self) -> int:
        return self._retries

    @property
    def pending_count(self) -> int:
        """Testing facilitation."""
        return len(self._pending)

    @property
    def filters(self) -> typing.Tuple[typing.Optional[TxFilter], typing.Optional[RxFilter]]:
        return self._tx_filter, self._rx_filter

    def set_filters(self, tx_filter: typing.Optional[TxFilter], rx_filter: typing.Optional[RxFilter]) -> None:
        self._tx_filter, self._rx_filter = tx_filter, rx_filter

    async def tx_rx_mgmt(self, tx_raw: TxRaw, msg: NmpMessage, mtu: int, timeout: float) -> NmpMessage:
        """
        Sends the request and waits for the response with the same sequence number.
        If the response does not arrive within the timeout, the same image is written again,
        up to the retry budget, with a fresh timeout for each attempt.

        The mtu limits the size of the plain envelope, excluding the CoAP wrapping;
        it is only enforced on datagram media.

        Raises :class:`ResponseTimeoutError` when the retries are exhausted,
        or the error that the request was failed with by :meth:`error_all` or :meth:`abort_rx`.
        The pending entry is removed on every exit path, including cancellation of the calling task.
        """
        if not timeout > 0:
            raise ValueError(f"Invalid timeout: {timeout}")
        loop = asyncio.get_running_loop()
        seq = self._allocate_seq()
        msg = msg.with_seq(seq)
        plain = msg.compile()
        if not self._stream and len(plain) > mtu:
            raise MessageTooLargeError(f"{self}: request of {len(plain)} bytes exceeds the MTU of {mtu} bytes")
        image = self._admit_tx(self._encode(msg, plain))
        if image is None:
            raise MessageRejectedError(f"{self}: request {msg} was discarded by the transmission filter")

        future: asyncio.Future[NmpMessage] = loop.create_future()
        self._pending[seq] = future
        try:
            for attempt in range(self._retries + 1):
                if attempt > 0:
                    self._stats.retransmissions += 1
                    _logger.warning(
                        "%s: no response to seq=%d, retransmission %d of %d", self, seq, attempt, self._retries
                    )
                self._trace("tx", image)
                await tx_raw(image)
                if attempt == 0:
                    self._stats.sent_requests += 1
                try:
                    return await asyncio.wait_for(asyncio.shield(future), timeout)
                except asyncio.TimeoutError:
                    if future.done():  # The response arrived exactly when the timer fired.
                        return future.result()
            self._stats.timeouts += 1
            raise ResponseTimeoutError(
                f"{self}: no response to {msg} after {self._retries + 1} attempts of {timeout} s each"
            )
        finally:
            if self._pending.get(seq) is future:
                del self._pending[seq]
            if not future.done():
                future.cancel()
            elif not future.cancelled():
                future.exception()  # Mark the exception retrieved.

    async def tx_coap(self, tx_raw: TxRaw, msg: CoapMessage, mtu: int) -> None:
        """
        One-way transmission of a CoAP message; no response is expected.
        The mtu limits the size of the CoAP payload on datagram media,
        where the message ID is also assigned here.
        """
        if not self._stream and len(msg.payload) > mtu:
            raise MessageTooLargeError(f"{self}: payload of {len(msg.payload)} bytes exceeds the MTU of {mtu} bytes")
        if not self._stream:
            msg = dataclasses.replace(msg, message_id=self._allocate_message_id())
        image = self._admit_tx(msg.compile_stream() if self._stream else msg.compile_datagram())
        if image is None:
            raise MessageRejectedError(f"{self}: {msg} was discarded by the transmission filter")
        self._trace("tx", image)
        await tx_raw(image)

    def dispatch(self, image: bytes) -> None:
        """
        Processes one inbound image according to the session's management protocol.
        Malformed input is logged and dropped; this method never raises.
        """
        if self._mgmt_protocol == MgmtProtocol.OMP:
            self.dispatch_coap(image)
        else:
            self.dispatch_nmp(image)

    def dispatch_nmp(self, image: bytes) -> None:
        admitted = self._admit_rx(image)
        if admitted is None:
            return
        try:
            msg = NmpMessage.parse(admitted)
        except DecodeError as ex:
            self._stats.decode_failures += 1
            _logger.warning("%s: dropping malformed image: %s\n%s", self, ex, pynmxact.util.hexdump(admitted))
            return
        if not self._fulfill(msg):
            self._stats.unmatched_messages += 1

    def dispatch_coap(self, image: bytes) -> None:
        admitted = self._admit_rx(image)
        if admitted is None:
            return
        try:
            coap = CoapMessage.parse_stream(admitted) if self._stream else CoapMessage.parse_datagram(admitted)
        except DecodeError as ex:
            self._stats.decode_failures += 1
            _logger.warning("%s: dropping malformed CoAP image: %s\n%s", self, ex, pynmxact.util.hexdump(admitted))
            return

        if coap.is_response and coap.payload and coap.observe is None:
            try:
                msg = decode_omp(coap)
            except DecodeError as ex:
                _logger.debug("%s: %s does not carry a management response: %s", self, coap, ex)
            else:
                if self._fulfill(msg):
                    return

        listeners = [lis for crit, lis in self._listeners.items() if crit.matches(coap)]
        for lis in listeners:
            lis.push(coap)
            self._stats.delivered_notifications += 1
        if not listeners:
            self._stats.unmatched_messages += 1
            _logger.debug("%s: no listener for %s", self, coap)

    def listen_coap(self, criteria: MsgCriteria) -> Listener:
        if criteria in self._listeners:
            raise ValueError(f"{self}: a listener for {criteria} is already registered")
        lis = Listener(criteria)
        self._listeners[criteria] = lis
        _logger.debug("%s: new listener %s", self, lis)
        return lis

    def stop_listen_coap(self, criteria: MsgCriteria) -> None:
        lis = self._listeners.pop(criteria, None)
        if lis is not None:
            lis.fail(pynmxact.transport.ResourceClosedError(f"{lis} was removed"))
            _logger.debug("%s: removed listener %s", self, lis)

    def error_all(self, error: Exception) -> None:
        """
        Fails every pending request and every listener with the error, leaving both tables empty.
        Requests issued afterwards proceed normally.
        """
        pending, self._pending = self._pending, {}
        listeners, self._listeners = self._listeners, {}
        if pending or listeners:
            _logger.info(
                "%s: failing %d pending requests and %d listeners: %r", self, len(pending), len(listeners), error
            )
        for fut in pending.values():
            if not fut.done():
                fut.set_exception(error)
        for lis in listeners.values():
            lis.fail(error)

    def abort_rx(self, seq: int) -> None:
        """
        Fails only the pending request with this sequence number with :class:`RequestAbortedError`.
        Unknown sequence numbers are ignored.
        """
        fut = self._pending.pop(seq, None)
        if fut is None:
            _logger.debug("%s: nothing to abort with seq=%d", self, seq)
            return
        if not fut.done():
            fut.set_exception(RequestAbortedError(f"Request seq={seq} aborted"))

    def stop(self) -> None:
        self.error_all(pynmxact.transport.ResourceClosedError(f"{self} is stopped"))

    def sample_statistics(self) -> TransceiverStatistics:
        return dataclasses.replace(self._stats)

    def _allocate_seq(self) -> int:
        for offset in range(SEQUENCE_NUMBER_MODULO):
            seq = (self._seq + offset) % SEQUENCE_NUMBER_MODULO
            if seq not in self._pending:
                self._seq = (seq + 1) % SEQUENCE_NUMBER_MODULO
                return seq
        raise SequenceNumberExhaustedError(f"{self}: all {SEQUENCE_NUMBER_MODULO} sequence numbers are pending")

    def _allocate_message_id(self) -> int:
        out = self._message_id
        self._message_id = (self._message_id + 1) % 0x10000
        return out

    def _encode(self, msg: NmpMessage, plain: bytes) -> bytes:
        if self._mgmt_protocol == MgmtProtocol.NMP:
            return plain
        return encode_omp(
            msg,
            token=os.urandom(_TOKEN_LENGTH),
            message_id=self._allocate_message_id(),
            stream=self._stream,
        )

    def _fulfill(self, msg: NmpMessage) -> bool:
        if not msg.op.is_response:
            _logger.info("%s: ignoring inbound request %s", self, msg)
            return False
        fut = self._pending.pop(msg.seq, None)
        if fut is None or fut.done():
            self._stats.unexpected_responses += 1
            _logger.info(
                "%s: unexpected response %s; pending sequence numbers: %r", self, msg, list(self._pending.keys())
            )
            return False
        fut.set_result(msg)
        self._stats.responses += 1
        _logger.debug("%s: matched response %s", self, msg)
        return True

    def _admit_tx(self, image: bytes) -> typing.Optional[bytes]:
        return self._admit(self._tx_filter, image, "tx")

    def _admit_rx(self, image: bytes) -> typing.Optional[bytes]:
        self._trace("rx", image)
        return self._admit(self._rx_filter, image, "rx")

    def _admit(self, fltr: typing.Optional[TxFilter], image: bytes, direction: str) -> typing.Optional[bytes]:
        if fltr is None:
            return image
        out = fltr(image)
        if out is None:
            self._stats.filtered_messages += 1
            _logger.debug("%s: %s filter discarded %d bytes", self, direction, len(image))
            return None
        return bytes(out)

    def _trace(self, direction: str, image: bytes) -> None:
        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug("%s: %s %d bytes\n%s", self, direction, len(image), pynmxact.util.hexdump(image))

    def __repr__(self) -> str:
        return pynmxact.util.repr_attributes_noexcept(
            self,
            self._mgmt_protocol.name,
            stream=self._stream,
            retries=self._retries,
            pending=len(self._pending),
            listeners=len(self._listeners),
        )
