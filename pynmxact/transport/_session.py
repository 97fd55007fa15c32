# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import abc
import typing
import asyncio
import logging
import threading
import dataclasses
import concurrent.futures
import pynmxact.util
import pynmxact.mgmt
from pynmxact.mgmt import MgmtProtocol, TxFilter, RxFilter, DEFAULT_RETRIES
from pynmxact.nmp import NmpMessage
from pynmxact.omp import CoapMessage, OMP_MSG_OVERHEAD
from ._error import InvalidTransportConfigurationError, TransportIOError
from ._error import SessionAlreadyOpenError, SessionClosedError


_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class SessionConfig:
    """
    Transport-independent parameters of a session.
    """

    mgmt_protocol: MgmtProtocol = MgmtProtocol.NMP
    tx_filter: typing.Optional[TxFilter] = None
    rx_filter: typing.Optional[RxFilter] = None
    retries: int = DEFAULT_RETRIES

    def __post_init__(self) -> None:
        if not isinstance(self.mgmt_protocol, MgmtProtocol):
            raise TypeError(f"Invalid management protocol: {self.mgmt_protocol!r}")
        if self.retries < 0:
            raise ValueError(f"Invalid retry count: {self.retries}")

    @property
    def overhead(self) -> int:
        """
        The number of bytes per message consumed by the wrapping of the selected management protocol.

        >>> SessionConfig().overhead, SessionConfig(MgmtProtocol.OMP).overhead
        (0, 13)
        """
        return OMP_MSG_OVERHEAD if self.mgmt_protocol == MgmtProtocol.OMP else 0


class Session(abc.ABC):
    """
    A logical duplex channel to one peer over a transport. The lifecycle is ``closed -> open -> closed``;
    a closed session can be opened again. Data operations on a closed session raise
    :class:`pynmxact.transport.SessionClosedError`.

    While open, a background thread runs the blocking read loop of the medium and posts every inbound image
    to the event loop that was running when :meth:`open` was invoked; all bookkeeping happens on that loop.
    Writes are serialized and executed on a dedicated worker thread so that the event loop never blocks on the medium.

    A read or write failure of the medium fails every pending request with :class:`TransportIOError`
    and disables the session until it is closed and reopened.

    New transports implement only :meth:`_connect`, :meth:`_disconnect`, :meth:`_read`, and :meth:`_write`.
    """

    READ_TIMEOUT = 0.5
    """
    The read loop checks for closure at least this often, in seconds.
    """

    def __init__(self, config: SessionConfig, mtu: int, stream: bool) -> None:
        if not isinstance(config, SessionConfig):
            raise TypeError(f"Invalid session config: {config!r}")
        if mtu < config.overhead:
            raise InvalidTransportConfigurationError(
                f"MTU of {mtu} bytes cannot accommodate the {config.mgmt_protocol.name} overhead "
                f"of {config.overhead} bytes"
            )
        self._config = config
        self._mtu = int(mtu)
        self._transceiver = pynmxact.mgmt.Transceiver(
            tx_filter=config.tx_filter,
            rx_filter=config.rx_filter,
            stream=stream,
            mgmt_protocol=config.mgmt_protocol,
            retries=config.retries,
        )
        self._is_open = False
        self._stop_event: typing.Optional[threading.Event] = None
        self._thread: typing.Optional[threading.Thread] = None
        self._executor: typing.Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._tx_lock: typing.Optional[asyncio.Lock] = None
        self._link_error: typing.Optional[TransportIOError] = None

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def mgmt_protocol(self) -> MgmtProtocol:
        return self._config.mgmt_protocol

    @property
    def transceiver(self) -> pynmxact.mgmt.Transceiver:
        return self._transceiver

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def mtu_in(self) -> int:
        return self._mtu - self._config.overhead

    @property
    def mtu_out(self) -> int:
        return self._mtu - self._config.overhead

    def open(self) -> None:
        """
        Dials the medium and starts the read loop. Shall be invoked from a coroutine;
        inbound data is processed on the running event loop.
        If dialling fails, the session remains closed and the error propagates.
        """
        if self._is_open:
            raise SessionAlreadyOpenError(repr(self))
        loop = asyncio.get_running_loop()
        self._connect()
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._link_error = None
        self._tx_lock = asyncio.Lock()
        self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"tx-{self}")
        self._thread = threading.Thread(
            target=self._reader_thread, name=f"rx-{self}", args=(stop_event, loop), daemon=True
        )
        self._is_open = True
        self._thread.start()
        _logger.info("%s opened", self)

    def close(self) -> None:
        """
        Releases the medium before returning. Every pending request fails with
        :class:`pynmxact.transport.SessionClosedError` and every listener is failed and removed.
        Errors reported by the read loop after this point are ignored.

        This method blocks the event loop until the read loop exits.
        Implementations wake the reader up in :meth:`_disconnect`, so this normally takes no time;
        otherwise the wait is bounded by twice :attr:`READ_TIMEOUT`, after which a warning is logged.
        """
        if not self._is_open:
            raise SessionClosedError(f"Attempt to close an unopened session {self}")
        self._is_open = False
        assert self._stop_event is not None
        self._stop_event.set()
        try:
            self._disconnect()
        finally:
            if self._thread is not None and self._thread is not threading.current_thread():
                self._thread.join(timeout=self.READ_TIMEOUT * 2)
                if self._thread.is_alive():
                    _logger.warning("%s: the read loop did not stop in time", self)
            if self._executor is not None:
                self._executor.shutdown(wait=False)
            self._thread, self._executor, self._tx_lock = None, None, None
            self._transceiver.error_all(SessionClosedError(f"{self} is closed"))
            self._transceiver.stop()
            _logger.info("%s closed", self)

    async def tx_rx_mgmt(self, msg: NmpMessage, timeout: float) -> NmpMessage:
        """
        Sends the request and returns the response with the matching sequence number.
        The sequence number of the supplied message is ignored and assigned by the transceiver.
        Cancelling the calling task abandons the request.

        Raises :class:`pynmxact.mgmt.ResponseTimeoutError` if there is no response after the retries,
        :class:`SessionClosedError` if the session is not open or is closed while waiting,
        :class:`TransportIOError` if the medium fails.
        """
        self._ensure_usable()
        return await self._transceiver.tx_rx_mgmt(self._tx_raw, msg, self.mtu_out, timeout)

    def tx_rx_mgmt_async(
        self,
        msg: NmpMessage,
        timeout: float,
        responses: asyncio.Queue[NmpMessage],
        errors: asyncio.Queue[BaseException],
    ) -> asyncio.Task[None]:
        """
        Runs :meth:`tx_rx_mgmt` in a new task that puts the outcome into exactly one of the queues, exactly once.
        The task can be cancelled to abandon the request; the cancellation is reported via the error queue.
        """
        self._ensure_usable()

        async def run() -> None:
            try:
                rsp = await self.tx_rx_mgmt(msg, timeout)
            except asyncio.CancelledError as ex:
                errors.put_nowait(ex)
                raise
            except Exception as ex:
                _logger.debug("%s: asynchronous request %s failed: %r", self, msg, ex)
                await errors.put(ex)
            else:
                await responses.put(rsp)

        return asyncio.get_running_loop().create_task(run(), name=f"tx_rx_mgmt-{self}")

    async def tx_notification(self, msg: CoapMessage) -> None:
        """
        One-way transmission of a CoAP message; no response is expected.
        """
        self._ensure_usable()
        await self._transceiver.tx_coap(self._tx_raw, msg, self.mtu_out)

    def abort_rx(self, seq: int) -> None:
        """
        Fails the pending request with this sequence number with :class:`pynmxact.mgmt.RequestAbortedError`.
        Other pending requests are not affected; unknown sequence numbers are ignored.
        """
        self._ensure_open()
        self._transceiver.abort_rx(seq)

    def listen_notification(self, criteria: pynmxact.mgmt.MsgCriteria) -> pynmxact.mgmt.Listener:
        self._ensure_open()
        return self._transceiver.listen_coap(criteria)

    def stop_listen_notification(self, criteria: pynmxact.mgmt.MsgCriteria) -> None:
        self._transceiver.stop_listen_coap(criteria)

    @property
    def filters(self) -> typing.Tuple[typing.Optional[TxFilter], typing.Optional[RxFilter]]:
        return self._transceiver.filters

    def set_filters(self, tx_filter: typing.Optional[TxFilter], rx_filter: typing.Optional[RxFilter]) -> None:
        self._transceiver.set_filters(tx_filter, rx_filter)

    def sample_statistics(self) -> pynmxact.mgmt.TransceiverStatistics:
        return self._transceiver.sample_statistics()

    @abc.abstractmethod
    def _connect(self) -> None:
        """
        Acquires the medium handles. On failure, everything acquired so far shall be released before raising.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def _disconnect(self) -> None:
        """
        Releases the medium handles; invoked from the event loop. A read blocked in another thread shall be unblocked.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def _read(self, timeout: float) -> typing.Optional[bytes]:
        """
        Invoked from the read loop thread. Returns one inbound image, or None if nothing arrived within the timeout.
        An exception is treated as a link failure unless the session is being closed.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def _write(self, image: bytes) -> None:
        """
        Invoked from the worker thread; writes are never concurrent. Raises :class:`OSError` on failure.
        """
        raise NotImplementedError

    def _get_repr_fields(self) -> typing.Tuple[typing.List[typing.Any], typing.Dict[str, typing.Any]]:
        return [], {}

    async def _tx_raw(self, image: bytes) -> None:
        self._ensure_usable()
        executor, lock = self._executor, self._tx_lock
        assert executor is not None and lock is not None
        async with lock:
            try:
                await asyncio.get_running_loop().run_in_executor(executor, self._write, image)
            except OSError as ex:
                if not self._is_open:
                    raise SessionClosedError(f"{self} was closed during transmission") from ex
                err = TransportIOError(f"{self}: TX error: {ex}")
                self._fail_link(err)
                raise err from ex

    def _reader_thread(self, stop_event: threading.Event, loop: asyncio.AbstractEventLoop) -> None:
        def post(fn: typing.Callable[..., None], *args: typing.Any) -> bool:
            try:
                loop.call_soon_threadsafe(fn, stop_event, *args)
            except RuntimeError as ex:
                _logger.debug("%s: event loop is closed, exiting: %r", self, ex)
                return False
            return True

        _logger.debug("%s: read loop started", self)
        while not stop_event.is_set():
            try:
                image = self._read(self.READ_TIMEOUT)
            except Exception as ex:
                if stop_event.is_set():
                    break
                _logger.exception("%s: RX error: %s", self, ex)
                post(self._on_read_failure, ex)
                break
            if image is not None and not stop_event.is_set():
                if not post(self._on_image, image):
                    break
        _logger.debug("%s: read loop is about to exit", self)

    def _on_image(self, stop_event: threading.Event, image: bytes) -> None:
        if not stop_event.is_set():  # Drop images read just before closure.
            self._transceiver.dispatch(image)

    def _on_read_failure(self, stop_event: threading.Event, ex: Exception) -> None:
        if not stop_event.is_set():
            err = TransportIOError(f"{self}: RX error: {ex}")
            err.__cause__ = ex
            self._fail_link(err)

    def _fail_link(self, err: TransportIOError) -> None:
        if self._link_error is None:
            self._link_error = err
        self._transceiver.error_all(err)

    def _ensure_open(self) -> None:
        if not self._is_open:
            raise SessionClosedError(f"Attempt to use a closed session {self}")

    def _ensure_usable(self) -> None:
        self._ensure_open()
        if self._link_error is not None:
            raise self._link_error

    def __repr__(self) -> str:
        positionals, keywords = self._get_repr_fields()
        return pynmxact.util.repr_attributes_noexcept(
            self, *positionals, **keywords, protocol=self._config.mgmt_protocol.name, mtu=self._mtu
        )
