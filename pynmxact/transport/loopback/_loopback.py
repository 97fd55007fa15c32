# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import queue
import typing
import logging
import pynmxact.transport
from pynmxact.transport import Session, SessionConfig


Responder = typing.Callable[[bytes], typing.Union[None, bytes, typing.Iterable[bytes]]]
"""
Emulates the remote peer: invoked with every image written by a session,
returns the images the peer sends back (none, one, or several).
"""


_logger = logging.getLogger(__name__)


class LoopbackTransport(pynmxact.transport.Transport):
    """
    The loopback transport is intended for testing and API usage demonstrations.
    Instead of a physical medium, every session talks to an in-process peer emulated by the :attr:`responder`.
    Frames can also be injected into a session directly, as if they were sent by the peer unsolicited.

    Unlike the other transports, raw transmission via :meth:`tx` is supported; such images are only recorded.
    """

    DEFAULT_MTU = 1024

    def __init__(
        self,
        mtu: int = DEFAULT_MTU,
        stream: bool = False,
        responder: typing.Optional[Responder] = None,
    ) -> None:
        if mtu <= 0:
            raise pynmxact.transport.InvalidTransportConfigurationError(f"Invalid MTU: {mtu}")
        self._mtu = int(mtu)
        self._stream = bool(stream)
        self._responder = responder
        self._raw_log: typing.List[bytes] = []
        super().__init__()

    @property
    def mtu(self) -> int:
        return self._mtu

    @property
    def stream(self) -> bool:
        return self._stream

    @property
    def responder(self) -> typing.Optional[Responder]:
        """
        Test rigging. If None (default), written images are not answered.
        The responder is invoked from the session's write worker thread.
        """
        return self._responder

    @responder.setter
    def responder(self, value: typing.Optional[Responder]) -> None:
        self._responder = value

    @property
    def raw_log(self) -> typing.Sequence[bytes]:
        """
        The images sent via :meth:`tx`, oldest first.
        """
        return self._raw_log[:]

    def tx(self, image: bytes) -> None:
        self._raw_log.append(bytes(image))

    def _make_session(self, config: SessionConfig) -> LoopbackSession:
        return LoopbackSession(self, config)

    def _get_repr_fields(self) -> typing.Tuple[typing.List[typing.Any], typing.Dict[str, typing.Any]]:
        return [], {"mtu": self._mtu, "stream": self._stream}


class LoopbackSession(Session):
    def __init__(self, transport: LoopbackTransport, config: SessionConfig) -> None:
        self._transport = transport
        self._inbox: queue.Queue[typing.Union[bytes, Exception, None]] = queue.Queue()
        self._written: typing.List[bytes] = []
        self._write_error: typing.Optional[OSError] = None
        self._connect_error: typing.Optional[OSError] = None
        super().__init__(config, mtu=transport.mtu, stream=transport.stream)

    @property
    def written(self) -> typing.Sequence[bytes]:
        """
        Every image written to the medium by this session, including retransmissions, oldest first.
        """
        return self._written[:]

    @property
    def write_error(self) -> typing.Optional[OSError]:
        """
        Test rigging. If set, every write fails with this error until it is reset to None.
        """
        return self._write_error

    @write_error.setter
    def write_error(self, value: typing.Optional[OSError]) -> None:
        self._write_error = value

    @property
    def connect_error(self) -> typing.Optional[OSError]:
        """
        Test rigging. If set, :meth:`open` fails with this error.
        """
        return self._connect_error

    @connect_error.setter
    def connect_error(self, value: typing.Optional[OSError]) -> None:
        self._connect_error = value

    def inject(self, image: bytes) -> None:
        """
        Delivers the image to the session as if it was received from the medium. Thread-safe.
        """
        self._inbox.put(bytes(image))

    def inject_failure(self, error: Exception) -> None:
        """
        Makes the read loop fail with the error, as if the medium was lost. Thread-safe.
        """
        self._inbox.put(error)

    def _connect(self) -> None:
        if self._connect_error is not None:
            raise self._connect_error
        self._inbox = queue.Queue()

    def _disconnect(self) -> None:
        self._inbox.put(None)

    def _read(self, timeout: float) -> typing.Optional[bytes]:
        try:
            item = self._inbox.get(timeout=timeout)
        except queue.Empty:
            return None
        if isinstance(item, Exception):
            raise item
        return item

    def _write(self, image: bytes) -> None:
        if self._write_error is not None:
            raise self._write_error
        self._written.append(bytes(image))
        responder = self._transport.responder
        if responder is None:
            return
        replies = responder(bytes(image))
        if replies is None:
            return
        if isinstance(replies, (bytes, bytearray)):
            replies = [replies]
        for rep in replies:
            self._inbox.put(bytes(rep))

    def _get_repr_fields(self) -> typing.Tuple[typing.List[typing.Any], typing.Dict[str, typing.Any]]:
        return [], {"stream": self._transport.stream}
