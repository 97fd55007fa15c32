# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import abc
import typing
import logging
import weakref
import pynmxact.util
from ._error import TransportAlreadyStartedError, TransportNotStartedError, UnsupportedOperationError

if typing.TYPE_CHECKING:
    from ._session import Session, SessionConfig  # pylint: disable=cyclic-import


_logger = logging.getLogger(__name__)


class Transport(abc.ABC):
    """
    A transport owns a physical medium configuration and creates sessions over it.
    A transport does nothing on its own; the medium is dialled when a session is opened.

    Implementations shall never be auto-imported by the library; see :func:`pynmxact.transport.make_transport`.
    """

    def __init__(self) -> None:
        self._started = False
        self._sessions: weakref.WeakSet[Session] = weakref.WeakSet()

    @property
    def is_started(self) -> bool:
        return self._started

    def start(self) -> None:
        if self._started:
            raise TransportAlreadyStartedError(repr(self))
        self._on_start()
        self._started = True
        _logger.debug("%s started", self)

    def stop(self) -> None:
        """
        Closes every session created by this transport that is still open.
        """
        if not self._started:
            raise TransportNotStartedError(repr(self))
        for ses in list(self._sessions):
            if ses.is_open:
                try:
                    ses.close()
                except Exception as ex:
                    _logger.exception("%s could not close %s: %s", self, ses, ex)
        self._on_stop()
        self._started = False
        _logger.debug("%s stopped", self)

    def new_session(self, config: SessionConfig) -> Session:
        """
        Constructs a new closed session bound to the configuration of this transport.
        Invalid session configurations (e.g., an MTU that cannot accommodate the wrapping overhead)
        are rejected here with :class:`pynmxact.transport.InvalidTransportConfigurationError`.
        """
        ses = self._make_session(config)
        self._sessions.add(ses)
        return ses

    def tx(self, image: bytes) -> None:
        """
        Raw best-effort transmission bypassing sessions.
        Connection-oriented transports do not support it.
        """
        raise UnsupportedOperationError(f"{self} does not support raw transmission of {len(image)} bytes")

    @abc.abstractmethod
    def _make_session(self, config: SessionConfig) -> Session:
        raise NotImplementedError

    def _on_start(self) -> None:
        pass

    def _on_stop(self) -> None:
        pass

    @abc.abstractmethod
    def _get_repr_fields(self) -> typing.Tuple[typing.List[typing.Any], typing.Dict[str, typing.Any]]:
        """
        :returns: A tuple of a list of positional and a dict of keyword arguments for :meth:`__repr__`.
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        positionals, keywords = self._get_repr_fields()
        return pynmxact.util.repr_attributes_noexcept(self, *positionals, **keywords)
