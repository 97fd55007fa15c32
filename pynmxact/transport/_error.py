# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

import typing


class TransportError(RuntimeError):
    """
    This is the root exception class for all transport-related errors.
    Exception types defined at the higher layers (e.g., the transceiver) also inherit from this type,
    so the application may use it as the base exception type for all runtime errors raised by the library.
    Envelope decoding errors are the only exception; see :class:`pynmxact.nmp.DecodeError`.
    """


class InvalidTransportConfigurationError(TransportError):
    """
    The transport or session could not be initialized because the specified configuration is invalid;
    e.g., an MTU that cannot accommodate the wire format overhead.
    Not retryable.
    """


class InvalidConnectionStringError(InvalidTransportConfigurationError):
    """
    A connection string could not be parsed. The offending key and raw value are kept for diagnostics.
    """

    def __init__(self, message: str, key: str, value: typing.Optional[str] = None) -> None:
        super().__init__(message)
        self.key = key
        self.value = value


class InvalidMediaConfigurationError(InvalidTransportConfigurationError):
    """
    The named medium (CAN bus, serial port, network host) could not be resolved.
    """


class UnsupportedOperationError(TransportError):
    """
    The operation is not meaningful for this transport; e.g., raw fire-and-forget transmission
    over a connection-oriented medium. Callers should fall back to a session.
    """


class TransportIOError(TransportError):
    """
    The underlying medium failed to read or write.
    Every pending request of the affected session receives this error,
    and the session refuses further requests until it is closed and reopened.
    """


class ResourceClosedError(TransportError):
    """
    The requested operation could not be performed because an associated resource has already been terminated.
    """


class SessionClosedError(ResourceClosedError):
    """
    The session is not open. Raised by data operations on a closed session and by :meth:`Session.close`
    when the session was never opened or is already closed.
    """


class SessionAlreadyOpenError(TransportError):
    """
    :meth:`Session.open` was invoked on a session that is already open. The existing connection is left untouched.
    """


class TransportAlreadyStartedError(TransportError):
    """
    :meth:`Transport.start` was invoked twice without a stop in between.
    """


class TransportNotStartedError(TransportError):
    """
    :meth:`Transport.stop` was invoked on a transport that is not started.
    """
