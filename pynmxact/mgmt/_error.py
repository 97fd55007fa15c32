# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from pynmxact.transport._error import TransportError


class ResponseTimeoutError(TransportError):
    """
    The peer did not respond within the timeout after the configured number of retransmissions.
    """


class SequenceNumberExhaustedError(TransportError):
    """
    Every one of the 256 sequence numbers is held by a pending request,
    so a new request cannot be correlated unambiguously. Retry after some of the pending requests complete.
    """


class RequestAbortedError(TransportError):
    """
    The pending request was cancelled by :meth:`pynmxact.transport.Session.abort_rx`.
    """


class MessageRejectedError(TransportError):
    """
    The outgoing request was discarded by the transmission filter and was never sent.
    """


class MessageTooLargeError(TransportError):
    """
    The encoded request does not fit into the outbound MTU of a datagram medium.
    """
