# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

"""
The management layer turns a raw byte channel into a request/response protocol.

The :class:`Transceiver` is shared by all session implementations. It assigns sequence numbers,
tracks pending requests, matches inbound responses by sequence number regardless of arrival order,
retransmits on timeout, delivers unsolicited CoAP messages to :class:`Listener` instances,
and fails everything at once when the link breaks.

Applications normally do not use the transceiver directly; see :class:`pynmxact.transport.Session`.
"""

from ._error import ResponseTimeoutError as ResponseTimeoutError
from ._error import SequenceNumberExhaustedError as SequenceNumberExhaustedError
from ._error import RequestAbortedError as RequestAbortedError
from ._error import MessageRejectedError as MessageRejectedError
from ._error import MessageTooLargeError as MessageTooLargeError

from ._listener import MsgCriteria as MsgCriteria
from ._listener import Listener as Listener

from ._transceiver import Transceiver as Transceiver
from ._transceiver import TransceiverStatistics as TransceiverStatistics
from ._transceiver import MgmtProtocol as MgmtProtocol
from ._transceiver import TxFilter as TxFilter
from ._transceiver import RxFilter as RxFilter
from ._transceiver import TxRaw as TxRaw
from ._transceiver import DEFAULT_RETRIES as DEFAULT_RETRIES
