# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import typing
import asyncio
import logging
import dataclasses
import pynmxact.util
from pynmxact.omp import CoapMessage


_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class MsgCriteria:
    """
    Selects the inbound CoAP messages a listener is interested in. A field set to None matches anything.

    >>> MsgCriteria(token=b"\\x01").matches(CoapMessage(code=69, token=b"\\x01"))
    True
    >>> MsgCriteria(token=b"\\x01", path="omgr").matches(CoapMessage(code=69, token=b"\\x01"))
    False
    """

    token: typing.Optional[bytes] = None
    path: typing.Optional[str] = None

    def matches(self, msg: CoapMessage) -> bool:
        if self.token is not None and bytes(self.token) != msg.token:
            return False
        if self.path is not None and self.path.strip("/") != msg.path:
            return False
        return True


class Listener:
    """
    Receives the CoAP messages that match its criteria until it is removed or failed.
    A failure is delivered once, after the messages that were queued before it.
    """

    def __init__(self, criteria: MsgCriteria) -> None:
        self._criteria = criteria
        self._queue: asyncio.Queue[typing.Union[CoapMessage, Exception]] = asyncio.Queue()
        self._failed = False
        self.delivered_count = 0

    @property
    def criteria(self) -> MsgCriteria:
        return self._criteria

    @property
    def failed(self) -> bool:
        return self._failed

    async def receive(self, timeout: float) -> typing.Optional[CoapMessage]:
        """
        Returns None on timeout. Raises the exception the listener was failed with,
        after which the listener is empty and every call raises the same exception.
        """
        try:
            if timeout > 0:
                out = await asyncio.wait_for(self._queue.get(), timeout)
            else:
                out = self._queue.get_nowait()
        except asyncio.TimeoutError:
            return None
        except asyncio.QueueEmpty:
            return None
        if isinstance(out, Exception):
            self._queue.put_nowait(out)
            raise out
        return out

    def push(self, msg: CoapMessage) -> None:
        if self._failed:
            _logger.debug("%s: dropping %s because the listener has failed", self, msg)
            return
        self.delivered_count += 1
        self._queue.put_nowait(msg)

    def fail(self, error: Exception) -> None:
        if not self._failed:
            self._failed = True
            self._queue.put_nowait(error)

    def __repr__(self) -> str:
        return pynmxact.util.repr_attributes_noexcept(
            self, self._criteria, queued=self._queue.qsize(), failed=self._failed
        )


def _unittest_criteria() -> None:
    msg = CoapMessage.make(69, "/omgr/", b"\x01", token=b"\x07")
    assert MsgCriteria().matches(msg)
    assert MsgCriteria(token=b"\x07").matches(msg)
    assert not MsgCriteria(token=b"\x08").matches(msg)
    assert MsgCriteria(path="/omgr").matches(msg)
    assert not MsgCriteria(path="other").matches(msg)
