# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

from ._loopback import LoopbackTransport as LoopbackTransport
from ._loopback import LoopbackSession as LoopbackSession
from ._loopback import Responder as Responder

from ._responder import MgmtResponder as MgmtResponder
from ._responder import echo_handler as echo_handler
from ._responder import echo_responder as echo_responder
