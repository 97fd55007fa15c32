# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

"""
CoAP-wrapped management protocol (OMP)
++++++++++++++++++++++++++++++++++++++

The wrapped variant carries the same management envelope as :mod:`pynmxact.nmp`,
but inside the payload of a CoAP request addressed to the resource ``omgr``.
The CBOR payload holds the 8-byte NMP header under the key ``_h`` next to the body fields.

Requests and responses are correlated by the sequence number of the embedded header, exactly like the plain variant;
the CoAP token is only used to route unsolicited notifications to listeners
(see :class:`pynmxact.mgmt.MsgCriteria`).

Datagram media use the RFC 7252 framing; stream media (e.g., serial) use the RFC 8323 framing
that has no message type and no message ID on the wire.
"""

from ._coap import CoapType as CoapType
from ._coap import CoapCode as CoapCode
from ._coap import CoapOption as CoapOption
from ._coap import CoapMessage as CoapMessage
from ._coap import CONTENT_FORMAT_CBOR as CONTENT_FORMAT_CBOR

from ._omp import OMP_MSG_OVERHEAD as OMP_MSG_OVERHEAD
from ._omp import OMP_PATH as OMP_PATH
from ._omp import encode_omp as encode_omp
from ._omp import make_omp as make_omp
from ._omp import decode_omp as decode_omp
from ._omp import decode_omp_image as decode_omp_image
