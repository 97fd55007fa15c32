# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

r"""
Device management client for the newtmgr/mcumgr family of protocols.

Submodule import policy
+++++++++++++++++++++++

The following submodules are auto-imported when the root module ``pynmxact`` is imported:

- :mod:`pynmxact.util`
- :mod:`pynmxact.nmp`
- :mod:`pynmxact.omp`
- :mod:`pynmxact.transport`, but not concrete transport implementation submodules.
- :mod:`pynmxact.mgmt`

Concrete transports (:mod:`pynmxact.transport.isotp`, :mod:`pynmxact.transport.udp`,
:mod:`pynmxact.transport.serial`, :mod:`pynmxact.transport.loopback`) are imported explicitly by the application
or by :func:`pynmxact.transport.make_transport`, because some of them depend on optional third-party packages.


Log level override
++++++++++++++++++

The environment variable ``PYNMXACT_LOGLEVEL`` can be set to one of the following values to override
the library log level:

- ``CRITICAL``
- ``FATAL``
- ``ERROR``
- ``WARNING``
- ``INFO``
- ``DEBUG``
"""

import os as _os


from ._version import __version__ as __version__

__version_info__ = tuple(map(int, __version__.split(".")[:3]))
__license__ = "MIT"


_log_level_from_env = _os.environ.get("PYNMXACT_LOGLEVEL")
if _log_level_from_env is not None:
    import logging as _logging

    _logging.basicConfig(
        format="%(asctime)s %(process)5d %(levelname)-8s %(name)s: %(message)s", level=_log_level_from_env
    )
    _logging.getLogger(__name__).setLevel(_log_level_from_env)
    _logging.getLogger(__name__).info("Log config from env var; level: %r", _log_level_from_env)


# The sub-packages are imported in the order of their interdependency.
import pynmxact.util as util  # pylint: disable=R0402,C0413  # noqa
import pynmxact.nmp as nmp  # pylint: disable=R0402,C0413  # noqa
import pynmxact.omp as omp  # pylint: disable=R0402,C0413  # noqa
import pynmxact.transport as transport  # pylint: disable=R0402,C0413  # noqa
import pynmxact.mgmt as mgmt  # pylint: disable=R0402,C0413  # noqa
