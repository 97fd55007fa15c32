# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.

import sys
import logging
import pytest


GIBIBYTE = 1024**3

MEMORY_LIMIT = 4 * GIBIBYTE
"""
The test suite artificially limits the amount of consumed memory in order to avoid triggering the OOM killer
should a test go crazy and eat all memory.
"""

_logger = logging.getLogger(__name__)


@pytest.fixture(scope="session", autouse=True)
def _configure_host_environment() -> None:
    if sys.platform.startswith("linux"):
        import resource

        _, hard = resource.getrlimit(resource.RLIMIT_AS)
        limit = MEMORY_LIMIT if hard == resource.RLIM_INFINITY else min(MEMORY_LIMIT, hard)
        _logger.info("Limiting process memory usage to %.1f GiB", limit / GIBIBYTE)
        resource.setrlimit(resource.RLIMIT_AS, (limit, hard))
