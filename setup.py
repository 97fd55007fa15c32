#!/usr/bin/env python
#
# Copyright (c) 2026 pynmxact contributors
#
# This software is distributed under the terms of the MIT License.
#

import os
from setuptools import setup

__version__ = None
VERSION_FILE = os.path.join(os.path.dirname(__file__), "pynmxact", "_version.py")
exec(open(VERSION_FILE).read())  # Adds __version__ to globals

with open("README.md", "r") as fh:
    long_description = fh.read()

args = dict(
    name="pynmxact",
    version=__version__,
    description="Device management client for newtmgr/mcumgr (NMP and OMP) over ISO-TP, UDP, and serial.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=[
        "pynmxact",
        "pynmxact.util",
        "pynmxact.nmp",
        "pynmxact.omp",
        "pynmxact.mgmt",
        "pynmxact.transport",
        "pynmxact.transport.isotp",
        "pynmxact.transport.udp",
        "pynmxact.transport.serial",
        "pynmxact.transport.loopback",
    ],
    package_data={"pynmxact": ["py.typed"]},
    python_requires=">=3.10",
    install_requires=[
        "cbor2 >= 5.4",
    ],
    license="MIT",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries",
        "Topic :: System :: Hardware",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Operating System :: POSIX :: Linux",
    ],
    keywords="mcumgr newtmgr smp coap can isotp embedded device management",
)

setup(**args)
