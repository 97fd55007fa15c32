# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.
# type: ignore

import os
import sys
import shutil
from functools import partial
import configparser
from pathlib import Path
import nox


ROOT_DIR = Path(__file__).resolve().parent

CONFIG = configparser.ConfigParser()
CONFIG.read(ROOT_DIR / "setup.cfg")
EXTRAS_REQUIRE = dict(CONFIG["options.extras_require"])
assert EXTRAS_REQUIRE, "Config could not be read correctly"

PYTHONS = ["3.10", "3.11", "3.12", "3.13"]
"""The newest supported Python shall be listed last."""

nox.options.error_on_external_run = True

MYPY_VERSION = "1.11.2"

SRC_DIRS = [
    ROOT_DIR / "pynmxact",
    ROOT_DIR / "tests",
]


@nox.session(python=False)
def clean(session):
    wildcards = [
        "dist",
        "build",
        "html*",
        ".coverage*",
        ".*cache",
        "*.egg-info",
        "*.log",
        "*.tmp",
        ".nox",
    ]
    for w in wildcards:
        for f in Path.cwd().glob(w):
            session.log(f"Removing: {f}")
            shutil.rmtree(f, ignore_errors=True)


@nox.session(python=PYTHONS, reuse_venv=True)
def test(session):
    session.log("Using the newest supported Python: %s", is_latest_python(session))
    session.install("-e", f".[{','.join(EXTRAS_REQUIRE.keys())}]")
    session.install("coverage ~= 7.6")

    # The test suite writes logs and coverage data, so we change the working directory.
    # We have to symlink the original setup.cfg as well if we run tools from the new directory.
    tmp_dir = Path(session.create_tmp()).resolve()
    session.cd(tmp_dir)
    fn = "setup.cfg"
    if not (tmp_dir / fn).exists():
        (tmp_dir / fn).symlink_to(ROOT_DIR / fn)

    env = {
        "PYTHONASYNCIODEBUG": "1",
    }
    pytest = partial(session.run, "coverage", "run", "-m", "pytest", env=env)
    pytest(*map(str, SRC_DIRS), *session.posargs)

    # Coverage analysis and report.
    fail_under = 0 if session.posargs else 80
    session.run("coverage", "combine")
    session.run("coverage", "report", f"--fail-under={fail_under}")
    if session.interactive:
        session.run("coverage", "html")
        report_file = Path.cwd().resolve() / "htmlcov" / "index.html"
        session.log(f"COVERAGE REPORT: file://{report_file}")

    if is_latest_python(session):
        session.install(
            "mypy   == " + MYPY_VERSION,
            "pylint ~= 3.2",
        )
        session.cd(ROOT_DIR)
        session.run("mypy", "--strict", *map(str, SRC_DIRS))
        session.run("pylint", *map(str, SRC_DIRS))


@nox.session(reuse_venv=True)
def mypy(session):
    session.install("-e", f".[{','.join(EXTRAS_REQUIRE.keys())}]")
    session.install("mypy == " + MYPY_VERSION)
    session.run("mypy", "--config-file", str(ROOT_DIR / "setup.cfg"), "--strict", *map(str, SRC_DIRS))


@nox.session(python=False)
def isotp_setup(session):
    """
    Prepares the virtual CAN bus used by the ISO-TP tests. Requires root privileges via sudo.
    """
    if not sys.platform.startswith("linux"):
        session.skip("SocketCAN is available only on GNU/Linux")
    for mod in ("can", "vcan", "can-isotp"):
        session.run("sudo", "modprobe", mod, external=True)
    for idx in range(int(os.environ.get("VCAN_COUNT", "1"))):
        iface = f"vcan{idx}"
        session.run("sudo", "ip", "link", "add", "dev", iface, "type", "vcan", external=True, success_codes=[0, 2])
        session.run("sudo", "ip", "link", "set", "up", iface, external=True)


def is_latest_python(session) -> bool:
    return PYTHONS[-1] in session.run("python", "-V", silent=True)
