# -------------------------------------------------------------------------------
# MIT License
#
# Copyright (c) 2026 Advanced Micro Devices, Inc. All Rights Reserved.
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
# -------------------------------------------------------------------------------

import configparser
import importlib.metadata
import logging
import os
import platform
import sys

CONFIG_SECTION = "ibperfquery"
DEFAULT_CONFIG = os.path.join(os.path.dirname(__file__), "config", "ibperfquery.default")


def setup_logging(quiet=False, log_file=None):
    """Configure the root logger.

    Level comes from IBPERFQUERY_LOG_LEVEL (default INFO); quiet mode never
    logs below WARNING.
    """
    logLevel = os.environ.get("IBPERFQUERY_LOG_LEVEL", "INFO").upper()
    if not isinstance(logging.getLevelName(logLevel), int):
        logLevel = "INFO"
    if quiet and logging.getLevelName(logLevel) < logging.WARNING:
        logLevel = "WARNING"

    if log_file:
        hostname = platform.node().split(".", 1)[0]
        logging.basicConfig(
            format=f"[{hostname}: %(asctime)s] %(message)s",
            level=logLevel,
            filename=log_file,
            datefmt="%H:%M:%S",
        )
    else:
        logging.basicConfig(format="%(message)s", level=logLevel, stream=sys.stdout)


def getVersion():
    try:
        return importlib.metadata.version("ibperfquery")
    except importlib.metadata.PackageNotFoundError:
        return "Unknown"


def removeQuotes(value: str) -> str:
    return value.strip().strip('"').strip("'")


def readConfig(path=None) -> configparser.ConfigParser:
    """Load the packaged defaults, overlaid with an optional runtime config.

    Raises:
        FileNotFoundError: A runtime config was given but does not exist.
    """
    config = configparser.ConfigParser()
    config.read(DEFAULT_CONFIG)
    if not config.has_section(CONFIG_SECTION):
        config.add_section(CONFIG_SECTION)

    if path:
        if not os.path.isfile(path):
            raise FileNotFoundError(f"Runtime config file not found: {path}")
        config.read(path)
        logging.debug(f"Read runtime config from {path}")

    return config
