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

"""GUID list file

One node GUID per line, hexadecimal with a 0x prefix or decimal otherwise.
Empty lines and lines starting with '#' are ignored:

# leaf switches
0x0002c90300a1b2c3
0x0002c90300a1b2c4
1125968626319360
"""

import logging
import re
from typing import Tuple

MAX_GUIDS = 1000
MAX_GUID_VALUE = (1 << 64) - 1

_GUID = re.compile(r"^(0[xX][0-9a-fA-F]+|[0-9]+)$")


class GuidFileError(Exception):
    pass


def parse_guid(text: str) -> int:
    if not _GUID.match(text):
        raise ValueError(f"Invalid GUID: {text}")
    if text[:2].lower() == "0x":
        value = int(text[2:], 16)
    else:
        value = int(text, 10)
    if value < 0 or value > MAX_GUID_VALUE:
        raise ValueError(f"GUID out of range: {text}")
    return value


def load_guids(path, max_guids=MAX_GUIDS) -> Tuple[int, ...]:
    """Read the GUID list.

    Returns:
        tuple: GUIDs in file order, at most max_guids of them.

    Raises:
        GuidFileError: File cannot be read or holds no valid GUID.
    """
    guids = []
    try:
        with open(path, "r") as f:
            for lineno, line in enumerate(f, start=1):
                if line.startswith("#"):
                    continue
                entry = line.strip()
                if not entry:
                    continue
                try:
                    guid = parse_guid(entry)
                except ValueError:
                    logging.warning(f"{path}:{lineno}: ignoring invalid GUID '{entry}'")
                    continue
                if len(guids) >= max_guids:
                    logging.warning(f"GUID limit of {max_guids} reached; ignoring the rest of {path}")
                    break
                guids.append(guid)
    except OSError as e:
        raise GuidFileError(f"Cannot open config file {path}: {e}") from e

    if not guids:
        raise GuidFileError(f"No valid GUIDs found in config file {path}")

    return tuple(guids)
