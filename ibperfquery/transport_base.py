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

"""Management transport interface

A transport resolves node GUIDs to fabric addresses and issues management
queries against them. Implementations are not required to be safe for
concurrent use; callers serialize access (see ibperfquery.retry).

Record shapes returned by query():
  NODE_INFO          {"node_type": int, "num_ports": int}
  SWITCH_INFO        {"enhanced_port0": int}
  CLASS_PORT_INFO    raw ClassPortInfo bytes
  PORT_COUNTERS      {field name: value}
  PORT_COUNTERS_EXT  {field name: value}
"""

import enum
from abc import ABC, abstractmethod

NODE_TYPE_CA = 1
NODE_TYPE_SWITCH = 2
NODE_TYPE_ROUTER = 3


class Attribute(enum.Enum):
    NODE_INFO = "nodeinfo"
    SWITCH_INFO = "switchinfo"
    CLASS_PORT_INFO = "classportinfo"
    PORT_COUNTERS = "portcounters"
    PORT_COUNTERS_EXT = "portcountersext"


class TransportError(Exception):
    """A single transport call failed."""


class TransportUnavailable(TransportError):
    """The transport could not be opened at all."""


class Transport(ABC):
    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False

    def open(self):
        """Acquire transport resources; raise TransportUnavailable on failure."""
        return

    def close(self):
        return

    @abstractmethod
    def resolve(self, guid: int):
        """Resolve a node GUID into a transport-level handle."""
        pass

    @abstractmethod
    def query(self, handle, attribute: Attribute, port: int, timeout: float):
        """Query one attribute of a resolved node.

        Args:
            handle: Value returned by resolve().
            attribute (Attribute): Attribute kind to query.
            port (int): Port selector for per-port attributes.
            timeout (float): Query timeout in seconds.
        """
        pass

    @abstractmethod
    def format_address(self, handle) -> str:
        pass
