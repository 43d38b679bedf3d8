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

# In-memory transport with scriptable nodes and failures for unit tests.

import struct
import threading
import time

from ibperfquery.counters import (
    PORT_COUNTERS,
    PORT_COUNTERS_EXT_BASE,
    PORT_COUNTERS_EXT_CASTS,
    PORT_COUNTERS_EXT_ERRORS,
    PC_XMIT_WAIT_SUP,
)
from ibperfquery.transport_base import (
    NODE_TYPE_CA,
    Attribute,
    Transport,
    TransportError,
    TransportUnavailable,
)

RESOLVE = "resolve"
ALWAYS = -1


def legacy_counters(port):
    record = {name: (port * 10 + i) for i, (name, _) in enumerate(PORT_COUNTERS)}
    record["PortSelect"] = port
    record["CounterSelect"] = 0
    return record


def extended_counters(port):
    fields = PORT_COUNTERS_EXT_BASE + PORT_COUNTERS_EXT_CASTS + PORT_COUNTERS_EXT_ERRORS
    record = {name: (port * 1000 + i) for i, (name, _) in enumerate(fields)}
    record["PortSelect"] = port
    record["CounterSelect"] = 0
    return record


def class_port_info(cap_mask, cap_mask2=0):
    return struct.pack(">BBHI", 1, 1, cap_mask, cap_mask2 << 5).ljust(64, b"\0")


class FakeNode:
    def __init__(
        self,
        guid,
        node_type=NODE_TYPE_CA,
        num_ports=2,
        enhanced_port0=0,
        cap_mask=PC_XMIT_WAIT_SUP,
        cap_mask2=0,
        failures=None,
        delay=0.0,
        crash=False,
    ):
        """A scripted fabric node.

        failures maps RESOLVE, an Attribute or an (Attribute, port) pair to the
        number of calls that fail before succeeding (ALWAYS never succeeds).
        """
        self.guid = guid
        self.node_type = node_type
        self.num_ports = num_ports
        self.enhanced_port0 = enhanced_port0
        self.cap_mask = cap_mask
        self.cap_mask2 = cap_mask2
        self.failures = dict(failures or {})
        self.delay = delay
        self.crash = crash


class FakeTransport(Transport):
    def __init__(self, nodes, available=True, events=None):
        self.nodes = {node.guid: node for node in nodes}
        self.available = available
        self.calls = []
        self.events = events if events is not None else []
        self.max_concurrent_calls = 0
        self.opened = False
        self.closed = False
        self.__in_call = 0
        self.__lock = threading.Lock()

    def open(self):
        if not self.available:
            raise TransportUnavailable("no fabric")
        self.opened = True

    def close(self):
        self.closed = True

    def __enter_call(self, node, key, port):
        with self.__lock:
            self.__in_call += 1
            self.max_concurrent_calls = max(self.max_concurrent_calls, self.__in_call)
            self.calls.append((node.guid, key, port))
            self.events.append(("call", node.guid, key))
        try:
            if node.delay:
                time.sleep(node.delay)
            if node.crash:
                raise KeyError("corrupted response")
            for failure_key in (key, (key, port)):
                remaining = node.failures.get(failure_key)
                if remaining is None or remaining == 0:
                    continue
                if remaining > 0:
                    node.failures[failure_key] = remaining - 1
                raise TransportError(f"{key} failed")
        finally:
            with self.__lock:
                self.__in_call -= 1

    def count(self, guid, key):
        return sum(1 for call in self.calls if call[0] == guid and call[1] == key)

    def resolve(self, guid):
        node = self.nodes.get(guid)
        if node is None:
            raise TransportError(f"unknown GUID 0x{guid:x}")
        self.__enter_call(node, RESOLVE, None)
        return guid

    def query(self, handle, attribute, port, timeout):
        node = self.nodes[handle]
        self.__enter_call(node, attribute, port)
        if attribute == Attribute.NODE_INFO:
            return {"node_type": node.node_type, "num_ports": node.num_ports}
        if attribute == Attribute.SWITCH_INFO:
            return {"enhanced_port0": node.enhanced_port0}
        if attribute == Attribute.CLASS_PORT_INFO:
            return class_port_info(node.cap_mask, node.cap_mask2)
        if attribute == Attribute.PORT_COUNTERS:
            return legacy_counters(port)
        if attribute == Attribute.PORT_COUNTERS_EXT:
            return extended_counters(port)
        raise TransportError(f"unsupported attribute {attribute}")

    def format_address(self, handle):
        return f"Lid {handle}"
