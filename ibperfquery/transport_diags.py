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

"""infiniband-diags transport

Issues management queries by running the infiniband-diags tools and parsing
their field dumps. Requires ibaddr, smpquery and perfquery on PATH and access
to the local umad device. Example perfquery output:

# Port counters: Lid 4 port 1 (CapMask: 0x1600)
PortSelect:......................1
CounterSelect:...................0x0000
SymbolErrorCounter:..............0
...
"""

import logging
import re
import shutil
import struct
import subprocess
from typing import Dict, List, NamedTuple

from ibperfquery.counters import EXT_WIDTH_NOIETF_SUP, EXT_WIDTH_SUPPORTED, IS_ADDL_PORT_CTRS_EXT_SUP
from ibperfquery.transport_base import (
    NODE_TYPE_CA,
    NODE_TYPE_ROUTER,
    NODE_TYPE_SWITCH,
    Attribute,
    Transport,
    TransportError,
    TransportUnavailable,
)

REQUIRED_TOOLS = ["ibaddr", "smpquery", "perfquery"]

NODE_TYPES = {
    "channel adapter": NODE_TYPE_CA,
    "switch": NODE_TYPE_SWITCH,
    "router": NODE_TYPE_ROUTER,
}

CLASS_PORT_INFO_SIZE = 64

_DUMP_LINE = re.compile(r"^(\w+):\.*(.*)$")
_LID = re.compile(r"LID start (0x[0-9a-fA-F]+|\d+)")
_CAP_MASK = re.compile(r"\(CapMask: (0x[0-9a-fA-F]+)\)")


class PortHandle(NamedTuple):
    guid: int
    lid: int


def parse_dump(output: str) -> Dict[str, str]:
    """Parse a libibmad "Name:....value" dump into a dictionary."""
    fields = {}
    for line in output.splitlines():
        match = _DUMP_LINE.match(line.strip())
        if match:
            fields[match.group(1)] = match.group(2).strip()
    return fields


def to_int(value: str) -> int:
    if value.lower().startswith("0x"):
        return int(value, 16)
    return int(value, 10)


def parse_counters(output: str) -> Dict[str, int]:
    counters = {}
    for name, value in parse_dump(output).items():
        try:
            counters[name] = to_int(value)
        except ValueError:
            continue
    if not counters:
        raise TransportError("no counters found in perfquery output")
    return counters


class DiagsTransport(Transport):
    def __init__(self, ca=None, ca_port=None, timeout=20, quiet=False):
        """Initialize the infiniband-diags transport.

        Args:
            ca (str): Local HCA name (-C), default device when None.
            ca_port (int): Local HCA port (-P), default port when None.
            timeout (float): Default query timeout in seconds.
            quiet (bool): Drop tool diagnostics instead of logging them.
        """
        self.__ca = ca
        self.__ca_port = ca_port
        self.__timeout = timeout
        self.__quiet = quiet

    def open(self):
        missing = [tool for tool in REQUIRED_TOOLS if shutil.which(tool) is None]
        if missing:
            raise TransportUnavailable(f"infiniband-diags tools not found: {', '.join(missing)}")
        logging.debug(f"Using infiniband-diags transport (ca={self.__ca or 'default'}, port={self.__ca_port or 'default'})")

    def __command(self, tool: str, timeout: float) -> List[str]:
        cmd = [tool]
        if self.__ca:
            cmd += ["-C", str(self.__ca)]
        if self.__ca_port:
            cmd += ["-P", str(self.__ca_port)]
        cmd += ["-t", str(max(1, int(timeout * 1000)))]
        return cmd

    def __run(self, cmd: List[str], timeout: float) -> str:
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=max(5.0, 2 * timeout))
        except subprocess.TimeoutExpired:
            raise TransportError(f"{cmd[0]} timed out") from None
        except OSError as e:
            raise TransportError(f"{cmd[0]} failed to run: {e}") from e

        if result.stderr and not self.__quiet:
            logging.debug(f"{cmd[0]}: {result.stderr.strip()}")
        if result.returncode != 0:
            raise TransportError(f"{' '.join(cmd)} exited with status {result.returncode}")
        return result.stdout

    def resolve(self, guid: int) -> PortHandle:
        cmd = self.__command("ibaddr", self.__timeout) + ["-G", f"0x{guid:016x}"]
        output = self.__run(cmd, self.__timeout)
        match = _LID.search(output)
        if not match:
            raise TransportError(f"unable to parse ibaddr output for 0x{guid:016x}")
        return PortHandle(guid, to_int(match.group(1)))

    def query(self, handle: PortHandle, attribute: Attribute, port: int, timeout: float):
        if attribute == Attribute.NODE_INFO:
            fields = parse_dump(self.__run(self.__command("smpquery", timeout) + ["nodeinfo", str(handle.lid)], timeout))
            try:
                return {
                    "node_type": NODE_TYPES.get(fields["NodeType"].lower(), 0),
                    "num_ports": to_int(fields["NumPorts"]),
                }
            except (KeyError, ValueError):
                raise TransportError("unexpected smpquery nodeinfo output") from None

        if attribute == Attribute.SWITCH_INFO:
            fields = parse_dump(self.__run(self.__command("smpquery", timeout) + ["switchinfo", str(handle.lid)], timeout))
            try:
                return {"enhanced_port0": to_int(fields["EnhancedPort0"])}
            except (KeyError, ValueError):
                raise TransportError("unexpected smpquery switchinfo output") from None

        if attribute == Attribute.CLASS_PORT_INFO:
            return self.__class_port_info(handle, port, timeout)

        if attribute == Attribute.PORT_COUNTERS:
            cmd = self.__command("perfquery", timeout) + [str(handle.lid), str(port)]
            return parse_counters(self.__run(cmd, timeout))

        if attribute == Attribute.PORT_COUNTERS_EXT:
            cmd = self.__command("perfquery", timeout) + ["-x", str(handle.lid), str(port)]
            return parse_counters(self.__run(cmd, timeout))

        raise TransportError(f"unsupported attribute {attribute}")

    def __class_port_info(self, handle: PortHandle, port: int, timeout: float) -> bytes:
        """Build a ClassPortInfo record from what perfquery reports.

        perfquery prints CapabilityMask in its header but not CapabilityMask2;
        the additional extended counters are detected by the presence of
        CounterSelect2 in the extended dump.
        """
        output = self.__run(self.__command("perfquery", timeout) + [str(handle.lid), str(port)], timeout)
        match = _CAP_MASK.search(output)
        if not match:
            raise TransportError("perfquery did not report a capability mask")
        cap_mask = int(match.group(1), 16) & 0xFFFF

        cap_mask2 = 0
        if cap_mask & (EXT_WIDTH_SUPPORTED | EXT_WIDTH_NOIETF_SUP):
            cmd = self.__command("perfquery", timeout) + ["-x", str(handle.lid), str(port)]
            try:
                if "CounterSelect2" in parse_dump(self.__run(cmd, timeout)):
                    cap_mask2 |= IS_ADDL_PORT_CTRS_EXT_SUP
            except TransportError as e:
                logging.debug(f"Extended counter probe failed for 0x{handle.guid:016x}: {e}")

        # BaseVersion, ClassVersion, CapabilityMask, CapabilityMask2 << 5
        record = struct.pack(">BBHI", 1, 1, cap_mask, (cap_mask2 << 5) & 0xFFFFFFFF)
        return record.ljust(CLASS_PORT_INFO_SIZE, b"\0")

    def format_address(self, handle: PortHandle) -> str:
        return f"Lid {handle.lid}"
