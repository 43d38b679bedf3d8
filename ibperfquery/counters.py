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

"""Port counter field sets

Field tables for the PortCounters and PortCountersExtended performance
management attributes, the PMA ClassPortInfo capability bits that gate them,
and the text dump used in the report. Field names follow the libibmad display
names, which is also how the transport keys counter records. Example dump:

# Port counters: Lid 4 port 1 (CapMask: 0x1600)
PortSelect:......................1
CounterSelect:...................0
SymbolErrorCounter:..............0
...
PortXmitWait:....................0
"""

import struct
from typing import Dict, List, Mapping, NamedTuple, Tuple

# PortSelect value addressing every port of a node
ALL_PORTS = 0xFF

# ClassPortInfo CapabilityMask bits (host order)
EXT_WIDTH_SUPPORTED = 1 << 9
EXT_WIDTH_NOIETF_SUP = 1 << 10
PC_XMIT_WAIT_SUP = 1 << 12

# ClassPortInfo CapabilityMask2 bits (host order, after the >> 5 shift)
IS_ADDL_PORT_CTRS_EXT_SUP = 1 << 1

# Width 0 marks raw selector fields, copied as-is rather than accumulated.
# fmt: off
PORT_COUNTERS: List[Tuple[str, int]] = [
    ("PortSelect",                   0),
    ("CounterSelect",                0),
    ("SymbolErrorCounter",           16),
    ("LinkErrorRecoveryCounter",     8),
    ("LinkDownedCounter",            8),
    ("PortRcvErrors",                16),
    ("PortRcvRemotePhysicalErrors",  16),
    ("PortRcvSwitchRelayErrors",     16),
    ("PortXmitDiscards",             16),
    ("PortXmitConstraintErrors",     8),
    ("PortRcvConstraintErrors",      8),
    ("LocalLinkIntegrityErrors",     4),
    ("ExcessiveBufferOverrunErrors", 4),
    ("QP1Dropped",                   16),
    ("VL15Dropped",                  16),
    ("PortXmitData",                 32),
    ("PortRcvData",                  32),
    ("PortXmitPkts",                 32),
    ("PortRcvPkts",                  32),
    ("PortXmitWait",                 32),
]

PORT_COUNTERS_EXT_BASE: List[Tuple[str, int]] = [
    ("PortSelect",                   0),
    ("CounterSelect",                0),
    ("PortXmitData",                 64),
    ("PortRcvData",                  64),
    ("PortXmitPkts",                 64),
    ("PortRcvPkts",                  64),
]

PORT_COUNTERS_EXT_CASTS: List[Tuple[str, int]] = [
    ("PortUnicastXmitPkts",          64),
    ("PortUnicastRcvPkts",           64),
    ("PortMulticastXmitPkts",        64),
    ("PortMulticastRcvPkts",         64),
]

PORT_COUNTERS_EXT_ERRORS: List[Tuple[str, int]] = [
    ("CounterSelect2",               0),
    ("SymbolErrorCounter",           64),
    ("LinkErrorRecoveryCounter",     64),
    ("LinkDownedCounter",            64),
    ("PortRcvErrors",                64),
    ("PortRcvRemotePhysicalErrors",  64),
    ("PortRcvSwitchRelayErrors",     64),
    ("PortXmitDiscards",             64),
    ("PortXmitConstraintErrors",     64),
    ("PortRcvConstraintErrors",      64),
    ("LocalLinkIntegrityErrors",     64),
    ("ExcessiveBufferOverrunErrors", 64),
    ("VL15Dropped",                  64),
    ("PortXmitWait",                 64),
    ("QP1Dropped",                   64),
]
# fmt: on

DUMP_VALUE_COLUMN = 33

# Selectors libibmad prints as zero-padded hex, by digit count
HEX_FIELDS = {"CounterSelect": 4, "CounterSelect2": 8}


class CapabilityMask(NamedTuple):
    """Capability masks advertised by a node's performance manager."""

    primary: int
    secondary: int

    @classmethod
    def from_class_port_info(cls, record: bytes) -> "CapabilityMask":
        """Decode the masks from a raw ClassPortInfo record.

        CapabilityMask is the big-endian 16-bit value at byte offset 2 and
        CapabilityMask2 the big-endian 32-bit value at offset 4, of which only
        the upper 27 bits are meaningful.
        """
        if record is None or len(record) < 8:
            raise ValueError("ClassPortInfo record too short")
        (primary,) = struct.unpack_from(">H", record, 2)
        (secondary,) = struct.unpack_from(">I", record, 4)
        return cls(primary, secondary >> 5)

    @property
    def extended_supported(self) -> bool:
        return bool(self.primary & (EXT_WIDTH_SUPPORTED | EXT_WIDTH_NOIETF_SUP))

    @property
    def casts_supported(self) -> bool:
        return bool(self.primary & EXT_WIDTH_SUPPORTED)

    @property
    def errors_ext_supported(self) -> bool:
        return bool(self.secondary & IS_ADDL_PORT_CTRS_EXT_SUP)

    @property
    def xmit_wait_supported(self) -> bool:
        return bool(self.primary & PC_XMIT_WAIT_SUP)


def extended_fields(cap_mask: CapabilityMask) -> List[Tuple[str, int]]:
    """Return the extended field set present under the given capabilities."""
    fields = list(PORT_COUNTERS_EXT_BASE)
    if cap_mask.casts_supported:
        fields += PORT_COUNTERS_EXT_CASTS
    if cap_mask.errors_ext_supported:
        fields += PORT_COUNTERS_EXT_ERRORS
    return fields


def dump_fields(record: Mapping[str, int], fields: List[Tuple[str, int]]) -> str:
    lines = []
    for name, _ in fields:
        label = name + ":"
        value = record.get(name, 0)
        if name in HEX_FIELDS:
            value = f"0x{value:0{HEX_FIELDS[name]}x}"
        lines.append(f"{label:.<{DUMP_VALUE_COLUMN}}{value}\n")
    return "".join(lines)


def dump_port_counters(record: Mapping[str, int]) -> str:
    """Format a legacy PortCounters record."""
    return dump_fields(record, PORT_COUNTERS)


def dump_port_counters_ext(record: Mapping[str, int], cap_mask: CapabilityMask) -> str:
    """Format a PortCountersExtended record.

    The base fields are always shown; the unicast/multicast quartet and the
    additional error block only when the node advertises them.
    """
    return dump_fields(record, extended_fields(cap_mask))


def port_header(address: str, port: int, cap_mask: CapabilityMask) -> str:
    return f"# Port counters: {address} port {port} (CapMask: 0x{cap_mask.primary:02X})\n"


def without_xmit_wait(record: Mapping[str, int]) -> Dict[str, int]:
    """Copy of a legacy record with PortXmitWait cleared."""
    cleared = dict(record)
    cleared["PortXmitWait"] = 0
    return cleared
