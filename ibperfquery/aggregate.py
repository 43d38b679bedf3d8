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

"""Saturating counter aggregation

Hardware port counters stop at their maximum value instead of wrapping. When
samples from several ports (or several polls) are summed, the running totals
follow the same rule: each field is bound to its declared bit-width and clamps
at 2^width - 1. All helpers are pure and return new values.
"""

from typing import Dict, List, Mapping, Optional, Tuple

from ibperfquery.counters import (
    ALL_PORTS,
    PORT_COUNTERS,
    CapabilityMask,
    extended_fields,
)

WIDTH_MAX = {width: (1 << width) - 1 for width in (4, 8, 16, 32, 64)}


def accumulate(width: int, destination: int, increment: int) -> int:
    """Add increment to destination, clamping at the width's maximum."""
    try:
        limit = WIDTH_MAX[width]
    except KeyError:
        raise ValueError(f"Unsupported counter width: {width}") from None
    if destination < 0 or increment < 0:
        raise ValueError("Counter values must be non-negative")
    return min(destination + increment, limit)


def _accumulate_fields(
    acc: Optional[Mapping[str, int]], record: Mapping[str, int], fields: List[Tuple[str, int]]
) -> Dict[str, int]:
    result = dict(acc or {})
    for name, width in fields:
        if name not in record:
            continue
        if width == 0:
            result[name] = record[name]
        else:
            result[name] = accumulate(width, result.get(name, 0), record[name])
    return result


def accumulate_counters(acc: Optional[Mapping[str, int]], record: Mapping[str, int]) -> Dict[str, int]:
    """Fold a legacy PortCounters record into an accumulator."""
    return _accumulate_fields(acc, record, PORT_COUNTERS)


def accumulate_counters_ext(
    acc: Optional[Mapping[str, int]], record: Mapping[str, int], cap_mask: CapabilityMask
) -> Dict[str, int]:
    """Fold a PortCountersExtended record into an accumulator.

    Optional fields only participate when the node advertises them.
    """
    return _accumulate_fields(acc, record, extended_fields(cap_mask))


def _encode_fields(acc: Mapping[str, int], fields: List[Tuple[str, int]]) -> Dict[str, int]:
    record = {name: acc.get(name, 0) for name, _ in fields}
    record["PortSelect"] = ALL_PORTS
    return record


def encode_counters(acc: Mapping[str, int]) -> Dict[str, int]:
    """Re-encode a legacy accumulator as an all-ports PortCounters record."""
    return _encode_fields(acc, PORT_COUNTERS)


def encode_counters_ext(acc: Mapping[str, int], cap_mask: CapabilityMask) -> Dict[str, int]:
    """Re-encode an extended accumulator as an all-ports record."""
    return _encode_fields(acc, extended_fields(cap_mask))
