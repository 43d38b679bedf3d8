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

import pytest

from ibperfquery.aggregate import (
    WIDTH_MAX,
    accumulate,
    accumulate_counters,
    accumulate_counters_ext,
    encode_counters,
    encode_counters_ext,
)
from ibperfquery.counters import (
    ALL_PORTS,
    EXT_WIDTH_NOIETF_SUP,
    EXT_WIDTH_SUPPORTED,
    IS_ADDL_PORT_CTRS_EXT_SUP,
    PORT_COUNTERS,
    CapabilityMask,
)
from test.fake_transport import extended_counters, legacy_counters

WIDTHS = [4, 8, 16, 32, 64]


class TestAccumulate:
    @pytest.mark.parametrize("width", WIDTHS)
    def test_overflow_clamps_to_max(self, width):
        limit = (1 << width) - 1
        assert accumulate(width, limit, 1) == limit
        assert accumulate(width, limit - 1, 2) == limit
        assert accumulate(width, limit, limit) == limit

    @pytest.mark.parametrize("width", WIDTHS)
    def test_sum_within_range_is_exact(self, width):
        limit = (1 << width) - 1
        assert accumulate(width, 0, 0) == 0
        assert accumulate(width, 3, 4) == 7
        assert accumulate(width, limit - 5, 5) == limit

    def test_width_max_table(self):
        assert WIDTH_MAX == {4: 0xF, 8: 0xFF, 16: 0xFFFF, 32: 0xFFFFFFFF, 64: 0xFFFFFFFFFFFFFFFF}

    @pytest.mark.parametrize("width", [0, 1, 12, 128])
    def test_unsupported_width(self, width):
        with pytest.raises(ValueError):
            accumulate(width, 0, 1)

    def test_negative_values_rejected(self):
        with pytest.raises(ValueError):
            accumulate(8, -1, 1)
        with pytest.raises(ValueError):
            accumulate(8, 1, -1)


class TestCounterAggregation:
    def test_legacy_fields_saturate_at_declared_width(self):
        record = legacy_counters(1)
        record["LocalLinkIntegrityErrors"] = 10
        record["LinkDownedCounter"] = 200
        record["PortXmitData"] = 0xFFFFFFF0

        acc = accumulate_counters(None, record)
        acc = accumulate_counters(acc, record)

        assert acc["LocalLinkIntegrityErrors"] == 0xF
        assert acc["LinkDownedCounter"] == 0xFF
        assert acc["PortXmitData"] == 0xFFFFFFFF
        assert acc["PortRcvPkts"] == 2 * record["PortRcvPkts"]

    def test_selectors_are_copied_not_summed(self):
        acc = accumulate_counters(None, legacy_counters(1))
        acc = accumulate_counters(acc, legacy_counters(2))
        assert acc["PortSelect"] == 2
        assert acc["CounterSelect"] == 0

    def test_accumulator_is_not_mutated(self):
        first = accumulate_counters(None, legacy_counters(1))
        snapshot = dict(first)
        accumulate_counters(first, legacy_counters(2))
        assert first == snapshot

    def test_extended_base_only(self):
        cap_mask = CapabilityMask(EXT_WIDTH_NOIETF_SUP, 0)
        acc = accumulate_counters_ext(None, extended_counters(1), cap_mask)
        assert "PortXmitData" in acc
        assert "PortUnicastXmitPkts" not in acc
        assert "SymbolErrorCounter" not in acc

    def test_extended_optional_fields_follow_capabilities(self):
        cap_mask = CapabilityMask(EXT_WIDTH_SUPPORTED, IS_ADDL_PORT_CTRS_EXT_SUP)
        acc = accumulate_counters_ext(None, extended_counters(1), cap_mask)
        acc = accumulate_counters_ext(acc, extended_counters(2), cap_mask)
        expected = extended_counters(1)["PortMulticastRcvPkts"] + extended_counters(2)["PortMulticastRcvPkts"]
        assert acc["PortMulticastRcvPkts"] == expected
        assert "QP1Dropped" in acc

    def test_extended_64bit_saturation(self):
        cap_mask = CapabilityMask(EXT_WIDTH_SUPPORTED, 0)
        record = extended_counters(1)
        record["PortRcvData"] = (1 << 64) - 10
        acc = accumulate_counters_ext(None, record, cap_mask)
        acc = accumulate_counters_ext(acc, record, cap_mask)
        assert acc["PortRcvData"] == (1 << 64) - 1


class TestEncode:
    def test_legacy_encode_targets_all_ports(self):
        acc = accumulate_counters(None, legacy_counters(3))
        record = encode_counters(acc)
        assert record["PortSelect"] == ALL_PORTS
        assert set(record) == {name for name, _ in PORT_COUNTERS}
        assert record["PortXmitData"] == acc["PortXmitData"]

    def test_legacy_encode_fills_missing_fields(self):
        record = encode_counters({"PortXmitData": 5})
        assert record["PortXmitData"] == 5
        assert record["SymbolErrorCounter"] == 0

    def test_extended_encode_omits_absent_fields(self):
        cap_mask = CapabilityMask(EXT_WIDTH_NOIETF_SUP, 0)
        acc = accumulate_counters_ext(None, extended_counters(1), cap_mask)
        record = encode_counters_ext(acc, cap_mask)
        assert record["PortSelect"] == ALL_PORTS
        assert "PortUnicastRcvPkts" not in record
        assert "CounterSelect2" not in record

    def test_extended_encode_round_trips_accumulator(self):
        cap_mask = CapabilityMask(EXT_WIDTH_SUPPORTED, IS_ADDL_PORT_CTRS_EXT_SUP)
        acc = accumulate_counters_ext(None, extended_counters(4), cap_mask)
        record = encode_counters_ext(acc, cap_mask)
        assert accumulate_counters_ext(None, record, cap_mask) == record
