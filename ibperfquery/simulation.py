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

"""Simulation mode

Canned report for hosts without fabric access, used to exercise the report
format end to end. No transport calls and no worker threads are involved.
"""

import logging
import time

from ibperfquery.output import OutputSink, format_run_footer, format_run_parameters, timestamp

SIMULATED_COUNTERS = ["PortXmitData", "PortRcvData", "PortXmitPkts", "PortRcvPkts"]


def run_simulation(sink: OutputSink, guids, guid_file, max_threads, extended, timeout, clock=time.time):
    logging.warning("No InfiniBand transport available - running in simulation mode")

    start_time = clock()
    sink.write(
        "# SIMULATION MODE - No IB devices available\n"
        f"# This is test output for {len(guids)} GUIDs\n"
        + format_run_parameters(guid_file, len(guids), max_threads, extended, timeout)
    )

    blocks = []
    for index, guid in enumerate(guids, start=1):
        lines = [
            f"# Thread {index}: Querying GUID 0x{guid:016x} with 2 ports at {timestamp(clock())}",
            f"# Port counters: 0x{guid:016x} port 1 (CapMask: 0x02)\n",
        ]
        lines += [f"#\t{name}: 0x00000000\n" for name in SIMULATED_COUNTERS]
        lines.append("#\n")
        blocks.append("".join(lines))
    sink.write_all(blocks)

    sink.write(format_run_footer(start_time, clock()))
    return 0
