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

"""Per-node query pipeline

Walks one node through address resolution, node and switch identification,
capability discovery and the per-port counter queries. Each step is a single
transport call wrapped in the retry policy. Any step failing ends the node
with a one-line diagnostic; a failing port is only skipped.

ResolveAddress -> QueryNodeInfo -> [QuerySwitchInfo] -> QueryClassCapabilities
    -> PerPortLoop -> Done
"""

import enum
import logging
import time
from dataclasses import dataclass
from typing import Optional

from ibperfquery.aggregate import (
    accumulate_counters,
    accumulate_counters_ext,
    encode_counters,
    encode_counters_ext,
)
from ibperfquery.counters import (
    ALL_PORTS,
    CapabilityMask,
    dump_port_counters,
    dump_port_counters_ext,
    port_header,
    without_xmit_wait,
)
from ibperfquery.output import DEFAULT_RESULT_CAPACITY, ResultBuffer, timestamp
from ibperfquery.retry import RetryExhaustedError, RetryPolicy
from ibperfquery.transport_base import NODE_TYPE_SWITCH, Attribute


class PipelineState(enum.Enum):
    RESOLVE_ADDRESS = "resolve-address"
    QUERY_NODE_INFO = "query-node-info"
    QUERY_SWITCH_INFO = "query-switch-info"
    QUERY_CLASS_CAPABILITIES = "query-class-capabilities"
    PER_PORT_LOOP = "per-port-loop"
    DONE = "done"
    FAILED = "failed"


class NodeFailure(enum.Enum):
    RESOLVE = "resolve"
    NODE_INFO = "node-info"
    INVALID_PORTS = "invalid-ports"
    SWITCH_INFO = "switch-info"
    CLASS_INFO = "class-info"
    UNEXPECTED = "unexpected"


FAILURE_MESSAGES = {
    NodeFailure.RESOLVE: "Failed to resolve GUID",
    NodeFailure.NODE_INFO: "Failed to query node info for",
    NodeFailure.INVALID_PORTS: "Invalid number of ports for",
    NodeFailure.SWITCH_INFO: "Failed to query switch info for",
    NodeFailure.CLASS_INFO: "Failed to query class port info for",
    NodeFailure.UNEXPECTED: "Unexpected error querying",
}


class NodeQueryFailed(Exception):
    def __init__(self, failure: NodeFailure):
        super().__init__(FAILURE_MESSAGES[failure])
        self.failure = failure


@dataclass
class NodeQueryResult:
    guid: int
    worker_id: int
    text: str
    failure: Optional[NodeFailure] = None
    ports_reported: int = 0
    truncated: bool = False

    @property
    def ok(self) -> bool:
        return self.failure is None


def failure_line(worker_id: int, guid: int, failure: NodeFailure, when: float) -> str:
    return f"# Thread {worker_id}: {FAILURE_MESSAGES[failure]} 0x{guid:016x} at {timestamp(when)}"


def failed_result(worker_id: int, guid: int, failure: NodeFailure, when: float) -> NodeQueryResult:
    return NodeQueryResult(guid, worker_id, failure_line(worker_id, guid, failure, when), failure=failure)


class NodeQueryPipeline:
    def __init__(
        self,
        retry: RetryPolicy,
        guid: int,
        worker_id: int,
        extended=False,
        timeout=20,
        aggregate=False,
        capacity=DEFAULT_RESULT_CAPACITY,
        clock=time.time,
    ):
        """Initialize the pipeline for one node.

        Args:
            retry (RetryPolicy): Retry wrapper owning the shared transport.
            guid (int): Node GUID.
            worker_id (int): Identifier echoed in the node's report lines.
            extended (bool): Query PortCountersExtended instead of PortCounters.
            timeout (float): Per-query timeout in seconds.
            aggregate (bool): Report one saturating sum over all ports.
            capacity (int): Result buffer capacity in bytes.
            clock (callable): Wall-clock source for report timestamps.
        """
        self.__retry = retry
        self.__guid = guid
        self.__worker_id = worker_id
        self.__extended = extended
        self.__timeout = timeout
        self.__aggregate = aggregate
        self.__capacity = capacity
        self.__clock = clock
        self.state = PipelineState.RESOLVE_ADDRESS
        self.cap_mask = None

    @property
    def guid(self) -> int:
        return self.__guid

    def run(self) -> NodeQueryResult:
        when = self.__clock()
        try:
            result = self.__run(when)
        except NodeQueryFailed as e:
            self.state = PipelineState.FAILED
            logging.warning(f"GUID 0x{self.__guid:016x}: {e} ({e.failure.value})")
            return failed_result(self.__worker_id, self.__guid, e.failure, when)

        self.state = PipelineState.DONE
        return result

    def __query(self, fn, description, failure: NodeFailure):
        try:
            return self.__retry.call(fn, f"GUID 0x{self.__guid:016x} {description}")
        except RetryExhaustedError:
            raise NodeQueryFailed(failure) from None

    def __run(self, when: float) -> NodeQueryResult:
        # ResolveAddress
        handle = self.__query(lambda t: t.resolve(self.__guid), "resolve", NodeFailure.RESOLVE)

        # QueryNodeInfo
        self.state = PipelineState.QUERY_NODE_INFO
        info = self.__query(
            lambda t: t.query(handle, Attribute.NODE_INFO, 0, self.__timeout), "node info", NodeFailure.NODE_INFO
        )
        node_type = int(info.get("node_type", 0))
        num_ports = int(info.get("num_ports", 0))
        if num_ports <= 0:
            raise NodeQueryFailed(NodeFailure.INVALID_PORTS)

        # QuerySwitchInfo: enhanced switch port 0 carries counters of its own
        start_port = 1
        if node_type == NODE_TYPE_SWITCH:
            self.state = PipelineState.QUERY_SWITCH_INFO
            switch_info = self.__query(
                lambda t: t.query(handle, Attribute.SWITCH_INFO, 0, self.__timeout),
                "switch info",
                NodeFailure.SWITCH_INFO,
            )
            if switch_info.get("enhanced_port0"):
                start_port = 0

        # QueryClassCapabilities
        self.state = PipelineState.QUERY_CLASS_CAPABILITIES
        record = self.__query(
            lambda t: t.query(handle, Attribute.CLASS_PORT_INFO, 1, self.__timeout),
            "class port info",
            NodeFailure.CLASS_INFO,
        )
        try:
            self.cap_mask = CapabilityMask.from_class_port_info(record)
        except (TypeError, ValueError):
            raise NodeQueryFailed(NodeFailure.CLASS_INFO) from None

        address = self.__query(lambda t: t.format_address(handle), "address", NodeFailure.RESOLVE)

        # PerPortLoop
        self.state = PipelineState.PER_PORT_LOOP
        buffer = ResultBuffer(self.__capacity)
        header = f"# Thread {self.__worker_id}: Querying GUID 0x{self.__guid:016x} with {num_ports} ports at {timestamp(when)}"
        if not buffer.append(header):
            # The node header is reported even when nothing else fits.
            logging.warning(f"GUID 0x{self.__guid:016x}: result capacity {self.__capacity} too small for any counters")
            return NodeQueryResult(self.__guid, self.__worker_id, header, truncated=True)

        ports = range(start_port, num_ports + 1)
        if self.__aggregate:
            ports_reported = self.__collect_aggregate(handle, address, ports, buffer)
        else:
            ports_reported = self.__collect_ports(handle, address, ports, buffer)

        logging.debug(f"GUID 0x{self.__guid:016x}: reported {ports_reported} of {len(ports)} ports")
        return NodeQueryResult(
            self.__guid,
            self.__worker_id,
            buffer.text,
            ports_reported=ports_reported,
            truncated=buffer.truncated,
        )

    def __read_port(self, handle, port: int) -> Optional[dict]:
        """Query the counters of one port; None when the port is skipped."""
        if self.__extended:
            if not self.cap_mask.extended_supported:
                return None
            attribute = Attribute.PORT_COUNTERS_EXT
        else:
            attribute = Attribute.PORT_COUNTERS

        try:
            record = self.__retry.call(
                lambda t: t.query(handle, attribute, port, self.__timeout),
                f"GUID 0x{self.__guid:016x} port {port} counters",
            )
        except RetryExhaustedError:
            logging.debug(f"GUID 0x{self.__guid:016x}: skipping port {port}")
            return None

        if not self.__extended and not self.cap_mask.xmit_wait_supported:
            record = without_xmit_wait(record)
        return record

    def __dump(self, record) -> str:
        if self.__extended:
            return dump_port_counters_ext(record, self.cap_mask)
        return dump_port_counters(record)

    def __collect_ports(self, handle, address, ports, buffer: ResultBuffer) -> int:
        reported = 0
        for port in ports:
            record = self.__read_port(handle, port)
            if record is None:
                continue
            block = port_header(address, port, self.cap_mask) + self.__dump(record)
            if not buffer.append(block):
                logging.debug(f"GUID 0x{self.__guid:016x}: result buffer full at port {port}")
                break
            reported += 1
        return reported

    def __collect_aggregate(self, handle, address, ports, buffer: ResultBuffer) -> int:
        acc = None
        reported = 0
        for port in ports:
            record = self.__read_port(handle, port)
            if record is None:
                continue
            if self.__extended:
                acc = accumulate_counters_ext(acc, record, self.cap_mask)
            else:
                acc = accumulate_counters(acc, record)
            reported += 1

        if acc is None:
            return 0

        if self.__extended:
            record = encode_counters_ext(acc, self.cap_mask)
        else:
            record = encode_counters(acc)
        if not buffer.append(port_header(address, ALL_PORTS, self.cap_mask) + self.__dump(record)):
            return 0
        return reported
