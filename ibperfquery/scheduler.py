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

"""Wave scheduler

Splits the GUID list into consecutive waves of at most max_threads nodes. All
nodes of a wave are queried concurrently, one thread each; the wave is joined
and its results are written in list order before the next wave starts. Peak
buffered output is therefore bounded by max_threads results.
"""

import logging
import threading
import time
from typing import List, Sequence

from ibperfquery.metrics import RunMetrics
from ibperfquery.output import DEFAULT_RESULT_CAPACITY, OutputSink
from ibperfquery.pipeline import NodeFailure, NodeQueryPipeline, NodeQueryResult, failed_result
from ibperfquery.retry import RetryPolicy


class WorkerSlot:
    """One node of a wave: its worker thread and the result it produces."""

    def __init__(self, worker_id: int, guid: int):
        self.worker_id = worker_id
        self.guid = guid
        self.thread = None
        self.result = None


class WaveScheduler:
    def __init__(
        self,
        retry: RetryPolicy,
        sink: OutputSink,
        max_threads=10,
        extended=False,
        timeout=20,
        aggregate=False,
        capacity=DEFAULT_RESULT_CAPACITY,
        metrics: RunMetrics = None,
        thread_factory=threading.Thread,
    ):
        if max_threads < 1:
            raise ValueError("max_threads must be >= 1")
        self.__retry = retry
        self.__sink = sink
        self.__max_threads = max_threads
        self.__extended = extended
        self.__timeout = timeout
        self.__aggregate = aggregate
        self.__capacity = capacity
        self.__metrics = metrics if metrics is not None else RunMetrics()
        self.__thread_factory = thread_factory

    @property
    def metrics(self) -> RunMetrics:
        return self.__metrics

    def waves(self, guids: Sequence[int]):
        """Yield (offset, wave) pairs covering guids in order."""
        for offset in range(0, len(guids), self.__max_threads):
            yield offset, guids[offset : offset + self.__max_threads]

    def run(self, guids: Sequence[int]) -> List[NodeQueryResult]:
        """Query every GUID and write the results to the sink in list order."""
        results = []
        for offset, wave in self.waves(guids):
            logging.info(f"Processing batch {offset + 1}-{offset + len(wave)} of {len(guids)} GUIDs...")
            start_time = time.perf_counter()

            slots = [WorkerSlot(offset + j + 1, guid) for j, guid in enumerate(wave)]
            for slot in slots:
                self.__start(slot)

            # Wave barrier
            for slot in slots:
                if slot.thread is not None:
                    slot.thread.join()

            for slot in slots:
                if slot.result is None:
                    continue
                self.__sink.write(slot.result.text)
                self.__metrics.record_result(slot.result)
                results.append(slot.result)

            self.__metrics.wave_completed()
            logging.debug(f"Batch {offset + 1}-{offset + len(wave)} done in {time.perf_counter() - start_time:.3f} secs")

        return results

    def __start(self, slot: WorkerSlot):
        thread = self.__thread_factory(
            target=self.__run_slot,
            args=(slot,),
            daemon=True,
            name=f"perfquery worker {slot.worker_id}",
        )
        try:
            thread.start()
        except RuntimeError as e:
            logging.warning(f"Error: Failed to create thread for GUID 0x{slot.guid:016x}: {e}")
            return
        slot.thread = thread

    def __run_slot(self, slot: WorkerSlot):
        pipeline = NodeQueryPipeline(
            self.__retry,
            slot.guid,
            slot.worker_id,
            extended=self.__extended,
            timeout=self.__timeout,
            aggregate=self.__aggregate,
            capacity=self.__capacity,
        )
        self.__metrics.pipeline_started()
        try:
            slot.result = pipeline.run()
        except Exception as e:
            logging.error(f"Unexpected error querying GUID 0x{slot.guid:016x} ({pipeline.state.value}): {e}")
            slot.result = failed_result(slot.worker_id, slot.guid, NodeFailure.UNEXPECTED, time.time())
        finally:
            self.__metrics.pipeline_finished()
