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

"""Run metrics

Prometheus gauges describing one collection run. They live in a private
registry and can be written out for the node-exporter textfile collector.
Examples:

ibperfquery_nodes{status="ok"} 998.0
ibperfquery_nodes{status="class-info"} 2.0
ibperfquery_ports_reported 35920.0
ibperfquery_active_pipelines 0.0
ibperfquery_waves 100.0
ibperfquery_runtime_seconds 41.7
"""

import logging
import threading

from prometheus_client import CollectorRegistry, Gauge, write_to_textfile


class RunMetrics:
    def __init__(self, registry: CollectorRegistry = None):
        self.__prefix = "ibperfquery_"
        self.registry = registry if registry is not None else CollectorRegistry()
        self.__metrics = {}

        # Pipelines in flight, tracked next to the gauge so the peak can be
        # checked against the concurrency limit.
        self.__lock = threading.Lock()
        self.__active = 0
        self.peak_active = 0

        # fmt: off
        definitions = [
            {"metricName": "nodes",            "description": "Nodes processed, by outcome", "labels": ["status"]},
            {"metricName": "ports_reported",   "description": "Port counter blocks written to the report", "labels": []},
            {"metricName": "active_pipelines", "description": "Node pipelines currently running", "labels": []},
            {"metricName": "waves",            "description": "Waves completed", "labels": []},
            {"metricName": "runtime_seconds",  "description": "Time to complete the collection run in seconds", "labels": []},
        ]
        # fmt: on

        for item in definitions:
            metric = self.__prefix + item["metricName"]
            self.__metrics[item["metricName"]] = Gauge(
                metric, item["description"], labelnames=item["labels"], registry=self.registry
            )
            logging.info(f"--> [registered] {metric} -> {item['description']} (gauge)")

    def pipeline_started(self):
        with self.__lock:
            self.__active += 1
            self.peak_active = max(self.peak_active, self.__active)
        self.__metrics["active_pipelines"].inc()

    def pipeline_finished(self):
        with self.__lock:
            self.__active -= 1
        self.__metrics["active_pipelines"].dec()

    def record_result(self, result):
        status = "ok" if result.failure is None else result.failure.value
        self.__metrics["nodes"].labels(status=status).inc()
        self.__metrics["ports_reported"].inc(result.ports_reported)

    def wave_completed(self):
        self.__metrics["waves"].inc()

    def set_runtime(self, seconds: float):
        self.__metrics["runtime_seconds"].set(seconds)

    def get(self, name: str, labels=None):
        return self.registry.get_sample_value(self.__prefix + name, labels or {})

    def write_textfile(self, path: str):
        try:
            write_to_textfile(path, self.registry)
            logging.info(f"Run metrics written to {path}")
        except OSError as e:
            logging.warning(f"Unable to write run metrics to {path}: {e}")
