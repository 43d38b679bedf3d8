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

# Parallel port counter collection for InfiniBand fabrics.
#
# Reads a list of node GUIDs, queries their performance counters in waves of
# concurrent workers and writes one consolidated report.
# --

import argparse
import logging
import sys
import time
from dataclasses import dataclass
from typing import Optional

from ibperfquery import utils
from ibperfquery.guids import GuidFileError, load_guids
from ibperfquery.metrics import RunMetrics
from ibperfquery.output import MIN_RESULT_CAPACITY, OutputSink, format_run_footer, format_run_header
from ibperfquery.retry import RetryPolicy, SharedTransport
from ibperfquery.scheduler import WaveScheduler
from ibperfquery.simulation import run_simulation
from ibperfquery.transport_base import TransportUnavailable
from ibperfquery.transport_diags import DiagsTransport


@dataclass
class CollectionSettings:
    guid_file: str
    output: str
    extended: bool = False
    aggregate: bool = False
    quiet: bool = False
    timeout: int = 20
    max_threads: int = 10
    retry_attempts: int = 3
    retry_delay_ms: int = 100
    result_capacity: int = 8192
    ca: Optional[str] = None
    ca_port: Optional[int] = None
    prometheus_textfile: Optional[str] = None
    log_file: Optional[str] = None
    simulate: bool = False

    def validate(self):
        if self.max_threads < 1:
            raise ValueError(f"Maximum number of threads must be at least 1 (got {self.max_threads})")
        if self.timeout <= 0:
            raise ValueError(f"Timeout must be positive (got {self.timeout})")
        if self.retry_attempts < 1:
            raise ValueError(f"retry_attempts must be at least 1 (got {self.retry_attempts})")
        if self.retry_delay_ms < 0:
            raise ValueError(f"retry_delay_ms must not be negative (got {self.retry_delay_ms})")
        if self.result_capacity < MIN_RESULT_CAPACITY:
            raise ValueError(f"result_capacity must be at least {MIN_RESULT_CAPACITY} (got {self.result_capacity})")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Parallel InfiniBand port counter collection")
    parser.add_argument("-c", "--config-file", help="GUID list file, one GUID per line")
    parser.add_argument("-o", "--output", help="Report output file")
    parser.add_argument("-x", "--extended", action="store_true", default=None, help="Use extended counters")
    parser.add_argument(
        "-a", "--aggregate", action="store_true", default=None, help="Report one aggregate over all ports per node"
    )
    parser.add_argument("-t", "--timeout", type=int, help="Query timeout in seconds")
    parser.add_argument("-n", "--max-threads", type=int, help="Maximum number of concurrent node queries")
    parser.add_argument("-q", "--quiet", action="store_true", default=None, help="Quiet mode - suppress MAD warnings")
    parser.add_argument("-C", "--ca", help="Local HCA name")
    parser.add_argument("-P", "--ca-port", type=int, help="Local HCA port")
    parser.add_argument("--runtime-config", help="Runtime configuration file (INI)")
    parser.add_argument("--prometheus-textfile", help="Write run metrics to this node-exporter textfile")
    parser.add_argument("--log-file", help="Write log messages to this file")
    parser.add_argument("--simulate", action="store_true", help="Generate sample output without querying the fabric")
    parser.add_argument("--version", action="version", version=f"%(prog)s {utils.getVersion()}")
    return parser.parse_args(argv)


def resolve_settings(config, args) -> CollectionSettings:
    """Merge command line options over the runtime configuration."""
    section = config[utils.CONFIG_SECTION]

    def pick(arg_value, key, getter=section.get):
        if arg_value is not None:
            return arg_value
        return getter(key)

    def optional(value):
        if value is None:
            return None
        value = utils.removeQuotes(str(value))
        return value or None

    ca_port = pick(args.ca_port, "ca_port")
    settings = CollectionSettings(
        guid_file=utils.removeQuotes(pick(args.config_file, "guid_file")),
        output=utils.removeQuotes(pick(args.output, "output")),
        extended=pick(args.extended, "extended", section.getboolean),
        aggregate=pick(args.aggregate, "aggregate", section.getboolean),
        quiet=pick(args.quiet, "quiet", section.getboolean),
        timeout=pick(args.timeout, "timeout", section.getint),
        max_threads=pick(args.max_threads, "max_threads", section.getint),
        retry_attempts=section.getint("retry_attempts", 3),
        retry_delay_ms=section.getint("retry_delay_ms", 100),
        result_capacity=section.getint("result_capacity", 8192),
        ca=optional(pick(args.ca, "ca")),
        ca_port=int(optional(ca_port)) if optional(ca_port) else None,
        prometheus_textfile=optional(pick(args.prometheus_textfile, "prometheus_textfile")),
        log_file=optional(pick(args.log_file, "log_file")),
        simulate=bool(args.simulate),
    )
    settings.validate()
    return settings


def collect(settings: CollectionSettings, guids, transport, stream, metrics: RunMetrics = None) -> RunMetrics:
    """Run the wave scheduler against an opened transport and write the report."""
    metrics = metrics if metrics is not None else RunMetrics()
    sink = OutputSink(stream)
    retry = RetryPolicy(
        SharedTransport(transport),
        attempts=settings.retry_attempts,
        delay=settings.retry_delay_ms / 1000.0,
    )
    scheduler = WaveScheduler(
        retry,
        sink,
        max_threads=settings.max_threads,
        extended=settings.extended,
        timeout=settings.timeout,
        aggregate=settings.aggregate,
        capacity=settings.result_capacity,
        metrics=metrics,
    )

    start_time = time.time()
    sink.write(
        format_run_header(
            settings.guid_file, len(guids), settings.max_threads, settings.extended, settings.timeout, start_time
        )
    )
    perf_start = time.perf_counter()

    results = scheduler.run(guids)

    metrics.set_runtime(time.perf_counter() - perf_start)
    sink.write(format_run_footer(start_time, time.time()))

    failed = sum(1 for result in results if not result.ok)
    logging.info(f"Queried {len(results)} of {len(guids)} GUIDs ({failed} failed)")
    return metrics


def run(argv=None, transport=None) -> int:
    args = parse_args(argv)

    try:
        config = utils.readConfig(args.runtime_config)
        settings = resolve_settings(config, args)
    except (FileNotFoundError, ValueError) as e:
        utils.setup_logging(quiet=bool(args.quiet))
        logging.error(f"[ERROR]: {e}")
        sys.exit(1)

    utils.setup_logging(quiet=settings.quiet, log_file=settings.log_file)

    try:
        guids = load_guids(settings.guid_file)
    except GuidFileError as e:
        logging.error(f"[ERROR]: {e}")
        sys.exit(1)
    logging.info(f"Found {len(guids)} GUIDs in config file {settings.guid_file}")

    try:
        output = open(settings.output, "w")
    except OSError as e:
        logging.error(f"[ERROR]: Cannot open output file {settings.output}: {e}")
        sys.exit(1)

    if transport is None:
        transport = DiagsTransport(
            ca=settings.ca, ca_port=settings.ca_port, timeout=settings.timeout, quiet=settings.quiet
        )

    with output:
        simulate = settings.simulate
        if not simulate:
            try:
                transport.open()
            except TransportUnavailable as e:
                logging.warning(f"Warning: {e}")
                simulate = True

        if simulate:
            run_simulation(
                OutputSink(output),
                guids,
                settings.guid_file,
                settings.max_threads,
                settings.extended,
                settings.timeout,
            )
            logging.info(f"Simulation completed. Results written to {settings.output}")
            return 0

        try:
            metrics = collect(settings, guids, transport, output)
        except MemoryError:
            logging.error("[ERROR]: Memory allocation failed")
            sys.exit(1)
        finally:
            transport.close()

    if settings.prometheus_textfile:
        metrics.write_textfile(settings.prometheus_textfile)

    logging.info(f"Parallel perfquery completed. Results written to {settings.output}")
    return 0


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()
