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

"""Report output

ResultBuffer holds one node's report while its pipeline runs; OutputSink
appends finished reports to the shared output stream.
"""

import logging
import threading
import time
from typing import Iterable, TextIO

DEFAULT_RESULT_CAPACITY = 8192
# Smallest capacity accepted from configuration
MIN_RESULT_CAPACITY = 256


class ResultBuffer:
    """Bounded text buffer with a checked append.

    An append that does not fit is rejected as a whole, so the buffer always
    ends on a complete block. Capacity is measured in encoded bytes.
    """

    def __init__(self, capacity: int = DEFAULT_RESULT_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.__capacity = capacity
        self.__chunks = []
        self.__size = 0
        self.__truncated = False

    @property
    def capacity(self) -> int:
        return self.__capacity

    @property
    def size(self) -> int:
        return self.__size

    @property
    def truncated(self) -> bool:
        return self.__truncated

    @property
    def text(self) -> str:
        return "".join(self.__chunks)

    def append(self, text: str) -> bool:
        """Append text if it fits; return False (and stay unchanged) otherwise."""
        if self.__truncated:
            return False
        size = len(text.encode("utf-8"))
        if self.__size + size > self.__capacity:
            self.__truncated = True
            return False
        self.__chunks.append(text)
        self.__size += size
        return True


class OutputSink:
    """Serializes writes from many workers into one stream."""

    def __init__(self, stream: TextIO):
        self.__stream = stream
        self.__lock = threading.Lock()

    def write(self, text: str):
        if not text:
            return
        with self.__lock:
            self.__stream.write(text)
            self.__stream.flush()

    def write_all(self, blobs: Iterable[str]):
        for blob in blobs:
            self.write(blob)


def timestamp(when: float) -> str:
    """ctime() representation including the trailing newline."""
    return time.ctime(when) + "\n"


def format_run_header(guid_file, num_guids, max_threads, extended, timeout, started):
    return f"# Parallel perfquery started at {timestamp(started)}" + format_run_parameters(
        guid_file, num_guids, max_threads, extended, timeout
    )


def format_run_parameters(guid_file, num_guids, max_threads, extended, timeout):
    return (
        f"# Config file: {guid_file}\n"
        f"# Number of GUIDs: {num_guids}\n"
        f"# Max threads: {max_threads}\n"
        f"# Extended counters: {'yes' if extended else 'no'}\n"
        f"# Timeout: {timeout} seconds\n"
        "#\n"
    )


def format_run_footer(started: float, finished: float) -> str:
    elapsed = int(finished - started)
    logging.debug(f"Run footer: elapsed {finished - started:.3f} secs")
    return f"#\n# Parallel perfquery completed at {timestamp(finished)}# Total time: {elapsed} seconds\n"
