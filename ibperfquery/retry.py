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

"""Bounded retries around shared transport calls

Every transport call goes through RetryPolicy.call(), which holds the shared
transport lock for exactly one attempt. The backoff sleep happens with the
lock released so other pipelines keep making progress.
"""

import logging
import threading
import time
from contextlib import contextmanager

from ibperfquery.transport_base import Transport, TransportError

DEFAULT_ATTEMPTS = 3
DEFAULT_DELAY_SECS = 0.1


class RetryExhaustedError(TransportError):
    """All attempts of a transport call failed."""


class SharedTransport:
    """A single transport instance guarded by one mutual-exclusion lock."""

    def __init__(self, transport: Transport):
        self.__transport = transport
        self.__lock = threading.Lock()

    @property
    def transport(self) -> Transport:
        return self.__transport

    def locked(self) -> bool:
        return self.__lock.locked()

    @contextmanager
    def exclusive(self):
        with self.__lock:
            yield self.__transport


class RetryPolicy:
    def __init__(self, shared: SharedTransport, attempts=DEFAULT_ATTEMPTS, delay=DEFAULT_DELAY_SECS, sleep=time.sleep):
        """Initialize the retry policy.

        Args:
            shared (SharedTransport): Transport and the lock serializing its use.
            attempts (int): Maximum number of attempts per call.
            delay (float): Pause between failed attempts in seconds.
            sleep (callable): Sleep function, replaceable for testing.
        """
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.__shared = shared
        self.__attempts = attempts
        self.__delay = delay
        self.__sleep = sleep

    @property
    def attempts(self) -> int:
        return self.__attempts

    def call(self, fn, description="transport call"):
        """Run fn(transport) with retries.

        A TransportError or a None record counts as a failed attempt. Any
        other exception propagates immediately.

        Returns:
            The first non-None record returned by fn.

        Raises:
            RetryExhaustedError: When every attempt failed.
        """
        last_error = None
        for attempt in range(1, self.__attempts + 1):
            try:
                with self.__shared.exclusive() as transport:
                    record = fn(transport)
            except TransportError as e:
                last_error = e
                record = None
            else:
                if record is not None:
                    return record
                last_error = None

            logging.debug(f"{description}: attempt {attempt}/{self.__attempts} failed ({last_error or 'no response'})")
            if attempt < self.__attempts:
                self.__sleep(self.__delay)

        raise RetryExhaustedError(f"{description} failed after {self.__attempts} attempts") from last_error
