# Copyright 2025 Gowtham Rao <rao@ohdsi.org>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""A blocking rate limiter shared by every study processed in one run."""

import threading
import time
from collections.abc import Callable


class RateLimiter:
    """Hands out permits no faster than `permits_per_second`.

    The first permit is granted immediately and every later one is spaced
    `1 / permits_per_second` after the previous grant. `acquire` blocks the
    calling thread until its permit is due. Safe to share between threads.
    """

    def __init__(
        self,
        permits_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_free: float | None = None
        self.set_rate(permits_per_second)

    @property
    def rate(self) -> float:
        return 1.0 / self._interval

    def set_rate(self, permits_per_second: float) -> None:
        if permits_per_second <= 0:
            msg = f"Rate must be positive, got {permits_per_second}"
            raise ValueError(msg)
        with self._lock:
            self._interval = 1.0 / permits_per_second

    def acquire(self) -> float:
        """Block until a permit is available; return the seconds spent waiting."""
        with self._lock:
            now = self._clock()
            if self._next_free is None or self._next_free < now:
                self._next_free = now
            wait = self._next_free - now
            self._next_free += self._interval

        if wait > 0:
            self._sleep(wait)
        return wait
