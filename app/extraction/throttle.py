"""
Per-domain politeness delay between page fetches.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from urllib.parse import urlparse

from app.extraction.types import Complexity

COMPLEXITY_DELAY_FACTORS = {
    Complexity.LOW: 1.0,
    Complexity.MEDIUM: 1.0,
    Complexity.HIGH: 1.5,
    Complexity.EXTREME: 2.5,
}


def delay_for(base_delay_seconds: float, complexity: str) -> float:
    """
    Scale the base inter-page delay by the complexity tier.
    """

    return max(0.0, base_delay_seconds) * COMPLEXITY_DELAY_FACTORS.get(complexity, 1.0)


class PageThrottle:
    """
    Enforces a minimum interval between fetches to the same domain.
    """

    def __init__(
        self,
        *,
        base_delay_seconds: float,
        complexity: str,
        wait: Callable[[float], object] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval_seconds = delay_for(base_delay_seconds, complexity)
        self._wait = wait
        self._clock = clock
        self._last_request_by_domain: dict[str, float] = {}
        self._lock = threading.Lock()

    def wait(self, *, url: str) -> float:
        """
        Sleep as needed before fetching `url` and return the seconds waited.
        """

        parsed = urlparse(url)
        domain = parsed.netloc.lower() or parsed.path.lower()
        if not domain:
            return 0.0

        with self._lock:
            last_time = self._last_request_by_domain.get(domain)
            wait_seconds = 0.0
            if last_time is not None:
                wait_seconds = self.interval_seconds - (self._clock() - last_time)
            if wait_seconds > 0:
                self._wait(wait_seconds)
            else:
                wait_seconds = 0.0
            self._last_request_by_domain[domain] = self._clock()
            return wait_seconds

    def mark(self, *, url: str) -> None:
        """
        Record a fetch made outside `wait`, such as the classification probe.
        """

        parsed = urlparse(url)
        domain = parsed.netloc.lower() or parsed.path.lower()
        if domain:
            with self._lock:
                self._last_request_by_domain[domain] = self._clock()
