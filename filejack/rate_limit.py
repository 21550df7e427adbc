from __future__ import annotations

import threading
import time
from typing import Callable, Dict

from .errors import InvalidParameters

DEFAULT_REQUESTS_PER_SECOND = 10
POLL_INTERVAL_SECONDS = 0.01

PRESETS: Dict[str, int] = {
    "permissive": 1000,
    "moderate": 100,
    "strict": 10,
}


class RateLimiter:
    """
    Admission gate consulted once per inbound call.

    Continuous-refill token bucket: holds up to ``requests_per_second``
    tokens and regains them at that rate. ``check`` never blocks.
    """

    def __init__(self, requests_per_second: int, clock: Callable[[], float] = time.monotonic) -> None:
        if requests_per_second <= 0:
            requests_per_second = DEFAULT_REQUESTS_PER_SECOND
        self.requests_per_second = requests_per_second
        self._clock = clock
        self._tokens = float(requests_per_second)
        self._updated = clock()
        self._lock = threading.Lock()

    @classmethod
    def permissive(cls) -> "RateLimiter":
        return cls(PRESETS["permissive"])

    @classmethod
    def moderate(cls) -> "RateLimiter":
        return cls(PRESETS["moderate"])

    @classmethod
    def strict(cls) -> "RateLimiter":
        return cls(PRESETS["strict"])

    @classmethod
    def from_preset(cls, name: str) -> "RateLimiter":
        try:
            return cls(PRESETS[name.lower()])
        except KeyError as exc:
            raise InvalidParameters(
                f"Unknown rate limit preset '{name}'. Expected one of: {', '.join(PRESETS)}"
            ) from exc

    def check(self) -> bool:
        """Take one token if available. True means the call may proceed."""
        with self._lock:
            now = self._clock()
            elapsed = max(now - self._updated, 0.0)
            self._updated = now
            capacity = float(self.requests_per_second)
            self._tokens = min(capacity, self._tokens + elapsed * self.requests_per_second)
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def wait(self) -> None:
        """Block until a token is available."""
        while not self.check():
            time.sleep(POLL_INTERVAL_SECONDS)
