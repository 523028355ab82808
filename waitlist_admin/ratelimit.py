"""Registration attempt throttling.

Invite registration is the one unauthenticated write; this caps how many
attempts a client IP gets per window. State is per process, so every replica
keeps its own counts.
"""

from __future__ import annotations

import math
import time
from collections import deque
from typing import Callable


class AttemptLimiter:
    def __init__(
        self,
        *,
        window_s: int = 60,
        max_attempts: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_s = max(1, int(window_s))
        self.max_attempts = max(1, int(max_attempts))
        self._clock = clock
        self._attempts: dict[str, deque[float]] = {}

    def _prune(self, client: str, now: float) -> deque[float]:
        attempts = self._attempts.setdefault(client, deque())
        while attempts and now - attempts[0] >= self.window_s:
            attempts.popleft()
        return attempts

    def retry_after(self, client: str) -> int:
        """Record an attempt for ``client``.

        Returns 0 when the attempt is allowed, otherwise the whole seconds until
        the oldest counted attempt leaves the window (nothing is recorded then).
        """
        now = self._clock()
        attempts = self._prune(client, now)
        if len(attempts) >= self.max_attempts:
            return max(1, math.ceil(self.window_s - (now - attempts[0])))
        attempts.append(now)
        return 0

