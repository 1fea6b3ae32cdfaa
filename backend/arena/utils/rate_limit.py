"""In-memory sliding-window limiter guarding the password login endpoint."""

from __future__ import annotations

import threading
import time
from collections import deque


class LoginRateLimiter:
    """Count login attempts per key inside a sliding time window.

    A key is typically `<client ip>:<e-mail>`. Successful logins call
    `reset` so a member who finally types the right password is not
    penalised for earlier typos. Keys whose attempts all fell out of the
    window are dropped, on their next hit or by a sweep that runs every
    `sweep_every` hits, so made-up e-mails do not pile up in memory.
    """

    def __init__(self, max_attempts: int, window_seconds: int, clock=time.monotonic, sweep_every: int = 256):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.sweep_every = sweep_every
        self._clock = clock
        self._attempts: dict[str, deque] = {}
        self._hits_since_sweep = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)

    def hit(self, key: str) -> tuple[bool, int]:
        """Record an attempt; return `(allowed, retry_after_seconds)`."""
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            self._hits_since_sweep += 1
            if self._hits_since_sweep >= self.sweep_every:
                self._sweep(cutoff)
            attempts = self._attempts.get(key)
            if attempts is not None:
                while attempts and attempts[0] <= cutoff:
                    attempts.popleft()
                if not attempts:
                    del self._attempts[key]
                    attempts = None
            if attempts is not None and len(attempts) >= self.max_attempts:
                return False, max(1, int(self.window_seconds - (now - attempts[0])))
            if attempts is None:
                attempts = self._attempts[key] = deque()
            attempts.append(now)
        return True, 0

    def _sweep(self, cutoff: float) -> None:
        # caller holds the lock; deques are time-ordered so the newest entry decides
        stale = [k for k, attempts in self._attempts.items() if not attempts or attempts[-1] <= cutoff]
        for k in stale:
            del self._attempts[k]
        self._hits_since_sweep = 0

    def reset(self, key: str) -> None:
        with self._lock:
            self._attempts.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._attempts.clear()
            self._hits_since_sweep = 0
