"""
In-memory store for pending sign-in attempts (state -> code_verifier).
Used between /signin and /callback. Entries are single-use and expire after a TTL.
"""
import threading
import time
from dataclasses import dataclass
from typing import Callable


@dataclass
class PendingFlow:
    code_verifier: str
    created_at: float


class FlowStore:
    def __init__(self, ttl_seconds: float = 600, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._pending: dict[str, PendingFlow] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._pending)

    def _expired(self, flow: PendingFlow, now: float) -> bool:
        return (now - flow.created_at) > self.ttl_seconds

    def put(self, state: str, code_verifier: str) -> None:
        with self._lock:
            self._clean_expired()
            self._pending[state] = PendingFlow(code_verifier=code_verifier, created_at=self._clock())

    def pop(self, state: str) -> PendingFlow | None:
        """Remove and return the attempt for state; None if unknown, already used or expired."""
        with self._lock:
            flow = self._pending.pop(state, None)
        if flow is None or self._expired(flow, self._clock()):
            return None
        return flow

    def _clean_expired(self) -> None:
        now = self._clock()
        for state in [s for s, f in self._pending.items() if self._expired(f, now)]:
            del self._pending[state]
