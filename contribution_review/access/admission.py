"""
Per-principal admission control.

AdmissionControl is the interface call sites depend on; InMemoryAdmissionControl
keeps a timestamp deque per principal in process memory. A multi-instance
deployment swaps in an implementation backed by a shared counter store without
touching the API layer. Window state is lost on restart.
"""

from __future__ import annotations

import math
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Callable

from contribution_review.core.exceptions import RateLimitedError
from contribution_review.review_logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_REQUESTS = 100
DEFAULT_WINDOW_MS = 15 * 60 * 1000


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    retry_after_sec: int = 0


class AdmissionControl(ABC):
    """Decides whether a principal may make one more request now."""

    @abstractmethod
    def admit(self, principal_id: str) -> AdmissionDecision:
        ...

    def enforce(self, principal_id: str) -> None:
        """admit() or raise RateLimitedError carrying the retry-after duration."""
        decision = self.admit(principal_id)
        if not decision.allowed:
            raise RateLimitedError(
                "too many requests, please try again later",
                retry_after_sec=decision.retry_after_sec,
            )


class InMemoryAdmissionControl(AdmissionControl):
    """
    Window limiter per principal: at most max_requests admitted requests in any
    window_ms span. Timestamps older than now - window_ms are discarded on each call.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_ms: int = DEFAULT_WINDOW_MS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self._max = max_requests
        self._window_sec = window_ms / 1000.0
        self._retry_after_sec = math.ceil(window_ms / 1000)
        self._clock = clock
        self._key_to_times: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    @property
    def max_requests(self) -> int:
        return self._max

    def admit(self, principal_id: str) -> AdmissionDecision:
        now = self._clock()
        cutoff = now - self._window_sec
        with self._lock:
            times = self._key_to_times.setdefault(principal_id, deque())
            while times and times[0] < cutoff:
                times.popleft()
            if len(times) >= self._max:
                logger.warning(
                    "admission_denied",
                    principal_id=principal_id,
                    in_window=len(times),
                    retry_after_sec=self._retry_after_sec,
                )
                return AdmissionDecision(allowed=False, retry_after_sec=self._retry_after_sec)
            times.append(now)
            return AdmissionDecision(allowed=True)

    def reset(self, principal_id: str | None = None) -> None:
        """Forget window state for one principal, or for everyone."""
        with self._lock:
            if principal_id is None:
                self._key_to_times.clear()
            else:
                self._key_to_times.pop(principal_id, None)
