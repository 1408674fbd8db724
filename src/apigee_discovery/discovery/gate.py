"""
Readiness gates: one-shot latches recording a job's first successful run.

A gate flips from pending to done exactly once and never resets. Dependent
jobs poll ``is_done()`` on every scheduler tick; listeners registered with
``on_done`` fire once, at the flip.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from apigee_discovery.utils.logging import get_logger

logger = get_logger("apigee_discovery.discovery.gate")


class ReadinessGate:
    """
    Monotonic latch named after the job that owns it.

    Example:
        proxies_ready = ReadinessGate("proxies")
        proxies_ready.mark_done()   # first call flips the gate
        proxies_ready.mark_done()   # no-op
        assert proxies_ready.is_done()
    """

    def __init__(self, name: str, clock: Callable[[], float] = time.time):
        self.name = name
        self._clock = clock
        self._done = False
        self._done_at: float | None = None
        self._listeners: list[Callable[[ReadinessGate], None]] = []

    def is_done(self) -> bool:
        return self._done

    @property
    def done_at(self) -> float | None:
        """Clock value at which the gate flipped, set once."""
        return self._done_at

    def on_done(self, listener: Callable[[ReadinessGate], None]) -> None:
        """Register a listener; called immediately if the gate is already done."""
        if self._done:
            listener(self)
            return
        self._listeners.append(listener)

    def mark_done(self) -> bool:
        """
        Flip the gate. Returns True only for the call that flipped it.

        Listener failures are logged and do not undo the flip.
        """
        if self._done:
            return False
        self._done_at = self._clock()
        self._done = True
        logger.info(f"Readiness gate '{self.name}' is done")

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Readiness gate '{self.name}' listener failed: {e}", exc_info=True)
        return True

    def __repr__(self) -> str:
        return f"ReadinessGate({self.name!r}, done={self._done})"
