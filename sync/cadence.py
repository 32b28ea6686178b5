"""sync/cadence.py

Timer cadences for the three periodic loops of a client.

Everything a caller needs is the immutable :class:`CadenceConfig` value
object plus :class:`PeriodicTimer`.  Keeping the intervals in one place
means changing the resync or display rate requires _zero_ edits elsewhere
in the code base.

The cadence contract
~~~~~~~~~~~~~~~~~~~~
* **resync** – the only loop allowed to touch the network (default 1 s);
* **display** – reads ``projected_now()`` only, typically ~30 Hz;
* **tick** – drives the alarm countdown (default 1 s; whole‑second
  granularity makes anything faster pointless).

Usage example  ──────────────────────────────────────────────────────────
>>> cfg = CadenceConfig(resync_sec=1.0, display_sec=1 / 30, tick_sec=1.0)
>>> t = PeriodicTimer(cfg.resync_sec, loop.resync_once, name="resync")
>>> t.start()
>>> ...
>>> t.stop()            # no callback fires after this returns
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

__all__ = [
    "CadenceConfig",
    "PeriodicTimer",
    "now_ms",
]

log = logging.getLogger(__name__)


def now_ms() -> float:
    """Local wall clock as epoch milliseconds."""
    return time.time() * 1000.0


@dataclass(frozen=True, slots=True)
class CadenceConfig:
    """Immutable intervals (seconds) for the resync, display and tick loops."""

    resync_sec: float = 1.0
    display_sec: float = 1.0 / 30
    tick_sec: float = 1.0

    def __post_init__(self) -> None:
        for field_name in ("resync_sec", "display_sec", "tick_sec"):
            if getattr(self, field_name) <= 0:
                raise ValueError(f"{field_name} must be > 0")

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------

    @property
    def resync_ms(self) -> int:
        """Resync interval in *milliseconds* as an ``int`` (handy for logs)."""
        return int(self.resync_sec * 1000)

    @property
    def display_hz(self) -> float:
        return 1.0 / self.display_sec


class PeriodicTimer(threading.Thread):
    """Call *callback* every *interval_sec* seconds on a daemon thread.

    Deadlines are anchored to the start instant (``start + k·interval``) so
    a slow callback does not push every later firing back.  Slots missed
    entirely (suspended process, long callback) are skipped rather than
    replayed in a burst.

    :py:meth:`stop` is idempotent and, when called from another thread,
    waits for an in‑flight callback so that nothing fires after it returns.
    """

    def __init__(
        self,
        interval_sec: float,
        callback: Callable[[], object],
        *,
        name: Optional[str] = None,
        fire_immediately: bool = True,
    ) -> None:
        super().__init__(daemon=True, name=name)
        if interval_sec <= 0:
            raise ValueError("interval_sec must be > 0")
        self.interval_sec = float(interval_sec)
        self._callback = callback
        self._first_slot = 0 if fire_immediately else 1
        self._halt_evt = threading.Event()
        self.fired = 0

    @property
    def stopped(self) -> bool:
        return self._halt_evt.is_set()

    def run(self) -> None:  # noqa: D401
        start = time.monotonic()
        k = self._first_slot
        while not self._halt_evt.is_set():
            delay = start + k * self.interval_sec - time.monotonic()
            if delay > 0 and self._halt_evt.wait(delay):
                break
            if self._halt_evt.is_set():
                break
            try:
                self._callback()
            except Exception:
                log.exception("periodic callback %r failed", self.name)
            self.fired += 1
            # next slot strictly in the future
            elapsed = time.monotonic() - start
            k = max(k + 1, int(elapsed // self.interval_sec) + 1)

    def stop(self, timeout: Optional[float] = None) -> None:  # noqa: D401
        """Halt the timer.  By default waits for an in-flight callback to return."""
        self._halt_evt.set()
        if self.is_alive() and threading.current_thread() is not self:
            self.join(timeout=timeout)
