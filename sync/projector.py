"""sync/projector.py

Continuous projection of the remote clock between resynchronisations.

:class:`TimeProjector` holds exactly one *active* :class:`ClockOffset` and
answers "what does the remote clock read right now?" from the local clock
alone – no network access on the read path.  :class:`ResyncLoop` is the
only component that fetches samples; it feeds accepted offsets into the
projector on its own timer.

Lifecycle
~~~~~~~~~
* init – unsynced, ``projected_now()`` returns ``None``;
* first accepted offset – synced from then on;
* rejected sample or transport failure – previous offset stays in force
  (stale‑but‑valid, no visible reset);
* teardown – stop the loop's timer, then :py:meth:`TimeProjector.close`.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol

from core.errors import TransportFailure
from core.estimator import EstimateResult, OffsetEstimator
from sync.cadence import PeriodicTimer, now_ms
from sync.samples import ClockOffset, Rejected, RemoteTimeSample

__all__ = ["TimeSource", "TimeProjector", "ResyncLoop"]

log = logging.getLogger(__name__)


class TimeSource(Protocol):
    """Anything that can produce one remote time sample per call.

    Implementations raise :class:`core.errors.TransportFailure` when the
    request does not complete.
    """

    def fetch(self) -> RemoteTimeSample: ...


# ---------------------------------------------------------------------------
# Projector
# ---------------------------------------------------------------------------


class TimeProjector:
    """Owner of the active offset.

    Parameters
    ----------
    clock
        Local clock in epoch milliseconds (``sync.cadence.now_ms`` by default).
    """

    def __init__(self, clock: Callable[[], float] = now_ms) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._active: Optional[ClockOffset] = None

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def on_sample_accepted(self, offset: ClockOffset) -> None:
        """Make *offset* the active one (single reference swap)."""
        if not isinstance(offset, ClockOffset):
            raise TypeError(f"expected ClockOffset, got {type(offset).__name__}")
        with self._lock:
            previous, self._active = self._active, offset
        if previous is None:
            log.info("clock synced: offset %+.1f ms (%s)", offset.value_ms, offset.quality.value)
        else:
            log.debug(
                "offset %+.1f ms -> %+.1f ms (rtt %.1f ms, %s)",
                previous.value_ms, offset.value_ms, offset.round_trip_ms, offset.quality.value,
            )

    def submit(self, result: EstimateResult) -> bool:
        """Accept an estimator result; ``Rejected`` leaves the offset untouched."""
        if isinstance(result, Rejected):
            log.debug("sample rejected (%s), keeping previous offset", result.reason.value)
            return False
        self.on_sample_accepted(result)
        return True

    def close(self) -> None:
        """Drop the active offset; the projector is unsynced afterwards."""
        with self._lock:
            self._active = None

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    @property
    def active_offset(self) -> Optional[ClockOffset]:
        return self._active

    @property
    def is_synced(self) -> bool:
        return self._active is not None

    def local_now(self) -> float:
        return self._clock()

    def projected_now(self) -> Optional[float]:
        """Remote clock estimate in epoch ms, or ``None`` while unsynced."""
        offset = self._active  # one read: never a half-applied swap
        if offset is None:
            return None
        return offset.project(self._clock())

    def now(self) -> float:
        """Projected remote time, falling back to the local clock while unsynced."""
        projected = self.projected_now()
        return self._clock() if projected is None else projected

    def offset_age_ms(self) -> Optional[float]:
        offset = self._active
        if offset is None:
            return None
        return self._clock() - offset.estimated_at


# ---------------------------------------------------------------------------
# Resync driver
# ---------------------------------------------------------------------------


class ResyncLoop:
    """Fetch → estimate → accept, once per ``interval_sec``.

    Failures never propagate: a :class:`TransportFailure` or a rejected
    sample only bumps :py:attr:`consecutive_failures`.  Once that counter
    reaches ``stale_after_failures`` the loop reports itself stale (and logs
    one warning) until the next accepted sample.
    """

    def __init__(
        self,
        projector: TimeProjector,
        source: TimeSource,
        estimator: OffsetEstimator,
        *,
        interval_sec: float = 1.0,
        stale_after_failures: int = 5,
        retry_on_poor: bool = False,
        on_offset: Optional[Callable[[ClockOffset], None]] = None,
    ) -> None:
        if stale_after_failures < 1:
            raise ValueError("stale_after_failures must be ≥ 1")
        self.projector = projector
        self.source = source
        self.estimator = estimator
        self.interval_sec = float(interval_sec)
        self.stale_after_failures = int(stale_after_failures)
        self.retry_on_poor = retry_on_poor
        self._on_offset = on_offset
        self._timer: Optional[PeriodicTimer] = None
        self.consecutive_failures = 0
        self.accepted = 0

    @property
    def is_stale(self) -> bool:
        return self.consecutive_failures >= self.stale_after_failures

    # ------------------------------------------------------------------
    # One cycle
    # ------------------------------------------------------------------

    def resync_once(self) -> Optional[EstimateResult]:
        """Run one resync cycle.  Returns ``None`` on transport failure.

        With ``retry_on_poor`` a poor offset triggers one extra attempt.  The
        retry is optional: it replaces the result only when it yields an
        offset, and a failed retry does not count towards staleness.
        """
        result = self._attempt()
        if isinstance(result, ClockOffset) and result.quality.should_retry and self.retry_on_poor:
            log.info("poor link (rtt %.1f ms) – retrying once", result.round_trip_ms)
            retry = self._attempt(count_failure=False)
            if isinstance(retry, ClockOffset):
                result = retry
        return result

    def _attempt(self, count_failure: bool = True) -> Optional[EstimateResult]:
        try:
            sample = self.source.fetch()
        except TransportFailure as exc:
            log.debug("time fetch failed: %s", exc)
            if count_failure:
                self._record_failure()
            return None

        result = self.estimator.estimate(sample)
        if self.projector.submit(result):
            self._record_success()
            if self._on_offset is not None:
                self._on_offset(result)  # type: ignore[arg-type]
        elif count_failure:
            self._record_failure()
        return result

    def _record_failure(self) -> None:
        self.consecutive_failures += 1
        if self.consecutive_failures == self.stale_after_failures:
            log.warning(
                "%d consecutive resync failures – projecting on a stale offset",
                self.consecutive_failures,
            )

    def _record_success(self) -> None:
        if self.is_stale:
            log.info("resync recovered after %d failures", self.consecutive_failures)
        self.consecutive_failures = 0
        self.accepted += 1

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._timer is not None:
            raise RuntimeError("resync loop already running")
        self._timer = PeriodicTimer(self.interval_sec, self.resync_once, name="resync")
        self._timer.start()

    def stop(self) -> None:
        """Stop the timer (idempotent).  No resync runs after this returns."""
        if self._timer is not None:
            self._timer.stop()
            self._timer = None
