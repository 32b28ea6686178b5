"""sync/samples.py

Value objects exchanged between the transport, the offset estimator and
the projector.

All instants are **epoch milliseconds**.  ``local_*`` fields are read from
the local wall clock, ``remote_*`` fields come from the time authority.

Lifecycle
~~~~~~~~~
* one :class:`RemoteTimeSample` per request, consumed immediately;
* one :class:`ClockOffset` per accepted sample, never mutated – the next
  accepted sample supersedes it;
* :class:`Rejected` marks a sample the estimator refused (not an error).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

__all__ = [
    "RemoteTimeSample",
    "Quality",
    "ClockOffset",
    "RejectReason",
    "Rejected",
    "TimeComparison",
    "DEFAULT_QUALITY_THRESHOLDS",
    "classify_quality",
]

#: Upper bounds (exclusive, ms) for *excellent*, *good* and *fair*.
DEFAULT_QUALITY_THRESHOLDS: Tuple[float, float, float] = (50.0, 150.0, 400.0)


@dataclass(frozen=True, slots=True)
class RemoteTimeSample:
    """One observation of the remote clock plus what it cost to obtain."""

    local_sent_at: float
    local_received_at: float
    remote_claimed_at: Optional[float] = None

    def __post_init__(self) -> None:
        if self.local_received_at < self.local_sent_at:
            raise ValueError(
                f"sample received ({self.local_received_at}) before it was "
                f"sent ({self.local_sent_at})"
            )

    @property
    def round_trip_ms(self) -> float:
        return self.local_received_at - self.local_sent_at

    @property
    def has_time_info(self) -> bool:
        return self.remote_claimed_at is not None


class Quality(str, enum.Enum):
    """Link quality bucket derived from the round‑trip time."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"

    @property
    def should_retry(self) -> bool:
        """Poor offsets are usable, but worth replacing as soon as possible."""
        return self is Quality.POOR


def classify_quality(
    round_trip_ms: float,
    thresholds: Sequence[float] = DEFAULT_QUALITY_THRESHOLDS,
) -> Quality:
    """Map a round‑trip time onto a :class:`Quality` bucket."""
    excellent, good, fair = thresholds
    if round_trip_ms < excellent:
        return Quality.EXCELLENT
    if round_trip_ms < good:
        return Quality.GOOD
    if round_trip_ms < fair:
        return Quality.FAIR
    return Quality.POOR


@dataclass(frozen=True, slots=True)
class ClockOffset:
    """Best estimate of *remote − local*, in milliseconds."""

    value_ms: float
    round_trip_ms: float
    estimated_at: float
    quality: Quality

    @property
    def network_delay_ms(self) -> float:
        """Assumed one‑way delay (half the round trip)."""
        return self.round_trip_ms / 2

    def project(self, local_ms: float) -> float:
        """Translate a local instant into the remote clock's frame."""
        return local_ms + self.value_ms


class RejectReason(str, enum.Enum):
    NO_TIME_INFO = "no_time_info"
    ROUND_TRIP_TOO_LONG = "round_trip_too_long"


@dataclass(frozen=True, slots=True)
class Rejected:
    """A sample the estimator refused.  The caller simply retries later."""

    reason: RejectReason
    sample: RemoteTimeSample

    def __bool__(self) -> bool:  # lets callers write ``if result: ...``
        return False


# ---------------------------------------------------------------------------
# Two-server comparison payload
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TimeComparison:
    """How far a *target* clock is from a *reference* clock.

    ``time_difference_ms`` is *target − reference*; ``direction`` is
    ``"ahead"`` when the target runs ahead of the reference and
    ``"behind"`` otherwise.
    """

    time_difference_ms: float
    direction: str
    rtt_ms: float
    network_delay_ms: float
    reliability: Quality

    @classmethod
    def from_offset(cls, offset: ClockOffset) -> "TimeComparison":
        diff = offset.value_ms
        return cls(
            time_difference_ms=diff,
            direction="ahead" if diff > 0 else "behind",
            rtt_ms=offset.round_trip_ms,
            network_delay_ms=offset.network_delay_ms,
            reliability=offset.quality,
        )

    def to_payload(self) -> dict:
        return {
            "timeDifferenceMillis": self.time_difference_ms,
            "direction": self.direction,
            "rttMillis": self.rtt_ms,
            "networkDelayMillis": self.network_delay_ms,
            "reliability": self.reliability.value,
        }

    @classmethod
    def from_payload(cls, data: dict) -> "TimeComparison":
        try:
            direction = str(data["direction"])
            if direction not in ("ahead", "behind"):
                raise ValueError(f"unknown direction {direction!r}")
            return cls(
                time_difference_ms=float(data["timeDifferenceMillis"]),
                direction=direction,
                rtt_ms=float(data["rttMillis"]),
                network_delay_ms=float(data["networkDelayMillis"]),
                reliability=Quality(data.get("reliability", Quality.POOR.value)),
            )
        except KeyError as exc:
            raise ValueError(f"comparison payload missing field {exc}") from exc
        except TypeError as exc:
            raise ValueError(f"malformed comparison payload: {exc}") from exc
