"""algorithms/symmetric.py

Single‑sample offset estimator assuming a **symmetric** network path
-------------------------------------------------------------------

For one request/response exchange the estimator:

1. Rejects the sample if the authority sent no time, or if the round trip
   exceeds the sanity ceiling ``max_rtt_ms``
2. Assumes the reply spent exactly half the round trip in flight, so the
   remote clock read ``remote_claimed_at + rtt / 2`` at the moment the
   reply landed
3. Reports ``offset = (remote_claimed_at + rtt / 2) − local_received_at``

Asymmetric routes bias the result by half the asymmetry.  That is a known
limit of the single‑exchange method and is deliberately left uncorrected.

Parameters (supplied in the YAML config)::

    estimator: symmetric
    estimator_params:
      max_rtt_ms: 3000
      quality_thresholds: [50, 150, 400]
"""

from __future__ import annotations

from core.estimator import EstimateResult, OffsetEstimator, register_estimator
from sync.samples import ClockOffset, Rejected, RejectReason, RemoteTimeSample

__all__ = ["SymmetricDelayEstimator", "estimate"]


@register_estimator("symmetric")  # registers class under key 'symmetric'
class SymmetricDelayEstimator(OffsetEstimator):
    """Half‑RTT correction of a single remote timestamp."""

    def estimate(self, sample: RemoteTimeSample) -> EstimateResult:  # noqa: D401 – override
        if sample.remote_claimed_at is None:
            return Rejected(RejectReason.NO_TIME_INFO, sample)

        rtt = sample.round_trip_ms
        if rtt > self.max_rtt_ms:
            return Rejected(RejectReason.ROUND_TRIP_TOO_LONG, sample)

        network_delay = rtt / 2
        remote_at_receipt = sample.remote_claimed_at + network_delay
        return ClockOffset(
            value_ms=remote_at_receipt - sample.local_received_at,
            round_trip_ms=rtt,
            estimated_at=sample.local_received_at,
            quality=self.classify(rtt),
        )


_default = SymmetricDelayEstimator()


def estimate(sample: RemoteTimeSample) -> EstimateResult:
    """Estimate with the default ceiling and quality thresholds."""
    return _default.estimate(sample)
