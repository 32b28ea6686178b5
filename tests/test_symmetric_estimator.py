# tests/test_symmetric_estimator.py
import pytest

from algorithms.symmetric import SymmetricDelayEstimator, estimate
from sync.samples import ClockOffset, Quality, Rejected, RejectReason, RemoteTimeSample

T = 1_700_000_000_000.0

# (rtt in ms, expected quality)
QUALITY_CASES = [
    (0, Quality.EXCELLENT),
    (49, Quality.EXCELLENT),
    (50, Quality.GOOD),
    (149, Quality.GOOD),
    (150, Quality.FAIR),
    (399, Quality.FAIR),
    (400, Quality.POOR),
    (2500, Quality.POOR),
]


def test_offset_from_single_exchange():
    """
    Sent at T, received at T+100, remote claims T+60:
    the remote read T+110 on receipt, so the offset is +10 ms.
    """
    result = estimate(RemoteTimeSample(T, T + 100, T + 60))

    assert isinstance(result, ClockOffset)
    assert result.value_ms == 10
    assert result.round_trip_ms == 100
    assert result.network_delay_ms == 50
    assert result.quality is Quality.GOOD
    assert result.estimated_at == T + 100


def test_negative_offset_when_remote_is_behind():
    result = estimate(RemoteTimeSample(T, T + 20, T - 990))
    assert result.value_ms == pytest.approx(-1000.0)
    assert result.quality is Quality.EXCELLENT


@pytest.mark.parametrize("rtt,expected", QUALITY_CASES)
def test_quality_buckets(rtt, expected):
    result = estimate(RemoteTimeSample(T, T + rtt, T))
    assert result.quality is expected


def test_poor_quality_is_still_usable():
    result = estimate(RemoteTimeSample(T, T + 800, T + 400))
    assert isinstance(result, ClockOffset)
    assert result.quality.should_retry
    assert result.value_ms == 0


def test_missing_remote_time_is_rejected():
    sample = RemoteTimeSample(T, T + 30, None)
    result = estimate(sample)

    assert isinstance(result, Rejected)
    assert result.reason is RejectReason.NO_TIME_INFO
    assert result.sample is sample
    assert not result


def test_round_trip_above_ceiling_is_rejected():
    est = SymmetricDelayEstimator(max_rtt_ms=500)
    assert isinstance(est.estimate(RemoteTimeSample(T, T + 500, T)), ClockOffset)

    result = est.estimate(RemoteTimeSample(T, T + 501, T))
    assert isinstance(result, Rejected)
    assert result.reason is RejectReason.ROUND_TRIP_TOO_LONG


def test_custom_quality_thresholds():
    est = SymmetricDelayEstimator(quality_thresholds=(5, 10, 20))
    assert est.estimate(RemoteTimeSample(T, T + 12, T)).quality is Quality.FAIR


def test_sample_received_before_sent_is_invalid():
    with pytest.raises(ValueError):
        RemoteTimeSample(T, T - 1, T)
