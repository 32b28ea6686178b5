"""
Socket-level tests for the ZeroMQ time transport.

We use *inproc://* (shared memory) so no real TCP ports are allocated,
making the tests fast and flaky-free.
"""
import random
import threading

import pytest
import zmq

from comm.zmq_transport import TimeAuthority, ZmqTimeSource, build_endpoint
from core.errors import TransportFailure
from sync.samples import Quality, TimeComparison


@pytest.fixture(scope="module")
def ctx():
    """Re-use one global Context to save resources."""
    yield zmq.Context.instance()


def _endpoint():
    return f"inproc://time-{random.randint(0, 1 << 30)}"


@pytest.fixture
def serve():
    """Start authorities on background threads; stop them afterwards."""
    started = []

    def _serve(authority):
        thread = threading.Thread(target=authority.serve_forever, daemon=True)
        thread.start()
        started.append((authority, thread))
        return authority

    yield _serve
    for authority, thread in started:
        authority.stop()
        thread.join(timeout=2.0)
        authority.close()


def test_build_endpoint():
    assert build_endpoint("127.0.0.1", 5600) == "tcp://127.0.0.1:5600"


def test_fetch_reports_skewed_remote_time(ctx, serve):
    ep = _endpoint()
    serve(TimeAuthority(ep, ctx=ctx, skew_ms=5000.0))

    with ZmqTimeSource(ep, ctx=ctx) as src:
        sample = src.fetch()

    assert sample.has_time_info
    assert sample.local_received_at >= sample.local_sent_at
    # the remote stamp lies within the exchange, shifted by the skew
    assert sample.local_sent_at + 5000 <= sample.remote_claimed_at <= sample.local_received_at + 5000


def test_failed_reply_becomes_sample_without_time(ctx, serve):
    ep = _endpoint()
    authority = serve(TimeAuthority(ep, ctx=ctx, fail_every=2))

    with ZmqTimeSource(ep, ctx=ctx) as src:
        first, second, third = src.fetch(), src.fetch(), src.fetch()

    assert first.has_time_info
    assert not second.has_time_info
    assert third.has_time_info
    assert authority.served == 3


def test_timeout_raises_and_source_recovers(ctx, serve):
    ep = _endpoint()
    src = ZmqTimeSource(ep, ctx=ctx, timeout_ms=50)
    try:
        with pytest.raises(TransportFailure):
            src.fetch()

        # the authority comes up later; the reset socket must work again
        serve(TimeAuthority(ep, ctx=ctx))
        src.timeout_ms = 1000
        assert src.fetch().has_time_info
    finally:
        src.close()


def test_closed_source_refuses_requests(ctx):
    src = ZmqTimeSource(_endpoint(), ctx=ctx)
    src.close()
    src.close()
    with pytest.raises(TransportFailure):
        src.fetch()


def test_compare_two_authorities(ctx, serve):
    ref_ep, target_ep = _endpoint(), _endpoint()
    serve(TimeAuthority(ref_ep, ctx=ctx))
    serve(TimeAuthority(target_ep, ctx=ctx, skew_ms=750.0))

    with ZmqTimeSource(ref_ep, ctx=ctx) as src:
        cmp = src.compare(target_ep)

    assert isinstance(cmp, TimeComparison)
    assert cmp.direction == "ahead"
    assert cmp.time_difference_ms == pytest.approx(750.0, abs=50.0)
    assert cmp.network_delay_ms == pytest.approx(cmp.rtt_ms / 2)
    assert isinstance(cmp.reliability, Quality)


def test_compare_unreachable_target_fails(ctx, serve):
    ref_ep = _endpoint()
    serve(TimeAuthority(ref_ep, ctx=ctx, compare_timeout_ms=50))

    with ZmqTimeSource(ref_ep, ctx=ctx) as src:
        with pytest.raises(TransportFailure):
            src.compare(_endpoint())


@pytest.mark.parametrize("request_, error", [
    (None, "JSON object"),
    ({"op": "reboot"}, "unknown op"),
    ({"op": "compare"}, "targetUrl"),
])
def test_authority_rejects_bad_requests(ctx, request_, error):
    authority = TimeAuthority(_endpoint(), ctx=ctx)
    try:
        reply = authority.handle(request_)
    finally:
        authority.close()
    assert reply["success"] is False
    assert error in reply["error"]


def test_comparison_payload_round_trip():
    payload = {
        "timeDifferenceMillis": -120.0,
        "direction": "behind",
        "rttMillis": 40.0,
        "networkDelayMillis": 20.0,
        "reliability": "excellent",
    }
    assert TimeComparison.from_payload(payload).to_payload() == payload

    with pytest.raises(ValueError):
        TimeComparison.from_payload({"direction": "behind"})
