"""
In-process client run against a TCP authority on a background thread.
"""
import io
import threading

import pytest

from comm.zmq_transport import TimeAuthority
from core.client import build_estimator, load_config, parse_args, run_client


@pytest.fixture
def authority():
    auth = TimeAuthority("tcp://127.0.0.1:*", skew_ms=-3000.0)
    thread = threading.Thread(target=auth.serve_forever, daemon=True)
    thread.start()
    yield auth
    auth.stop()
    thread.join(timeout=2.0)
    auth.close()


def test_client_counts_down_on_remote_clock(authority):
    opts = parse_args([
        "--endpoint", authority.bound_endpoint,
        "--alarm-in", "2",
        "--lead", "1",
        "--duration", "10",
    ])
    out = io.StringIO()
    assert run_client(opts, out) == 0

    lines = out.getvalue().splitlines()
    rows = [ln.split(",") for ln in lines if not ln.startswith("#")]
    assert rows
    assert all(abs(float(offset) + 3000.0) < 200.0 for _, offset, _, _ in rows)
    assert sum(ln.startswith("# completed") for ln in lines) == 1
    assert sum(ln.startswith("# prealert 1 ") for ln in lines) == 1


def test_client_rejects_past_alarm(authority):
    opts = parse_args(["--endpoint", authority.bound_endpoint, "--alarm", "00:00:00"])
    assert run_client(opts, io.StringIO()) == 2


def test_client_runs_for_duration_without_alarm(authority):
    opts = parse_args(["--endpoint", authority.bound_endpoint, "--duration", "1.5"])
    out = io.StringIO()
    assert run_client(opts, out) == 0
    assert len(out.getvalue().splitlines()) >= 1


def test_config_file_and_endpoint_override(tmp_path):
    path = tmp_path / "clock.yaml"
    path.write_text(
        "endpoint: tcp://10.1.1.1:9000\n"
        "estimator_params:\n"
        "  max_rtt_ms: 900\n",
        encoding="utf-8",
    )
    cfg = load_config(parse_args(["--config", str(path)]))
    assert cfg.endpoint == "tcp://10.1.1.1:9000"
    assert build_estimator(cfg).max_rtt_ms == 900.0

    cfg = load_config(parse_args(["--config", str(path), "--endpoint", "tcp://127.0.0.1:1"]))
    assert cfg.endpoint == "tcp://127.0.0.1:1"
