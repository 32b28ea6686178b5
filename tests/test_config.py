# tests/test_config.py
"""
Config loader tests: defaults, YAML parsing and validation.
"""
from datetime import timedelta
from pathlib import Path

import pytest
import yaml

from config import ClockConfig, from_mapping, load_yaml


def test_defaults():
    cfg = from_mapping({})
    assert cfg == ClockConfig()
    assert cfg.endpoint == "tcp://127.0.0.1:5600"
    assert cfg.cadence.resync_sec == 1.0
    assert cfg.tz.utcoffset(None) == timedelta(hours=9)
    assert cfg.estimator == "symmetric"


def test_yaml_round_trip(tmp_path):
    """
    Write a config to YAML, reload it and compare fields.
    """
    data = {
        "endpoint": "tcp://10.0.0.5:7000",
        "timezone_hours": 0,
        "request_timeout_ms": 250,
        "stale_after_failures": 3,
        "retry_on_poor": True,
        "cadence": {"resync_sec": 2, "display_sec": 0.05, "tick_sec": 0.5},
        "estimator_params": {"max_rtt_ms": 800, "quality_thresholds": [10, 20, 40]},
    }
    path = tmp_path / "clock.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")

    cfg = load_yaml(path)
    assert cfg.endpoint == "tcp://10.0.0.5:7000"
    assert cfg.tz.utcoffset(None) == timedelta(0)
    assert cfg.request_timeout_ms == 250
    assert cfg.stale_after_failures == 3
    assert cfg.retry_on_poor is True
    assert cfg.cadence.resync_sec == 2.0
    assert cfg.cadence.tick_sec == 0.5
    assert cfg.estimator_params == {"max_rtt_ms": 800, "quality_thresholds": (10.0, 20.0, 40.0)}


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_yaml(path) == ClockConfig()


@pytest.mark.parametrize("data", [
    ["not", "a", "mapping"],
    {"endpointt": "tcp://x:1"},
    {"endpoint": "localhost:5600"},
    {"cadence": {"resync_sec": 0}},
    {"cadence": {"refresh": 1}},
    {"cadence": [1, 2, 3]},
    {"estimator_params": {"quality_thresholds": [1, 2]}},
    {"estimator_params": {"ceiling": 5}},
    {"estimator_params": 5},
    {"estimator_params": "max_rtt_ms"},
    {"retry_on_poor": "false"},
    {"retry_on_poor": 1},
    {"request_timeout_ms": 0},
    {"stale_after_failures": 0},
    {"timezone_hours": 30},
])
def test_invalid_config(data):
    with pytest.raises(ValueError):
        from_mapping(data)


def test_retry_on_poor_accepts_yaml_booleans(tmp_path):
    path = tmp_path / "clock.yaml"
    path.write_text("retry_on_poor: false\n", encoding="utf-8")
    assert load_yaml(path).retry_on_poor is False
    path.write_text("retry_on_poor: yes\n", encoding="utf-8")
    assert load_yaml(path).retry_on_poor is True


def test_shipped_example_config():
    root = Path(__file__).resolve().parent.parent
    cfg = load_yaml(root / "clock.yaml")
    assert cfg.endpoint == ClockConfig().endpoint
    assert cfg.cadence.display_sec == pytest.approx(0.033)
    assert cfg.estimator_params["quality_thresholds"] == (50.0, 150.0, 400.0)
