"""config.py

Loading and validating client configuration.

The **canonical interchange format** is a small YAML file.  Every key is
optional; omitted keys fall back to the defaults below.  Example::

    endpoint: tcp://127.0.0.1:5600
    timezone_hours: 9            # fixed reference zone (KST)
    request_timeout_ms: 1000
    stale_after_failures: 5
    retry_on_poor: false
    cadence:
      resync_sec: 1.0
      display_sec: 0.033
      tick_sec: 1.0
    estimator: symmetric
    estimator_params:
      max_rtt_ms: 3000
      quality_thresholds: [50, 150, 400]

Unknown keys are rejected so that a typo does not silently fall back to a
default.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from sync.cadence import CadenceConfig

__all__ = [
    "ClockConfig",
    "from_mapping",
    "load_yaml",
]

DEFAULT_ENDPOINT = "tcp://127.0.0.1:5600"

_TOP_KEYS = {
    "endpoint",
    "timezone_hours",
    "request_timeout_ms",
    "stale_after_failures",
    "retry_on_poor",
    "cadence",
    "estimator",
    "estimator_params",
}
_CADENCE_KEYS = {"resync_sec", "display_sec", "tick_sec"}
_ESTIMATOR_KEYS = {"max_rtt_ms", "quality_thresholds"}


@dataclass(slots=True, frozen=True)
class ClockConfig:
    """In‑memory client configuration."""

    endpoint: str = DEFAULT_ENDPOINT
    timezone_hours: float = 9.0
    request_timeout_ms: int = 1000
    stale_after_failures: int = 5
    retry_on_poor: bool = False
    cadence: CadenceConfig = field(default_factory=CadenceConfig)
    estimator: str = "symmetric"
    estimator_params: Dict[str, Any] = field(default_factory=dict)

    # ---------------------------------------------------------
    # Convenience views
    # ---------------------------------------------------------

    @property
    def tz(self) -> timezone:
        """Fixed reference zone for time‑of‑day targets and display."""
        hours = self.timezone_hours
        name = "KST" if hours == 9 else None
        delta = timedelta(hours=hours)
        return timezone(delta, name) if name else timezone(delta)


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------


def _check_keys(section: str, data: Mapping[str, Any], allowed: set) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unknown key(s) in {section}: {sorted(unknown)}")


def from_mapping(data: Mapping[str, Any]) -> ClockConfig:
    """Validate a parsed mapping → :class:`ClockConfig`."""

    if not isinstance(data, Mapping):
        raise ValueError("Top-level YAML must map keys → values")
    _check_keys("config", data, _TOP_KEYS)

    cadence_raw = data.get("cadence") or {}
    if not isinstance(cadence_raw, Mapping):
        raise ValueError("'cadence' must be a mapping")
    _check_keys("cadence", cadence_raw, _CADENCE_KEYS)
    cadence = CadenceConfig(**{k: float(v) for k, v in cadence_raw.items()})

    params_raw = data.get("estimator_params") or {}
    if not isinstance(params_raw, Mapping):
        raise ValueError("'estimator_params' must be a mapping")
    params = dict(params_raw)
    _check_keys("estimator_params", params, _ESTIMATOR_KEYS)
    if "quality_thresholds" in params:
        thresholds = params["quality_thresholds"]
        if not isinstance(thresholds, (list, tuple)) or len(thresholds) != 3:
            raise ValueError("quality_thresholds must list exactly three values")
        params["quality_thresholds"] = tuple(float(t) for t in thresholds)

    endpoint = str(data.get("endpoint", DEFAULT_ENDPOINT))
    if "://" not in endpoint:
        raise ValueError(f"Malformed endpoint: {endpoint!r}")

    timezone_hours = float(data.get("timezone_hours", 9.0))
    if not -24 < timezone_hours < 24:
        raise ValueError("timezone_hours must be within (-24, 24)")

    timeout = int(data.get("request_timeout_ms", 1000))
    if timeout <= 0:
        raise ValueError("request_timeout_ms must be > 0")

    stale_after = int(data.get("stale_after_failures", 5))
    if stale_after < 1:
        raise ValueError("stale_after_failures must be ≥ 1")

    retry_on_poor = data.get("retry_on_poor", False)
    if not isinstance(retry_on_poor, bool):
        raise ValueError(f"retry_on_poor must be true or false, got {retry_on_poor!r}")

    return ClockConfig(
        endpoint=endpoint,
        timezone_hours=timezone_hours,
        request_timeout_ms=timeout,
        stale_after_failures=stale_after,
        retry_on_poor=retry_on_poor,
        cadence=cadence,
        estimator=str(data.get("estimator", "symmetric")),
        estimator_params=params,
    )


def load_yaml(path: str | Path) -> ClockConfig:
    """Parse a YAML config file → :class:`ClockConfig`."""

    with Path(path).open("rt", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)

    return from_mapping(data or {})
