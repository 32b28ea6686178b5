"""core/estimator.py

Abstract interface and registry for clock‑offset estimators.

The **only** contract with the rest of the system is one call to
:py:meth:`OffsetEstimator.estimate` per fetched sample.  It must be a pure
function of the sample (no IO, no hidden state) and return either a fresh
:class:`~sync.samples.ClockOffset` or a :class:`~sync.samples.Rejected`
marker.  What the projector does with the result is not the estimator's
business.

The small **registry** at the end makes config lookup easy::

    # core/client.py
    EstimatorCls = get_estimator(cfg.estimator)
    estimator = EstimatorCls(**cfg.estimator_params)

Estimators register themselves via the :pyfunc:`@register_estimator`
decorator.
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from typing import Dict, List, Sequence, Type, Union

from sync.samples import (
    DEFAULT_QUALITY_THRESHOLDS,
    ClockOffset,
    Quality,
    Rejected,
    RemoteTimeSample,
    classify_quality,
)

__all__ = [
    "OffsetEstimator",
    "EstimateResult",
    "DEFAULT_MAX_RTT_MS",
    "register_estimator",
    "get_estimator",
    "list_estimators",
]

#: Samples slower than this are considered unreliable.
DEFAULT_MAX_RTT_MS = 3000.0

EstimateResult = Union[ClockOffset, Rejected]

# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------


class OffsetEstimator(ABC):
    """Abstract base for all offset estimators.

    Parameters
    ----------
    max_rtt_ms
        Sanity ceiling on the round trip.  Slower samples are rejected.
    quality_thresholds
        Exclusive upper bounds (ms) for *excellent*, *good* and *fair*.
    """

    def __init__(
        self,
        *,
        max_rtt_ms: float = DEFAULT_MAX_RTT_MS,
        quality_thresholds: Sequence[float] = DEFAULT_QUALITY_THRESHOLDS,
    ) -> None:
        if max_rtt_ms <= 0:
            raise ValueError("max_rtt_ms must be > 0")
        thresholds = tuple(float(t) for t in quality_thresholds)
        if len(thresholds) != 3 or list(thresholds) != sorted(thresholds):
            raise ValueError("quality_thresholds must be three ascending values")
        self.max_rtt_ms = float(max_rtt_ms)
        self.quality_thresholds = thresholds

    # Public ----------------------------------------------------------------

    @abstractmethod
    def estimate(self, sample: RemoteTimeSample) -> EstimateResult:  # noqa: D401
        """Turn one sample into an offset, or reject it."""

    # Helpers for subclasses ------------------------------------------------

    def classify(self, round_trip_ms: float) -> Quality:
        return classify_quality(round_trip_ms, self.quality_thresholds)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------

_estimators: Dict[str, Type[OffsetEstimator]] = {}


def register_estimator(name: str):  # noqa: D401 – decorator factory
    """Decorator to register *cls* under ``name``.

    Example
    -------
    >>> @register_estimator("dummy")
    ... class Dummy(OffsetEstimator):
    ...     ...  # doctest: +SKIP
    """

    def decorator(cls: Type[OffsetEstimator]):
        if not inspect.isclass(cls) or not issubclass(cls, OffsetEstimator):
            raise TypeError("@register_estimator expects an OffsetEstimator subclass")
        if name in _estimators:
            raise KeyError(f"Estimator name '{name}' already registered")
        _estimators[name] = cls
        cls.__estimator_name__ = name  # type: ignore[attr-defined]
        return cls

    return decorator


def get_estimator(name: str) -> Type[OffsetEstimator]:
    """Look up an estimator class by ``name``.

    Raises ``KeyError`` if the name is unknown.
    """

    return _estimators[name]


def list_estimators() -> List[str]:
    """Return all registered estimator names (sorted)."""

    return sorted(_estimators.keys())
