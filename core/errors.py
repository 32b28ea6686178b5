"""core/errors.py

Exception types shared by the clock and alarm layers.

Unusable time samples are **not** exceptions: the estimator returns a
:class:`sync.samples.Rejected` value for them.  Only two conditions raise:

* :class:`ValidationError` – caller input that can never succeed as given
  (a target time in the past, malformed time components).
* :class:`TransportFailure` – the time request itself did not complete.
  The resync loop catches it and keeps the last known‑good offset.
"""

from __future__ import annotations

__all__ = ["ClockError", "ValidationError", "TransportFailure"]


class ClockError(Exception):
    """Base class for every error raised by this project."""


class ValidationError(ClockError, ValueError):
    """Rejected caller input (not retryable without changing the input)."""


class TransportFailure(ClockError):
    """A remote time request timed out or could not be sent."""
