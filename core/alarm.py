"""core/alarm.py

Countdown to a time of day, with one‑shot pre‑alerts.

The heart of this module is the pure transition :func:`tick`.  It never
decrements a counter: every call recomputes the remaining whole seconds
from two absolute instants (target and *now*).  Late, skipped or bursty
ticks therefore cannot make the countdown drift.  Each pre‑alert lead is
delivered at most once because the set of fired leads travels with the
state.

:class:`AlarmScheduler` wraps the pure functions for callers that want a
stateful owner with a periodic driver and an event callback.

Time‑of‑day targets are resolved against the calendar day of *now* in a
single fixed reference zone (:data:`KST`, UTC+9, by default).  A target
that already passed today is rejected rather than rolled over to tomorrow.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, FrozenSet, Iterable, List, Optional, Tuple, Union

from core.errors import ValidationError
from sync.cadence import PeriodicTimer, now_ms

__all__ = [
    "KST",
    "TargetTime",
    "AlarmOptions",
    "AlarmSpec",
    "Phase",
    "PreAlert",
    "Completed",
    "AlarmEvent",
    "CountdownState",
    "parse_target",
    "target_in",
    "resolve_target",
    "remaining_seconds",
    "schedule",
    "tick",
    "AlarmScheduler",
]

log = logging.getLogger(__name__)

KST = timezone(timedelta(hours=9), "KST")

# ---------------------------------------------------------------------------
# Alarm specification
# ---------------------------------------------------------------------------


def _check_component(name: str, value: object, upper: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if not 0 <= value <= upper:
        raise ValidationError(f"{name} must be within 0..{upper}, got {value}")


@dataclass(frozen=True, slots=True)
class TargetTime:
    """Hour, minute and second on the current calendar day."""

    hour: int
    minute: int
    second: int

    def __post_init__(self) -> None:
        _check_component("hour", self.hour, 23)
        _check_component("minute", self.minute, 59)
        _check_component("second", self.second, 59)

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}:{self.second:02d}"


def parse_target(text: str) -> TargetTime:
    """Parse ``"HH:MM:SS"`` (``"HH:MM"`` means second 0)."""
    parts = text.strip().split(":")
    if len(parts) == 2:
        parts.append("0")
    if len(parts) != 3 or not all(p.strip().isdigit() for p in parts):
        raise ValidationError(f"expected HH:MM:SS, got {text!r}")
    hour, minute, second = (int(p) for p in parts)
    return TargetTime(hour, minute, second)


def target_in(seconds: float, now: float, tz: tzinfo = KST) -> TargetTime:
    """Time of day *seconds* after *now* (epoch ms), truncated to the second."""
    moment = datetime.fromtimestamp((now + seconds * 1000.0) / 1000.0, tz)
    return TargetTime(moment.hour, moment.minute, moment.second)


@dataclass(frozen=True, slots=True)
class AlarmOptions:
    """Presentation flags, carried through untouched."""

    sound_enabled: bool = False
    highlight_enabled: bool = False


@dataclass(frozen=True, slots=True)
class AlarmSpec:
    """What to count down to, and which remaining‑second marks to announce."""

    target: TargetTime
    pre_alert_leads: FrozenSet[int] = frozenset()
    options: AlarmOptions = field(default_factory=AlarmOptions)

    def __post_init__(self) -> None:
        leads = list(self.pre_alert_leads)
        for lead in leads:
            if isinstance(lead, bool) or not isinstance(lead, int) or lead <= 0:
                raise ValidationError(f"pre-alert leads must be positive integers, got {lead!r}")
        if len(set(leads)) != len(leads):
            raise ValidationError(f"duplicate pre-alert leads: {sorted(leads)}")
        object.__setattr__(self, "pre_alert_leads", frozenset(leads))

    @classmethod
    def build(
        cls,
        target: Union[TargetTime, str],
        leads: Iterable[int] = (),
        *,
        sound: bool = False,
        highlight: bool = False,
    ) -> "AlarmSpec":
        if isinstance(target, str):
            target = parse_target(target)
        return cls(target, list(leads), AlarmOptions(sound, highlight))  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Countdown state and events
# ---------------------------------------------------------------------------


class Phase(str, enum.Enum):
    PENDING = "pending"
    COUNTING = "counting"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class PreAlert:
    lead_seconds: int
    remaining_seconds: int


@dataclass(frozen=True, slots=True)
class Completed:
    remaining_seconds: int = 0


AlarmEvent = Union[PreAlert, Completed]


@dataclass(frozen=True, slots=True)
class CountdownState:
    spec: AlarmSpec
    target_ms: float
    remaining_seconds: int
    fired_pre_alerts: FrozenSet[int] = frozenset()
    phase: Phase = Phase.PENDING

    @property
    def is_completed(self) -> bool:
        return self.phase is Phase.COMPLETED


# ---------------------------------------------------------------------------
# Pure transitions
# ---------------------------------------------------------------------------


def resolve_target(target: TargetTime, now: float, tz: tzinfo = KST) -> float:
    """Epoch ms of *target* on the calendar day of *now* (epoch ms) in *tz*."""
    today = datetime.fromtimestamp(now / 1000.0, tz)
    moment = today.replace(
        hour=target.hour, minute=target.minute, second=target.second, microsecond=0
    )
    return float(round(moment.timestamp() * 1000))


def remaining_seconds(target_ms: float, now: float) -> int:
    """Whole seconds left, floored and clamped at zero."""
    return max(0, int((target_ms - now) // 1000))


def schedule(spec: AlarmSpec, now: float, tz: tzinfo = KST) -> CountdownState:
    """Accept *spec* at instant *now*, or raise :class:`ValidationError`."""
    target_ms = resolve_target(spec.target, now, tz)
    if target_ms < now:
        raise ValidationError(f"target {spec.target} has already passed")
    return CountdownState(
        spec=spec,
        target_ms=target_ms,
        remaining_seconds=remaining_seconds(target_ms, now),
    )


def tick(state: CountdownState, now: float) -> Tuple[CountdownState, Tuple[AlarmEvent, ...]]:
    """Advance *state* to instant *now*; return the new state and its events."""
    if state.is_completed:
        return state, ()

    remaining = remaining_seconds(state.target_ms, now)
    events: List[AlarmEvent] = []
    fired = set(state.fired_pre_alerts)
    for lead in sorted(state.spec.pre_alert_leads - state.fired_pre_alerts, reverse=True):
        if remaining <= lead:
            events.append(PreAlert(lead, remaining))
            fired.add(lead)

    phase = Phase.COUNTING
    if remaining == 0:
        events.append(Completed())
        phase = Phase.COMPLETED

    new_state = replace(
        state,
        remaining_seconds=remaining,
        fired_pre_alerts=frozenset(fired),
        phase=phase,
    )
    return new_state, tuple(events)


# ---------------------------------------------------------------------------
# Stateful owner
# ---------------------------------------------------------------------------


class AlarmScheduler:
    """Owns at most one countdown and, optionally, the timer that ticks it.

    Scheduling a new spec replaces (and thereby cancels) the current one.
    Events go to *on_event* after the state has been updated.  The timer
    keeps running after completion (ticking a completed state is a no-op),
    so a later :py:meth:`schedule` is picked up without a restart.
    """

    def __init__(
        self,
        now: Callable[[], float] = now_ms,
        *,
        tz: tzinfo = KST,
        on_event: Optional[Callable[[AlarmEvent, CountdownState], None]] = None,
    ) -> None:
        self._now = now
        self.tz = tz
        self._on_event = on_event
        self._lock = threading.Lock()
        self._state: Optional[CountdownState] = None
        self._timer: Optional[PeriodicTimer] = None

    @property
    def state(self) -> Optional[CountdownState]:
        return self._state

    def schedule(self, spec: AlarmSpec) -> CountdownState:
        state = schedule(spec, self._now(), self.tz)
        with self._lock:
            replaced, self._state = self._state, state
        if replaced is not None and not replaced.is_completed:
            log.info("alarm %s replaced by %s", replaced.spec.target, spec.target)
        log.info(
            "alarm set for %s (%d s, leads %s)",
            spec.target, state.remaining_seconds, sorted(spec.pre_alert_leads, reverse=True),
        )
        return state

    def cancel(self) -> None:
        with self._lock:
            self._state = None

    def tick(self) -> Tuple[AlarmEvent, ...]:
        with self._lock:
            if self._state is None:
                return ()
            self._state, events = tick(self._state, self._now())
            state = self._state

        for event in events:
            if isinstance(event, PreAlert):
                log.info("pre-alert: %d s left", event.lead_seconds)
            else:
                log.info("alarm %s reached", state.spec.target)
            if self._on_event is not None:
                self._on_event(event, state)
        return events

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------

    def start(self, interval_sec: float = 1.0) -> None:
        if self._timer is not None and not self._timer.stopped:
            raise RuntimeError("alarm ticker already running")
        self._timer = PeriodicTimer(interval_sec, self.tick, name="alarm-tick")
        self._timer.start()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._timer = None
