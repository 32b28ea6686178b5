"""core/display.py

Plain‑text rendering used by the CLI client.

Nothing here feeds back into the clock or alarm state; the milliseconds
toggle is an explicit argument of each call rather than shared state.
"""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Optional

from core.alarm import KST, CountdownState

__all__ = ["format_clock", "format_remaining", "render_frame"]


def format_clock(ms: float, tz: tzinfo = KST, *, show_millis: bool = True) -> str:
    """``HH:MM:SS`` (optionally ``.mmm``) of epoch *ms* in *tz*."""
    moment = datetime.fromtimestamp(ms / 1000.0, tz)
    text = moment.strftime("%H:%M:%S")
    if show_millis:
        text += f".{moment.microsecond // 1000:03d}"
    return text


def format_remaining(seconds: int) -> str:
    hours, rest = divmod(max(0, int(seconds)), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d} : {minutes:02d} : {secs:02d}"


def render_frame(
    projected_ms: Optional[float],
    countdown: Optional[CountdownState] = None,
    *,
    tz: tzinfo = KST,
    show_millis: bool = True,
    stale: bool = False,
) -> str:
    """One status line: projected clock plus the countdown, if any."""
    if projected_ms is None:
        line = "--:--:-- (syncing)"
    else:
        line = format_clock(projected_ms, tz, show_millis=show_millis)
        if stale:
            line += " (stale)"
    if countdown is not None:
        if countdown.is_completed:
            line += f"  | {countdown.spec.target} reached"
        else:
            line += f"  | {format_remaining(countdown.remaining_seconds)} to {countdown.spec.target}"
    return line
