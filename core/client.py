"""core/client.py – projected remote clock with an optional alarm

Runs the three client loops against one time authority:

* **resync** – fetch a sample, estimate the offset, hand it to the projector;
* **display** – (``--display``) redraw the projected clock on stderr;
* **tick** – advance the alarm countdown, if one was set.

Every accepted offset is written to stdout as one CSV row
``local_ms,offset_ms,rtt_ms,quality``; alarm events are ``#`` comment rows,
so the output can be fed straight into ``plot_run.py``.
"""

from __future__ import annotations

import argparse
import dataclasses
import importlib
import logging
import sys
import threading
from typing import List, Optional, TextIO

from comm.zmq_transport import ZmqTimeSource
from config import ClockConfig, load_yaml
from core.alarm import AlarmEvent, AlarmScheduler, AlarmSpec, CountdownState, PreAlert, parse_target, target_in
from core.display import render_frame
from core.errors import ValidationError
from core.estimator import OffsetEstimator, get_estimator
from sync.cadence import PeriodicTimer
from sync.projector import ResyncLoop, TimeProjector
from sync.samples import ClockOffset

log = logging.getLogger("client")

# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: List[str] | None = None) -> argparse.Namespace:  # noqa: D401
    p = argparse.ArgumentParser(description="Remote clock client")
    p.add_argument("--config", help="YAML config file")
    p.add_argument("--endpoint", help="Time authority endpoint (overrides config)")

    g = p.add_mutually_exclusive_group()
    g.add_argument("--alarm", metavar="HH:MM:SS", help="Alarm time of day")
    g.add_argument("--alarm-in", type=float, metavar="SEC", help="Alarm SEC seconds from now")

    p.add_argument("--lead", type=int, action="append", default=[],
                   help="Pre-alert lead in seconds (repeatable)")
    p.add_argument("--sound", action="store_true")
    p.add_argument("--highlight", action="store_true")
    p.add_argument("--duration", type=float, default=0.0,
                   help="Stop after SEC seconds (0 = run until the alarm completes)")
    p.add_argument("--sync-wait", type=float, default=3.0,
                   help="Seconds to wait for the first sync before setting the alarm")
    p.add_argument("--display", action="store_true", help="Render the projected clock on stderr")
    p.add_argument("--no-millis", action="store_true", help="Hide milliseconds in the display")
    p.add_argument("--log-level", default="WARNING")
    return p.parse_args(argv)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def load_config(opts: argparse.Namespace) -> ClockConfig:
    cfg = load_yaml(opts.config) if opts.config else ClockConfig()
    if opts.endpoint:
        cfg = dataclasses.replace(cfg, endpoint=opts.endpoint)
    return cfg


def build_estimator(cfg: ClockConfig) -> OffsetEstimator:
    # dynamic plugin load
    importlib.import_module(f"algorithms.{cfg.estimator}")
    EstimatorCls = get_estimator(cfg.estimator)
    return EstimatorCls(**cfg.estimator_params)


class CsvSink:
    """Serialises rows from the timer threads onto one stream."""

    def __init__(self, out: TextIO) -> None:
        self._out = out
        self._lock = threading.Lock()

    def write(self, line: str) -> None:
        with self._lock:
            self._out.write(line + "\n")
            self._out.flush()

    def offset(self, offset: ClockOffset) -> None:
        self.write(
            f"{offset.estimated_at:.0f},{offset.value_ms:.1f},"
            f"{offset.round_trip_ms:.1f},{offset.quality.value}"
        )

    def event(self, event: AlarmEvent, state: CountdownState) -> None:
        if isinstance(event, PreAlert):
            self.write(f"# prealert {event.lead_seconds} remaining {event.remaining_seconds}")
        else:
            self.write(f"# completed {state.spec.target}")


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def run_client(opts: argparse.Namespace, out: TextIO = sys.stdout) -> int:
    cfg = load_config(opts)
    estimator = build_estimator(cfg)
    sink = CsvSink(out)
    done = threading.Event()

    source = ZmqTimeSource(cfg.endpoint, timeout_ms=cfg.request_timeout_ms)
    projector = TimeProjector()
    loop = ResyncLoop(
        projector,
        source,
        estimator,
        interval_sec=cfg.cadence.resync_sec,
        stale_after_failures=cfg.stale_after_failures,
        retry_on_poor=cfg.retry_on_poor,
        on_offset=sink.offset,
    )

    def on_event(event: AlarmEvent, state: CountdownState) -> None:
        sink.event(event, state)
        if state.is_completed:
            done.set()

    scheduler = AlarmScheduler(projector.now, tz=cfg.tz, on_event=on_event)
    display: Optional[PeriodicTimer] = None

    try:
        loop.start()

        want_alarm = opts.alarm is not None or opts.alarm_in is not None
        if want_alarm:
            # alarm targets are remote-clock times: wait for the first offset
            waited = 0.0
            while not projector.is_synced and waited < opts.sync_wait:
                done.wait(0.05)
                waited += 0.05
            if not projector.is_synced:
                log.warning("no sync after %.1f s – scheduling on the local clock", opts.sync_wait)

            target = (
                parse_target(opts.alarm)
                if opts.alarm is not None
                else target_in(opts.alarm_in, projector.now(), cfg.tz)
            )
            spec = AlarmSpec.build(target, opts.lead, sound=opts.sound, highlight=opts.highlight)
            scheduler.schedule(spec)
            scheduler.start(cfg.cadence.tick_sec)

        if opts.display:
            show_millis = not opts.no_millis

            def redraw() -> None:
                frame = render_frame(
                    projector.projected_now(),
                    scheduler.state,
                    tz=cfg.tz,
                    show_millis=show_millis,
                    stale=loop.is_stale,
                )
                sys.stderr.write("\r" + frame + "   ")
                sys.stderr.flush()

            display = PeriodicTimer(cfg.cadence.display_sec, redraw, name="display")
            display.start()

        timeout = opts.duration if opts.duration > 0 else None
        if want_alarm or timeout is not None:
            done.wait(timeout)
        else:
            while not done.wait(1.0):
                pass
    except ValidationError as exc:
        log.error("alarm rejected: %s", exc)
        return 2
    finally:
        if display is not None:
            display.stop()
            sys.stderr.write("\n")
        scheduler.stop()
        loop.stop()
        projector.close()
        source.close()

    return 0


def main(argv: List[str] | None = None) -> int:
    opts = parse_args(argv)
    logging.basicConfig(
        level=opts.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        return run_client(opts)
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
