#!/usr/bin/env python3
"""
plot_run.py – visualise offset and round-trip trajectories for one run

Usage
-----
basic interactive window
    python plot_run.py /path/to/run_20250429-154210

save figure to PNG (still shows window unless --no-show)
    python plot_run.py run_dir -o sync.png

suppress on-screen window (for CI or headless servers)
    python plot_run.py run_dir -o sync.png --no-show
"""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, NamedTuple

import matplotlib.pyplot as plt


class Trajectory(NamedTuple):
    seconds: List[float]
    offsets: List[float]
    rtts: List[float]
    events: List[str]


def load_csv(path: Path) -> Trajectory:
    traj = Trajectory([], [], [], [])
    t0 = None
    with path.open("rt", encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            if line.startswith("#"):
                traj.events.append(line.lstrip("# "))
                continue
            local_str, offset_str, rtt_str, _quality = line.split(",")
            local_ms = float(local_str)
            if t0 is None:
                t0 = local_ms
            traj.seconds.append((local_ms - t0) / 1000.0)
            traj.offsets.append(float(offset_str))
            traj.rtts.append(float(rtt_str))
    return traj


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser("Plot clock-sync trajectories")
    p.add_argument("run_dir", help="Runner output directory (contains client.csv)")
    p.add_argument("-o", "--out", help="Optional PNG path to save the figure")
    p.add_argument("--no-show", action="store_true", help="Do not pop up a GUI window")
    return p.parse_args()


def main() -> None:
    opts = parse_args()
    run_dir = Path(opts.run_dir)

    csv_path = run_dir / "client.csv"
    if not csv_path.exists():
        raise SystemExit(f"No client.csv found in {run_dir}")

    traj = load_csv(csv_path)
    if not traj.seconds:
        raise SystemExit(f"{csv_path} holds no accepted offsets")

    fig, (ax_off, ax_rtt) = plt.subplots(2, 1, sharex=True)
    ax_off.set_title(f"Clock sync – {run_dir.name}")
    ax_off.set_ylabel("Offset (ms)")
    ax_off.plot(traj.seconds, traj.offsets, marker=".")
    ax_rtt.set_ylabel("RTT (ms)")
    ax_rtt.set_xlabel("Time since first sync (s)")
    ax_rtt.plot(traj.seconds, traj.rtts, marker=".", color="tab:orange")

    for ax in (ax_off, ax_rtt):
        ax.grid(True, linestyle="--", linewidth=0.5, alpha=0.6)

    fig.tight_layout()

    if opts.out:
        plt.savefig(opts.out, dpi=150, bbox_inches="tight")
        print(f"[plot_run] saved → {opts.out}")

    if not opts.no_show:
        plt.show()
    else:
        plt.close(fig)


if __name__ == "__main__":
    main()
