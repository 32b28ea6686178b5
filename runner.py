"""
runner.py – orchestrator for a local clock-sync demo
----------------------------------------------------

✔  assigns a free TCP port
✔  spawns one **authority** process with a simulated skew / latency
✔  spawns one **client** process that syncs to it and counts down an alarm
✔  tees client stdout to <run_dir>/client.csv, stderr streams to *.log
✔  exits cleanly (Ctrl-C OK) and prints log location

Run example
-----------

    python runner.py --skew-ms 1500 --latency-ms 40 \
                     --alarm-in 12 --lead 10 --lead 5
"""

from __future__ import annotations

import argparse
import os
import socket
import subprocess as sp
import sys
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List

from comm.zmq_transport import build_endpoint

# ---------------------------------------------------------------------------#
# CLI                                                                         #
# ---------------------------------------------------------------------------#


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser("Clock-sync demo runner")

    p.add_argument("--config", help="Client YAML config")
    p.add_argument("--skew-ms", type=float, default=1500.0,
                   help="How far the authority's clock runs ahead of ours")
    p.add_argument("--latency-ms", type=float, default=20.0,
                   help="Artificial round-trip delay added by the authority")
    p.add_argument("--fail-every", type=int, default=0,
                   help="Authority answers every N-th request without time info")

    p.add_argument("--alarm-in", type=float, default=5.0, help="Alarm SEC seconds from now")
    p.add_argument("--lead", type=int, action="append", default=[],
                   help="Pre-alert lead in seconds (repeatable)")
    p.add_argument("--duration", type=float, default=0.0,
                   help="Hard stop for the client (0 = until the alarm completes)")

    p.add_argument("--base-port", type=int, default=5600)
    p.add_argument(
        "--out",
        default=datetime.now().strftime("run_%Y%m%d-%H%M%S"),
        help="Output directory",
    )
    return p.parse_args(argv)


# ---------------------------------------------------------------------------#
# Helpers                                                                     #
# ---------------------------------------------------------------------------#


def pick_free_ports(start: int, n: int) -> List[int]:
    """Return *n* consecutive free TCP ports starting at ≥ *start*."""
    ports: List[int] = []
    cand = start
    while len(ports) < n:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                s.bind(("", cand))
                ports.append(cand)
            except OSError:
                pass  # busy
            cand += 1
    return ports


class Tee(threading.Thread):
    """
    Copy *src_fh* (bytes) to *dst_fh*.

    *dst_fh* may be an already-open file **or** a Path – in the latter case
    the file is opened in binary mode and closed automatically on exit.
    """

    def __init__(self, src_fh, dst_fh, mirror_console: bool = False):
        super().__init__(daemon=True)
        self.src = src_fh
        if isinstance(dst_fh, Path):
            self.dst = dst_fh.open("wb")
            self._close_dst = True
        else:
            self.dst = dst_fh
            self._close_dst = False

        self.echo = mirror_console
        self._halt_evt = threading.Event()

    def run(self) -> None:  # noqa: D401
        while not self._halt_evt.is_set():
            line = self.src.readline()
            if not line:
                break  # stream closed
            self.dst.write(line)
            self.dst.flush()
            if self.echo:
                sys.stdout.write(line.decode(errors="replace"))
        if self._close_dst:
            self.dst.close()

    def stop(self) -> None:  # noqa: D401
        self._halt_evt.set()
        self.join(timeout=2.0)


# ---------------------------------------------------------------------------#
# Main                                                                        #
# ---------------------------------------------------------------------------#


def main(opts: argparse.Namespace) -> int:  # noqa: D401
    out_dir = Path(opts.out).resolve()
    out_dir.mkdir(parents=True, exist_ok=False)

    # 1 · Port ------------------------------------------------------------
    (port,) = pick_free_ports(opts.base_port, 1)
    endpoint = build_endpoint("127.0.0.1", port)

    root_dir = Path(__file__).resolve().parent
    env = os.environ.copy()
    env["PYTHONPATH"] = f"{root_dir}{os.pathsep}{env.get('PYTHONPATH', '')}"

    tees: List[Tee] = []
    procs: Dict[str, sp.Popen] = {}

    # 2 · Authority ---------------------------------------------------------
    authority = sp.Popen(
        [
            sys.executable,
            str(root_dir / "core" / "authority.py"),
            "--port", str(port),
            "--skew-ms", str(opts.skew_ms),
            "--latency-ms", str(opts.latency_ms),
            "--fail-every", str(opts.fail_every),
        ],
        stdout=sp.PIPE,
        stderr=sp.STDOUT,
        env=env,
    )
    procs["authority"] = authority
    tees.append(Tee(authority.stdout, out_dir / "authority.log"))

    # 3 · Client ------------------------------------------------------------
    client_cmd = [
        sys.executable,
        str(root_dir / "core" / "client.py"),
        "--endpoint", endpoint,
        "--alarm-in", str(opts.alarm_in),
        "--duration", str(opts.duration),
        "--log-level", "INFO",
    ]
    if opts.config:
        client_cmd += ["--config", str(Path(opts.config).resolve())]
    for lead in opts.lead:
        client_cmd += ["--lead", str(lead)]

    client = sp.Popen(client_cmd, stdout=sp.PIPE, stderr=sp.PIPE, env=env)
    procs["client"] = client
    tees.append(Tee(client.stdout, out_dir / "client.csv"))
    tees.append(Tee(client.stderr, out_dir / "client.log"))

    for tee in tees:
        tee.start()

    print(
        f"[runner] authority on {endpoint} (skew {opts.skew_ms:+.0f} ms) – "
        f"alarm in {opts.alarm_in:.1f}s"
    )

    # 4 · Monitor -----------------------------------------------------------
    rc = 0
    try:
        while client.poll() is None:
            if authority.poll() is not None:
                print(f"[runner] authority exited early (code {authority.returncode})")
                client.terminate()
                rc = 1
                break
            time.sleep(0.2)
        client.wait()
        if client.returncode != 0:
            print(f"[runner] client exited (code {client.returncode})")
            rc = rc or client.returncode
    except KeyboardInterrupt:
        print("[runner] ^C – terminating …")
        client.terminate()
    finally:
        for proc in procs.values():
            if proc.poll() is None:
                proc.terminate()
                proc.wait(timeout=5.0)
        for tee in tees:
            tee.stop()

    print(f"[runner] logs in {out_dir}")
    return rc


if __name__ == "__main__":
    try:
        sys.exit(main(parse_args()))
    except Exception as exc:
        sys.stderr.write(f"runner fatal error: {exc}\n")
        sys.exit(1)
