"""core/authority.py – stand‑alone time authority

Binds a :class:`~comm.zmq_transport.TimeAuthority` and serves until killed.
The skew, latency and failure knobs let a single machine imitate a remote
server whose clock disagrees with ours over a slow, flaky link.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List

from comm.zmq_transport import TimeAuthority, build_endpoint

log = logging.getLogger("authority")

# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: List[str] | None = None) -> argparse.Namespace:  # noqa: D401
    p = argparse.ArgumentParser(description="Time authority (ZeroMQ REP)")
    p.add_argument("--port", type=int, required=True)
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--skew-ms", type=float, default=0.0, help="Clock offset to report")
    p.add_argument("--latency-ms", type=float, default=0.0, help="Artificial reply delay")
    p.add_argument("--fail-every", type=int, default=0,
                   help="Answer every N-th request without time info (0 = never)")
    p.add_argument("--log-level", default="INFO")
    return p.parse_args(argv)


def run_authority(opts: argparse.Namespace) -> None:
    authority = TimeAuthority(
        endpoint=build_endpoint(opts.host, opts.port),
        skew_ms=opts.skew_ms,
        latency_ms=opts.latency_ms,
        fail_every=opts.fail_every,
    )
    try:
        authority.serve_forever()
    finally:
        log.info("served %d time requests", authority.served)
        authority.close()


def main(argv: List[str] | None = None) -> int:
    opts = parse_args(argv)
    logging.basicConfig(
        level=opts.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        run_authority(opts)
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
