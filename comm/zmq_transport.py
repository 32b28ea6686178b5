"""comm/zmq_transport.py

ZeroMQ request/reply transport between clients and a time authority.

A client holds **one** REQ socket connected to the authority's REP socket.
Frames are JSON objects:

===========================================  =====================================================
request                                      reply
===========================================  =====================================================
``{"op": "now"}``                            ``{"success": true, "remoteClaimedAt": <epoch ms>}``
``{"op": "compare", "targetUrl": <ep>}``     ``{"success": true, "data": {"timeDifferenceMillis",
                                             "direction", "rttMillis", "networkDelayMillis",
                                             "reliability"}}``
===========================================  =====================================================

Any failure is ``{"success": false, "error": <text>}``.

Design goals
------------
* No `asyncio` dependency – the resync loop runs on its own thread.
* A missing reply never wedges the client: REQ sockets are strictly
  send/recv alternating, so after a timeout the socket is thrown away and
  reconnected ("lazy pirate").
* ``success: false`` is *data*, not an exception – it becomes a sample
  without time info, which the estimator rejects.

Example
~~~~~~~
>>> auth = TimeAuthority(endpoint="tcp://127.0.0.1:5600")      # doctest: +SKIP
>>> src = ZmqTimeSource(endpoint="tcp://127.0.0.1:5600")
>>> sample = src.fetch()
>>> src.close(); auth.close()
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import zmq

from algorithms.symmetric import SymmetricDelayEstimator
from core.errors import TransportFailure
from core.estimator import OffsetEstimator
from sync.cadence import now_ms
from sync.samples import Rejected, RemoteTimeSample, TimeComparison

__all__ = ["ZmqTimeSource", "TimeAuthority", "build_endpoint"]

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------

def build_endpoint(host: str, port: int) -> str:
    """Return a TCP ZeroMQ endpoint string for the given host/port."""
    return f"tcp://{host}:{port}"


def _as_ms(value: object) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


# ---------------------------------------------------------------------------
# Client side
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class ZmqTimeSource:
    """REQ client that turns one round trip into a :class:`RemoteTimeSample`.

    Parameters
    ----------
    endpoint:
        Authority endpoint to **connect** to (``tcp://host:port`` or
        ``inproc://name``).
    ctx:
        Optionally reuse an existing ``zmq.Context`` (required for
        ``inproc://``).  Defaults to the process‑wide singleton.
    timeout_ms:
        How long to wait for a reply before raising
        :class:`TransportFailure`.
    clock:
        Local clock used to stamp send/receive instants (epoch ms).
    """

    endpoint: str
    ctx: Optional[zmq.Context] = None
    timeout_ms: int = 1000
    clock: Callable[[], float] = now_ms

    _socket: zmq.Socket | None = None
    _closed: bool = False

    # ---------------------------------------------------------------------
    # Construction & teardown
    # ---------------------------------------------------------------------

    def __post_init__(self) -> None:  # noqa: D401 – standard dataclass hook
        if self.ctx is None:
            self.ctx = zmq.Context.instance()
        self._connect()

    def _connect(self) -> None:
        sock = self.ctx.socket(zmq.REQ)
        sock.setsockopt(zmq.LINGER, 0)
        sock.connect(self.endpoint)
        self._socket = sock
        log.debug("REQ connected to %s", self.endpoint)

    def _reset(self) -> None:
        if self._socket is not None:
            self._socket.close(0)
            self._socket = None
        if not self._closed:
            self._connect()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def request(self, payload: dict) -> dict:
        """Send one JSON request and wait for the JSON reply."""
        if self._closed or self._socket is None:
            raise TransportFailure(f"time source for {self.endpoint} is closed")
        try:
            self._socket.send_json(payload, zmq.NOBLOCK)
        except zmq.Again as exc:
            self._reset()
            raise TransportFailure(f"cannot send to {self.endpoint}") from exc

        if not self._socket.poll(self.timeout_ms, zmq.POLLIN):
            self._reset()
            raise TransportFailure(f"no reply from {self.endpoint} within {self.timeout_ms} ms")

        raw = self._socket.recv()
        try:
            reply = json.loads(raw)
        except ValueError:
            log.warning("malformed reply from %s (%d bytes)", self.endpoint, len(raw))
            return {"success": False, "error": "malformed reply"}
        if not isinstance(reply, dict):
            return {"success": False, "error": "malformed reply"}
        return reply

    def fetch(self) -> RemoteTimeSample:
        """One ``now`` round trip.  Raises :class:`TransportFailure` on timeout."""
        sent = self.clock()
        reply = self.request({"op": "now"})
        received = max(self.clock(), sent)  # wall clock may step backwards
        claimed = _as_ms(reply.get("remoteClaimedAt")) if reply.get("success") else None
        if claimed is None:
            log.debug("reply from %s carried no time info: %s", self.endpoint, reply.get("error"))
        return RemoteTimeSample(sent, received, claimed)

    def compare(self, target_url: str) -> TimeComparison:
        """Ask the authority how far *target_url*'s clock is from its own."""
        reply = self.request({"op": "compare", "targetUrl": target_url})
        if not reply.get("success") or not isinstance(reply.get("data"), dict):
            raise TransportFailure(f"comparison with {target_url} failed: {reply.get('error')}")
        try:
            return TimeComparison.from_payload(reply["data"])
        except ValueError as exc:
            raise TransportFailure(f"bad comparison payload: {exc}") from exc

    # ------------------------------------------------------------------
    # Cleanup helpers (idempotent)
    # ------------------------------------------------------------------

    def close(self) -> None:  # noqa: D401 – not a property
        """Close the socket (safe to call multiple times)."""
        self._closed = True
        if self._socket is not None:
            self._socket.close(0)
            self._socket = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):  # noqa: D401 – context manager magic
        self.close()


# ---------------------------------------------------------------------------
# Server side
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class TimeAuthority:
    """REP server answering ``now`` and ``compare`` requests.

    ``skew_ms`` shifts the reported clock away from the local one,
    ``latency_ms`` delays every reply (half before stamping, half after –
    a symmetric path), and ``fail_every=N`` answers every *N*‑th ``now``
    request with ``success: false``.  All three exist for demos and tests.
    """

    endpoint: str
    ctx: Optional[zmq.Context] = None
    skew_ms: float = 0.0
    latency_ms: float = 0.0
    fail_every: int = 0
    clock: Callable[[], float] = now_ms
    estimator: Optional[OffsetEstimator] = None
    compare_timeout_ms: int = 1000

    _socket: zmq.Socket | None = None
    _halt_evt: threading.Event = field(default_factory=threading.Event)
    served: int = 0

    def __post_init__(self) -> None:  # noqa: D401 – standard dataclass hook
        if self.ctx is None:
            self.ctx = zmq.Context.instance()
        if self.estimator is None:
            self.estimator = SymmetricDelayEstimator()
        self._socket = self.ctx.socket(zmq.REP)
        self._socket.setsockopt(zmq.LINGER, 0)
        self._socket.bind(self.endpoint)
        log.debug("REP bound to %s", self.endpoint)

    @property
    def bound_endpoint(self) -> str:
        """Actual endpoint (resolves a ``tcp://host:*`` wildcard port)."""
        assert self._socket is not None
        return self._socket.getsockopt_string(zmq.LAST_ENDPOINT)

    def now(self) -> float:
        """This authority's clock (local clock plus skew), epoch ms."""
        return self.clock() + self.skew_ms

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    def handle(self, request: object) -> dict:
        if not isinstance(request, dict):
            return {"success": False, "error": "request must be a JSON object"}
        op = request.get("op", "now")
        if op == "now":
            self.served += 1
            if self.fail_every and self.served % self.fail_every == 0:
                return {"success": False, "error": "time unavailable"}
            return {"success": True, "remoteClaimedAt": self.now()}
        if op == "compare":
            return self._compare(request.get("targetUrl"))
        return {"success": False, "error": f"unknown op {op!r}"}

    def _compare(self, target_url: object) -> dict:
        if not isinstance(target_url, str) or not target_url:
            return {"success": False, "error": "targetUrl is required"}
        source = ZmqTimeSource(
            target_url, ctx=self.ctx, timeout_ms=self.compare_timeout_ms, clock=self.now
        )
        try:
            result = self.estimator.estimate(source.fetch())
        except TransportFailure as exc:
            return {"success": False, "error": str(exc)}
        finally:
            source.close()
        if isinstance(result, Rejected):
            return {"success": False, "error": f"target sample rejected: {result.reason.value}"}
        return {"success": True, "data": TimeComparison.from_offset(result).to_payload()}

    def serve_once(self, timeout_ms: int = 100) -> bool:
        """Answer at most one request.  Returns ``True`` if one was served."""
        assert self._socket is not None
        if not self._socket.poll(timeout_ms, zmq.POLLIN):
            return False
        raw = self._socket.recv()
        try:
            request = json.loads(raw)
        except ValueError:
            request = None
        half_latency = self.latency_ms / 2000.0
        if half_latency > 0:
            time.sleep(half_latency)
        reply = self.handle(request)
        if half_latency > 0:
            time.sleep(half_latency)
        self._socket.send_json(reply)
        return True

    def serve_forever(self) -> None:
        """Serve until :py:meth:`stop` is called (from another thread)."""
        log.info("time authority on %s (skew %+.1f ms)", self.endpoint, self.skew_ms)
        while not self._halt_evt.is_set():
            self.serve_once()

    def stop(self) -> None:
        self._halt_evt.set()

    def close(self) -> None:
        """Close the socket (safe to call multiple times)."""
        self._halt_evt.set()
        if self._socket is not None:
            self._socket.close(0)
            self._socket = None
