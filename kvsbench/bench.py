"""Closed-loop key-value store load generator: cores, phases and reporting."""

from __future__ import annotations

import itertools
import logging
import selectors
import sys
import threading
import time
from collections import deque
from enum import IntEnum
from typing import Callable, Sequence

from kvsbench.connection import Connection, ConnectionState, Response, open_connection
from kvsbench.protocol import ProtocolError, build_get_request, build_set_request
from kvsbench.settings import Settings, SettingsError, parse_settings, usage
from kvsbench.stats import CoreStats, LatencyHistogram, format_report
from kvsbench.workload import Operation, Workload

MAX_CONNECTING = 16

_log = logging.getLogger(__name__)


class Phase(IntEnum):
    INIT = 0
    PRELOAD = 1
    WARMUP = 2
    RUNNING = 3
    COOLDOWN = 4
    DONE = 5


def _timestamp() -> int:
    """Monotonic nanoseconds truncated to 32 bits, as carried in ``opaque``."""
    return time.monotonic_ns() & 0xFFFFFFFF


def _wait_for(phase: Callable[[], Phase], target: Phase) -> None:
    while phase() < target:
        time.sleep(0.001)


class Core:
    """One load-generating core with its own connections and counters."""

    def __init__(self, core_id: int, settings: Settings, workload: Workload) -> None:
        self.core_id = core_id
        self.settings = settings
        self.workload = workload
        self.wlc = workload.core()
        self.stats = CoreStats()
        self.connections: list[Connection] = []
        self.ready: deque[Connection] = deque()
        self.msgs_pending = 0
        self.loaded = threading.Event()
        self.error: Exception | None = None
        self._selector = selectors.DefaultSelector()
        self._want_write: dict[Connection, bool] = {}

    def _register(self, conn: Connection, write: bool) -> None:
        events = selectors.EVENT_READ | (selectors.EVENT_WRITE if write else 0)
        self._selector.register(conn, events, data=conn)
        self._want_write[conn] = write

    def _set_write(self, conn: Connection, write: bool) -> None:
        if self._want_write.get(conn) == write:
            return
        events = selectors.EVENT_READ | (selectors.EVENT_WRITE if write else 0)
        self._selector.modify(conn, events, data=conn)
        self._want_write[conn] = write
        self.stats.epupd += 1

    def _opened(self, conn: Connection) -> None:
        self._set_write(conn, False)
        self.ready.append(conn)

    def _poll_connecting(self, timeout: float | None) -> int:
        opened = 0
        for key, _mask in self._selector.select(timeout):
            conn: Connection = key.data
            if conn.state is not ConnectionState.CONNECTING:
                continue
            if conn.flush():
                self._opened(conn)
                opened += 1
        return opened

    def connect(self) -> None:
        """Open all connections of this core and wait until they are established."""
        connecting = 0
        for _ in range(self.settings.conns):
            conn = open_connection(self.settings.dstip, self.settings.dstport)
            self.connections.append(conn)
            self._register(conn, True)
            if conn.state is ConnectionState.OPEN:
                self._opened(conn)
            else:
                connecting += 1
            while connecting >= MAX_CONNECTING:
                connecting -= self._poll_connecting(0.1)
        while connecting > 0:
            connecting -= self._poll_connecting(0.1)
        _log.info("[%d] core ready", self.core_id)

    def load_keys(self) -> None:
        """Store this core's share of the keys, one request per connection at a time."""
        keys = self.workload.keys
        indices = iter(range(self.core_id, len(keys), self.settings.threads))
        next_index = next(indices, None)
        idle = deque(self.connections)
        outstanding = 0
        while next_index is not None or outstanding > 0:
            while idle and next_index is not None:
                conn = idle.popleft()
                conn.queue(build_set_request(
                    keys[next_index].key, self.settings.valuesize, 0))
                conn.pending += 1
                outstanding += 1
                next_index = next(indices, None)
                self._set_write(conn, not conn.flush())

            for key, mask in self._selector.select(None):
                conn = key.data
                if mask & selectors.EVENT_WRITE and conn.tx_pending:
                    self._set_write(conn, not conn.flush())
                if mask & selectors.EVENT_READ:
                    for resp in conn.receive():
                        if resp.status != 0:
                            _log.warning("[%d] load_keys set failed: %x",
                                         self.core_id, resp.status)
                        conn.pending -= 1
                        outstanding -= 1
                        idle.append(conn)

    def send_pending(self) -> None:
        """Issue new requests on idle connections up to the pending limit."""
        while self.msgs_pending < self.settings.pending and self.ready:
            conn = self.ready.popleft()
            key, op = self.wlc.next_op()
            opaque = _timestamp()
            if op is Operation.GET:
                data = build_get_request(key.key, opaque)
                self.stats.tx_get += 1
            else:
                data = build_set_request(key.key, self.settings.valuesize, opaque)
                self.stats.tx_set += 1
            conn.queue(data)
            self._set_write(conn, not conn.flush())
            conn.pending += 1
            self.msgs_pending += 1

    def _account(self, resp: Response) -> None:
        latency = (_timestamp() - resp.opaque) & 0xFFFFFFFF
        self.stats.hist.record(latency)
        if resp.op is Operation.GET:
            self.stats.rx_get += 1
        else:
            self.stats.rx_set += 1
        if resp.status == 0:
            self.stats.rx_success += 1
        else:
            self.stats.rx_fail += 1
            _log.warning("[%d] request failed: %x", self.core_id, resp.status)

    def handle_events(self, timeout: float | None) -> int:
        """Wait for socket events, process responses and return how many arrived."""
        handled = 0
        for key, mask in self._selector.select(timeout):
            conn: Connection = key.data
            if mask & selectors.EVENT_READ:
                for resp in conn.receive():
                    if conn.pending == 0:
                        raise ProtocolError("response without outstanding request")
                    self._account(resp)
                    handled += 1
                    conn.pending -= 1
                    self.msgs_pending -= 1
                    if conn.pending == 0:
                        self.ready.append(conn)
            if conn.tx_pending:
                conn.flush()
            self._set_write(conn, conn.tx_pending != 0)
        return handled

    def run(self, phase: Callable[[], Phase]) -> None:
        """Thread body: connect, preload keys, then generate load while running."""
        try:
            self.connect()
            _wait_for(phase, Phase.PRELOAD)
            _log.info("[%d] preloading keys", self.core_id)
            self.load_keys()
        except Exception as exc:
            self.error = exc
            self.loaded.set()
            self.close()
            return
        self.loaded.set()
        try:
            _wait_for(phase, Phase.RUNNING)
            self.send_pending()
            while phase() is Phase.RUNNING:
                self.handle_events(0.1)
                self.send_pending()
        except Exception as exc:
            self.error = exc
        finally:
            self.close()

    def close(self) -> None:
        """Close every connection of this core."""
        for conn in self.connections:
            try:
                self._selector.unregister(conn)
            except (KeyError, ValueError):
                pass
            conn.close()
        self.connections = []
        self.ready.clear()
        self._want_write.clear()
        self._selector.close()


def _raise_errors(cores: Sequence[Core]) -> None:
    for core in cores:
        if core.error is not None:
            raise core.error


def run_benchmark(settings: Settings, intervals: int | None) -> list[str]:
    """Run the benchmark, printing one report per second; return the reports.

    With ``intervals`` of None it runs until interrupted.
    """
    workload = Workload(settings)
    cores = [Core(i, settings, workload) for i in range(settings.threads)]
    state = [Phase.INIT]

    def current() -> Phase:
        return state[0]

    threads = [threading.Thread(target=core.run, args=(current,), daemon=True,
                                name=f"core-{core.core_id}")
               for core in cores]
    for thread in threads:
        thread.start()

    reports: list[str] = []
    try:
        state[0] = Phase.PRELOAD
        state[0] = Phase.WARMUP
        for core in cores:
            core.loaded.wait()
        _raise_errors(cores)
        print("Preloading completed", flush=True)
        state[0] = Phase.RUNNING

        hist = LatencyHistogram()
        t_prev = time.monotonic_ns()
        counter = itertools.count() if intervals is None else range(intervals)
        for _ in counter:
            time.sleep(1)
            _raise_errors(cores)
            t_cur = time.monotonic_ns()
            elapsed = max(t_cur - t_prev, 1) / 1e9
            throughput = 0.0
            for core in cores:
                snap = core.stats.take()
                throughput += snap.rx_success / elapsed
                hist.merge(snap.hist)
            line = format_report(throughput, hist)
            print(line, flush=True)
            reports.append(line)
            hist.clear()
            t_prev = t_cur
    finally:
        state[0] = Phase.DONE
        for thread in threads:
            thread.join(timeout=2)
    return reports


def main(argv: Sequence[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        settings = parse_settings(args)
    except SettingsError as exc:
        print(exc, file=sys.stderr)
        print(usage(), file=sys.stderr, end="")
        return 1
    try:
        run_benchmark(settings, None)
    except KeyboardInterrupt:
        return 0
    except (OSError, ProtocolError) as exc:
        print(f"benchmark failed: {exc}", file=sys.stderr)
        return 1
    return 0