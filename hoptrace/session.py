"""
Trace Session — one traceroute run, streamed as hop events.

Sequence:
    1. Validate target → address family (synchronous, before any process)
    2. traceroute() → worker thread spawns the tool
    3. Each stdout line → parse_line() → one "hop" event per record
    4. Exit 0 → "end"; anything else → "error" with the collected stderr

Listener attachment vs. first event:
    The worker never calls observers directly. Events go into a queue
    and are dispatched on the caller's thread as the caller drains
    (events() / wait() / run()). An observer attached right after
    traceroute() therefore can't miss anything:

        tr = Traceroute("193.2.1.87")
        tr.traceroute()
        tr.on("hop", print)          # still sees hop 1
        tr.wait()

Exactly one terminal event per session. A session is single-use.
"""

from __future__ import annotations
from datetime import datetime
from typing import Iterator, Optional
import logging
import queue
import sys
import threading

from .models import AddressFamily, HopRecord, TraceOptions
from .commands import build_command, detect_family
from .diagnostics import (
    TraceDiagnostic, classify_line, setup_logging,
    format_hop, dump_trace_summary,
)
from .events import (
    TraceEvent, TraceState, EventCallback,
    HOP, END, ERROR, EVENT_NAMES,
)
from .process import ExitStatus, LineSource, Spawner, spawn

logger = logging.getLogger("hoptrace")


class InvalidTargetError(ValueError):
    """Target is neither an IPv4 nor an IPv6 literal."""


class TraceError(RuntimeError):
    """The trace ended with an error event."""


# ============================================================
# Traceroute Session
# ============================================================

class Traceroute:
    """
    Streaming traceroute for a literal IPv4/IPv6 target.

    Usage:
        tr = Traceroute("193.2.1.87", TraceOptions(max_ttl=20))
        for evt in tr.events():
            if evt.event == "hop":
                print(evt.hop.number, evt.hop.ip, evt.hop.rtts)

        # or observer style
        tr = Traceroute("2607:f8b0:4009:803::1000")
        tr.on("hop", handle_hop).on("error", handle_error)
        tr.traceroute()
        state = tr.wait()          # TraceState.COMPLETED / FAILED
    """

    def __init__(
        self,
        target: str,
        options: Optional[TraceOptions] = None,
        spawner: Optional[Spawner] = None,
    ):
        family = detect_family(target)
        if family is None:
            raise InvalidTargetError(
                f"Target is not a valid IPv4 or IPv6 address: {target!r}"
            )

        self.target = target
        self.options = options or TraceOptions()
        self._family = family
        self._spawner = spawner or spawn

        self._listeners: dict[str, list[EventCallback]] = {n: [] for n in EVENT_NAMES}
        self._queue: queue.Queue[TraceEvent] = queue.Queue()
        self._lock = threading.Lock()
        self._state = TraceState.CREATED
        self._terminated = False
        self._cancel_requested = False
        self._thread: Optional[threading.Thread] = None
        self._process: Optional[LineSource] = None
        self._drained = False

        self._diagnostics = TraceDiagnostic(target=target, family=family)

    @property
    def family(self) -> AddressFamily:
        return self._family

    @property
    def state(self) -> TraceState:
        with self._lock:
            return self._state

    @property
    def diagnostics(self) -> TraceDiagnostic:
        return self._diagnostics

    # ────────────────────────────────────────────
    # Observers
    # ────────────────────────────────────────────

    def on(self, event: str, callback: EventCallback) -> "Traceroute":
        """Attach an observer for "hop", "end" or "error"."""
        if event not in self._listeners:
            raise ValueError(f"Unknown event: {event!r} (expected one of {EVENT_NAMES})")
        self._listeners[event].append(callback)
        return self

    def _dispatch(self, event: TraceEvent) -> None:
        for cb in list(self._listeners[event.event]):
            try:
                cb(event)
            except Exception as e:
                logger.warning(f"Observer error on {event.event!r}: {e}")

    # ────────────────────────────────────────────
    # Lifecycle
    # ────────────────────────────────────────────

    def traceroute(self) -> "Traceroute":
        """Start the run in the background. Created → Running."""
        with self._lock:
            if self._state is not TraceState.CREATED:
                raise RuntimeError(f"Trace already started ({self._state.value})")
            self._state = TraceState.RUNNING

        argv = build_command(self.target, self._family, self.options)
        self._diagnostics.argv = argv
        self._diagnostics.started_at = datetime.now()
        self._diagnostics.state = TraceState.RUNNING.value

        logger.info(f"Starting trace: {self.target} ({self._family.value})")

        self._thread = threading.Thread(
            target=self._run, args=(argv,), daemon=True,
            name=f"hoptrace-{self.target}",
        )
        self._thread.start()
        return self

    start = traceroute

    def terminate(self) -> None:
        """
        Kill the underlying process; the run ends through the normal exit path.
        Safe to call before the spawner has returned: the worker kills the
        process as soon as it exists.
        """
        with self._lock:
            self._cancel_requested = True
            process = self._process
        if process is not None:
            process.terminate()

    # ────────────────────────────────────────────
    # Consumption
    # ────────────────────────────────────────────

    def events(self, timeout: Optional[float] = None) -> Iterator[TraceEvent]:
        """
        Yield events in order until the terminal one, dispatching each to
        observers first. Starts the trace if it was not started yet.

        timeout bounds the wait for each next event (queue.Empty on expiry).
        """
        if self.state is TraceState.CREATED:
            self.traceroute()
        if self._drained:
            return

        while True:
            evt = self._take(self._queue.get(timeout=timeout))
            yield evt
            if evt.is_terminal:
                break

    __iter__ = events

    def poll(self) -> list[TraceEvent]:
        """Non-blocking drain: dispatch and return whatever is queued now."""
        taken: list[TraceEvent] = []
        while not self._drained:
            try:
                evt = self._queue.get_nowait()
            except queue.Empty:
                break
            taken.append(self._take(evt))
        return taken

    def _take(self, evt: TraceEvent) -> TraceEvent:
        if evt.is_terminal:
            self._drained = True
        self._dispatch(evt)
        return evt

    def wait(self, timeout: Optional[float] = None) -> TraceState:
        """Drain every event and return the terminal state."""
        for _ in self.events(timeout=timeout):
            pass
        if self._thread is not None:
            self._thread.join(timeout=5.0)
        return self.state

    def run(self, timeout: Optional[float] = None) -> list[HopRecord]:
        """Drain and collect the hops. Raises TraceError if the run failed."""
        hops: list[HopRecord] = []
        for evt in self.events(timeout=timeout):
            if evt.event == HOP:
                hops.append(evt.hop)
            elif evt.event == ERROR:
                raise TraceError(evt.message)
        return hops

    # ────────────────────────────────────────────
    # Worker
    # ────────────────────────────────────────────

    def _emit(self, event: TraceEvent) -> None:
        with self._lock:
            if self._terminated:
                logger.debug(f"Dropping {event.event!r} after terminal event")
                return
        self._queue.put(event)

    def _finish(self, event: TraceEvent) -> None:
        """Emit the terminal event. At most once."""
        with self._lock:
            if self._terminated:
                logger.debug(f"Ignoring second terminal event {event.event!r}")
                return
            self._terminated = True
            self._state = (
                TraceState.COMPLETED if event.event == END else TraceState.FAILED
            )
        self._diagnostics.completed_at = datetime.now()
        self._diagnostics.state = self._state.value
        self._queue.put(event)

    def _run(self, argv: list[str]) -> None:
        process: Optional[LineSource] = None
        reaped = False
        try:
            try:
                process = self._spawner(argv)
            except OSError as e:
                logger.error(f"Failed to start {argv[0]}: {e}")
                self._finish(TraceEvent(event=ERROR, message=f"Error: {e}"))
                return

            with self._lock:
                self._process = process
                cancelled = self._cancel_requested
            if cancelled:
                logger.info(f"Trace cancelled before start: {self.target}")
                process.terminate()

            for raw in process.lines():
                self._consume_line(raw)

            status: ExitStatus = process.wait()
            reaped = True
            self._diagnostics.returncode = status.returncode
            self._diagnostics.stderr = status.stderr

            if status.ok:
                logger.info(f"Trace complete: {self.target} "
                            f"({self._diagnostics.hop_records} hop records)")
                self._finish(TraceEvent(event=END))
            else:
                logger.error(f"traceroute exited {status.returncode}: "
                             f"{status.stderr.strip()}")
                self._finish(TraceEvent(event=ERROR, message=f"Error: {status.stderr}"))

        except Exception as e:
            logger.exception(f"Trace worker failed: {e}")
            self._finish(TraceEvent(event=ERROR, message=f"Error: {e}"))

        finally:
            if process is not None and not reaped:
                self._reap(process)

    def _reap(self, process: LineSource) -> None:
        """Kill and collect a child the worker gave up on mid-stream."""
        try:
            process.terminate()
            status = process.wait()
            logger.debug(f"Reaped abandoned process (exit {status.returncode})")
        except Exception as e:
            logger.warning(f"Could not reap traceroute process: {e}")

    def _consume_line(self, raw: str) -> None:
        line = raw.strip()
        records, line_record = classify_line(self._family, line)
        self._diagnostics.lines.append(line_record)
        logger.debug(f"[{line_record.status.value}] {line}")

        for hop in records:
            logger.info(f"hop {hop.number}: {hop.address} {list(hop.rtts)}")
            self._emit(TraceEvent(event=HOP, hop=hop, line=line))


# ============================================================
# CLI
# ============================================================

def main(argv: Optional[list[str]] = None) -> int:
    """
    hoptrace 193.2.1.87 -m 20 -w 3
    hoptrace 2607:f8b0:4009:803::1000 --json --log /tmp/hoptrace.json
    """
    import argparse
    import json as json_mod

    parser = argparse.ArgumentParser(
        description="Stream traceroute hops as structured records.",
        epilog=(
            "Examples:\n"
            "  hoptrace 193.2.1.87\n"
            "  hoptrace 193.2.1.87 -m 20 -w 3 -v\n"
            "  hoptrace 2607:f8b0:4009:803::1000 --json --log /tmp/ht.json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("target", help="Target IPv4 or IPv6 address")
    parser.add_argument("-m", "--max-hops", type=int, default=30,
                        help="Maximum TTL (default: 30)")
    parser.add_argument("-w", "--wait", type=int, default=5,
                        help="Per-probe wait time in seconds (default: 5)")
    parser.add_argument("-l", "--packet-len", type=int, default=60,
                        help="Probe packet length (default: 60)")
    parser.add_argument("--binary", default="traceroute",
                        help="traceroute executable")

    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log each hop to stderr")
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--log", default=None,
                        help="Write full diagnostic JSON to file")
    parser.add_argument("--debug-log", default=None,
                        help="Write debug-level log to file")
    parser.add_argument("--json", action="store_true",
                        help="Emit one JSON object per event")

    args = parser.parse_args(argv)

    options = TraceOptions(
        packet_len=args.packet_len,
        max_ttl=args.max_hops,
        wait_time=args.wait,
        binary=args.binary,
        verbose=args.verbose,
        debug=args.debug,
        log_file=args.debug_log,
    )
    setup_logging(
        log_file=options.log_file, debug=options.debug, verbose=options.verbose,
    )

    try:
        tr = Traceroute(args.target, options)
    except InvalidTargetError as e:
        parser.error(str(e))

    if not args.json:
        print(f"hoptrace: {tr.target} ({tr.family.value}), "
              f"{options.max_ttl} hops max, {options.packet_len} byte packets")
        print("─" * 50)

    for evt in tr.events():
        if args.json:
            print(json_mod.dumps(evt.to_dict()), flush=True)
        elif evt.event == HOP:
            print(format_hop(evt.hop), flush=True)

    diag = tr.diagnostics
    if not args.json:
        print(dump_trace_summary(diag))

    if args.log:
        diag.dump_json(args.log)

    if tr.state is TraceState.FAILED:
        if args.json:
            print(diag.stderr.strip(), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
