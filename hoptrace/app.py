"""
Textual TUI for hoptrace — live hop-by-hop path visualization.

Two modes:
  Live:  HopTraceApp(target="193.2.1.87", options=TraceOptions(...))
         Session worker thread fills its queue; an async poll drains it.
  Demo:  HopTraceApp(events=[...])
         Replays a canned event list (defaults to an 8-hop split-route trace).
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.markup import escape
from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import RichLog, Static, Tree
from textual.widgets.tree import TreeNode

from .events import TraceEvent, LogLevel, HOP_STYLE, HOP, END, ERROR
from .models import HopRecord, TraceOptions

CSS_PATH = Path(__file__).parent / "theme.tcss"


class TitleBar(Static):
    pass

class StatusBar(Static):
    pass


class HopTraceApp(App):
    """hoptrace TUI — hops as they arrive, fan-out per TTL."""

    CSS_PATH = CSS_PATH
    TITLE = "hoptrace"

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("b", "log_basic", "Basic"),
        Binding("v", "log_verbose", "Verbose"),
    ]

    def __init__(
        self,
        target: str = "",
        options: Optional[TraceOptions] = None,
        events: list[TraceEvent] | None = None,
        replay_delay: float = 0.3,
    ):
        super().__init__()
        self.trace_target = target
        self._trace_options = options
        self._replay = events
        self._replay_delay = replay_delay
        self._live_mode = bool(target) and events is None

        self._log_level = LogLevel.BASIC
        self._hop_nodes: dict[int, TreeNode] = {}
        self._all_logs: list[tuple[TraceEvent, datetime]] = []
        self._record_count = 0
        self._last_hop = 0
        self._trace_done = False
        self._result: TraceEvent | None = None
        self._trace_start = datetime.now()

    def compose(self) -> ComposeResult:
        yield TitleBar(f"  ⇢ hoptrace: {self.trace_target or 'demo'}", id="title-bar")
        with Horizontal(id="main-split"):
            with Vertical(id="tree-pane"):
                tree: Tree[str] = Tree(f"⇢ {self.trace_target or 'demo'}", id="hop-tree")
                tree.show_root = True
                tree.root.expand()
                tree.guide_depth = 3
                yield tree
            with Vertical(id="log-pane"):
                yield RichLog(id="log-view", highlight=True, markup=True,
                              wrap=True, auto_scroll=True)
        yield StatusBar(id="status-bar")

    def on_mount(self) -> None:
        self._update_status()
        if self._live_mode:
            self.run_worker(self._run_live_trace(), exclusive=True, group="trace")
        else:
            events = self._replay if self._replay is not None else build_demo_trace()
            self.run_worker(self._replay_events(events), exclusive=True, group="trace")

    # ── Live session integration ────────────────────────────────────────

    async def _run_live_trace(self) -> None:
        """
        Session (threaded subprocess) → queue → async poll → TUI.
        Polling never blocks the event loop.
        """
        from .session import Traceroute, InvalidTargetError

        try:
            tr = Traceroute(self.trace_target, self._trace_options)
        except InvalidTargetError as e:
            self._process_event(TraceEvent(event=ERROR, message=str(e)))
            return

        tr.traceroute()
        try:
            while True:
                for evt in tr.poll():
                    self._process_event(evt)
                    if evt.is_terminal:
                        return
                await asyncio.sleep(0.05)
        finally:
            # Quitting mid-trace cancels this worker; don't leave the child behind
            tr.terminate()

    async def _replay_events(self, events: list[TraceEvent]) -> None:
        for evt in events:
            self._process_event(evt)
            await asyncio.sleep(self._replay_delay)

    # ── Event processing ────────────────────────────────────────────────

    def _process_event(self, evt: TraceEvent) -> None:
        now = datetime.now()
        self._all_logs.append((evt, now))
        if evt.event == HOP:
            self._add_hop_node(evt.hop)
            self._record_count += 1
            self._last_hop = evt.hop.number
        elif evt.is_terminal:
            self._trace_done = True
            self._result = evt
        self._write_log_lines(evt, now)
        self._update_status()

    # ── Tree management ─────────────────────────────────────────────────

    def _add_hop_node(self, hop: HopRecord) -> None:
        tree = self.query_one("#hop-tree", Tree)
        parent = self._hop_nodes.get(hop.number)
        if parent is None:
            parent = tree.root.add(Text(f"hop {hop.number}", style="bold"), expand=True)
            self._hop_nodes[hop.number] = parent
        parent.add_leaf(hop_label(hop))
        parent.expand()
        tree.scroll_end(animate=False)

    # ── Log pane ────────────────────────────────────────────────────────

    def _write_log_lines(self, evt: TraceEvent, now: datetime) -> None:
        log = self.query_one("#log-view", RichLog)
        ts = now.strftime("%H:%M:%S")
        for line in log_lines(evt, self._log_level):
            log.write(Text.from_markup(f"[#555555]{ts}[/] {line}"))

    def _rebuild_log(self) -> None:
        log = self.query_one("#log-view", RichLog)
        log.clear()
        for evt, ts in self._all_logs:
            ts_str = ts.strftime("%H:%M:%S")
            for line in log_lines(evt, self._log_level):
                log.write(Text.from_markup(f"[#555555]{ts_str}[/] {line}"))

    # ── Status bar ──────────────────────────────────────────────────────

    def _update_status(self) -> None:
        bar = self.query_one("#status-bar", StatusBar)
        elapsed = (datetime.now() - self._trace_start).total_seconds()
        parts = []
        for label in ("basic", "verbose"):
            if self._log_level.value == label:
                parts.append(f"[bold]{label[0]}[/bold]{label[1:]}")
            else:
                parts.append(label)
        level_hints = "  ".join(parts)

        if self._trace_done and self._result:
            health = (
                "[#00ff88]✓ COMPLETE[/]" if self._result.event == END
                else "[#ff4444]✗ FAILED[/]"
            )
            bar.update(Text.from_markup(
                f"  {health} │ {self._last_hop} hops │ "
                f"{self._record_count} records │ {elapsed:.1f}s │ "
                f"{level_hints} │ q:quit"
            ))
        else:
            bar.update(Text.from_markup(
                f"  [#00d4ff]⟳[/] hop {self._last_hop} │ {elapsed:.0f}s │ "
                f"{level_hints} │ q:quit"
            ))

    # ── Key bindings ────────────────────────────────────────────────────

    def action_log_basic(self) -> None:
        self._log_level = LogLevel.BASIC
        self._rebuild_log()
        self._update_status()

    def action_log_verbose(self) -> None:
        self._log_level = LogLevel.VERBOSE
        self._rebuild_log()
        self._update_status()

    def action_quit(self) -> None:
        self.exit()


# ── Rendering helpers ───────────────────────────────────────────────────

def hop_label(hop: HopRecord) -> Text:
    color, icon = HOP_STYLE[not hop.is_timeout]
    label = Text()
    label.append(f"{icon} ", style=color)
    label.append(hop.address, style="bold " + color)
    if hop.rtts:
        label.append("  " + "  ".join(f"{rtt:.3f} ms" for rtt in hop.rtts),
                     style="#888888")
    return label


def log_lines(evt: TraceEvent, level: LogLevel) -> list[str]:
    """Rich-markup log lines for one event at the given verbosity."""
    if evt.event == HOP:
        hop = evt.hop
        color, _ = HOP_STYLE[not hop.is_timeout]
        rtts = ", ".join(f"{rtt:.3f}" for rtt in hop.rtts) or "no reply"
        lines = [f"  [{color}]hop {hop.number}: {hop.address}[/]  {rtts}"]
        if level == LogLevel.VERBOSE and evt.line:
            lines.append(f"    [#444444]{escape(evt.line)}[/]")
        return lines
    if evt.event == END:
        return ["", "[#00ff88]━━━ Trace complete ━━━[/]"]
    message = evt.message.strip() or "unknown error"
    lines = ["", "[#ff4444]━━━ Trace failed ━━━[/]"]
    lines.extend(f"  [#ff4444]{escape(l)}[/]" for l in message.splitlines())
    return lines


# ── Demo trace ──────────────────────────────────────────────────────────

def build_demo_trace() -> list[TraceEvent]:
    """Split-route example: hop 3 answers from two routers, hop 5 is silent."""
    rows = [
        (1, "50.56.142.130", (0.727, 0.809, 0.869)),
        (2, "50.56.6.112", (1.322, 1.398, 1.467)),
        (3, "174.143.123.87", (1.115,)),
        (3, "174.143.123.85", (1.517, 1.527)),
        (4, "174.143.123.148", (1.713, 1.772, 1.821)),
        (5, "*", ()),
        (6, "4.69.148.46", (24.931, 24.882, 24.854)),
        (7, "4.69.141.21", (25.301, 25.318)),
        (7, "4.69.141.17", (25.566,)),
        (8, "184.106.74.174", (25.117, 25.079, 25.143)),
    ]
    events = [
        TraceEvent(event=HOP, hop=HopRecord(number, address, rtts))
        for number, address, rtts in rows
    ]
    events.append(TraceEvent(event=END))
    return events


def main():
    import argparse

    parser = argparse.ArgumentParser(description="hoptrace TUI")
    parser.add_argument("target", nargs="?", default=None,
                        help="Target IPv4 or IPv6 address (omit for demo)")
    parser.add_argument("--demo", action="store_true", help="Replay a canned trace")
    parser.add_argument("-m", "--max-hops", type=int, default=30)
    parser.add_argument("-w", "--wait", type=int, default=5)
    parser.add_argument("-l", "--packet-len", type=int, default=60)
    parser.add_argument("--log", default=None, help="Write debug log to file")
    args = parser.parse_args()

    if args.demo or not args.target:
        HopTraceApp().run()
        return

    from .commands import detect_family
    from .diagnostics import setup_logging

    if detect_family(args.target) is None:
        parser.error(f"Invalid target: {args.target!r} is not an IPv4 or IPv6 address")

    # File only — stderr would corrupt the TUI
    setup_logging(log_file=args.log)
    options = TraceOptions(
        packet_len=args.packet_len, max_ttl=args.max_hops,
        wait_time=args.wait, log_file=args.log,
    )
    HopTraceApp(target=args.target, options=options).run()


if __name__ == "__main__":
    main()
