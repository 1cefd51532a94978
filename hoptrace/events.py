"""
Event types passed from a trace session to whoever drains it.

The session puts TraceEvents on its queue; the CLI, the TUI and any
observer attached with Traceroute.on() read them back in order. A
"hop" event carries one HopRecord and the raw line it came from; "end"
and "error" close the stream.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .models import HopRecord, NO_RESPONSE


# Event names
HOP = "hop"
END = "end"
ERROR = "error"

EVENT_NAMES = (HOP, END, ERROR)


class TraceState(Enum):
    """Created → Running → Completed | Failed. Terminal states are final."""
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TraceState.COMPLETED, TraceState.FAILED)


class LogLevel(Enum):
    BASIC = "basic"
    VERBOSE = "verbose"


# Responding vs silent hop → (color, icon) for the TUI tree
HOP_STYLE: dict[bool, tuple[str, str]] = {
    True:  ("#00ff88", "✓"),
    False: ("#ffcc00", NO_RESPONSE),
}


@dataclass(frozen=True)
class TraceEvent:
    """
    One event from the session.

    Events:
        hop    — one HopRecord, in discovery order
        end    — the tool exited cleanly, nothing follows
        error  — the tool failed (or never started), nothing follows
    """
    event: str                          # "hop", "end", "error"
    hop: Optional[HopRecord] = None     # hop only
    line: str = ""                      # trimmed source line (hop only)
    message: str = ""                   # error only

    @property
    def is_terminal(self) -> bool:
        return self.event in (END, ERROR)

    def to_dict(self) -> dict:
        data: dict = {"event": self.event}
        if self.hop is not None:
            data["hop"] = self.hop.to_dict()
        if self.message:
            data["message"] = self.message
        return data


# Type alias for an observer callback
EventCallback = Callable[[TraceEvent], None]
