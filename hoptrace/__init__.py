"""
hoptrace — Streaming traceroute, one structured hop record at a time.

Not a traceroute implementation — a traceroute output reader.
"""

__version__ = "0.1.0"

from .models import AddressFamily, HopRecord, TraceOptions, NO_RESPONSE
from .parsers import parse_line
from .events import TraceEvent, TraceState
from .session import Traceroute, InvalidTargetError, TraceError

__all__ = [
    "AddressFamily", "HopRecord", "TraceOptions", "NO_RESPONSE",
    "parse_line",
    "TraceEvent", "TraceState",
    "Traceroute", "InvalidTargetError", "TraceError",
]
