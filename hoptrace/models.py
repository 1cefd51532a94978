"""
hoptrace — Core Data Models

One line of traceroute output → zero or more HopRecords.
A hop number is NOT unique across a trace: when routing is asymmetric the
same TTL answers from several addresses, and each address gets its own record.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


# ============================================================
# Address Family
# ============================================================

class AddressFamily(Enum):
    IPV4 = "ipv4"
    IPV6 = "ipv6"

    @property
    def flag(self) -> str:
        """traceroute command-line switch for this family."""
        return "-4" if self is AddressFamily.IPV4 else "-6"


# Token traceroute prints when a probe got no reply
NO_RESPONSE = "*"


# ============================================================
# Hop Record
# ============================================================

@dataclass(frozen=True)
class HopRecord:
    """One responding address (or no response) at one hop."""
    number: int                                 # 1-based TTL
    address: str                                # IP text, or NO_RESPONSE
    rtts: tuple[float, ...] = field(default_factory=tuple)  # ms, encounter order

    @property
    def ip(self) -> str:
        return self.address

    @property
    def is_timeout(self) -> bool:
        return self.address == NO_RESPONSE

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "ip": self.address,
            "rtts": list(self.rtts),
        }


# ============================================================
# Trace Options
# ============================================================

@dataclass
class TraceOptions:
    # Passed through to traceroute unchanged
    packet_len: int = 60
    max_ttl: int = 30
    wait_time: int = 5
    binary: str = "traceroute"

    # Diagnostics
    log_file: Optional[str] = None
    verbose: bool = False
    debug: bool = False
