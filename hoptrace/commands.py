"""
hoptrace — Target Classification and Command Construction

The parser assumes addresses, never hostnames, appear in the output, so
the command always asks for -n. Family is decided once from the target
and fixed for the whole trace.
"""

from __future__ import annotations
from ipaddress import ip_address, IPv4Address
from typing import Optional

from .models import AddressFamily, TraceOptions


def detect_family(target: str) -> Optional[AddressFamily]:
    """IPv4 / IPv6 for a literal address, None for anything else (hostnames included)."""
    # ip_address() also takes ints and bytes; the target goes on an argv
    if not isinstance(target, str):
        return None
    try:
        addr = ip_address(target)
    except ValueError:
        return None
    return AddressFamily.IPV4 if isinstance(addr, IPv4Address) else AddressFamily.IPV6


def build_command(
    target: str,
    family: AddressFamily,
    options: Optional[TraceOptions] = None,
) -> list[str]:
    """
    traceroute -4|-6 -n -m <max_ttl> -w <wait_time> <target> <packet_len>

    Option values are passed through as given.
    """
    options = options or TraceOptions()
    return [
        options.binary,
        family.flag,
        "-n",
        "-m", str(options.max_ttl),
        "-w", str(options.wait_time),
        target,
        str(options.packet_len),
    ]
