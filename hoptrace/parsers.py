"""
hoptrace — traceroute Line Parser

Raw `traceroute -n` output line → list of HopRecords.

    traceroute to 193.2.1.87 (193.2.1.87), 30 hops max, 60 byte packets
     1  192.168.1.1  0.496 ms  0.925 ms  1.138 ms
     8  154.54.2.165  46.276 ms 154.54.5.37  46.271 ms 154.54.5.57  45.894 ms
    21  * 88.200.7.249  210.282 ms  207.316 ms

Line 8 is one TTL answered by three routers: every address token opens a
new record and the RTTs after it belong to that record until the next
address shows up. Order is significant, consumers rebuild the fan-out
from it.

Parsing is lenient:
  - Never raises on odd input — unknown tokens are dropped
  - Banner / blank / non-numeric lead token → None ("not a data line")
  - The only raise is an invalid family, which is a caller bug
"""

from __future__ import annotations
import logging
import math
import re
from typing import Optional

from .models import AddressFamily, HopRecord, NO_RESPONSE

logger = logging.getLogger("hoptrace.parsers")


# Header printed before the first hop
BANNERS = ("traceroute to", "traceroute6 to")

# ICMP annotations (!H, !N, !P, !X, ...) — informational only
_ANNOTATION_RE = re.compile(r"[!XHNP]")

# Unit and mid-line no-response tokens
_NOISE_TOKENS = frozenset(("ms", NO_RESPONSE))


# ============================================================
# Token classification
# ============================================================

def coerce_family(family: AddressFamily | str) -> AddressFamily:
    """Accept the enum or its string value. Anything else is a bug upstream."""
    if isinstance(family, AddressFamily):
        return family
    try:
        return AddressFamily(family)
    except ValueError:
        raise ValueError(f"Invalid family: {family}") from None


def is_banner(line: str) -> bool:
    return any(banner in line for banner in BANNERS)


def strip_annotations(line: str) -> str:
    return _ANNOTATION_RE.sub("", line)


def is_address_token(token: str, family: AddressFamily | str) -> bool:
    """
    Structural match only. With -n the tool never prints hostnames, so a
    dotted quad or anything containing a colon is an address.
    """
    family = coerce_family(family)
    if family is AddressFamily.IPV4:
        return len(token.split(".")) == 4
    return ":" in token


def _safe_float(token: str) -> Optional[float]:
    """RTT value, or None for anything that is not a finite non-negative number."""
    try:
        value = float(token)
    except ValueError:
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return value


# ============================================================
# Line parser
# ============================================================

def parse_line(family: AddressFamily | str, line: str) -> Optional[list[HopRecord]]:
    """
    Parse one trimmed output line.

    Returns None for lines without hop data, otherwise the records in
    left-to-right order (possibly empty). All records share the line's
    hop number.
    """
    family = coerce_family(family)

    if not line or is_banner(line):
        return None

    tokens = strip_annotations(line).split()
    if not tokens:
        return None

    try:
        hop_number = int(tokens[0])
    except ValueError:
        logger.debug(f"No hop number, skipping: {line!r}")
        return None

    records: list[HopRecord] = []
    address: Optional[str] = None
    rtts: list[float] = []

    for position, token in enumerate(tokens[1:]):
        opens_record = (
            (token == NO_RESPONSE and position == 0)
            or is_address_token(token, family)
        )

        if opens_record:
            if address is not None:
                records.append(HopRecord(hop_number, address, tuple(rtts)))
            address = token
            rtts = []
            continue

        if token in _NOISE_TOKENS:
            continue

        value = _safe_float(token)
        if value is None:
            logger.debug(f"hop {hop_number}: dropped token {token!r}")
            continue
        if address is None:
            logger.debug(f"hop {hop_number}: RTT {token} before any address")
            continue
        rtts.append(value)

    if address is not None:
        records.append(HopRecord(hop_number, address, tuple(rtts)))

    return records
