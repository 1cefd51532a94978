"""
hoptrace — Diagnostic Framework

Every line, every parse, every exit — traceable.
Two levels:
  1. Trace summary (always available, CLI footer / TUI status bar)
  2. Raw capture (--debug/--log, every line with its classification)

Philosophy: if a line produced no hops, we need to know WHY.
  - Was it the banner?
  - Was it blank?
  - Did the lead token fail to parse as a hop number?
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
import json
import logging

from .models import AddressFamily, HopRecord
from .parsers import parse_line, is_banner


# ============================================================
# Structured Diagnostic Records
# ============================================================
# Not just log lines — structured objects that can be
# serialized to JSON or dumped to file.


class LineStatus(Enum):
    HOPS = "hops"                   # parsed, one or more records
    BANNER = "banner"               # tool header line
    EMPTY = "empty"                 # blank after trimming
    NO_MATCH = "no-match"           # no hop number / no address tokens


@dataclass
class LineRecord:
    """What happened to one output line."""
    line: str
    status: LineStatus = LineStatus.HOPS
    hop_count: int = 0
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "line": self.line,
            "status": self.status.value,
            "hop_count": self.hop_count,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class TraceDiagnostic:
    """Complete diagnostic record for one trace run."""
    target: str
    family: AddressFamily
    argv: list[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    lines: list[LineRecord] = field(default_factory=list)
    returncode: Optional[int] = None
    stderr: str = ""
    state: str = "created"

    @property
    def hop_records(self) -> int:
        return sum(r.hop_count for r in self.lines)

    @property
    def skipped_lines(self) -> list[LineRecord]:
        return [r for r in self.lines if r.status != LineStatus.HOPS]

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "family": self.family.value,
            "argv": self.argv,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "state": self.state,
            "returncode": self.returncode,
            "stderr": self.stderr,
            "summary": {
                "total_lines": len(self.lines),
                "hop_records": self.hop_records,
                "skipped_lines": len(self.skipped_lines),
            },
            "lines": [r.to_dict() for r in self.lines],
        }

    def dump_json(self, path: str):
        """Write full diagnostic to JSON file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)


# ============================================================
# Logger Setup
# ============================================================

def setup_logging(
    log_file: Optional[str] = None,
    debug: bool = False,
    verbose: bool = False,
) -> logging.Logger:
    """
    Configure the "hoptrace" logger tree. Silent unless asked:
    verbose puts per-hop info on stderr, debug puts everything there,
    and log_file gets everything regardless (the TUI uses only this).
    """
    logger = logging.getLogger("hoptrace")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if log_file:
        fh = logging.FileHandler(log_file, mode="w")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        logger.addHandler(fh)

    if debug or verbose:
        sh = logging.StreamHandler()
        sh.setLevel(logging.DEBUG if debug else logging.INFO)
        sh.setFormatter(formatter)
        logger.addHandler(sh)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


# ============================================================
# Diagnostic-Aware Parse Wrapper
# ============================================================

def classify_line(
    family: AddressFamily | str,
    line: str,
) -> tuple[list[HopRecord], LineRecord]:
    """
    Parse one trimmed line and record why it did or didn't yield hops.

    Returns:
        (records, line_record) — records is [] for non-data lines.
    """
    records = parse_line(family, line)
    record = LineRecord(line=line)

    if not line:
        record.status = LineStatus.EMPTY
    elif is_banner(line):
        record.status = LineStatus.BANNER
    elif not records:
        record.status = LineStatus.NO_MATCH
    else:
        record.hop_count = len(records)

    return records or [], record


# ============================================================
# Diagnostic Dump Formats
# ============================================================

def format_hop(hop: HopRecord) -> str:
    """One-line hop summary: ' 8  154.54.5.37  46.271 ms'."""
    rtts = "  ".join(f"{rtt:.3f} ms" for rtt in hop.rtts)
    return f"{hop.number:>2}  {hop.address:<39s} {rtts}".rstrip()


def dump_trace_summary(diag: TraceDiagnostic) -> str:
    """Footer for terminal output."""
    started = diag.started_at
    completed = diag.completed_at
    elapsed = (
        f"{(completed - started).total_seconds():.1f}s"
        if started and completed else "?"
    )
    lines = [
        f"{'─' * 50}",
        f"Status: {diag.state.upper()} | "
        f"{diag.hop_records} hop records | "
        f"{len(diag.lines)} lines ({len(diag.skipped_lines)} skipped) | "
        f"{elapsed}",
    ]
    if diag.stderr.strip():
        lines.append("")
        lines.append("stderr:")
        lines.extend(f"  {l}" for l in diag.stderr.strip().splitlines())
    return "\n".join(lines)
