"""
hoptrace — traceroute Subprocess Line Source

Runs the tool, hands stdout back one line at a time, and reports how it
exited. Output is decoded as UTF-8 with undecodable bytes replaced, so one
bad byte costs a token, not the trace. stderr is collected on a helper
thread so a chatty stderr can't fill its pipe and stall stdout.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Iterator, Protocol
import logging
import subprocess
import threading

logger = logging.getLogger("hoptrace.process")


@dataclass
class ExitStatus:
    """Termination signal. Delivered once, after the last line."""
    returncode: int
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class LineSource(Protocol):
    """What the session needs from a running trace process."""

    def lines(self) -> Iterator[str]: ...

    def wait(self) -> ExitStatus: ...

    def terminate(self) -> None: ...


# Type alias for the process factory injected into a session
Spawner = Callable[[list[str]], LineSource]


class TraceProcess:
    """One traceroute child process."""

    def __init__(self, argv: list[str]):
        self.argv = list(argv)
        logger.debug(f"Spawning: {' '.join(self.argv)}")
        self._proc = subprocess.Popen(
            self.argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )
        self._stderr_chunks: list[str] = []
        self._stderr_thread = threading.Thread(
            target=self._drain_stderr, daemon=True,
        )
        self._stderr_thread.start()

    @property
    def pid(self) -> int:
        return self._proc.pid

    def _drain_stderr(self) -> None:
        for chunk in self._proc.stderr:
            self._stderr_chunks.append(chunk)

    def lines(self) -> Iterator[str]:
        """stdout lines in arrival order, newline included."""
        for line in self._proc.stdout:
            yield line

    def wait(self) -> ExitStatus:
        returncode = self._proc.wait()
        self._stderr_thread.join()
        self._proc.stdout.close()
        self._proc.stderr.close()
        return ExitStatus(returncode=returncode, stderr="".join(self._stderr_chunks))

    def terminate(self) -> None:
        if self._proc.poll() is None:
            logger.debug(f"Terminating pid {self._proc.pid}")
            self._proc.terminate()


def spawn(argv: list[str]) -> TraceProcess:
    """Default spawner. Raises OSError if the binary can't be started."""
    return TraceProcess(argv)
