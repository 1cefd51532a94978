"""Shared fixtures: replay captured traceroute output instead of spawning."""

from pathlib import Path
from typing import Optional

import pytest

from hoptrace.process import ExitStatus

FIXTURES = Path(__file__).parent / "fixtures"


class FixtureProcess:
    """Stands in for TraceProcess: fixture text on stdout or stderr."""

    def __init__(self, text: str, returncode: int = 0):
        self._text = text
        self.returncode = returncode
        self.terminated = False

    def lines(self):
        if self.returncode != 0:
            return
        for line in self._text.splitlines(keepends=True):
            yield line

    def wait(self) -> ExitStatus:
        stderr = self._text if self.returncode != 0 else ""
        return ExitStatus(returncode=self.returncode, stderr=stderr)

    def terminate(self) -> None:
        self.terminated = True


class RecordingSpawner:
    """Spawner that remembers the argv it was called with."""

    def __init__(self, text: str, returncode: int = 0):
        self.text = text
        self.returncode = returncode
        self.calls: list[list[str]] = []
        self.process: Optional[FixtureProcess] = None

    def __call__(self, argv: list[str]) -> FixtureProcess:
        self.calls.append(list(argv))
        self.process = FixtureProcess(self.text, self.returncode)
        return self.process


def load_fixture(name: str) -> str:
    return (FIXTURES / name).read_text()


@pytest.fixture
def fixture_spawner():
    def _make(name: str, returncode: int = 0) -> RecordingSpawner:
        return RecordingSpawner(load_fixture(name), returncode)
    return _make
