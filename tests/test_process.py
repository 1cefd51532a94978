"""Tests for the subprocess line source, using the interpreter as the child."""

import sys

import pytest

from hoptrace.events import TraceState, HOP, END
from hoptrace.models import TraceOptions
from hoptrace.process import TraceProcess, spawn
from hoptrace.session import Traceroute


def _python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def test_lines_then_exit_status():
    proc = spawn(_python("print('a'); print('b')"))
    assert [line.strip() for line in proc.lines()] == ["a", "b"]
    status = proc.wait()
    assert status.ok
    assert status.stderr == ""


def test_failure_collects_stderr():
    code = "import sys; sys.stderr.write('x: Name or service not known\\n'); sys.exit(2)"
    proc = TraceProcess(_python(code))
    assert list(proc.lines()) == []
    status = proc.wait()
    assert status.returncode == 2
    assert not status.ok
    assert "Name or service not known" in status.stderr


def test_missing_binary_raises():
    with pytest.raises(OSError):
        spawn(["/nonexistent/traceroute-binary"])


def test_session_with_real_child(tmp_path):
    # Stand-in binary: ignores its arguments and replays a fixed trace
    script = tmp_path / "fake_traceroute.py"
    script.write_text(
        "print('traceroute to 10.0.0.9 (10.0.0.9), 30 hops max, 60 byte packets')\n"
        "print(' 1  10.0.0.1  0.512 ms  0.498 ms  0.530 ms')\n"
        "print(' 2  10.0.0.9  1.020 ms * 10.0.0.8  1.110 ms')\n"
    )

    class ScriptSpawner:
        def __call__(self, argv):
            self.argv = argv
            return spawn([sys.executable, str(script), *argv[1:]])

    spawner = ScriptSpawner()
    tr = Traceroute("10.0.0.9", TraceOptions(max_ttl=5), spawner=spawner)
    hops = []
    tr.on(HOP, lambda evt: hops.append(evt.hop))

    assert tr.wait(timeout=10.0) is TraceState.COMPLETED
    assert spawner.argv[1:4] == ["-4", "-n", "-m"]
    assert [(h.number, h.ip, h.rtts) for h in hops] == [
        (1, "10.0.0.1", (0.512, 0.498, 0.530)),
        (2, "10.0.0.9", (1.020,)),
        (2, "10.0.0.8", (1.110,)),
    ]


def test_undecodable_bytes_do_not_fail_the_trace(tmp_path):
    payload = (
        b" 1  10.0.0.1  0.512 ms\n"
        b" 2  10.0.0.2  0.733 ms \xff\xfe\n"
        b" 3  10.0.0.9  1.020 ms\n"
    )
    script = tmp_path / "garbled_traceroute.py"
    script.write_text(f"import sys\nsys.stdout.buffer.write({payload!r})\n")

    tr = Traceroute("10.0.0.9",
                    spawner=lambda argv: spawn([sys.executable, str(script)]))
    events = list(tr.events(timeout=10.0))

    assert events[-1].event == END
    assert [(e.hop.number, e.hop.ip, e.hop.rtts) for e in events if e.event == HOP] == [
        (1, "10.0.0.1", (0.512,)),
        (2, "10.0.0.2", (0.733,)),
        (3, "10.0.0.9", (1.020,)),
    ]
