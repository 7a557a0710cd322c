import threading
import time
from pathlib import Path

import pytest

from ralphloop.models import TimingConfig
from ralphloop.state import StatePaths

FAST_TIMING = TimingConfig(
    review_countdown_seconds=1,
    inactivity_timeout_ms=300,
    inactivity_check_interval_ms=50,
    tick_interval_seconds=0.01,
)


def wait_until(predicate, timeout: float = 3.0, interval: float = 0.005) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class FakeClock:
    """Wall clock in seconds that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeRun:
    def __init__(self):
        self.terminated = threading.Event()
        self.returncode = None
        self.output     = ""
        self.finished   = threading.Event()

    def terminate(self):
        self.terminated.set()

    def wait(self, timeout=None):
        self.finished.wait(timeout)
        return self.returncode


class FakeAgent:
    """
    Stands in for ClaudeAgent. `behaviour(prompt, on_output, run)` runs on a
    thread; returning an int reports that exit code, returning None means
    the agent never exits on its own.
    """

    def __init__(self, behaviour):
        self.behaviour = behaviour
        self.prompts: list[str] = []
        self.runs: list[FakeRun] = []

    def dispatch(self, prompt, on_output, on_exit):
        self.prompts.append(prompt)
        run = FakeRun()
        self.runs.append(run)

        def work():
            code = self.behaviour(prompt, on_output, run)
            if code is not None:
                run.returncode = code
                run.finished.set()
                on_exit(code)

        threading.Thread(target=work, daemon=True).start()
        return run


def complete_first_pending(paths: StatePaths):
    """What a well-behaved agent does: flip the first [ ] to [x]."""
    def behaviour(prompt, on_output, run):
        on_output("working...", False)
        content = paths.prd_file.read_text(encoding="utf-8")
        paths.prd_file.write_text(content.replace("- [ ]", "- [x]", 1), encoding="utf-8")
        on_output("done", False)
        return 0
    return behaviour


@pytest.fixture
def workspace(tmp_path: Path) -> StatePaths:
    paths = StatePaths(tmp_path)
    paths.prd_file.write_text(
        "# Demo PRD\n\n## Tasks\n\n- [ ] First task\n- [ ] Second task\n- [x] Already done\n",
        encoding="utf-8",
    )
    return paths
