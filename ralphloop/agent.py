"""
agent.py — external agent runner
=================================
Runs the agent CLI with the prompt piped via stdin and streams its
output line by line. Every line is handed to the caller, which counts it
as agent activity.
"""

import shlex
import subprocess
import threading
from collections.abc import Callable
from pathlib import Path

DEFAULT_AGENT_COMMAND = ["claude", "-p", "--dangerously-skip-permissions"]


class AgentError(RuntimeError):
    """The agent process could not be started."""


class AgentRun:
    """Handle on one running agent process."""

    def __init__(
        self,
        proc: subprocess.Popen,
        on_output: Callable[[str, bool], None],
        on_exit: Callable[[int], None],
    ):
        self._proc      = proc
        self._on_output = on_output
        self._on_exit   = on_exit
        self._collected: list[str] = []
        self._lock      = threading.Lock()
        self._readers   = [
            threading.Thread(target=self._stream, args=(proc.stdout, False), daemon=True),
            threading.Thread(target=self._stream, args=(proc.stderr, True), daemon=True),
        ]
        self._waiter = threading.Thread(target=self._wait, name="ralph-agent", daemon=True)

    def _start(self):
        for t in self._readers:
            t.start()
        self._waiter.start()

    def _stream(self, pipe, is_err: bool):
        for line in iter(pipe.readline, ""):
            with self._lock:
                self._collected.append(line)
            self._on_output(line.rstrip("\r\n"), is_err)
        pipe.close()

    def _wait(self):
        self._proc.wait()
        for t in self._readers:
            t.join()
        self._on_exit(self._proc.returncode)

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    @property
    def output(self) -> str:
        with self._lock:
            return "".join(self._collected)

    def wait(self, timeout: float | None = None) -> int | None:
        self._waiter.join(timeout)
        return self._proc.returncode

    def terminate(self, grace: float = 5.0):
        """Terminate the process, killing it if it ignores SIGTERM."""
        if self._proc.poll() is not None:
            return
        self._proc.terminate()
        try:
            self._proc.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            self._proc.kill()
            self._proc.wait()


class ClaudeAgent:
    """Launches the agent CLI (claude by default) in the workspace."""

    def __init__(self, command: list[str] | str | None = None, cwd: Path | None = None):
        if isinstance(command, str):
            command = shlex.split(command)
        self.command = list(command or DEFAULT_AGENT_COMMAND)
        self.cwd     = cwd

    def dispatch(
        self,
        prompt: str,
        on_output: Callable[[str, bool], None],
        on_exit: Callable[[int], None],
    ) -> AgentRun:
        try:
            proc = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                cwd=self.cwd,
            )
        except OSError as e:
            raise AgentError(f"Could not start agent {self.command[0]!r}: {e}") from e

        run = AgentRun(proc, on_output, on_exit)
        run._start()
        try:
            proc.stdin.write(prompt)
            proc.stdin.close()
        except BrokenPipeError:
            # The agent exited before reading its prompt; on_exit reports it.
            pass
        return run
