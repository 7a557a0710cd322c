"""
loop.py — the loop controller
==============================
One iteration:

    read task list → pick next task → build prompt → dispatch to agent
      → (agent output = activity, watchdog running)
      → agent turn ends → review countdown
      → countdown done → re-read task list, record completion → next

Timer and agent callbacks run on their own threads. They never touch the
controller's state: they post events on a queue that run() consumes, so
every state change happens on the thread that called run().
"""

import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .agent import AgentRun
from .models import (
    DEFAULT_CONFIG,
    DEFAULT_REQUIREMENTS,
    DEFAULT_SETTINGS,
    DEFAULT_TIMING,
    LoopExecutionState,
    RalphConfig,
    RalphSettings,
    Task,
    TaskCompletion,
    TaskRequirements,
    TaskStatus,
    TimingConfig,
)
from .prompts import build_task_prompt
from .state import (
    BOLD,
    CYAN,
    DIM,
    GREEN,
    RED,
    RESET,
    YELLOW,
    StatePaths,
    append_progress,
    append_progress_failure,
    init_state_dir,
    log_activity,
    mark_task_done,
    read_optional,
    read_tasks,
    save_prompt,
)
from .tasks import find_task, get_next_task
from .timers import CountdownTimer, InactivityMonitor, format_duration


class LoopOutcome(str, Enum):
    COMPLETE       = "COMPLETE"        # no actionable task left
    MAX_ITERATIONS = "MAX_ITERATIONS"
    STALLED        = "STALLED"         # inactivity timeout
    AGENT_FAILED   = "AGENT_FAILED"
    STOPPED        = "STOPPED"         # manual stop


@dataclass
class LoopResult:
    outcome: LoopOutcome
    iterations: int
    completions: list[TaskCompletion] = field(default_factory=list)
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome in (LoopOutcome.COMPLETE, LoopOutcome.STOPPED)


class _Event(Enum):
    AGENT_EXIT     = "agent_exit"
    COUNTDOWN_DONE = "countdown_done"
    TIMEOUT        = "timeout"
    STOP           = "stop"


class LoopController:
    """
    Drives the implement / review / repeat loop for one workspace.

    `agent` is anything with dispatch(prompt, on_output, on_exit) → AgentRun
    (see agent.ClaudeAgent).
    """

    def __init__(
        self,
        paths: StatePaths,
        agent,
        config: RalphConfig = DEFAULT_CONFIG,
        requirements: TaskRequirements = DEFAULT_REQUIREMENTS,
        settings: RalphSettings = DEFAULT_SETTINGS,
        timing: TimingConfig = DEFAULT_TIMING,
        resume_in_progress: bool = False,
        auto_mark: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.paths              = paths
        self.agent              = agent
        self.config             = config
        self.requirements       = requirements
        self.settings           = settings
        self.timing             = timing
        self.resume_in_progress = resume_in_progress
        self.auto_mark          = auto_mark
        self._clock             = clock

        self._countdown = CountdownTimer(timing.tick_interval_seconds)
        self._monitor   = InactivityMonitor(
            timing.inactivity_timeout_ms, timing.inactivity_check_interval_ms, clock
        )
        self._lock        = threading.Lock()
        self._events: queue.Queue = queue.Queue()
        self._state       = LoopExecutionState.IDLE
        self._iteration   = 0
        self._completions: list[TaskCompletion] = []
        self._current_task: Task | None = None
        self._agent_run: AgentRun | None = None

    # ── Introspection ──────────────────────────────────────────────────────

    @property
    def state(self) -> LoopExecutionState:
        with self._lock:
            return self._state

    @property
    def iteration(self) -> int:
        return self._iteration

    @property
    def completions(self) -> list[TaskCompletion]:
        return list(self._completions)

    @property
    def current_task(self) -> Task | None:
        return self._current_task

    @property
    def countdown(self) -> CountdownTimer:
        return self._countdown

    @property
    def monitor(self) -> InactivityMonitor:
        return self._monitor

    # ── Control ────────────────────────────────────────────────────────────

    def record_activity(self):
        """Anything the agent visibly does counts as activity."""
        self._monitor.record_activity()

    def stop(self):
        """Stop from any thread. Timers halt and the state is IDLE on return."""
        with self._lock:
            if self._state is LoopExecutionState.IDLE:
                return
            self._state = LoopExecutionState.IDLE
        # STOP goes first so a 0-tick delivered by countdown.stop() is never
        # mistaken for a finished review.
        self._events.put((_Event.STOP, None, None))
        self._countdown.stop()
        self._monitor.stop()
        agent_run = self._agent_run
        if agent_run is not None:
            agent_run.terminate()
        log_activity(self.paths, "STOP requested")

    def run(self) -> LoopResult:
        """Run until no task is left, a limit is hit, or stop() is called."""
        with self._lock:
            if self._state is LoopExecutionState.RUNNING:
                raise RuntimeError("loop is already running")
            self._events = queue.Queue()
            self._state  = LoopExecutionState.RUNNING
        self._iteration   = 0
        self._completions = []

        init_state_dir(self.paths)
        log_activity(self.paths, "LOOP_START")
        try:
            result = self._loop()
        except KeyboardInterrupt:
            self.stop()
            result = self._result(LoopOutcome.STOPPED, "Interrupted")
        finally:
            self._halt()
        log_activity(self.paths, f"LOOP_END outcome={result.outcome.value} iterations={result.iterations}")
        return result

    # ── Internals ──────────────────────────────────────────────────────────

    def _result(self, outcome: LoopOutcome, message: str) -> LoopResult:
        return LoopResult(outcome, self._iteration, list(self._completions), message)

    def _stopping(self) -> bool:
        return self.state is LoopExecutionState.IDLE

    def _halt(self):
        self._countdown.stop()
        self._monitor.stop()
        agent_run, self._agent_run = self._agent_run, None
        if agent_run is not None:
            agent_run.terminate()
        self._current_task = None
        with self._lock:
            self._state = LoopExecutionState.IDLE

    def _post(self, kind: _Event, token: object, payload=None):
        self._events.put((kind, token, payload))

    def _loop(self) -> LoopResult:
        max_iter = self.settings.max_iterations
        while True:
            if self._stopping():
                return self._result(LoopOutcome.STOPPED, "Stopped")

            # Always re-read: the agent edits the task file between iterations.
            task = get_next_task(read_tasks(self.paths), self.resume_in_progress)
            if task is None:
                print(f"{GREEN}{BOLD}✓ All tasks complete!{RESET}")
                return self._result(LoopOutcome.COMPLETE, "All tasks complete")

            if max_iter and self._iteration >= max_iter:
                print(f"{RED}Max iterations ({max_iter}) reached. Loop stopped.{RESET}")
                log_activity(self.paths, f"STOPPED max_iterations={max_iter}")
                return self._result(LoopOutcome.MAX_ITERATIONS, f"Max iterations ({max_iter}) reached")

            self._iteration += 1
            result = self._run_iteration(task, self._iteration)
            if result is not None:
                return result

    def _run_iteration(self, task: Task, iteration: int) -> LoopResult | None:
        token   = object()
        started = self._clock()
        self._current_task = task

        prompt = build_task_prompt(
            task,
            read_optional(self.paths.prd_file),
            read_optional(self.paths.progress_file),
            self.requirements,
            str(self.paths.root),
            iteration,
            self.config,
        )
        save_prompt(self.paths, prompt)
        print(f"{BOLD}[{iteration}]{RESET} Task {CYAN}{task.id}{RESET}: {task.description[:60]}")
        log_activity(self.paths, f"START {task.id} iter={iteration} ~{len(prompt) // 4}tok")

        self._monitor.start(lambda: self._post(_Event.TIMEOUT, token))
        self._monitor.set_waiting(True)
        print(f"      {DIM}── agent output ───────────────────────{RESET}")
        self._agent_run = self.agent.dispatch(
            prompt,
            on_output=self._on_agent_output,
            on_exit=lambda code: self._post(_Event.AGENT_EXIT, token, code),
        )

        while True:
            kind, event_token, payload = self._events.get()
            if kind is _Event.STOP:
                return self._result(LoopOutcome.STOPPED, "Stopped")
            if event_token is not token:
                continue  # left over from an earlier iteration

            if kind is _Event.TIMEOUT:
                return self._stalled(task, iteration)

            if kind is _Event.AGENT_EXIT:
                print(f"      {DIM}── agent done ─────────────────────────{RESET}")
                self._monitor.set_waiting(False)
                if payload != 0:
                    return self._agent_failed(task, iteration, payload)
                # The review pause is not agent inactivity.
                self._monitor.pause()
                self._countdown.start(
                    self.timing.review_countdown_seconds,
                    lambda remaining: self._on_tick(token, remaining),
                )

            elif kind is _Event.COUNTDOWN_DONE:
                self._monitor.stop()
                self._agent_run = None
                self._advance(task, iteration, started)
                return None

    def _on_agent_output(self, line: str, is_err: bool):
        self._monitor.record_activity()
        color = YELLOW if is_err else ""
        print(f"  {DIM}{color}{line}{RESET}")

    def _on_tick(self, token: object, remaining: int):
        if remaining > 0:
            print(f"\r      {DIM}Review: next task in {remaining}s{RESET}  ", end="", flush=True)
            return
        print()
        self._post(_Event.COUNTDOWN_DONE, token)

    def _advance(self, task: Task, iteration: int, started: float):
        now = self._clock()
        current = find_task(read_tasks(self.paths), task.description, task.line_number)
        marked_by_loop = False

        if (
            self.auto_mark
            and current is not None
            and current.status is not TaskStatus.COMPLETE
            and mark_task_done(self.paths, current)
        ):
            marked_by_loop = True
            current = find_task(read_tasks(self.paths), task.description, task.line_number)

        if current is None or current.status is not TaskStatus.COMPLETE:
            print(f"      {YELLOW}⚠  {task.id} was not marked complete — it will be picked up again{RESET}\n")
            log_activity(self.paths, f"NOT_MARKED {task.id} iter={iteration}")
            return

        completion = TaskCompletion(
            task_description=task.description,
            completed_at=now * 1000,
            duration=max(0.0, (now - started) * 1000),
            iteration=iteration,
        )
        self._completions.append(completion)
        if marked_by_loop:
            # The agent skipped its bookkeeping; write the progress entry for it.
            append_progress(self.paths, completion)
        log_activity(self.paths, f"DONE {task.id} iter={iteration} {format_duration(completion.duration)}")
        print(f"      {GREEN}✓ {task.id} done in {format_duration(completion.duration)}{RESET}\n")

    def _stalled(self, task: Task, iteration: int) -> LoopResult:
        idle = format_duration(self.timing.inactivity_timeout_ms)
        print(f"\n      {RED}✗ No agent activity for {idle} — {task.id} aborted{RESET}")
        log_activity(self.paths, f"STALLED {task.id} iter={iteration} idle={idle}")
        append_progress_failure(self.paths, task.description, iteration, f"stalled: no agent activity for {idle}")
        return self._result(LoopOutcome.STALLED, f"Agent stalled on {task.id} (no activity for {idle})")

    def _agent_failed(self, task: Task, iteration: int, returncode: int) -> LoopResult:
        agent_run = self._agent_run
        err = agent_run.output[-600:].strip() if agent_run is not None else ""
        print(f"      {RED}✗ agent exited with code {returncode}{RESET}")
        if err:
            print(err)
        log_activity(self.paths, f"AGENT_ERROR {task.id} exit={returncode}")
        append_progress_failure(self.paths, task.description, iteration, f"agent exit code {returncode}")
        return self._result(LoopOutcome.AGENT_FAILED, f"Agent exited with code {returncode} on {task.id}")
