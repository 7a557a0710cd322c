"""
models.py — records, configuration values and timing constants
================================================================
Everything here is immutable. Task records are created fresh on every
parse of the task list; configuration is built once per run.
"""

from dataclasses import dataclass, field
from enum import Enum


# ── Timing ─────────────────────────────────────────────────────────────────
REVIEW_COUNTDOWN_SECONDS     = 12
INACTIVITY_TIMEOUT_MS        = 60_000
INACTIVITY_CHECK_INTERVAL_MS = 10_000  # must divide INACTIVITY_TIMEOUT_MS


class TaskStatus(str, Enum):
    PENDING     = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETE    = "COMPLETE"
    BLOCKED     = "BLOCKED"


class LoopExecutionState(str, Enum):
    IDLE    = "IDLE"
    RUNNING = "RUNNING"


@dataclass(frozen=True)
class Task:
    id: str
    description: str
    status: TaskStatus
    line_number: int
    raw_line: str


@dataclass(frozen=True)
class TaskCompletion:
    task_description: str
    completed_at: float  # wall clock, milliseconds
    duration: float      # milliseconds
    iteration: int


@dataclass(frozen=True)
class FilesConfig:
    prd_path: str = "PRD.md"
    progress_path: str = "progress.txt"


@dataclass(frozen=True)
class PromptConfig:
    # Empty string means "use the built-in template".
    custom_template: str = ""
    custom_prd_generation_template: str = ""


@dataclass(frozen=True)
class RalphConfig:
    files: FilesConfig = field(default_factory=FilesConfig)
    prompt: PromptConfig = field(default_factory=PromptConfig)


@dataclass(frozen=True)
class TaskRequirements:
    run_tests: bool = False
    run_linting: bool = False
    run_type_check: bool = False
    write_tests: bool = False
    update_docs: bool = False
    commit_changes: bool = False


@dataclass(frozen=True)
class RalphSettings:
    max_iterations: int = 50  # 0 = unlimited

    def __post_init__(self):
        if self.max_iterations < 0:
            raise ValueError(f"max_iterations must be >= 0, got {self.max_iterations}")


@dataclass(frozen=True)
class TimingConfig:
    """
    Timing for one loop run. Tests pass compressed values; the CLI uses
    the defaults.
    """
    review_countdown_seconds: int = REVIEW_COUNTDOWN_SECONDS
    inactivity_timeout_ms: int = INACTIVITY_TIMEOUT_MS
    inactivity_check_interval_ms: int = INACTIVITY_CHECK_INTERVAL_MS
    tick_interval_seconds: float = 1.0

    def __post_init__(self):
        if self.review_countdown_seconds < 0:
            raise ValueError("review_countdown_seconds must be >= 0")
        if self.inactivity_timeout_ms <= 0 or self.inactivity_check_interval_ms <= 0:
            raise ValueError("inactivity timeout and check interval must be positive")
        if self.inactivity_timeout_ms % self.inactivity_check_interval_ms:
            raise ValueError(
                f"check interval {self.inactivity_check_interval_ms}ms does not divide "
                f"timeout {self.inactivity_timeout_ms}ms"
            )
        if self.tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be positive")


DEFAULT_CONFIG       = RalphConfig()
DEFAULT_REQUIREMENTS = TaskRequirements()
DEFAULT_SETTINGS     = RalphSettings()
DEFAULT_TIMING       = TimingConfig()
