"""
ralphloop — implement one task, review, repeat.

Drives an external coding agent through a markdown task list: parse the
list, build a prompt for the next task, dispatch it, pause for review,
and watch for a stalled agent.
"""

from .loop import LoopController, LoopOutcome, LoopResult
from .models import (
    INACTIVITY_CHECK_INTERVAL_MS,
    INACTIVITY_TIMEOUT_MS,
    REVIEW_COUNTDOWN_SECONDS,
    LoopExecutionState,
    RalphConfig,
    RalphSettings,
    Task,
    TaskCompletion,
    TaskRequirements,
    TaskStatus,
    TimingConfig,
)
from .prompts import apply_custom_template, build_requirements_steps, sanitize_task_description
from .tasks import iter_tasks, parse_tasks
from .timers import CountdownTimer, InactivityMonitor, format_duration

__version__ = "0.1.0"
