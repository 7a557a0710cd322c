"""
state.py — task file, progress log and activity log
====================================================
All filesystem access used by the loop lives here. The task list and the
progress log belong to the user (and the agent edits them); the .ralph/
directory holds the loop's own state.
"""

import shutil
import threading
from datetime import datetime
from pathlib import Path

from .models import DEFAULT_CONFIG, RalphConfig, Task, TaskCompletion
from .tasks import BOM, mark_task_complete, parse_tasks
from .timers import format_duration

# ── Colours (ANSI) ─────────────────────────────────────────────────────────
GREEN   = "\033[92m"
YELLOW  = "\033[93m"
RED     = "\033[91m"
CYAN    = "\033[96m"
MAGENTA = "\033[95m"
DIM     = "\033[2m"
RESET   = "\033[0m"
BOLD    = "\033[1m"

# Shared state files are written from the loop and from agent reader threads.
_STATE_LOCK = threading.Lock()


class StatePaths:
    """Resolves every file the loop reads or writes for one workspace."""

    def __init__(self, root: Path, config: RalphConfig = DEFAULT_CONFIG):
        self.root          = Path(root)
        self.prd_file      = self.root / config.files.prd_path
        self.progress_file = self.root / config.files.progress_path
        self.ralph_dir     = self.root / ".ralph"
        self.activity_log  = self.ralph_dir / "activity.log"
        self.prompt_file   = self.ralph_dir / "current_prompt.md"

    def relative(self, path: Path) -> Path:
        try:
            return path.relative_to(self.root)
        except ValueError:
            return path


# ══════════════════════════════════════════════════════════════════════════════
# 1. TASK FILE
# ══════════════════════════════════════════════════════════════════════════════

def read_text(path: Path) -> str:
    """Read UTF-8 text exactly as stored (no newline translation), minus any BOM."""
    with open(path, encoding="utf-8", newline="") as f:
        content = f.read()
    if content.startswith(BOM):
        content = content[len(BOM):]
    return content


def read_optional(path: Path) -> str:
    return read_text(path) if path.exists() else ""


def read_tasks(paths: StatePaths) -> list[Task]:
    if not paths.prd_file.exists():
        raise FileNotFoundError(f"Task file not found: {paths.prd_file}")
    return parse_tasks(read_text(paths.prd_file))


def mark_task_done(paths: StatePaths, task: Task) -> bool:
    """Flip the task's checkbox in the task file. Returns False if the line moved."""
    with _STATE_LOCK:
        with open(paths.prd_file, encoding="utf-8", newline="") as f:
            content = f.read()
        updated = mark_task_complete(content, task)
        if updated == content:
            return False
        with open(paths.prd_file, "w", encoding="utf-8", newline="") as f:
            f.write(updated)
    return True


# ══════════════════════════════════════════════════════════════════════════════
# 2. LOGS
# ══════════════════════════════════════════════════════════════════════════════

def init_state_dir(paths: StatePaths):
    paths.ralph_dir.mkdir(parents=True, exist_ok=True)
    if not paths.progress_file.exists():
        paths.progress_file.parent.mkdir(parents=True, exist_ok=True)
        paths.progress_file.write_text("# Progress Log\n\n", encoding="utf-8")


def reset_state(paths: StatePaths) -> bool:
    """Remove .ralph/ (the task list and progress log are kept)."""
    if not paths.ralph_dir.exists():
        return False
    shutil.rmtree(paths.ralph_dir)
    return True


def log_activity(paths: StatePaths, message: str):
    ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    with _STATE_LOCK:
        paths.ralph_dir.mkdir(parents=True, exist_ok=True)
        with open(paths.activity_log, "a", encoding="utf-8") as f:
            f.write(f"[{ts}] {message}\n")


def save_prompt(paths: StatePaths, prompt: str):
    with _STATE_LOCK:
        paths.ralph_dir.mkdir(parents=True, exist_ok=True)
        paths.prompt_file.write_text(prompt, encoding="utf-8")


def append_progress(paths: StatePaths, completion: TaskCompletion):
    ts = datetime.fromtimestamp(completion.completed_at / 1000).strftime("%Y-%m-%d %H:%M")
    entry = (
        f"\n✓ [{ts}] {completion.task_description} "
        f"(iteration {completion.iteration}, {format_duration(completion.duration)})\n"
    )
    _append(paths.progress_file, entry)


def append_progress_failure(paths: StatePaths, description: str, iteration: int, reason: str):
    ts = datetime.now().strftime("%Y-%m-%d %H:%M")
    _append(paths.progress_file, f"\n✗ [{ts}] {description} (iteration {iteration})\n   {reason}\n")


def recent_progress(paths: StatePaths, limit: int = 5) -> list[str]:
    lines = read_optional(paths.progress_file).strip().splitlines()
    return [l for l in lines if l.strip() and not l.startswith("#")][-limit:]


def _append(path: Path, text: str):
    with _STATE_LOCK:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(text)
