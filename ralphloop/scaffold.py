"""
scaffold.py — project scaffolder
=================================
Bootstraps a project with the files the loop consumes:

  - PRD.md        → product requirements + the task checklist
  - progress.txt  → append-only record of completed tasks
  - .gitignore    → ignores the loop's .ralph/ state directory

File names follow the configured paths, so `ralph --init --prd TODO.md`
scaffolds TODO.md instead of PRD.md.
"""

from pathlib import Path

from .models import DEFAULT_CONFIG, RalphConfig
from .state import BOLD, CYAN, DIM, GREEN, RESET

GITIGNORE_MARKER = "# Ralph Loop state"


def prd_md(project_name: str) -> str:
    return f"""# {project_name} — Product Requirements

> The Ralph loop reads this file to pick the next task.
> Task format, one per line, no indentation:
>
>     - [ ] pending task
>     - [~] task in progress
>     - [x] completed task
>     - [!] blocked task
>
> Each task must be completable in one agent session and verifiable.

## Overview

<What the product does and who it is for.>

## Constraints

- <Runtime and framework the agent must use>
- <Anything the agent must not touch>

## Tasks

- [ ] <Replace with your first task description>
- [ ] <Replace with your second task description>
"""


def progress_txt(project_name: str) -> str:
    return f"""# {project_name} — Progress Log

Append-only. The agent adds one entry per completed task.
"""


def gitignore_entries() -> str:
    return f"""
{GITIGNORE_MARKER} (do not commit these)
.ralph/
"""


def ask_project_name(default: str) -> str:
    """Ask for the project name; an empty answer keeps the default."""
    answer = input(f"Project name [{default}]: ").strip()
    return answer or default


def write_file(root: Path, relpath: str, content: str, force: bool = False) -> Path | None:
    """Write root/relpath unless it exists. Returns the path written, or None."""
    path = root / relpath
    if path.exists() and not force:
        print(f"  {DIM}exists{RESET} {relpath}  {DIM}(kept, --force replaces it){RESET}")
        return None
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    print(f"  {GREEN}wrote{RESET}  {relpath}")
    return path


def append_gitignore(root: Path, entries: str) -> bool:
    """Add the .ralph/ block to .gitignore once. Returns True if the file changed."""
    path     = root / ".gitignore"
    existing = path.read_text(encoding="utf-8") if path.exists() else ""
    if GITIGNORE_MARKER in existing:
        print(f"  {DIM}exists{RESET} .gitignore  {DIM}(already ignores .ralph/){RESET}")
        return False
    if existing and not existing.endswith("\n"):
        existing += "\n"
    text = existing + entries if existing else entries.lstrip("\n")
    path.write_text(text, encoding="utf-8")
    print(f"  {GREEN}wrote{RESET}  .gitignore")
    return True


def scaffold(
    root: Path,
    project_name: str,
    config: RalphConfig = DEFAULT_CONFIG,
    force: bool = False,
) -> list[Path]:
    """Create the loop's files under root. Returns the paths actually written."""
    print(f"\n{BOLD}Scaffolding {CYAN}{project_name}{RESET}{BOLD} in {root}{RESET}\n")

    files   = config.files
    written = [
        write_file(root, files.prd_path, prd_md(project_name), force),
        write_file(root, files.progress_path, progress_txt(project_name), force),
    ]
    created = [p for p in written if p is not None]
    if append_gitignore(root, gitignore_entries()):
        created.append(root / ".gitignore")

    print(f"\n{GREEN}{BOLD}✓ Ready.{RESET} Next:")
    print(f"  1. Replace the placeholder tasks in {CYAN}{files.prd_path}{RESET}")
    print(f"  2. {DIM}ralph --dry-run{RESET}   preview the first prompt")
    print(f"  3. {DIM}ralph --run-tests --commit{RESET}   start the loop\n")
    return created
