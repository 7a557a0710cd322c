"""
tasks.py — task-list parsing
=============================
Parses a markdown checkbox list into Task records.

Matches lines like:
    - [ ] Add login form
    * [x] Initialize package
    - [~] Wire up the API client      (in progress)
    - [!] Deploy to staging           (blocked)

Line endings may be CRLF, LF, CR or any mixture of them; positions are
counted on the normalized line sequence so the same document parses
identically whatever editor last saved it.
"""

import re
from collections.abc import Iterable, Iterator

from .models import Task, TaskStatus

BOM = "\ufeff"

# Not str.splitlines(): that also breaks on \x0b, \x1c, \u2028 ... which
# are legitimate description content.
_LINE_BREAK = re.compile(r"\r\n|\r|\n")

TASK_PATTERN = re.compile(r"(?:[-*]\s*)?\[([ xX~!])\]\s+(.+)")
_CHECKBOX    = re.compile(r"^((?:[-*]\s*)?\[)[ xX~!](\])")

MARKER_STATUS = {
    " ": TaskStatus.PENDING,
    "x": TaskStatus.COMPLETE,
    "~": TaskStatus.IN_PROGRESS,
    "!": TaskStatus.BLOCKED,
}


def split_lines(content: str) -> list[str]:
    """Split on CRLF, CR and LF. No returned line contains a line break."""
    if content.startswith(BOM):
        content = content[len(BOM):]
    return _LINE_BREAK.split(content)


def parse_task_line(line: str, line_number: int) -> Task | None:
    """Return a Task for a single normalized line, or None if it is not a task line."""
    m = TASK_PATTERN.fullmatch(line)
    if not m:
        return None
    description = m.group(2).strip()
    if not description:
        return None
    return Task(
        id=f"task-{line_number}",
        description=description,
        status=MARKER_STATUS[m.group(1).lower()],
        line_number=line_number,
        raw_line=line,
    )


def iter_tasks(content: str) -> Iterator[Task]:
    """Yield tasks in document order. Unrecognized lines are skipped, never an error."""
    for line_number, line in enumerate(split_lines(content), start=1):
        task = parse_task_line(line, line_number)
        if task is not None:
            yield task


def parse_tasks(content: str) -> list[Task]:
    return list(iter_tasks(content))


def get_next_task(tasks: Iterable[Task], include_in_progress: bool = False) -> Task | None:
    """Return the first actionable task in document order, or None."""
    eligible = {TaskStatus.PENDING}
    if include_in_progress:
        eligible.add(TaskStatus.IN_PROGRESS)
    return next((t for t in tasks if t.status in eligible), None)


def find_task(tasks: Iterable[Task], description: str, line_number: int | None = None) -> Task | None:
    """
    Look a task up by description in a fresh parse (ids are only stable
    within one parse). A match on the same line wins over an earlier
    duplicate description.
    """
    matches = [t for t in tasks if t.description == description]
    same_line = next((t for t in matches if t.line_number == line_number), None)
    return same_line or next(iter(matches), None)


def count_by_status(tasks: Iterable[Task]) -> dict[TaskStatus, int]:
    counts = {status: 0 for status in TaskStatus}
    for t in tasks:
        counts[t.status] += 1
    return counts


def mark_task_complete(content: str, task: Task) -> str:
    """
    Flip the checkbox on the task's line to [x].

    Every other byte of the document is kept, including its line endings.
    If the line at task.line_number no longer holds this task (the file was
    edited since it was parsed) the content is returned unchanged.
    """
    prefix = ""
    if content.startswith(BOM):
        prefix, content = BOM, content[len(BOM):]

    # Odd indices hold the separators themselves.
    parts = re.split(r"(\r\n|\r|\n)", content)
    index = (task.line_number - 1) * 2
    if index >= len(parts) or parts[index] != task.raw_line:
        return prefix + content

    parts[index] = _CHECKBOX.sub(r"\1x\2", parts[index], count=1)
    return prefix + "".join(parts)
