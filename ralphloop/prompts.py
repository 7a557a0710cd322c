"""
prompts.py — prompt sanitizer and builder
==========================================
Pure string transforms. Nothing here touches the filesystem; callers pass
in the PRD and progress contents they have read.
"""

import re
from collections.abc import Mapping

from .models import DEFAULT_CONFIG, RalphConfig, Task, TaskRequirements

MAX_TASK_DESCRIPTION_LENGTH = 5000
PROGRESS_TAIL_CHARS         = 2000

TEMPLATE_PLACEHOLDERS = ("task", "prd", "progress", "requirements", "workspace")

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_CODE_FENCE = re.compile(r"^```", re.MULTILINE)
_PLACEHOLDER = re.compile(r"\{\{(" + "|".join(TEMPLATE_PLACEHOLDERS) + r")\}\}")

# (flag, step text) in the order the steps appear in the prompt.
REQUIREMENT_STEPS = (
    ("write_tests",    "Write unit tests for your implementation"),
    ("run_tests",      "Run tests and ensure they pass"),
    ("run_type_check", "Run type checking (mypy, tsc --noEmit or equivalent)"),
    ("run_linting",    "Run linting and fix any issues"),
    ("update_docs",    "Update documentation if needed"),
    ("commit_changes", "Commit your changes with a descriptive message"),
)


# ══════════════════════════════════════════════════════════════════════════════
# 1. SANITIZING
# ══════════════════════════════════════════════════════════════════════════════

def sanitize_task_description(text) -> str:
    """
    Make task text safe to embed inside the prompt.

    The length cap is applied to the raw (trimmed) text, before control
    characters are removed, so a description can never grow past it.
    A line that opens a code fence is escaped so the task cannot close the
    fenced block it is embedded in.
    """
    if not isinstance(text, str) or not text:
        return ""
    cleaned = text.strip()[:MAX_TASK_DESCRIPTION_LENGTH]
    cleaned = _CONTROL_CHARS.sub("", cleaned)
    cleaned = _EXCESS_NEWLINES.sub("\n\n", cleaned)
    cleaned = _CODE_FENCE.sub(r"\\`\\`\\`", cleaned)
    return cleaned


# ══════════════════════════════════════════════════════════════════════════════
# 2. REQUIREMENT STEPS
# ══════════════════════════════════════════════════════════════════════════════

def build_requirements_steps(
    task_description: str,
    requirements: TaskRequirements,
    prd_name: str = "PRD.md",
    progress_name: str = "progress.txt",
) -> list[str]:
    """
    Build the numbered checklist the agent works through.

    Always: implement first, then the enabled requirement steps in a fixed
    order, then flip the checkbox and append to the progress log.
    """
    steps = ["Implement the task"]
    steps.extend(text for flag, text in REQUIREMENT_STEPS if getattr(requirements, flag))
    steps.append(
        f'UPDATE {prd_name}: Change "- [ ] {task_description}" to "- [x] {task_description}"'
    )
    steps.append(f"APPEND to {progress_name}: Record what you completed")
    return [f"{n}. ✅ {step}" for n, step in enumerate(steps, start=1)]


# ══════════════════════════════════════════════════════════════════════════════
# 3. TEMPLATES
# ══════════════════════════════════════════════════════════════════════════════

def apply_custom_template(template: str, variables: Mapping[str, str]) -> str:
    """
    Replace {{task}}, {{prd}}, {{progress}}, {{requirements}} and
    {{workspace}} everywhere they occur.

    Single pass, values inserted verbatim: a value that itself contains a
    placeholder or regex syntax is not expanded again.
    """
    return _PLACEHOLDER.sub(lambda m: variables.get(m.group(1), ""), template)


def build_task_prompt(
    task: Task,
    prd_content: str,
    progress_content: str,
    requirements: TaskRequirements,
    workspace: str,
    iteration: int,
    config: RalphConfig = DEFAULT_CONFIG,
) -> str:
    """Build the implementation prompt for one task iteration."""
    safe_desc = sanitize_task_description(task.description)
    steps     = build_requirements_steps(
        safe_desc,
        requirements,
        prd_name=config.files.prd_path,
        progress_name=config.files.progress_path,
    )
    progress = progress_content.strip()
    if len(progress) > PROGRESS_TAIL_CHARS:
        progress = progress[-PROGRESS_TAIL_CHARS:]

    variables = {
        "task":         safe_desc,
        "prd":          prd_content.strip(),
        "progress":     progress,
        "requirements": "\n".join(steps),
        "workspace":    workspace,
    }
    if config.prompt.custom_template:
        return apply_custom_template(config.prompt.custom_template, variables)

    return f"""# Ralph Loop — Iteration {iteration}

## Your Single Task

{variables["task"]}

Implement ONLY this task. Do not implement other tasks or refactor unrelated code.

## Workspace

`{workspace}`

## Product Requirements (`{config.files.prd_path}`)

{variables["prd"] or "(empty)"}

## Recent Progress (`{config.files.progress_path}`)

{variables["progress"] or "(no progress recorded yet)"}

## Steps

{variables["requirements"]}

## Rules

- Implement the minimum code needed to satisfy the task description
- No gold-plating, no extra features, no refactoring of unrelated code
- Do not change the checkbox of any other task in `{config.files.prd_path}`
"""


def build_prd_generation_prompt(
    request: str,
    workspace: str,
    config: RalphConfig = DEFAULT_CONFIG,
) -> str:
    """
    Build the prompt that asks the agent to write a task-list PRD from a
    free-form project description.
    """
    safe_request = sanitize_task_description(request)
    if config.prompt.custom_prd_generation_template:
        return apply_custom_template(
            config.prompt.custom_prd_generation_template,
            {"task": safe_request, "workspace": workspace},
        )

    prd_name = config.files.prd_path
    return f"""# Ralph Loop — PRD Generation

You are the planning agent for the project in `{workspace}`.

## What the user wants to build

{safe_request}

## Your Instructions

Write `{prd_name}` in the workspace root. It must contain:

1. A short overview of the product and its goals
2. The technical constraints you are assuming
3. A task list using EXACTLY this checkbox format, one task per line,
   with no indentation:

```markdown
- [ ] <specific, single-session, verifiable task>
- [ ] <specific, single-session, verifiable task>
```

Each task must be:
- Small enough to implement in one agent session
- Verifiable (tests, a build, or an observable behaviour)
- Ordered so that every task only depends on tasks above it

Do NOT implement any task. Only write `{prd_name}`.
"""
