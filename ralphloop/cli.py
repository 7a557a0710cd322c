"""
cli.py — command-line entry point
==================================
Usage:
    ralph                         # run the loop
    ralph --dry-run               # preview the next task's prompt only
    ralph --status                # show progress summary
    ralph --init --name "My App"  # scaffold PRD.md and progress.txt
    ralph --generate-prd "..."    # ask the agent to write PRD.md
    ralph --reset                 # clear .ralph/ state (keep task list)

Requirement flags add steps to every prompt:
    ralph --write-tests --run-tests --type-check --lint --update-docs --commit
"""

import argparse
import sys
from pathlib import Path

from .agent import AgentError, ClaudeAgent
from .loop import LoopController
from .models import (
    DEFAULT_SETTINGS,
    INACTIVITY_TIMEOUT_MS,
    REVIEW_COUNTDOWN_SECONDS,
    FilesConfig,
    PromptConfig,
    RalphConfig,
    RalphSettings,
    TaskRequirements,
    TaskStatus,
    TimingConfig,
)
from .prompts import build_prd_generation_prompt, build_task_prompt
from .scaffold import ask_project_name, scaffold
from .state import (
    BOLD,
    CYAN,
    DIM,
    GREEN,
    MAGENTA,
    RED,
    RESET,
    YELLOW,
    StatePaths,
    log_activity,
    read_optional,
    read_text,
    read_tasks,
    recent_progress,
    reset_state,
    save_prompt,
)
from .tasks import count_by_status, get_next_task

STATUS_ICONS = {
    TaskStatus.PENDING:     "○",
    TaskStatus.IN_PROGRESS: f"{CYAN}~{RESET}",
    TaskStatus.COMPLETE:    f"{GREEN}✓{RESET}",
    TaskStatus.BLOCKED:     f"{RED}!{RESET}",
}


# ══════════════════════════════════════════════════════════════════════════════
# 1. CONFIGURATION
# ══════════════════════════════════════════════════════════════════════════════

def build_config(args: argparse.Namespace) -> RalphConfig:
    template     = read_text(Path(args.template)) if args.template else ""
    prd_template = read_text(Path(args.prd_template)) if args.prd_template else ""
    return RalphConfig(
        files=FilesConfig(prd_path=args.prd, progress_path=args.progress),
        prompt=PromptConfig(
            custom_template=template,
            custom_prd_generation_template=prd_template,
        ),
    )


def build_requirements(args: argparse.Namespace) -> TaskRequirements:
    return TaskRequirements(
        run_tests=args.run_tests,
        run_linting=args.lint,
        run_type_check=args.type_check,
        write_tests=args.write_tests,
        update_docs=args.update_docs,
        commit_changes=args.commit,
    )


def build_timing(args: argparse.Namespace) -> TimingConfig:
    # Keep the 10s check interval when it divides the timeout, otherwise
    # check every second.
    timeout_ms = args.timeout * 1000
    interval   = 10_000 if timeout_ms % 10_000 == 0 else 1000
    return TimingConfig(
        review_countdown_seconds=args.countdown,
        inactivity_timeout_ms=timeout_ms,
        inactivity_check_interval_ms=interval,
    )


# ══════════════════════════════════════════════════════════════════════════════
# 2. COMMANDS
# ══════════════════════════════════════════════════════════════════════════════

def show_status(paths: StatePaths):
    tasks  = read_tasks(paths)
    counts = count_by_status(tasks)
    total  = len(tasks)
    done   = counts[TaskStatus.COMPLETE]
    pct    = int(done / total * 100) if total else 0
    bar    = "█" * int(pct / 5) + "░" * (20 - int(pct / 5))

    print(f"\n{BOLD}Ralph Loop — Status{RESET}")
    print(f"  {GREEN}{bar}{RESET}  {pct}% ({done}/{total} tasks)")
    print(
        f"  {DIM}pending {counts[TaskStatus.PENDING]}  "
        f"in progress {counts[TaskStatus.IN_PROGRESS]}  "
        f"blocked {counts[TaskStatus.BLOCKED]}{RESET}\n"
    )

    for t in tasks:
        desc = t.description[:55] + "…" if len(t.description) > 55 else t.description
        print(f"    {STATUS_ICONS[t.status]} {DIM}{t.line_number:>4}{RESET}  {desc}")

    nxt = get_next_task(tasks)
    if nxt:
        print(f"\n  {YELLOW}Next:{RESET} {nxt.description}")

    recent = recent_progress(paths)
    if recent:
        print(f"\n  {DIM}Recent activity:{RESET}")
        for line in recent:
            print(f"  {DIM}{line}{RESET}")
    print()


def dry_run(paths: StatePaths, config: RalphConfig, requirements: TaskRequirements, include_in_progress: bool):
    task = get_next_task(read_tasks(paths), include_in_progress)
    if task is None:
        print(f"{GREEN}{BOLD}✓ All tasks complete!{RESET}")
        return
    prompt = build_task_prompt(
        task,
        read_optional(paths.prd_file),
        read_optional(paths.progress_file),
        requirements,
        str(paths.root),
        1,
        config,
    )
    save_prompt(paths, prompt)
    print(f"{BOLD}[dry run]{RESET} Task {CYAN}{task.id}{RESET}: {task.description[:60]}")
    print(f"\n{YELLOW}── Prompt preview ──{RESET}")
    print(prompt[:1200] + ("\n[...truncated]" if len(prompt) > 1200 else ""))
    print(f"\n{DIM}~{len(prompt) // 4:,} tokens — full prompt in {paths.relative(paths.prompt_file)}{RESET}")


def generate_prd(paths: StatePaths, config: RalphConfig, agent: ClaudeAgent, request: str) -> int:
    prompt = build_prd_generation_prompt(request, str(paths.root), config)
    save_prompt(paths, prompt)
    print(f"\n{BOLD}{MAGENTA}── PRD Generation ──{RESET}")
    log_activity(paths, "PRD_GENERATION_START")

    def echo(line: str, is_err: bool):
        color = YELLOW if is_err else ""
        print(f"  {DIM}{color}{line}{RESET}")

    run = agent.dispatch(prompt, on_output=echo, on_exit=lambda code: None)
    try:
        code = run.wait()
    except KeyboardInterrupt:
        run.terminate()
        raise
    log_activity(paths, f"PRD_GENERATION exit={code}")

    if code != 0:
        print(f"{RED}✗ PRD generation failed (exit {code}){RESET}")
        return 1
    if not paths.prd_file.exists():
        print(f"{YELLOW}⚠  Agent finished but {paths.relative(paths.prd_file)} was not written{RESET}")
        return 1
    print(f"{GREEN}✓ {paths.relative(paths.prd_file)} written — review it, then run the loop{RESET}")
    return 0


def run_loop(args: argparse.Namespace, paths: StatePaths, config: RalphConfig, agent: ClaudeAgent) -> int:
    requirements = build_requirements(args)
    settings     = RalphSettings(max_iterations=args.max_iterations)
    timing       = build_timing(args)

    print(f"\n{BOLD}{CYAN}Ralph Loop{RESET}")
    print(f"  Tasks:      {paths.relative(paths.prd_file)}")
    print(f"  Progress:   {paths.relative(paths.progress_file)}")
    print(f"  Iterations: {settings.max_iterations or 'unlimited'}")
    print(f"  Review:     {timing.review_countdown_seconds}s  Timeout: {args.timeout}s")
    print()

    controller = LoopController(
        paths,
        agent,
        config=config,
        requirements=requirements,
        settings=settings,
        timing=timing,
        resume_in_progress=args.resume_in_progress,
        auto_mark=args.auto_mark,
    )
    result = controller.run()

    done = len(result.completions)
    color = GREEN if result.ok else RED
    print(f"{color}{BOLD}{result.message}{RESET} {DIM}({done} task(s) completed in {result.iterations} iteration(s)){RESET}")
    return 0 if result.ok else 1


# ══════════════════════════════════════════════════════════════════════════════
# 3. CLI
# ══════════════════════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ralph",
        description="Ralph Loop — implement one task, review, repeat",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ralph                          Run the loop
  ralph --dry-run                Preview the next prompt
  ralph --status                 Show task progress
  ralph --run-tests --commit     Add test + commit steps to every prompt
  ralph --max-iterations 0       No iteration limit
  ralph --init --name "My App"   Scaffold PRD.md and progress.txt
        """,
    )
    p.add_argument("--root", default=".", help="Workspace directory (default: current directory)")

    files = p.add_argument_group("files")
    files.add_argument("--prd",          default="PRD.md",       metavar="PATH", help="Task list / PRD file (default: PRD.md)")
    files.add_argument("--progress",     default="progress.txt", metavar="PATH", help="Progress log (default: progress.txt)")
    files.add_argument("--template",     metavar="FILE", help="Custom task prompt template")
    files.add_argument("--prd-template", metavar="FILE", help="Custom PRD generation prompt template")

    reqs = p.add_argument_group("requirements")
    reqs.add_argument("--write-tests", action="store_true", help="Ask the agent to write unit tests")
    reqs.add_argument("--run-tests",   action="store_true", help="Ask the agent to run the tests")
    reqs.add_argument("--type-check",  action="store_true", help="Ask the agent to run type checking")
    reqs.add_argument("--lint",        action="store_true", help="Ask the agent to run linting")
    reqs.add_argument("--update-docs", action="store_true", help="Ask the agent to update documentation")
    reqs.add_argument("--commit",      action="store_true", help="Ask the agent to commit its changes")

    loop = p.add_argument_group("loop")
    loop.add_argument("--max-iterations", type=int, default=DEFAULT_SETTINGS.max_iterations, metavar="N",
                      help=f"Stop after N iterations, 0 = unlimited (default: {DEFAULT_SETTINGS.max_iterations})")
    loop.add_argument("--countdown", type=int, default=REVIEW_COUNTDOWN_SECONDS, metavar="SECONDS",
                      help=f"Review pause after each task (default: {REVIEW_COUNTDOWN_SECONDS})")
    loop.add_argument("--timeout", type=int, default=INACTIVITY_TIMEOUT_MS // 1000, metavar="SECONDS",
                      help=f"Abort when the agent is silent this long (default: {INACTIVITY_TIMEOUT_MS // 1000})")
    loop.add_argument("--resume-in-progress", action="store_true", help="Also pick up [~] tasks")
    loop.add_argument("--auto-mark", action="store_true",
                      help="Mark the task done if the agent exits cleanly without flipping it")
    loop.add_argument("--agent-cmd", metavar="CMD", help="Agent command (default: claude -p --dangerously-skip-permissions)")

    modes = p.add_argument_group("modes")
    modes.add_argument("--dry-run",      action="store_true", help="Preview the next prompt without running the agent")
    modes.add_argument("--status",       action="store_true", help="Show progress summary and exit")
    modes.add_argument("--reset",        action="store_true", help="Clear .ralph/ state directory")
    modes.add_argument("--init",         action="store_true", help="Scaffold the task list and progress log")
    modes.add_argument("--name",         help="Project name for --init (prompted if omitted)")
    modes.add_argument("--force",        action="store_true", help="Overwrite existing files with --init")
    modes.add_argument("--generate-prd", metavar="TEXT", help="Ask the agent to write the PRD from a description")
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    root = Path(args.root).resolve()
    if not root.exists():
        print(f"{RED}Error: directory '{root}' does not exist.{RESET}")
        return 1

    try:
        config = build_config(args)
        paths  = StatePaths(root, config)
        agent  = ClaudeAgent(args.agent_cmd, cwd=root)

        if args.reset:
            if reset_state(paths):
                print(f"{GREEN}✓ .ralph/ state cleared{RESET}")
            else:
                print("Nothing to reset.")
            return 0

        if args.init:
            name = args.name or ask_project_name(root.name.replace("-", " ").replace("_", " ").title())
            if not name:
                print(f"{RED}Error: project name is required.{RESET}")
                return 1
            scaffold(root, name, config, args.force)
            return 0

        if args.status:
            show_status(paths)
            return 0

        if args.dry_run:
            dry_run(paths, config, build_requirements(args), args.resume_in_progress)
            return 0

        if args.generate_prd:
            return generate_prd(paths, config, agent, args.generate_prd)

        return run_loop(args, paths, config, agent)

    except (FileNotFoundError, AgentError, ValueError) as e:
        print(f"{RED}Error: {e}{RESET}")
        return 1
    except KeyboardInterrupt:
        print(f"\n{YELLOW}Interrupted.{RESET}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
