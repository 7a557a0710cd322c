import pytest

from ralphloop.models import TaskStatus
from ralphloop.tasks import (
    count_by_status,
    find_task,
    get_next_task,
    iter_tasks,
    mark_task_complete,
    parse_tasks,
    split_lines,
)

# name → (LF document, expected task count, expected counts by status)
DOCUMENTS = {
    "simple": (
        "# Simple PRD\n\n## Overview\nA small app.\n\n## Tasks\n"
        "- [ ] Set up project\n- [ ] Add models\n- [ ] Add views\n- [ ] Add tests\n- [ ] Deploy\n",
        5,
        {TaskStatus.PENDING: 5},
    ),
    "mixed-status": (
        "# Tasks\n\n- [x] One\n- [x] Two\n- [x] Three\n- [~] Four\n- [ ] Five\n- [ ] Six\n- [ ] Seven\n",
        7,
        {TaskStatus.COMPLETE: 3, TaskStatus.IN_PROGRESS: 1, TaskStatus.PENDING: 3},
    ),
    "multi-section": (
        "# App\n\n## Backend\n\n- [x] API skeleton\n- [ ] Auth\n- [~] Database layer\n\n"
        "## Frontend\n\n- [x] Layout\n- [ ] Login page\n- [!] Payment page\n\n"
        "## Ops\n\n- [ ] CI\n- [ ] Monitoring\n- [ ] Backups\n",
        9,
        {TaskStatus.COMPLETE: 2, TaskStatus.PENDING: 5, TaskStatus.IN_PROGRESS: 1, TaskStatus.BLOCKED: 1},
    ),
    "asterisk-markers": (
        "# Tasks\n\n* [ ] One\n* [ ] Two\n* [x] Three\n* [ ] Four\n* [ ] Five\n",
        5,
        {TaskStatus.PENDING: 4, TaskStatus.COMPLETE: 1},
    ),
    "unicode-content": (
        "# Unicode\n\n- [ ] Add 🚀 launch button\n- [ ] 日本語のサポート\n- [ ] 中文界面\n"
        "- [ ] Ünïcödé everywhere\n- [ ] Emoji 🎉 in 🧪 tests\n",
        5,
        {TaskStatus.PENDING: 5},
    ),
    "windows-paths": (
        "# Paths\n\n- [ ] Read C:\\Users\\me\\config.ini\n- [ ] Install to C:\\Program Files\\App\n"
        "- [ ] Handle \\\\server\\share\n- [ ] Escape D:\\data\\*.csv\n- [ ] Log to %APPDATA%\\app\n",
        5,
        {TaskStatus.PENDING: 5},
    ),
    "no-trailing-newline": (
        "# Tasks\n\n- [ ] First\n- [ ] Last line without newline",
        2,
        {TaskStatus.PENDING: 2},
    ),
}


def to_crlf(text: str) -> str:
    return text.replace("\n", "\r\n")


def to_cr(text: str) -> str:
    return text.replace("\n", "\r")


def to_mixed(text: str) -> str:
    endings = ["\r\n", "\n", "\r"]
    lines = text.split("\n")
    return "".join(
        line + (endings[i % 3] if i < len(lines) - 1 else "") for i, line in enumerate(lines)
    )


CONVERTERS = {"crlf": to_crlf, "cr": to_cr, "mixed": to_mixed}


# ── Fixture documents ──────────────────────────────────────────────────────

@pytest.mark.parametrize("name", DOCUMENTS)
def test_document_counts(name):
    text, expected_total, expected_counts = DOCUMENTS[name]
    tasks = parse_tasks(text)
    assert len(tasks) == expected_total
    counts = count_by_status(tasks)
    for status, n in expected_counts.items():
        assert counts[status] == n


@pytest.mark.parametrize("ending", CONVERTERS)
@pytest.mark.parametrize("name", DOCUMENTS)
def test_line_endings_do_not_change_result(name, ending):
    text = DOCUMENTS[name][0]
    lf_tasks = parse_tasks(text)
    other = parse_tasks(CONVERTERS[ending](text))

    assert len(other) == len(lf_tasks)
    for a, b in zip(lf_tasks, other):
        assert [ord(c) for c in b.description] == [ord(c) for c in a.description]
        assert b.status == a.status
        assert b.line_number == a.line_number
        assert b.raw_line == a.raw_line
        assert "\r" not in b.description
        assert "\r" not in b.raw_line


def test_bom_is_stripped():
    text = "\ufeff# PRD\r\n- [ ] One\r\n- [x] Two\r\n- [ ] Three\r\n"
    tasks = parse_tasks(text)
    assert len(tasks) == 3
    assert all("\ufeff" not in t.description and "\ufeff" not in t.raw_line for t in tasks)


def test_bom_on_task_line():
    tasks = parse_tasks("\ufeff- [ ] First line task")
    assert len(tasks) == 1
    assert tasks[0].raw_line == "- [ ] First line task"


def test_asterisk_raw_line_kept():
    tasks = parse_tasks(DOCUMENTS["asterisk-markers"][0])
    assert all(t.raw_line.startswith("*") for t in tasks)


def test_all_statuses_in_order():
    tasks = parse_tasks("- [ ] a\n- [x] b\n- [X] c\n- [~] d\n- [!] e")
    assert [t.status for t in tasks] == [
        TaskStatus.PENDING,
        TaskStatus.COMPLETE,
        TaskStatus.COMPLETE,
        TaskStatus.IN_PROGRESS,
        TaskStatus.BLOCKED,
    ]


def test_very_long_description():
    long_desc = "A" * 1000
    tasks = parse_tasks(f"- [ ] {long_desc}\n- [ ] short")
    assert tasks[0].description == long_desc


# ── Edge cases ─────────────────────────────────────────────────────────────

@pytest.mark.parametrize("text", ["", "# Header\n\nplain text", "- This is not a task\n- Neither is this"])
def test_no_tasks(text):
    assert parse_tasks(text) == []


@pytest.mark.parametrize(
    "text",
    ["- [] no space", "- [ missing bracket", "  - [ ] indented", "\t- [ ] tab indented", "- [x]", "- [ ]    ", "- [?] unknown"],
)
def test_malformed_lines_are_ignored(text):
    assert parse_tasks(text) == []


def test_single_task():
    tasks = parse_tasks("- [ ] Single task")
    assert len(tasks) == 1
    task = tasks[0]
    assert task.description == "Single task"
    assert task.status is TaskStatus.PENDING
    assert task.line_number == 1
    assert task.raw_line == "- [ ] Single task"


def test_bullet_is_optional():
    tasks = parse_tasks("[ ] bare checkbox\n-[x] no gap")
    assert [t.description for t in tasks] == ["bare checkbox", "no gap"]


def test_description_whitespace_trimmed():
    tasks = parse_tasks("- [ ]     Multiple spaces before text   ")
    assert tasks[0].description == "Multiple spaces before text"
    assert tasks[0].raw_line == "- [ ]     Multiple spaces before text   "


@pytest.mark.parametrize(
    "desc",
    [
        "Task: this has a colon",
        "Task with special: @#$%^&*()",
        "Add [link](https://example.com) to page",
        "Fix bug in `function_name()` method",
        "Task with nested - [ ] checkbox",
        "日本語タスク（Japanese task）",
    ],
)
def test_description_preserved_verbatim(desc):
    tasks = parse_tasks(f"- [ ] {desc}")
    assert len(tasks) == 1
    assert tasks[0].description == desc


def test_line_numbers_follow_normalized_lines():
    text = "# Header\r\n\r\nSome text\r- [ ] Task 1\n\n\n\n- [x] Task 2"
    tasks = parse_tasks(text)
    assert [t.line_number for t in tasks] == [4, 8]
    assert [t.id for t in tasks] == ["task-4", "task-8"]


def test_ids_unique():
    tasks = parse_tasks("- [ ] Task 1\n- [ ] Task 2\n- [ ] Task 3")
    assert len({t.id for t in tasks}) == 3


def test_split_lines_keeps_other_separators():
    # \x0b and \u2028 are content, not line breaks
    assert split_lines("a\x0bb\u2028c\r\nd") == ["a\x0bb\u2028c", "d"]


def test_iter_tasks_is_single_pass():
    gen = iter_tasks("- [ ] a\n- [ ] b")
    assert len(list(gen)) == 2
    assert list(gen) == []


# ── Selection and updates ──────────────────────────────────────────────────

def test_get_next_task_skips_non_pending():
    tasks = parse_tasks("- [x] done\n- [~] wip\n- [!] blocked\n- [ ] next\n- [ ] later")
    assert get_next_task(tasks).description == "next"
    assert get_next_task(tasks, include_in_progress=True).description == "wip"
    assert get_next_task(parse_tasks("- [x] done")) is None


def test_find_task_prefers_same_line():
    tasks = parse_tasks("- [ ] dup\n- [x] dup\n- [ ] other")
    assert find_task(tasks, "dup", line_number=2).line_number == 2
    assert find_task(tasks, "dup").line_number == 1
    assert find_task(tasks, "missing") is None


def test_mark_task_complete_preserves_line_endings():
    text = "\ufeff# PRD\r\n- [ ] One\r\n* [ ] Two\rtrailer\n"
    task = parse_tasks(text)[1]
    updated = mark_task_complete(text, task)
    assert updated == "\ufeff# PRD\r\n- [ ] One\r\n* [x] Two\rtrailer\n"


def test_mark_task_complete_ignores_moved_line():
    text = "- [ ] One\n- [ ] Two\n"
    task = parse_tasks(text)[1]
    edited = "- [ ] Inserted\n" + text
    assert mark_task_complete(edited, task) == edited
