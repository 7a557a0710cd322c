from ralphloop.models import FilesConfig, RalphConfig
from ralphloop.scaffold import GITIGNORE_MARKER, append_gitignore, gitignore_entries, scaffold
from ralphloop.state import StatePaths, read_tasks


def test_scaffold_fresh_project(tmp_path):
    created = scaffold(tmp_path, "My App")

    assert created == [tmp_path / "PRD.md", tmp_path / "progress.txt", tmp_path / ".gitignore"]
    assert (tmp_path / "PRD.md").read_text(encoding="utf-8").startswith("# My App")
    assert ".ralph/" in (tmp_path / ".gitignore").read_text(encoding="utf-8")


def test_scaffolded_prd_parses(tmp_path):
    scaffold(tmp_path, "Demo")
    tasks = read_tasks(StatePaths(tmp_path))
    # Only the two placeholder tasks; the indented format legend is not a task.
    assert len(tasks) == 2
    assert tasks[0].description.startswith("<Replace with your first")


def test_existing_files_are_kept(tmp_path):
    (tmp_path / "PRD.md").write_text("mine\n", encoding="utf-8")
    created = scaffold(tmp_path, "Demo")
    assert tmp_path / "PRD.md" not in created
    assert (tmp_path / "PRD.md").read_text(encoding="utf-8") == "mine\n"

    scaffold(tmp_path, "Demo", force=True)
    assert (tmp_path / "PRD.md").read_text(encoding="utf-8") != "mine\n"


def test_custom_file_names(tmp_path):
    config = RalphConfig(files=FilesConfig(prd_path="TODO.md", progress_path="notes/progress.md"))
    scaffold(tmp_path, "Demo", config)
    assert (tmp_path / "TODO.md").exists()
    assert (tmp_path / "notes" / "progress.md").exists()


def test_gitignore_appended_once(tmp_path):
    (tmp_path / ".gitignore").write_text("node_modules/\n", encoding="utf-8")
    assert append_gitignore(tmp_path, gitignore_entries())
    assert not append_gitignore(tmp_path, gitignore_entries())

    text = (tmp_path / ".gitignore").read_text(encoding="utf-8")
    assert text.startswith("node_modules/\n")
    assert text.count(GITIGNORE_MARKER) == 1


def test_force_does_not_duplicate_gitignore_block(tmp_path):
    scaffold(tmp_path, "Demo")
    created = scaffold(tmp_path, "Demo", force=True)

    assert tmp_path / ".gitignore" not in created
    assert (tmp_path / ".gitignore").read_text(encoding="utf-8").count(".ralph/") == 1
