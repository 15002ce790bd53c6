import os
from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from chunk_repo import file_manipulation
from chunk_repo.exceptions import IgnoreFileError
from chunk_repo.file_manipulation import PathFilter, collect_entries, load_entry, walk_files
from chunk_repo.patterns import compile_patterns
from chunk_repo.priority import PriorityEngine
from chunk_repo.settings import PriorityRule, RunConfig, Settings


def write(path: Path, text: str = "x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def walked(repo: Path, patterns: list[str] | None = None) -> list[str]:
    compiled, _ = compile_patterns(patterns or [])
    return sorted(rel for _, rel in walk_files(repo, PathFilter(repo, compiled)))


@pytest.mark.unit
def test_walk_skips_git_directory(tmp_path: Path) -> None:
    write(tmp_path / ".git" / "config")
    write(tmp_path / "sub" / ".git" / "HEAD")
    write(tmp_path / "main.py")

    assert walked(tmp_path) == ["main.py"]


@pytest.mark.unit
def test_walk_honors_gitignore_files_and_directories(tmp_path: Path) -> None:
    write(tmp_path / ".gitignore", "*.log\nbuild/\n")
    write(tmp_path / "app.log")
    write(tmp_path / "build" / "out.txt")
    write(tmp_path / "src" / "build.py")
    write(tmp_path / "src" / "nested" / "trace.log")

    assert walked(tmp_path) == [".gitignore", "src/build.py"]


@pytest.mark.unit
def test_walk_applies_ignore_patterns_at_any_depth(tmp_path: Path) -> None:
    write(tmp_path / "node_modules" / "pkg" / "index.js")
    write(tmp_path / "web" / "node_modules" / "lib.js")
    write(tmp_path / "web" / "app.js")
    write(tmp_path / "notes.tmp")

    assert walked(tmp_path, ["node_modules", r"\.tmp$"]) == ["web/app.js"]


@pytest.mark.unit
def test_walk_does_not_follow_symlinks(tmp_path: Path) -> None:
    target = write(tmp_path / "outside" / "secret.txt")
    repo = tmp_path / "repo"
    write(repo / "real.txt")
    os.symlink(target, repo / "link.txt")
    os.symlink(target.parent, repo / "linked_dir")

    assert walked(repo) == ["real.txt"]


@pytest.mark.unit
def test_excluded_dirs_are_pruned(tmp_path: Path) -> None:
    write(tmp_path / "chunk-output" / "chunk-0.txt")
    write(tmp_path / "main.py")

    rels = [rel for _, rel in walk_files(tmp_path, PathFilter(tmp_path, excluded_dirs=["chunk-output"]))]

    assert rels == ["main.py"]


@pytest.mark.unit
def test_filter_construction_fails_before_walking_on_bad_gitignore(tmp_path: Path) -> None:
    write(tmp_path / ".gitignore", "bad\\\n")

    with pytest.raises(IgnoreFileError):
        PathFilter(tmp_path)


@pytest.mark.unit
@pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="needs POSIX permissions as non-root")
def test_unlistable_directory_is_skipped(tmp_path: Path) -> None:
    write(tmp_path / "ok.txt")
    locked = tmp_path / "locked"
    write(locked / "hidden.txt")
    locked.chmod(0o000)
    try:
        assert walked(tmp_path) == ["ok.txt"]
    finally:
        locked.chmod(0o755)


@pytest.mark.unit
def test_load_entry_skips_unreadable_file(tmp_path: Path, mocker: MockerFixture) -> None:
    f = write(tmp_path / "a.txt")
    mocker.patch.object(file_manipulation, "is_text_file", side_effect=PermissionError("denied"))

    assert load_entry(f, "a.txt", PriorityEngine()) is None


@pytest.mark.unit
def test_load_entry_skips_binary_file(tmp_path: Path) -> None:
    f = tmp_path / "blob.bin"
    f.write_bytes(b"\x00\x01")

    assert load_entry(f, "blob.bin", PriorityEngine()) is None


@pytest.mark.unit
@pytest.mark.parametrize("workers", [1, 4, 0, -2])
def test_collect_entries_sorts_by_priority_then_path(tmp_path: Path, workers: int) -> None:
    write(tmp_path / "src" / "main.rs", "fn main() {}")
    write(tmp_path / "src" / "lib.rs", "pub fn f() {}")
    write(tmp_path / "README.md", "# readme")
    write(tmp_path / "docs" / "guide.md", "guide")
    (tmp_path / "logo.png").write_bytes(b"\x89PNG")

    settings = Settings(
        repo=tmp_path,
        priority_rules=[PriorityRule(pattern=r".*\.rs$", score=10), PriorityRule(pattern="^docs/", score=5)],
        workers=workers,
        stream=True,
    )
    run_config = RunConfig.from_settings(settings)
    engine = PriorityEngine.build(run_config.priority_matchers, None)

    entries = collect_entries(tmp_path, run_config, engine)

    assert [(e.rel, e.priority) for e in entries] == [
        ("README.md", 0),
        ("docs/guide.md", 5),
        ("src/lib.rs", 10),
        ("src/main.rs", 10),
    ]
    assert entries[2].content == "pub fn f() {}"


@pytest.mark.unit
def test_collect_entries_skips_output_dir_inside_repo(tmp_path: Path) -> None:
    write(tmp_path / "main.py", "print(1)")
    write(tmp_path / "out" / "chunk-0.txt", "chunk 0")

    run_config = RunConfig.from_settings(Settings(repo=tmp_path, output_dir=tmp_path / "out"))
    entries = collect_entries(tmp_path, run_config, PriorityEngine())

    assert [e.rel for e in entries] == ["main.py"]
