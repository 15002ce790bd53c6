import os
import shutil
import subprocess  # noqa: S404
from pathlib import Path

import pytest

from chunk_repo import cli
from chunk_repo.git_history import get_recent_commit_times
from chunk_repo.settings import PriorityRule, Settings

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git(repo: Path, *args: str, when: int | None = None) -> None:
    env = {**os.environ, "GIT_CONFIG_NOSYSTEM": "1"}
    if when is not None:
        env["GIT_AUTHOR_DATE"] = f"{when} +0000"
        env["GIT_COMMITTER_DATE"] = f"{when} +0000"
    subprocess.run(  # noqa: S603
        [
            "git",
            "-c",
            "user.name=Test",
            "-c",
            "user.email=test@example.com",
            "-c",
            "commit.gpgsign=false",
            *args,
        ],
        cwd=repo,
        env=env,
        check=True,
        capture_output=True,
    )


def commit(repo: Path, rel: str, text: str, when: int) -> None:
    path = repo / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    git(repo, "add", rel)
    git(repo, "commit", "-m", f"add {rel}", when=when)


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    git(root, "init", "-q")
    commit(root, "a.txt", "first", when=1_600_000_000)
    commit(root, "src/b.txt", "second", when=1_600_001_000)
    commit(root, "c.txt", "third", when=1_600_002_000)
    commit(root, "a.txt", "first again", when=1_600_003_000)
    return root


@pytest.mark.integration
def test_history_reports_last_commit_per_file(repo: Path) -> None:
    times = get_recent_commit_times(repo)

    assert times == {"a.txt": 1_600_003_000, "src/b.txt": 1_600_001_000, "c.txt": 1_600_002_000}


@pytest.mark.integration
def test_recently_committed_files_come_last(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    (repo / "untracked.txt").write_text("new", encoding="utf-8")

    cli.serialize_repo(repo, Settings(stream=True))

    out = capsys.readouterr().out
    order = [line.removeprefix(">>>> ") for line in out.splitlines() if line.startswith(">>>> ")]
    # boosts: src/b.txt=0, c.txt=25, a.txt=50, untracked.txt=0
    assert order == ["src/b.txt", "untracked.txt", "c.txt", "a.txt"]


@pytest.mark.integration
def test_rules_and_recency_are_added(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    settings = Settings(stream=True, priority_rules=[PriorityRule(pattern="^src/", score=100)])

    cli.serialize_repo(repo, settings)

    out = capsys.readouterr().out
    order = [line.removeprefix(">>>> ") for line in out.splitlines() if line.startswith(">>>> ")]
    assert order == ["c.txt", "a.txt", "src/b.txt"]
