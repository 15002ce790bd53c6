"""Last-commit timestamps per file, read from `git log`."""

from __future__ import annotations

import subprocess  # noqa: S404
from typing import TYPE_CHECKING

from chunk_repo.config import VCS_DIR_NAME
from chunk_repo.exceptions import GitCommandError
from chunk_repo.logging import logger

if TYPE_CHECKING:
    from pathlib import Path

GIT_LOG_COMMAND: tuple[str, ...] = (
    "git",
    "-c",
    "core.quotepath=false",
    "log",
    "--format=%ct",
    "--name-only",
    "--no-merges",
    "--no-renames",
    "--",
    ".",
)
GIT_LOG_TIMEOUT = 60.0


def run_git_log(repo: Path, timeout: float = GIT_LOG_TIMEOUT) -> str:
    """Run `git log` in `repo` and return its output.

    Args:
        repo (Path): the repository root
        timeout (float): seconds to wait before giving up

    Raises:
        GitCommandError: if git exits with a non-zero status

    Returns:
        str: the raw log text, lossily decoded as UTF-8
    """
    out = subprocess.run(  # noqa: S603
        GIT_LOG_COMMAND,
        cwd=str(repo),
        capture_output=True,
        check=False,
        timeout=timeout,
    )
    stdout = out.stdout.decode("utf-8", errors="replace")
    if out.returncode != 0:
        raise GitCommandError(
            command=" ".join(GIT_LOG_COMMAND),
            returncode=out.returncode,
            stdout=stdout,
            stderr=out.stderr.decode("utf-8", errors="replace"),
        )
    return stdout


def parse_git_log(text: str) -> dict[str, int]:
    """Parse `--format=%ct --name-only` output into path -> last commit time.

    Each commit is a timestamp line followed by the paths it touched. A path
    seen in several commits keeps its newest timestamp.

    Args:
        text (str): the raw log output

    Returns:
        dict[str, int]: relative path -> Unix timestamp
    """
    times: dict[str, int] = {}
    current: int | None = None
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        if line.isdigit():
            current = int(line)
            continue
        if current is None:
            # path before any timestamp: not log output we understand
            continue
        if current > times.get(line, -1):
            times[line] = current
    return times


def get_recent_commit_times(repo: Path, timeout: float = GIT_LOG_TIMEOUT) -> dict[str, int] | None:
    """Return path -> last commit time for `repo`, or None when history is unavailable.

    Never raises: a missing `.git`, a missing `git` binary, a failing or hanging
    command and empty output all give None.

    Args:
        repo (Path): the repository root
        timeout (float): seconds to wait for git

    Returns:
        dict[str, int] | None: the timestamps, or None
    """
    if not (repo / VCS_DIR_NAME).exists():
        logger.debug("git_history_skipped", reason="no .git directory", repo=str(repo))
        return None
    try:
        text = run_git_log(repo, timeout=timeout)
    except GitCommandError as e:
        logger.debug("git_history_skipped", reason="git log failed", returncode=e.returncode, stderr=e.stderr)
        return None
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("git_history_skipped", reason="git log could not run", error=str(e))
        return None

    times = parse_git_log(text)
    if not times:
        logger.debug("git_history_skipped", reason="no timestamps found", repo=str(repo))
        return None
    return times
