from __future__ import annotations

import os
import stat
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

import pathspec

from chunk_repo.config import (
    BINARY_FILE_EXTENSIONS,
    BINARY_SNIFF_BYTES,
    IGNORE_FILE_NAME,
    VCS_DIR_NAME,
    FileEntry,
)
from chunk_repo.exceptions import IgnoreFileError
from chunk_repo.logging import logger
from chunk_repo.patterns import CompiledPattern, match_any

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from chunk_repo.priority import PriorityEngine
    from chunk_repo.settings import RunConfig


def normalize_path(base: Path, path: Path) -> str:
    """Send the path of `path` relative to `base`, with POSIX separators.

    Args:
        base (Path): the root to relativise from
        path (Path): the path to "relativise"

    Returns:
        str: the relative path, "." if `path` is `base`, or the
            original path (with forward slashes) if it is not under `base`
    """
    try:
        rel = path.relative_to(base)
    except ValueError:
        return str(path).replace("\\", "/")
    text = rel.as_posix()
    return text if text else "."


def normalize_extensions(extensions: Iterable[str]) -> frozenset[str]:
    """Lower-case extensions and strip their leading dot.

    Args:
        extensions (Iterable[str]): extensions such as ".PNG" or "png"

    Returns:
        frozenset[str]: the normalized extensions
    """
    return frozenset(e.strip().lstrip(".").lower() for e in extensions if e.strip().lstrip("."))


def has_binary_extension(path: Path, user_extensions: frozenset[str] = frozenset()) -> bool:
    """Check the extension of `path` against the built-in and user binary lists."""
    ext = path.suffix.lstrip(".").lower()
    if not ext:
        return False
    return ext in BINARY_FILE_EXTENSIONS or ext in user_extensions


def is_text_file(path: Path, user_extensions: Iterable[str] = ()) -> bool:
    """Classify a file as text or binary.

    Files with a known binary extension are rejected without being opened.
    Otherwise the first 512 bytes are read and any null byte means binary.

    Args:
        path (Path): the file to classify
        user_extensions (Iterable[str]): extra binary extensions (leading dot optional)

    Raises:
        OSError: if the file cannot be opened or read

    Returns:
        bool: True if the file looks like text
    """
    if has_binary_extension(path, normalize_extensions(user_extensions)):
        return False
    with path.open("rb") as f:
        head = f.read(BINARY_SNIFF_BYTES)
    return b"\x00" not in head


def read_text_lossy(path: Path) -> str:
    """Read a file as UTF-8, replacing undecodable bytes."""
    return path.read_bytes().decode("utf-8", errors="replace")


def build_ignore_spec(repo: Path) -> pathspec.GitIgnoreSpec:
    """Build the matcher for the repository ignore file.

    A missing ignore file gives a matcher that ignores nothing.

    Args:
        repo (Path): the repository root

    Raises:
        IgnoreFileError: if the ignore file cannot be read or holds an invalid pattern

    Returns:
        pathspec.GitIgnoreSpec: the compiled matcher
    """
    ignore_file = repo / IGNORE_FILE_NAME
    if not ignore_file.is_file():
        return pathspec.GitIgnoreSpec.from_lines([])
    try:
        lines = ignore_file.read_text(encoding="utf-8", errors="replace").splitlines()
        return pathspec.GitIgnoreSpec.from_lines(lines)
    except OSError as e:
        raise IgnoreFileError(path=ignore_file, message=f"Cannot read ignore file: {e}") from e
    except ValueError as e:
        # invalid gitignore patterns raise a ValueError subclass
        raise IgnoreFileError(path=ignore_file, message=str(e)) from e


class PathFilter:
    """Decides which paths of a repository are skipped during traversal."""

    def __init__(
        self,
        repo: Path,
        ignore_matchers: Sequence[CompiledPattern] = (),
        excluded_dirs: Sequence[str] = (),
    ) -> None:
        """Build the filter; the ignore file is compiled here, before any traversal.

        Args:
            repo (Path): the repository root
            ignore_matchers (Sequence[CompiledPattern]): compiled user exclusion patterns
            excluded_dirs (Sequence[str]): relative directories skipped as a whole (e.g. the output directory)

        Raises:
            IgnoreFileError: if the ignore file is malformed
        """
        self.repo = repo
        self.gitignore = build_ignore_spec(repo)
        self.ignore_matchers = tuple(ignore_matchers)
        self.excluded_dirs = frozenset(excluded_dirs)

    def is_excluded(self, rel: str, *, is_dir: bool) -> bool:
        """Check whether a root-relative path is skipped.

        Args:
            rel (str): the normalized relative path
            is_dir (bool): whether the path is a directory

        Returns:
            bool: True if the path (and, for a directory, its whole subtree) is skipped
        """
        if VCS_DIR_NAME in rel.split("/"):
            return True
        if is_dir and rel in self.excluded_dirs:
            return True
        if self.gitignore.match_file(f"{rel}/" if is_dir else rel):
            return True
        return match_any(rel, self.ignore_matchers)


def _log_walk_error(err: OSError) -> None:
    logger.warning("walk_entry_skipped", path=str(err.filename), error=err.strerror or str(err))


def walk_files(repo: Path, path_filter: PathFilter) -> Iterator[tuple[Path, str]]:
    """Walk `repo` depth-first without following symbolic links.

    Excluded directories are not descended into. Entries that cannot be listed
    are logged and skipped.

    Args:
        repo (Path): the root directory to walk
        path_filter (PathFilter): the exclusion rules

    Yields:
        Iterator[tuple[Path, str]]: (absolute path, normalized relative path) for every regular file kept
    """
    for root, dirs, files in os.walk(repo, onerror=_log_walk_error, followlinks=False):
        root_path = Path(root)
        kept_dirs: list[str] = []
        for d in sorted(dirs):
            rel = normalize_path(repo, root_path / d)
            if path_filter.is_excluded(rel, is_dir=True):
                logger.debug("directory_excluded", path=rel)
                continue
            kept_dirs.append(d)
        dirs[:] = kept_dirs

        for f in sorted(files):
            p = root_path / f
            rel = normalize_path(repo, p)
            if path_filter.is_excluded(rel, is_dir=False):
                continue
            try:
                st = p.lstat()
            except OSError as e:
                _log_walk_error(e)
                continue
            if not stat.S_ISREG(st.st_mode):
                continue
            yield p, rel


def load_entry(
    path: Path,
    rel: str,
    engine: PriorityEngine,
    binary_extensions: Iterable[str] = (),
) -> FileEntry | None:
    """Read and score one candidate file.

    Args:
        path (Path): the absolute file path
        rel (str): the normalized relative path
        engine (PriorityEngine): the priority scorer
        binary_extensions (Iterable[str]): extra binary extensions

    Returns:
        FileEntry | None: the entry, or None if the file is binary or unreadable
    """
    try:
        if not is_text_file(path, binary_extensions):
            logger.debug("binary_file_skipped", path=rel)
            return None
        content = read_text_lossy(path)
    except OSError as e:
        logger.debug("unreadable_file_skipped", path=rel, error=str(e))
        return None
    return FileEntry(rel=rel, content=content, priority=engine.priority(rel))


def sort_entries(entries: Iterable[FileEntry]) -> list[FileEntry]:
    """Order entries by ascending (priority, path)."""
    return sorted(entries, key=lambda e: e.sort_key)


def collect_entries(repo: Path, run_config: RunConfig, engine: PriorityEngine) -> list[FileEntry]:
    """Discover, read and score every text file of `repo`, in output order.

    Reading and scoring run on a thread pool; the final sort makes the result
    independent of traversal and completion order.

    Args:
        repo (Path): the repository root
        run_config (RunConfig): the validated run configuration
        engine (PriorityEngine): the priority scorer

    Raises:
        IgnoreFileError: if the ignore file is malformed

    Returns:
        list[FileEntry]: the entries sorted by (priority, path)
    """
    excluded_dirs: list[str] = []
    if run_config.output_dir is not None:
        out_rel = normalize_path(repo.resolve(), run_config.output_dir.resolve())
        if out_rel != "." and not Path(out_rel).is_absolute():
            excluded_dirs.append(out_rel)
    path_filter = PathFilter(repo, run_config.ignore_matchers, excluded_dirs)
    candidates = list(walk_files(repo, path_filter))
    binary_extensions = normalize_extensions(run_config.settings.binary_extensions)
    workers = run_config.workers

    def load(candidate: tuple[Path, str]) -> FileEntry | None:
        return load_entry(candidate[0], candidate[1], engine, binary_extensions)

    if workers == 1 or len(candidates) <= 1:
        loaded = [load(c) for c in candidates]
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            loaded = list(pool.map(load, candidates))

    entries = [e for e in loaded if e is not None]
    logger.debug("entries_collected", candidates=len(candidates), entries=len(entries))
    return sort_entries(entries)
