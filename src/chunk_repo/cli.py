"""
chunk_repo — Split a repository into ordered, size-bounded text chunks.

Overview
--------
Files are discovered under the repository root (honoring `.gitignore` and
extra ignore patterns), binary files are dropped, and each remaining file gets
a priority: the best score among the configured priority rules, plus a boost
for files committed recently. Files are emitted by ascending priority, so the
most important (and most recent) files come last, packed into chunks that
stay under `--max-size` bytes (or whitespace tokens with `--tokens`).

Settings may also come from a `chunk_repo.toml` file found in the repository
root or one of its parents; command-line values win.

Usage
-----
Run `python -m chunk_repo.cli --help` for full options. Common examples:
    - Chunks of at most 128 KiB into ./chunks:
        uv run python -m chunk_repo.cli path/to/repo --max-size 128KB --output-dir chunks

    - Stream 100k-token chunks to stdout:
        uv run python -m chunk_repo.cli path/to/repo --tokens --max-size 100K --stream
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from chunk_repo.config import VERSION
from chunk_repo.exceptions import ChunkRepoError, InvalidSizeError
from chunk_repo.file_manipulation import collect_entries
from chunk_repo.git_history import get_recent_commit_times
from chunk_repo.logging import logger, setup_logging
from chunk_repo.output_construction import pack_chunks, write_chunks
from chunk_repo.priority import PriorityEngine
from chunk_repo.settings import RunConfig, Settings, find_config_file, load_config_file, merge_settings, parse_size_input

if TYPE_CHECKING:
    from collections.abc import Sequence


def serialize_repo(repo: Path, settings: Settings | None = None) -> list[Path]:
    """Turn `repo` into chunks according to `settings`.

    Args:
        repo (Path): the repository root
        settings (Settings | None): the run settings; defaults apply when None

    Raises:
        IgnoreFileError: if the repository ignore file is malformed
        ChunkWriteError: if a chunk cannot be written

    Returns:
        list[Path]: the chunk files written, in index order (empty when streaming)
    """
    repo = repo.resolve()
    settings = (settings or Settings(repo=repo)).model_copy(update={"repo": repo})
    run_config = RunConfig.from_settings(settings)

    commit_times = get_recent_commit_times(repo)
    engine = PriorityEngine.build(run_config.priority_matchers, commit_times)

    entries = collect_entries(repo, run_config, engine)
    logger.info("files_collected", repo=str(repo), files=len(entries))

    chunks = pack_chunks(entries, run_config.max_size, token_mode=settings.token_mode)
    return write_chunks(chunks, out_dir=run_config.output_dir, stream=settings.stream)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="chunk-repo",
        description="Split a repository into ordered, size-bounded text chunks.",
    )
    p.add_argument("repo", nargs="?", default=".", help="Repository root.")
    p.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    p.add_argument(
        "--max-size",
        type=str,
        default=None,
        help="Chunk threshold: bytes (KB/MB/GB suffixes) or tokens with --tokens (K suffix).",
    )
    p.add_argument("--tokens", action="store_true", default=None, help="Count whitespace tokens instead of bytes.")
    p.add_argument("--stream", action="store_true", default=None, help="Write chunks to stdout.")
    p.add_argument("--output-dir", type=str, default=None, help="Directory for chunk files.")
    p.add_argument(
        "--ignore-pattern",
        action="append",
        default=[],
        help="Exclude paths matching this glob or regex (repeatable).",
    )
    p.add_argument(
        "--binary-ext",
        action="append",
        default=[],
        help="Treat this extension as binary (repeatable).",
    )
    p.add_argument("--workers", type=int, default=None, help="Reader threads.")
    p.add_argument("--config", type=str, default=None, help="Configuration file (default: search upward).")
    p.add_argument("--log-file", type=str, default=None, help="Log file path.")
    p.add_argument("--debug", action="store_true", default=None, help="Enable debug logging.")
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse command-line arguments, merged over the configuration file.

    Args:
        argv (Sequence[str] | None): the arguments, `sys.argv[1:]` when None

    Returns:
        Settings: the merged settings
    """
    p = build_parser()
    args = p.parse_args(argv)
    repo = Path(args.repo).resolve()

    config_path = Path(args.config) if args.config else find_config_file(repo)
    file_values = load_config_file(config_path) if config_path else None

    token_mode = args.tokens if args.tokens is not None else bool((file_values or {}).get("token_mode", False))
    max_size: int | None = None
    if args.max_size is not None:
        try:
            max_size = parse_size_input(args.max_size, is_tokens=token_mode)
        except InvalidSizeError as e:
            p.error(f"invalid --max-size: {e.value!r}")

    overrides: dict[str, Any] = {
        "repo": repo,
        "max_size": max_size,
        "token_mode": args.tokens,
        "stream": args.stream,
        "output_dir": Path(args.output_dir) if args.output_dir else None,
        "ignore_patterns": args.ignore_pattern,
        "binary_extensions": args.binary_ext,
        "workers": args.workers,
        "log_file": args.log_file,
        "debug": args.debug,
    }
    return merge_settings(file_values, overrides)


def main(argv: Sequence[str] | None = None) -> int:
    settings = parse_args(argv)
    if settings.log_file or settings.debug:
        setup_logging(
            settings.log_file or None,
            level=logging.DEBUG if settings.debug else logging.INFO,
            force=True,
        )

    try:
        written = serialize_repo(settings.repo, settings)
    except ChunkRepoError as e:
        logger.error("run_failed", error=type(e).__name__, details=repr(e))  # noqa: TRY400
        return 1

    if not settings.stream:
        logger.info("chunks_written", count=len(written), output_dir=str(written[0].parent) if written else "")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
