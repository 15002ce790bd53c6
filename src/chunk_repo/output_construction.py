from __future__ import annotations

import io
import os
import sys
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from chunk_repo.config import HEADER_OVERHEAD, Chunk
from chunk_repo.exceptions import ChunkWriteError
from chunk_repo.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from chunk_repo.config import FileEntry


def measure(content: str, *, token_mode: bool) -> int:
    """Size of `content`: UTF-8 byte length, or whitespace-delimited token count."""
    if token_mode:
        return len(content.split())
    return len(content.encode("utf-8"))


def header_overhead(rel: str) -> int:
    """Per-file header overhead: a fixed part plus the path length."""
    return HEADER_OVERHEAD + len(rel)


def _utf8_boundary(data: bytes, end: int) -> int:
    """Move `end` back so it does not cut a UTF-8 sequence."""
    while 0 < end < len(data) and (data[end] & 0xC0) == 0x80:  # noqa: PLR2004
        end -= 1
    return end


def split_bytes(content: str, max_bytes: int) -> Iterator[str]:
    """Split `content` into consecutive slices of at most `max_bytes` UTF-8 bytes.

    Slices end on character boundaries. A character wider than `max_bytes`
    forms a slice on its own so that progress is always made.

    Args:
        content (str): the text to split
        max_bytes (int): the maximum slice size in bytes

    Yields:
        Iterator[str]: the slices, in order
    """
    data = content.encode("utf-8")
    start = 0
    while start < len(data):
        end = _utf8_boundary(data, min(start + max_bytes, len(data)))
        if end <= start:
            end = start + 1
            while end < len(data) and (data[end] & 0xC0) == 0x80:  # noqa: PLR2004
                end += 1
        yield data[start:end].decode("utf-8")
        start = end


def split_tokens(content: str, max_tokens: int) -> Iterator[str]:
    """Split `content` into slices of at most `max_tokens` whitespace tokens, joined by single spaces.

    Args:
        content (str): the text to split
        max_tokens (int): the maximum number of tokens per slice

    Yields:
        Iterator[str]: the slices, in order
    """
    tokens = content.split()
    for start in range(0, len(tokens), max_tokens):
        yield " ".join(tokens[start : start + max_tokens])


def whole_file_block(index: int, rel: str, content: str) -> str:
    return f"chunk {index}\n>>>> {rel}\n{content}\n"


def part_block(index: int, rel: str, part: int, content: str) -> str:
    return f"chunk {index}\n>>>> {rel}:part {part}\n{content}\n"


def pack_chunks(entries: Sequence[FileEntry], max_size: int, *, token_mode: bool) -> Iterator[Chunk]:
    """Pack sorted entries into chunks bounded by `max_size`.

    Files are appended to a running buffer, which is flushed as a chunk
    whenever the next file would push its packed size over `max_size`. A file
    whose own size reaches `max_size` is split into parts, each emitted as its
    own chunk with no other file mixed in; the parts share one chunk index and
    are told apart by their part number. Chunk indices are contiguous from 0.

    Args:
        entries (Sequence[FileEntry]): entries in output order
        max_size (int): the threshold, in bytes or tokens
        token_mode (bool): whether sizes are token counts

    Yields:
        Iterator[Chunk]: the chunks, in index order
    """
    index = 0
    buf = io.StringIO()
    paths: list[str] = []
    used = 0
    overhead = 0

    def flush() -> Chunk:
        return Chunk(index=index, body=buf.getvalue(), paths=tuple(paths), size=used, overhead=overhead)

    for entry in entries:
        size = measure(entry.content, token_mode=token_mode)
        extra = header_overhead(entry.rel)

        if size >= max_size:
            if paths:
                yield flush()
                index += 1
                buf = io.StringIO()
                paths = []
                used = overhead = 0

            parts = split_tokens(entry.content, max_size) if token_mode else split_bytes(entry.content, max_size)
            for part, piece in enumerate(parts):
                logger.debug("file_part_packed", path=entry.rel, chunk=index, part=part)
                yield Chunk(
                    index=index,
                    part=part,
                    body=part_block(index, entry.rel, part, piece),
                    paths=(entry.rel,),
                    size=measure(piece, token_mode=token_mode),
                    overhead=extra,
                )
            index += 1
            continue

        if used + size > max_size and paths:
            yield flush()
            index += 1
            buf = io.StringIO()
            paths = []
            used = overhead = 0

        buf.write(whole_file_block(index, entry.rel, entry.content))
        paths.append(entry.rel)
        used += size
        overhead += extra

    if paths:
        yield flush()


def ensure_output_dir(out_dir: Path) -> None:
    """Create the output directory if needed.

    Raises:
        ChunkWriteError: if it cannot be created
    """
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ChunkWriteError(path=out_dir, message=f"Cannot create output directory: {e}") from e


def write_chunk_file(chunk: Chunk, out_dir: Path) -> Path:
    """Write one chunk atomically into `out_dir`.

    The body goes to a temporary sibling first, then replaces the target, so a
    failure never leaves a truncated chunk behind.

    Args:
        chunk (Chunk): the chunk to write
        out_dir (Path): the output directory (must exist)

    Raises:
        ChunkWriteError: if the chunk cannot be written

    Returns:
        Path: the written file
    """
    target = out_dir / chunk.file_name
    tmp_name: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=out_dir,
            prefix=f".{chunk.file_name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(chunk.body.encode("utf-8"))
        os.replace(tmp_name, target)
    except OSError as e:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)
        raise ChunkWriteError(path=target, message=str(e)) from e
    return target


def stream_chunk(chunk: Chunk, out: BinaryIO | None = None) -> None:
    """Write one chunk body as UTF-8 bytes to `out` (standard output by default) and flush.

    Standard output is written through its binary buffer, so the streamed bytes
    equal the chunk file bytes regardless of console encoding or newline mode.
    """
    if out is None:
        sys.stdout.flush()
        out = sys.stdout.buffer
    out.write(chunk.body.encode("utf-8"))
    out.flush()


def write_chunks(
    chunks: Iterable[Chunk],
    *,
    out_dir: Path | None,
    stream: bool,
    out: BinaryIO | None = None,
) -> list[Path]:
    """Emit chunks in order, to files in `out_dir` or to standard output.

    Args:
        chunks (Iterable[Chunk]): the chunks, in index order
        out_dir (Path | None): the output directory, created if absent; unused when streaming
        stream (bool): write to `out` / standard output instead of files
        out (BinaryIO | None): binary stream target, standard output by default

    Raises:
        ChunkWriteError: if a chunk cannot be written

    Returns:
        list[Path]: the files written (empty when streaming)
    """
    written: list[Path] = []
    if stream:
        for chunk in chunks:
            stream_chunk(chunk, out)
        return written

    if out_dir is None:
        raise ChunkWriteError(path=Path(), message="No output directory configured")
    ensure_output_dir(out_dir)
    for chunk in chunks:
        written.append(write_chunk_file(chunk, out_dir))
        logger.debug("chunk_written", file=chunk.file_name, files=len(chunk.paths), size=chunk.size)
    return written
