from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, computed_field

VERSION = "0.1.0"

DEFAULT_CHUNK_SIZE = 10 * 1024 * 1024
"""Default threshold (bytes or tokens) when none, or an invalid one, is configured."""

MAX_RECENCY_BOOST = 50
"""Boost given to the most recently committed file."""

MIN_PRIORITY_SCORE = 0
MAX_PRIORITY_SCORE = 1000

HEADER_OVERHEAD = 10
"""Fixed part of the per-file header overhead (added to the path length)."""

BINARY_SNIFF_BYTES = 512

CONFIG_FILE_NAME = "chunk_repo.toml"
DEFAULT_OUTPUT_DIR_NAME = "chunk-output"
VCS_DIR_NAME = ".git"
IGNORE_FILE_NAME = ".gitignore"

BINARY_FILE_EXTENSIONS: frozenset[str] = frozenset(
    {
        # images
        "bmp",
        "gif",
        "ico",
        "jpeg",
        "jpg",
        "png",
        "psd",
        "tif",
        "tiff",
        "webp",
        # documents
        "doc",
        "docx",
        "odt",
        "pdf",
        "ppt",
        "pptx",
        "xls",
        "xlsx",
        # archives
        "7z",
        "bz2",
        "gz",
        "jar",
        "rar",
        "tar",
        "tgz",
        "xz",
        "zip",
        "zst",
        # executables and objects
        "a",
        "bin",
        "class",
        "dll",
        "dylib",
        "exe",
        "lib",
        "o",
        "obj",
        "pyc",
        "pyd",
        "pyo",
        "so",
        "wasm",
        # media
        "avi",
        "flac",
        "mkv",
        "mov",
        "mp3",
        "mp4",
        "ogg",
        "wav",
        "webm",
        # fonts
        "eot",
        "otf",
        "ttf",
        "woff",
        "woff2",
        # data
        "db",
        "npy",
        "npz",
        "parquet",
        "pkl",
        "sqlite",
        "sqlite3",
    },
)


class FileEntry(BaseModel):
    """A text file selected for output.

    Attributes:
        rel: Root-relative path with forward slashes.
        content: File content, lossily decoded as UTF-8.
        priority: Pattern score plus recency boost; lower sorts first.
    """

    model_config = ConfigDict(frozen=True)

    rel: str = Field(..., description="File path relative to repository root")
    content: str = Field(..., description="Decoded file content")
    priority: int = Field(default=0, description="Ordering priority (ascending)")

    @property
    def sort_key(self) -> tuple[int, str]:
        return (self.priority, self.rel)


class Chunk(BaseModel):
    """One packed unit of output, written as one file or one streamed segment.

    Attributes:
        index: Position of the chunk in the output; contiguous from 0.
        part: Part number when a single oversized file was split, else None.
        body: Exact text of the chunk.
        paths: Files whose content appears in the chunk, in order.
        size: Packed content size (bytes or tokens, following the run mode).
        overhead: Sum of the per-file header overheads.
    """

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0)
    part: int | None = Field(default=None, ge=0)
    body: str
    paths: tuple[str, ...] = ()
    size: int = Field(default=0, ge=0)
    overhead: int = Field(default=0, ge=0)

    @computed_field
    @property
    def file_name(self) -> str:
        """Name of the file the chunk is written to in non-streaming mode."""
        if self.part is None:
            return f"chunk-{self.index}.txt"
        return f"chunk-{self.index}-part-{self.part}.txt"
