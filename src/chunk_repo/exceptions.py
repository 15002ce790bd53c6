from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ChunkRepoError(Exception):
    """Base exception for errors in the chunk_repo module."""


@dataclass(frozen=True)
class GitCommandError(ChunkRepoError):
    """Raised when a git command fails."""

    command: str
    returncode: int
    stdout: str
    stderr: str


@dataclass(frozen=True)
class IgnoreFileError(ChunkRepoError):
    """Raised when the repository ignore file cannot be turned into a matcher."""

    path: Path
    message: str = "The ignore file contains an invalid pattern."


@dataclass(frozen=True)
class ChunkWriteError(ChunkRepoError):
    """Raised when a chunk cannot be written to the output directory."""

    path: Path
    message: str = "Unable to write chunk."


@dataclass(frozen=True)
class InvalidSizeError(ChunkRepoError, ValueError):
    """Raised when a size threshold string cannot be parsed."""

    value: str
    message: str = "Invalid size string."
