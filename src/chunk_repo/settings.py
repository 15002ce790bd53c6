from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import tomlkit
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tomlkit.exceptions import TOMLKitError

from chunk_repo.config import (
    CONFIG_FILE_NAME,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_OUTPUT_DIR_NAME,
    MAX_PRIORITY_SCORE,
    MIN_PRIORITY_SCORE,
)
from chunk_repo.exceptions import InvalidSizeError
from chunk_repo.logging import logger
from chunk_repo.patterns import CompiledPattern, compile_pattern, compile_patterns
from chunk_repo.priority import ScoredPattern

_BYTE_SUFFIXES: dict[str, int] = {
    "KB": 1024,
    "MB": 1024 * 1024,
    "GB": 1024 * 1024 * 1024,
}


class PriorityRule(BaseModel):
    """A pattern and the score given to paths it matches."""

    model_config = ConfigDict(frozen=True)

    pattern: str = Field(..., description="Glob or anchored regex.")
    score: int = Field(..., description="Score in [0, 1000].")


class Settings(BaseModel):
    """Configuration settings for one chunk_repo run."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True, extra="forbid")

    repo: Path = Field(default_factory=Path.cwd, description="Repository root.")
    ignore_patterns: list[str] = Field(default_factory=list, description="Extra exclusion patterns.")
    priority_rules: list[PriorityRule] = Field(default_factory=list, description="Priority rules.")
    binary_extensions: list[str] = Field(
        default_factory=list,
        description="Extensions always treated as binary.",
    )
    max_size: int | None = Field(default=None, description="Chunk threshold (bytes or tokens).")
    output_dir: Path | None = Field(default=None, description="Chunk output directory.")
    stream: bool = Field(default=False, description="Write chunks to stdout.")
    token_mode: bool = Field(default=False, description="Measure whitespace tokens instead of bytes.")
    workers: int | None = Field(default=None, description="Reader threads (None lets the pool decide).")
    log_file: str = Field(default="", description="Log file path.")
    debug: bool = Field(default=False, description="Enable debug logging.")


class ConfigIssue(BaseModel):
    """A non-fatal configuration problem, reported as a warning."""

    model_config = ConfigDict(frozen=True)

    field: str
    message: str


def _priority_rule_issues(rule: PriorityRule) -> list[ConfigIssue]:
    issues: list[ConfigIssue] = []
    if not MIN_PRIORITY_SCORE <= rule.score <= MAX_PRIORITY_SCORE:
        issues.append(
            ConfigIssue(
                field="priority_rules",
                message=(
                    f"Priority score {rule.score} must be between "
                    f"{MIN_PRIORITY_SCORE} and {MAX_PRIORITY_SCORE}"
                ),
            ),
        )
    if not rule.pattern:
        issues.append(ConfigIssue(field="priority_rules", message="Priority rule must have a pattern"))
        return issues
    try:
        compile_pattern(rule.pattern)
    except re.error as e:
        issues.append(
            ConfigIssue(field="priority_rules", message=f"Invalid pattern '{rule.pattern}': {e}"),
        )
    return issues


def validate_settings(settings: Settings) -> list[ConfigIssue]:
    """Collect every configuration problem without raising.

    Args:
        settings (Settings): the settings to check

    Returns:
        list[ConfigIssue]: one issue per problem found, in field order
    """
    issues: list[ConfigIssue] = []
    for rule in settings.priority_rules:
        issues.extend(_priority_rule_issues(rule))

    if any(not p for p in settings.ignore_patterns):
        issues.append(ConfigIssue(field="ignore_patterns", message="Ignore pattern must not be empty"))
    _, errors = compile_patterns([p for p in settings.ignore_patterns if p])
    issues.extend(
        ConfigIssue(field="ignore_patterns", message=f"Invalid pattern '{err.source}': {err.reason}")
        for err in errors
    )

    if settings.max_size is not None and settings.max_size <= 0:
        issues.append(ConfigIssue(field="max_size", message=f"Max size must be positive, got {settings.max_size}"))

    if settings.workers is not None and settings.workers < 1:
        issues.append(ConfigIssue(field="workers", message=f"Workers must be at least 1, got {settings.workers}"))

    if settings.output_dir is not None:
        out = Path(settings.output_dir)
        if out.exists() and not out.is_dir():
            issues.append(
                ConfigIssue(field="output_dir", message=f"Output path '{out}' exists but is not a directory"),
            )
    return issues


class RunConfig(BaseModel):
    """Validated settings with every pattern compiled once for the whole run."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    settings: Settings
    ignore_matchers: tuple[CompiledPattern, ...] = ()
    priority_matchers: tuple[ScoredPattern, ...] = ()
    max_size: int = DEFAULT_CHUNK_SIZE
    workers: int | None = None
    output_dir: Path | None = None
    issues: tuple[ConfigIssue, ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings) -> RunConfig:
        """Validate `settings` and compile its patterns.

        Issues are logged as warnings; offending rules and patterns are dropped so they never match.

        Args:
            settings (Settings): the user settings

        Returns:
            RunConfig: the run configuration
        """
        issues = validate_settings(settings)
        for issue in issues:
            logger.warning("invalid_configuration", field=issue.field, message=issue.message)

        ignore_matchers, _ = compile_patterns([p for p in settings.ignore_patterns if p])

        priority_matchers: list[ScoredPattern] = []
        for rule in settings.priority_rules:
            if _priority_rule_issues(rule):
                continue
            compiled = compile_pattern(rule.pattern)
            priority_matchers.append(ScoredPattern(source=compiled.source, regex=compiled.regex, score=rule.score))

        max_size = settings.max_size if settings.max_size and settings.max_size > 0 else DEFAULT_CHUNK_SIZE

        workers = settings.workers if settings.workers is not None and settings.workers >= 1 else None

        output_dir: Path | None = None
        if not settings.stream:
            output_dir = Path(settings.output_dir) if settings.output_dir else settings.repo / DEFAULT_OUTPUT_DIR_NAME

        return cls(
            settings=settings,
            ignore_matchers=tuple(ignore_matchers),
            priority_matchers=tuple(priority_matchers),
            max_size=max_size,
            output_dir=output_dir,
            workers=workers,
            issues=tuple(issues),
        )


def find_config_file(start: Path) -> Path | None:
    """Search `start` and its parents for the configuration file.

    Args:
        start (Path): the directory to start from; relative paths are resolved first

    Returns:
        Path | None: the closest configuration file, or None if there is none
    """
    current = start.resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.is_file():
            logger.debug("config_file_found", path=str(candidate))
            return candidate
    return None


def load_config_file(path: Path) -> dict[str, Any] | None:
    """Read a TOML configuration file into raw settings values.

    Args:
        path (Path): the configuration file

    Returns:
        dict[str, Any] | None: the values found, checked against `Settings`,
            or None when the file cannot be read, parsed or checked
    """
    try:
        data = tomlkit.parse(path.read_text(encoding="utf-8")).unwrap()
    except OSError as e:
        logger.warning("config_file_unreadable", path=str(path), error=str(e))
        return None
    except TOMLKitError as e:
        logger.warning("config_file_unparsable", path=str(path), error=str(e))
        return None

    try:
        Settings(**data)
    except ValidationError as e:
        logger.warning("config_file_invalid", path=str(path), error=str(e))
        return None
    return data


def merge_settings(file_values: dict[str, Any] | None, overrides: dict[str, Any]) -> Settings:
    """Build settings from config-file values overridden by explicitly given values.

    Args:
        file_values (dict[str, Any] | None): values read from the configuration file
        overrides (dict[str, Any]): values given explicitly (e.g. on the command line);
            None values are treated as "not given"

    Returns:
        Settings: the merged settings
    """
    merged: dict[str, Any] = dict(file_values or {})
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, list) and not value and key in merged:
            continue
        merged[key] = value
    return Settings(**merged)


def parse_size_input(value: str, *, is_tokens: bool) -> int:
    """Parse a threshold given as text.

    In byte mode, `KB`, `MB` and `GB` suffixes are powers of 1024. In token mode,
    a `K` suffix means thousands.

    Args:
        value (str): the text to parse, e.g. "128K" or "10MB"
        is_tokens (bool): whether the threshold counts tokens

    Raises:
        InvalidSizeError: if the text is not a valid size

    Returns:
        int: the threshold
    """
    s = value.strip().upper()
    try:
        if is_tokens:
            if s.endswith("K"):
                return int(s[:-1].strip()) * 1000
            return int(s)
        for suffix, factor in _BYTE_SUFFIXES.items():
            if s.endswith(suffix):
                return int(s[: -len(suffix)].strip()) * factor
        return int(s)
    except ValueError as e:
        raise InvalidSizeError(value=value) from e

