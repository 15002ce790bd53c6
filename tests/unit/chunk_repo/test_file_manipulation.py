from pathlib import Path

import pytest

from chunk_repo.exceptions import IgnoreFileError
from chunk_repo.file_manipulation import (
    build_ignore_spec,
    is_text_file,
    normalize_extensions,
    normalize_path,
    read_text_lossy,
)


@pytest.mark.unit
def test_normalize_path_is_root_relative_with_forward_slashes(tmp_path: Path) -> None:
    assert normalize_path(tmp_path, tmp_path / "src" / "lib.rs") == "src/lib.rs"
    assert normalize_path(tmp_path, tmp_path) == "."


@pytest.mark.unit
def test_normalize_extensions_strips_dots_and_case() -> None:
    assert normalize_extensions([".DAT", "bin", " .Foo ", "", "."]) == frozenset({"dat", "bin", "foo"})


@pytest.mark.unit
def test_known_binary_extension_is_rejected_without_reading(tmp_path: Path) -> None:
    missing = tmp_path / "picture.PNG"

    # the file does not exist: the extension alone decides
    assert is_text_file(missing) is False


@pytest.mark.unit
def test_user_binary_extensions_accept_optional_dot(tmp_path: Path) -> None:
    data = tmp_path / "blob.dat"
    data.write_text("plain text", encoding="utf-8")

    assert is_text_file(data) is True
    assert is_text_file(data, [".dat"]) is False
    assert is_text_file(data, ["DAT"]) is False


@pytest.mark.unit
def test_null_byte_in_prefix_means_binary(tmp_path: Path) -> None:
    binary = tmp_path / "data.raw"
    binary.write_bytes(b"abc\x00def")

    assert is_text_file(binary) is False


@pytest.mark.unit
def test_null_byte_after_sniffed_prefix_is_ignored(tmp_path: Path) -> None:
    late = tmp_path / "late.txt"
    late.write_bytes(b"a" * 600 + b"\x00")

    assert is_text_file(late) is True


@pytest.mark.unit
def test_unreadable_file_raises_read_error(tmp_path: Path) -> None:
    with pytest.raises(OSError):  # noqa: PT011
        is_text_file(tmp_path / "missing.txt")


@pytest.mark.unit
def test_read_text_lossy_replaces_invalid_utf8(tmp_path: Path) -> None:
    f = tmp_path / "latin1.txt"
    f.write_bytes(b"caf\xe9")

    assert read_text_lossy(f) == "caf\ufffd"


@pytest.mark.unit
def test_build_ignore_spec_without_ignore_file_matches_nothing(tmp_path: Path) -> None:
    spec = build_ignore_spec(tmp_path)

    assert not spec.match_file("anything.txt")


@pytest.mark.unit
def test_build_ignore_spec_reads_gitignore(tmp_path: Path) -> None:
    (tmp_path / ".gitignore").write_text("*.log\nbuild/\n", encoding="utf-8")

    spec = build_ignore_spec(tmp_path)

    assert spec.match_file("debug.log")
    assert spec.match_file("build/")
    assert not spec.match_file("src/main.py")


@pytest.mark.unit
@pytest.mark.filterwarnings("error::DeprecationWarning")
def test_build_ignore_spec_follows_git_negation_rules(tmp_path: Path) -> None:
    (tmp_path / ".gitignore").write_text("*.log\n!keep.log\n", encoding="utf-8")

    spec = build_ignore_spec(tmp_path)

    assert spec.match_file("debug.log")
    assert not spec.match_file("keep.log")
    assert not spec.match_file("logs/keep.log")


@pytest.mark.unit
def test_build_ignore_spec_rejects_malformed_pattern(tmp_path: Path) -> None:
    (tmp_path / ".gitignore").write_text("ok.txt\nbroken\\\n", encoding="utf-8")

    with pytest.raises(IgnoreFileError) as exc_info:
        build_ignore_spec(tmp_path)

    assert exc_info.value.path == tmp_path / ".gitignore"
