from __future__ import annotations

import os
from pathlib import Path

import pytest

from insights_agent.ingest.discovery import skip_unreadable, walk_files
from insights_agent.storage.base import DiscoveryError


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("")
    return path


def test_walk_files_filters_by_suffix_and_sorts(tmp_path: Path) -> None:
    _touch(tmp_path / "b" / "two.jsonl")
    _touch(tmp_path / "a" / "one.jsonl")
    _touch(tmp_path / "a" / "deep" / "three.jsonl")
    _touch(tmp_path / "a" / "notes.md")

    found = walk_files(tmp_path, ".jsonl")

    assert found == sorted(found)
    assert {path.name for path in found} == {"one.jsonl", "two.jsonl", "three.jsonl"}


def test_unreadable_root_raises(tmp_path: Path) -> None:
    missing = tmp_path / "gone"

    with pytest.raises(DiscoveryError, match="Cannot enumerate"):
        walk_files(missing, ".jsonl")


def test_subdirectory_errors_are_skipped(tmp_path: Path) -> None:
    strategy = skip_unreadable(tmp_path)
    error = PermissionError(13, "Permission denied", os.fspath(tmp_path / "locked"))

    strategy(error)


def test_root_error_is_fatal(tmp_path: Path) -> None:
    strategy = skip_unreadable(tmp_path)
    error = PermissionError(13, "Permission denied", os.fspath(tmp_path))

    with pytest.raises(DiscoveryError):
        strategy(error)


@pytest.mark.skipif(
    not hasattr(os, "geteuid") or os.geteuid() == 0, reason="root ignores permissions"
)
def test_locked_subdirectory_does_not_abort_walk(tmp_path: Path) -> None:
    _touch(tmp_path / "open" / "ok.jsonl")
    locked = tmp_path / "locked"
    _touch(locked / "hidden.jsonl")
    locked.chmod(0)
    try:
        found = walk_files(tmp_path, ".jsonl")
    finally:
        locked.chmod(0o755)

    assert [path.name for path in found] == ["ok.jsonl"]


def test_custom_strategy_receives_errors(tmp_path: Path) -> None:
    seen: list[OSError] = []

    assert walk_files(tmp_path / "missing", ".jsonl", on_error=seen.append) == []
    assert len(seen) == 1
