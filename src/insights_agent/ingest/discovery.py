"""Best-effort recursive file discovery.

The walk never decides on its own what an unreadable directory means; it hands
every ``OSError`` raised while listing a directory to an ``on_error`` strategy.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path

from insights_agent.storage.base import DiscoveryError

logger = logging.getLogger(__name__)

ErrorStrategy = Callable[[OSError], None]


def skip_unreadable(root: Path) -> ErrorStrategy:
    """Log and skip unreadable subdirectories, but fail if ``root`` itself can't be listed."""
    root_str = os.fspath(root)

    def _on_error(error: OSError) -> None:
        if error.filename is not None and os.fspath(error.filename) == root_str:
            raise DiscoveryError(f"Cannot enumerate {root}: {error}") from error
        logger.debug("Skipping unreadable path %s: %s", error.filename, error)

    return _on_error


def walk_files(root: Path, suffix: str, on_error: ErrorStrategy | None = None) -> list[Path]:
    """Return every file under ``root`` whose name ends with ``suffix``, sorted."""
    strategy = on_error if on_error is not None else skip_unreadable(root)
    files: list[Path] = []
    for dirpath, _dirnames, filenames in os.walk(root, onerror=strategy):
        for filename in filenames:
            if filename.endswith(suffix):
                files.append(Path(dirpath) / filename)
    return sorted(files)
