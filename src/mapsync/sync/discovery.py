"""
Candidate file discovery under the source root.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from mapsync.rules.types import SourceFile
from mapsync.utils.logging import get_logger

logger = get_logger("mapsync.sync.discovery")


def discover_files(root: str | Path, directories: Iterable[str]) -> list[SourceFile]:
    """
    List regular files directly inside each root-relative directory.

    Directories that do not exist yet are normal (nothing produced for the
    day) and yield no files. Hidden files and in-progress ``.part`` files
    are ignored. Results are sorted by directory, then name.

    Args:
        root: Source root directory
        directories: Normalized root-relative POSIX directories

    Returns:
        Candidate files
    """
    root_path = Path(root)
    files: list[SourceFile] = []
    for directory in dict.fromkeys(directories):
        full_dir = root_path / directory if directory else root_path
        if not full_dir.is_dir():
            logger.debug(f"Source directory not found, skipping: {full_dir}")
            continue
        for entry in sorted(full_dir.iterdir(), key=lambda p: p.name):
            if entry.name.startswith(".") or entry.name.endswith(".part"):
                continue
            if not entry.is_file():
                continue
            files.append(
                SourceFile(
                    name=entry.name,
                    directory=directory,
                    local_path=str(entry),
                    size=entry.stat().st_size,
                )
            )
    return files
