from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import pytest

from rotations import Entry, FileSystemMutator, IOFailure, PathNotFound


NOW = datetime(2024, 6, 15, 12, 0, 0)


def symlinks_supported(tmp_path: Path) -> bool:
    try:
        target = tmp_path / "target"
        target.mkdir()
        link = tmp_path / "link"
        link.symlink_to(target)
        return True
    except (OSError, NotImplementedError):
        return False


def make_entry(path: Path, age: timedelta, now: datetime = NOW, directory: bool = False, content: str = "data") -> Entry:
    """Create a real file (or directory with one file) and return its entry with all times set to ``now - age``."""
    if directory:
        path.mkdir()
        (path / "inner.txt").write_text(content)
    else:
        path.write_text(content)
    moment = now - age
    return replace(Entry.from_path(path), creation_time=moment, last_write_time=moment, last_access_time=moment)


class StaticLister:
    """Lister returning prepared entries per root (the OS cannot set creation times)."""

    def __init__(self, listings: dict[Path, list[Entry]]) -> None:
        self.listings = listings
        self.calls: list[Path] = []

    def __call__(self, root: Path) -> list[Entry]:
        self.calls.append(root)
        if root not in self.listings:
            raise PathNotFound(f"Path not found: {root}")
        return list(self.listings[root])


class FailingMutator(FileSystemMutator):
    """Raises IOFailure for the configured paths, behaves normally otherwise."""

    def __init__(self, fail_remove: Optional[set[Path]] = None, fail_archive: Optional[set[Path]] = None) -> None:
        self.fail_remove = fail_remove or set()
        self.fail_archive = fail_archive or set()

    def remove(self, entry: Entry) -> None:
        if entry.path in self.fail_remove:
            raise IOFailure(entry.path, f"Error while deleting '{entry.path}': simulated permission error")
        super().remove(entry)

    def create_archive(self, source, destination, level):  # noqa: ANN001, ANN201
        if source.path in self.fail_archive:
            raise IOFailure(source.path, f"Error while compressing '{source.path}': simulated disk full")
        return super().create_archive(source, destination, level)


@pytest.fixture
def now() -> datetime:
    return NOW
