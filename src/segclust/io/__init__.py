"""Persistence helpers for clustering archives."""

from .archive import (
    ARCHIVE_SUFFIX,
    ARCHIVE_VERSION,
    ArchiveError,
    archive_path,
    load_or_run,
    read_archive,
    write_archive,
)

__all__ = [
    "ARCHIVE_SUFFIX",
    "ARCHIVE_VERSION",
    "ArchiveError",
    "archive_path",
    "load_or_run",
    "read_archive",
    "write_archive",
]
