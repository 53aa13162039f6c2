"""
bootstrap.py — Startup scan of the watched save directory.

Seeds the modification-time table and the content cache from the files
already on disk, so the first write after startup is compared against a
real timestamp and a delete can still report the file's last content.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from dinorelay.events import truncate_body
from dinorelay.state import FileStateStore

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    """Summary of one bootstrap scan.

    Attributes:
        files:       Paths whose modification time was recorded.
        cached:      Number of those files whose content was cached.
        directories: Subdirectories discovered (recursive scans only).
    """

    files: list[str] = field(default_factory=list)
    cached: int = 0
    directories: list[str] = field(default_factory=list)


def read_content(path: str) -> str:
    """Read a save file as text.

    Undecodable bytes are replaced rather than rejected; the delivery layer
    re-encodes anything that is not valid JSON.

    Raises:
        OSError: If the file cannot be read.
    """
    with open(path, "r", encoding="utf-8", errors="replace") as fh:
        return fh.read()


def seed_file(path: str, store: FileStateStore) -> bool:
    """Record *path*'s modification time and cache its content.

    Returns ``True`` if the file was tracked.  A read failure keeps only the
    modification-time entry.
    """
    try:
        mtime = os.stat(path).st_mtime
    except OSError as exc:
        logger.warning("Error stating file %s: %s", os.path.basename(path), exc)
        return False

    store.set_mtime(path, mtime)
    try:
        content = read_content(path)
    except OSError as exc:
        logger.warning("Error caching file %s: %s", os.path.basename(path), exc)
        return True

    store.cache.put(path, content)
    logger.debug(
        "Cached content for file: %s, Content: %s",
        os.path.basename(path),
        truncate_body(content),
    )
    return True


def seed_state(
    directory: str,
    store: FileStateStore,
    recursive: bool = False,
) -> ScanResult:
    """Walk *directory* once and seed *store* with every file found.

    Only direct children are scanned unless *recursive* is set, in which
    case every discovered subdirectory is returned so the caller can add it
    to the watch set.
    """
    result = ScanResult()
    pending = [os.path.abspath(directory)]

    while pending:
        current = pending.pop()
        try:
            entries = list(os.scandir(current))
        except OSError as exc:
            logger.error("Error reading directory %s: %s", current, exc)
            continue

        for entry in entries:
            try:
                is_dir = entry.is_dir()
            except OSError:
                continue
            if is_dir:
                if recursive:
                    result.directories.append(entry.path)
                    pending.append(entry.path)
                continue

            if seed_file(entry.path, store):
                result.files.append(entry.path)
                if entry.path in store.cache:
                    result.cached += 1

    logger.info(
        "Initialized tracking for %d files (%d cached)",
        len(result.files),
        result.cached,
    )
    return result
