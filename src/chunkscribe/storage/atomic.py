"""Atomic file replacement and rolling backups."""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import time
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MAX_BACKUPS = 10


def atomic_write(target: Path, data: str | bytes, *, validate_json: bool = False) -> None:
    """Write ``data`` to ``target`` through a temp file in the same directory.

    The temp file is renamed over ``target`` only after it is fully written
    (and, with ``validate_json``, parsed back successfully), so readers see
    either the old or the new content.
    """
    target = Path(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    if validate_json:
        text = data.decode("utf-8") if isinstance(data, bytes) else data
        try:
            json.loads(text)
        except ValueError as e:
            raise ValueError(f"Invalid JSON data: {e}") from e

    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data.encode("utf-8") if isinstance(data, str) else data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    logger.debug("Atomic write complete: %s", target)


class BackupManager:
    """Keeps the newest ``max_backups`` copies of a file in ``backup_dir``."""

    def __init__(self, backup_dir: Path, max_backups: int = DEFAULT_MAX_BACKUPS) -> None:
        self.backup_dir = Path(backup_dir)
        self.max_backups = max_backups

    def _pattern(self, source: Path) -> str:
        return f"{source.stem}-*{source.suffix}"

    def list_backups(self, source: Path) -> list[Path]:
        """Backups of ``source``, newest first."""
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob(self._pattern(Path(source))), key=lambda p: p.name, reverse=True)

    def create(self, source: Path) -> Path | None:
        """Copy ``source`` into the backup directory; None when there is nothing to back up."""
        source = Path(source)
        if not source.exists():
            logger.debug("Source file does not exist, skipping backup: %s", source)
            return None
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        stamp = time.time_ns()
        backup = self.backup_dir / f"{source.stem}-{stamp:020d}{source.suffix}"
        while backup.exists():
            stamp += 1
            backup = self.backup_dir / f"{source.stem}-{stamp:020d}{source.suffix}"
        shutil.copyfile(source, backup)
        logger.debug("Created backup %s", backup.name)
        self.prune(source)
        return backup

    def prune(self, source: Path) -> int:
        removed = 0
        for old in self.list_backups(source)[self.max_backups :]:
            try:
                old.unlink()
                removed += 1
            except OSError:
                logger.warning("Failed to prune backup %s", old, exc_info=True)
        if removed:
            logger.debug("Pruned %d old backup(s)", removed)
        return removed

    def latest(self, source: Path) -> Path | None:
        backups = self.list_backups(source)
        return backups[0] if backups else None

    def restore_latest(self, target: Path) -> bool:
        """Copy the newest backup of ``target`` back over it."""
        latest = self.latest(target)
        if latest is None:
            logger.warning("No backup available to restore %s", target)
            return False
        atomic_write(target, latest.read_bytes())
        logger.info("Restored %s from backup %s", target.name, latest.name)
        return True
