"""Named per-file locks backed by exclusive lock files."""

import hashlib
import json
import logging
import os
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from cms_scout.core.errors import LockContentionError


def lock_name(file_path: str) -> str:
    return hashlib.md5(str(file_path).encode("utf-8")).hexdigest()


class FileLockManager:
    """
    Fail-fast file locks.

    A lock is a file named md5(path).lock created with O_EXCL, so it is shared
    between processes. An in-process registry guards against the same process
    locking a file twice. Lock files older than stale_seconds are treated as
    abandoned and reclaimed.
    """

    def __init__(self, lock_directory: str, stale_seconds: int = 300, logger: Optional[logging.Logger] = None):
        self.lock_directory = Path(lock_directory)
        self.stale_seconds = stale_seconds
        self.logger = logger or logging.getLogger(__name__)
        self._held: Dict[str, str] = {}
        self._guard = threading.Lock()

    def lock_path(self, file_path: str) -> Path:
        return self.lock_directory / f"{lock_name(file_path)}.lock"

    def acquire(self, file_path: str) -> Path:
        """
        Take the lock for file_path.

        Raises:
            LockContentionError: someone else holds it (no waiting)
        """
        name = lock_name(file_path)
        path = self.lock_path(file_path)

        with self._guard:
            if name in self._held:
                raise LockContentionError(f"File is locked by another operation: {file_path}")

            self.lock_directory.mkdir(parents=True, exist_ok=True)
            if not self._create(path, file_path):
                if self._is_stale(path):
                    self.logger.warning(f"Reclaiming stale lock for {file_path}")
                    path.unlink(missing_ok=True)
                    if not self._create(path, file_path):
                        raise LockContentionError(f"File is locked by another operation: {file_path}")
                else:
                    raise LockContentionError(f"File is locked by another operation: {file_path}")

            self._held[name] = str(file_path)

        self.logger.debug(f"Lock acquired: {file_path}")
        return path

    def release(self, file_path: str) -> None:
        name = lock_name(file_path)
        with self._guard:
            if self._held.pop(name, None) is None:
                return
            self.lock_path(file_path).unlink(missing_ok=True)
        self.logger.debug(f"Lock released: {file_path}")

    def is_locked(self, file_path: str) -> bool:
        path = self.lock_path(file_path)
        return lock_name(file_path) in self._held or (path.exists() and not self._is_stale(path))

    def _create(self, path: Path, file_path: str) -> bool:
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump({"file": str(file_path), "locked_at": datetime.now().isoformat(), "pid": os.getpid()}, f)
        return True

    def _is_stale(self, path: Path) -> bool:
        try:
            age = time.time() - path.stat().st_mtime
        except FileNotFoundError:
            return True
        return age > self.stale_seconds
