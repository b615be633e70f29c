"""
Immutable file backups with a JSON index.

Each backup is a byte copy under the backup directory plus an index entry
(backup_dir/index.json) holding the original path, timestamp, size and sha256
checksum used to verify the copy before it is ever restored.
"""

import hashlib
import json
import logging
import threading
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from cms_scout.core.errors import BackupCorruptedError, BackupNotFoundError
from cms_scout.core.storage import LocalStorage, atomic_write
from cms_scout.updater.models import BackupRecord

INDEX_FILE = "index.json"


def checksum(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def generate_backup_id(file_path: str) -> str:
    path_hash = hashlib.md5(str(file_path).encode("utf-8")).hexdigest()[:12]
    return f"backup_{path_hash}_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"


class BackupManager:
    """Creates, verifies, lists and expires backups."""

    def __init__(self, backup_directory: str, storage=None, logger: Optional[logging.Logger] = None):
        self.backup_directory = Path(backup_directory)
        self.storage = storage or LocalStorage()
        self.logger = logger or logging.getLogger(__name__)
        self._guard = threading.Lock()

    @property
    def index_path(self) -> Path:
        return self.backup_directory / INDEX_FILE

    def _load_index(self) -> Dict[str, Dict[str, Any]]:
        if not self.storage.exists(self.index_path):
            return {}
        try:
            index = json.loads(self.storage.read(self.index_path).decode("utf-8"))
            if not isinstance(index, dict):
                raise ValueError(f"expected a JSON object, got {type(index).__name__}")
            return index
        except (ValueError, UnicodeDecodeError) as e:
            self._set_aside_index(e)
            return {}

    def _set_aside_index(self, reason: Exception) -> None:
        """Keep an unreadable index under a new name so its records can be recovered by hand."""
        aside = self.index_path.with_name(
            f"{INDEX_FILE}.corrupt.{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}"
        )
        try:
            self.storage.move(self.index_path, aside)
        except OSError as e:
            raise BackupCorruptedError(f"Backup index is unreadable ({reason}) and could not be moved aside: {e}") from e
        self.logger.error(f"Backup index is unreadable, moved to {aside.name}: {reason}")

    def _save_index(self, index: Dict[str, Dict[str, Any]]) -> None:
        atomic_write(self.storage, str(self.index_path), json.dumps(index, indent=2).encode("utf-8"))

    def create(self, file_path: str) -> BackupRecord:
        """Copy the file's current bytes into a new backup."""
        data = self.storage.read(file_path)
        backup_id = generate_backup_id(file_path)
        backup_path = self.backup_directory / f"{backup_id}_{Path(file_path).name}"
        self.storage.write(backup_path, data)

        record = BackupRecord(
            id=backup_id,
            original_file=str(file_path),
            backup_path=str(backup_path),
            created_at=datetime.now().isoformat(),
            size=len(data),
            checksum=checksum(data),
        )
        with self._guard:
            index = self._load_index()
            entry = record.to_dict()
            entry.pop("id")
            index[backup_id] = entry
            self._save_index(index)

        self.logger.info(f"Backup created: {backup_id} for {file_path}")
        return record

    def get(self, backup_id: str) -> BackupRecord:
        entry = self._load_index().get(backup_id)
        if entry is None:
            raise BackupNotFoundError(f"Backup not found: {backup_id}")
        return BackupRecord.from_dict(backup_id, entry)

    def read_verified(self, backup_id: str) -> bytes:
        """
        Backup bytes after checking them against the recorded checksum.

        Raises:
            BackupNotFoundError: unknown id or missing backup file
            BackupCorruptedError: checksum mismatch
        """
        record = self.get(backup_id)
        if not self.storage.exists(record.backup_path):
            raise BackupNotFoundError(f"Backup file missing for {backup_id}: {record.backup_path}")

        data = self.storage.read(record.backup_path)
        if checksum(data) != record.checksum:
            raise BackupCorruptedError(f"Backup {backup_id} failed checksum verification")
        return data

    def history(self, file_path: Optional[str] = None) -> List[BackupRecord]:
        """Backups (optionally for one file), newest first."""
        records = [BackupRecord.from_dict(backup_id, entry) for backup_id, entry in self._load_index().items()]
        if file_path is not None:
            records = [record for record in records if record.original_file == str(file_path)]
        return sorted(records, key=lambda record: record.created_at, reverse=True)

    def delete(self, backup_id: str) -> bool:
        with self._guard:
            index = self._load_index()
            entry = index.pop(backup_id, None)
            if entry is None:
                return False
            self.storage.delete(entry["backup_path"])
            self._save_index(index)
        return True

    def cleanup(self, max_age_days: int) -> int:
        """Delete backups older than max_age_days. Returns how many were removed."""
        cutoff = datetime.now() - timedelta(days=max_age_days)
        removed = 0
        with self._guard:
            index = self._load_index()
            for backup_id, entry in list(index.items()):
                try:
                    created = datetime.fromisoformat(entry["created_at"])
                except (KeyError, ValueError):
                    self.logger.warning(f"Backup {backup_id} has no valid timestamp, skipping")
                    continue
                if created < cutoff:
                    self.storage.delete(entry["backup_path"])
                    del index[backup_id]
                    removed += 1
            if removed:
                self._save_index(index)

        self.logger.info(f"Cleaned up {removed} backup(s) older than {max_age_days} day(s)")
        return removed
