"""
Transactional file mutation.

    IDLE -> LOCKED -> BACKED_UP -> MUTATING -> VALIDATING -> COMMITTED -> UNLOCKED
                                                         +-> ROLLED_BACK -> UNLOCKED

Used as a context manager: entering locks (and backs up), leaving always
unlocks. An exception inside the block rolls the file back to the backup
when rollback is enabled and is then re-raised.
"""

import logging
from enum import Enum
from typing import List, Optional, Tuple, Union

from cms_scout.core.errors import FileAccessError, UpdateError
from cms_scout.core.storage import atomic_write
from cms_scout.updater.backups import BackupManager
from cms_scout.updater.locks import FileLockManager
from cms_scout.updater.models import BackupRecord


class TransactionState(str, Enum):
    IDLE = "idle"
    LOCKED = "locked"
    BACKED_UP = "backed_up"
    MUTATING = "mutating"
    VALIDATING = "validating"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    UNLOCKED = "unlocked"


class FileTransaction:
    """One locked, backed-up, validated write of a single file."""

    def __init__(
        self,
        file_path: str,
        locks: FileLockManager,
        backups: BackupManager,
        storage,
        logger: Optional[logging.Logger] = None,
        auto_backup: bool = True,
        rollback_on_failure: bool = True,
        encoding: str = "utf-8",
    ):
        self.file_path = str(file_path)
        self.locks = locks
        self.backups = backups
        self.storage = storage
        self.logger = logger or logging.getLogger(__name__)
        self.auto_backup = auto_backup
        self.rollback_on_failure = rollback_on_failure
        self.encoding = encoding

        self.state = TransactionState.IDLE
        self.transitions: List[Tuple[TransactionState, TransactionState]] = []
        self.backup: Optional[BackupRecord] = None
        self.original_content: Optional[str] = None

    def _transition(self, state: TransactionState) -> None:
        self.transitions.append((self.state, state))
        self.logger.debug(f"{self.file_path}: {self.state.value} -> {state.value}")
        self.state = state

    def __enter__(self) -> "FileTransaction":
        self.locks.acquire(self.file_path)
        self._transition(TransactionState.LOCKED)
        try:
            if self.auto_backup:
                self.backup = self.backups.create(self.file_path)
                self._transition(TransactionState.BACKED_UP)
            self.original_content = self.read()
        except BaseException:
            self._unlock()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc is not None and self.state != TransactionState.COMMITTED:
                self.logger.error(f"Update of {self.file_path} failed: {exc}")
                if self.backup is not None and self.rollback_on_failure:
                    self.rollback()
        finally:
            self._unlock()
        return False

    def _unlock(self) -> None:
        self.locks.release(self.file_path)
        self._transition(TransactionState.UNLOCKED)

    def read(self) -> str:
        try:
            return self.storage.read(self.file_path).decode(self.encoding)
        except UnicodeDecodeError as e:
            raise FileAccessError(f"{self.file_path} is not valid {self.encoding}: {e}") from e
        except OSError as e:
            raise FileAccessError(f"Could not read {self.file_path}: {e}") from e

    def mutating(self) -> None:
        self._transition(TransactionState.MUTATING)

    def validating(self) -> None:
        self._transition(TransactionState.VALIDATING)

    def commit(self, content: Union[str, bytes]) -> None:
        data = content.encode(self.encoding) if isinstance(content, str) else content
        atomic_write(self.storage, self.file_path, data)
        self._transition(TransactionState.COMMITTED)
        self.logger.info(f"Committed update to {self.file_path}")

    def rollback(self) -> None:
        """Restore the backup bytes; failures are logged, never raised."""
        try:
            data = self.backups.read_verified(self.backup.id)
            if self.storage.read(self.file_path) != data:
                self.storage.write(self.file_path, data)
            self._transition(TransactionState.ROLLED_BACK)
            self.logger.info(f"Rolled back {self.file_path} to {self.backup.id}")
        except (UpdateError, OSError) as e:
            self.logger.error(f"Rollback of {self.file_path} failed: {e}")
