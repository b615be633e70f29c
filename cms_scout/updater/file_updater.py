"""
Safe, transactional updates of template files.

Every mutation runs inside a FileTransaction: lock, backup, apply through the
strategy chain, validate, atomic write, and roll back on failure.
"""

import difflib
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from cms_scout.core.context import ScanContext
from cms_scout.core.errors import (
    BackupNotFoundError,
    ContentNotFoundError,
    FileAccessError,
    PathNotAllowedError,
    ValidationError,
)
from cms_scout.core.storage import atomic_write
from cms_scout.updater.backups import BackupManager
from cms_scout.updater.locks import FileLockManager
from cms_scout.updater.models import BackupRecord, FileDiff, UpdateOperation, UpdateResult
from cms_scout.updater.strategies import StrategyChain, apply_operation, default_chain
from cms_scout.updater.transaction import FileTransaction

DEFAULT_BACKUP_DIRECTORY = "storage/cms/file-backups"
DEFAULT_LOCK_DIRECTORY = "storage/cms/file-locks"


def _region_pattern(region_id: str):
    return re.compile(
        rf"""(?P<open>@cmseditable\(\s*(?P<q>['"]){re.escape(region_id)}(?P=q)\s*\))(?P<body>.*?)(?P<close>@endcmseditable)""",
        re.DOTALL,
    )


class FileUpdater:
    """Facade over locks, backups, transactions and the strategy chain."""

    def __init__(self, context: Optional[ScanContext] = None, chain: Optional[StrategyChain] = None):
        self.context = context or ScanContext()
        self.logger = self.context.logger
        self.storage = self.context.storage
        self.config = self.context.section("updater")

        self.auto_backup = self.config.get("auto_backup", True)
        self.rollback_on_failure = self.config.get("rollback_on_failure", True)
        self.encoding = self.config.get("encoding", "utf-8")
        self.allowed_directories = [Path(d).resolve() for d in self.config.get("allowed_directories") or []]

        self.locks = FileLockManager(
            self.config.get("lock_directory", DEFAULT_LOCK_DIRECTORY),
            stale_seconds=self.config.get("lock_stale_seconds", 300),
            logger=self.logger,
        )
        self.backups = BackupManager(
            self.config.get("backup_directory", DEFAULT_BACKUP_DIRECTORY),
            storage=self.storage,
            logger=self.logger,
        )
        self.chain = chain or default_chain(self.logger)

    # ------------------------------------------------------------------
    # Path policy
    # ------------------------------------------------------------------

    def check_allowed(self, file_path: Union[str, Path]) -> str:
        path = Path(file_path).resolve()
        if self.allowed_directories and not any(path.is_relative_to(d) for d in self.allowed_directories):
            raise PathNotAllowedError(f"File is outside the allowed directories: {path}")
        return str(path)

    def validate_file_path(self, file_path: Union[str, Path]) -> str:
        """
        Resolve file_path and check it may be updated.

        Raises:
            PathNotAllowedError: outside updater.allowed_directories
            FileAccessError: file does not exist
        """
        path = self.check_allowed(file_path)
        if not self.storage.exists(path) or Path(path).is_dir():
            raise FileAccessError(f"File not found: {path}")
        return path

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _transaction(self, file_path: str) -> FileTransaction:
        return FileTransaction(
            file_path,
            self.locks,
            self.backups,
            self.storage,
            logger=self.logger,
            auto_backup=self.auto_backup,
            rollback_on_failure=self.rollback_on_failure,
            encoding=self.encoding,
        )

    def _execute(
        self,
        file_path: Union[str, Path],
        context: Optional[Dict[str, Any]],
        mutate: Callable[[str, Dict[str, Any]], Tuple[str, List[str]]],
        operations: int = 1,
    ) -> UpdateResult:
        path = self.validate_file_path(file_path)
        base_context = dict(context or {})
        base_context["file_path"] = path

        with self._transaction(path) as tx:
            tx.mutating()
            content, strategies = mutate(tx.original_content, base_context)

            tx.validating()
            entry = self.chain.select(content, base_context)
            validation = entry.handler.validate(content, base_context)
            if not validation.valid:
                raise ValidationError(f"Validation failed: {'; '.join(validation.errors)}", validation.errors)
            for warning in validation.warnings:
                self.logger.warning(f"{path}: {warning}")

            tx.commit(content)

        return UpdateResult(
            file=path,
            backup_id=tx.backup.id if tx.backup else None,
            strategies=strategies,
            operations=operations,
            warnings=validation.warnings,
            states=[state.value for _, state in tx.transitions],
        )

    def _apply(self, operations: List[UpdateOperation]) -> Callable[[str, Dict[str, Any]], Tuple[str, List[str]]]:
        def mutate(content: str, base_context: Dict[str, Any]) -> Tuple[str, List[str]]:
            strategies = []
            for operation in operations:
                op_context = {**base_context, **operation.context}
                entry = self.chain.select(content, op_context)
                updated = apply_operation(entry.handler, content, operation, op_context)
                if updated == content:
                    raise ContentNotFoundError(f"{operation.describe()} changed nothing in {base_context['file_path']}")
                self.logger.debug(f"Applied {operation.describe()} with '{entry.name}' strategy")
                strategies.append(entry.name)
                content = updated
            return content, strategies

        return mutate

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def update_content(self, file_path, old: str, new: str, context: Optional[Dict[str, Any]] = None) -> UpdateResult:
        """Replace old with new (context: regex, limit, case_sensitive, strategy)."""
        operation = UpdateOperation(type="content", old=old, new=new)
        return self._execute(file_path, context, self._apply([operation]))

    def update_by_line_number(self, file_path, line: int, new: str, context: Optional[Dict[str, Any]] = None) -> UpdateResult:
        operation = UpdateOperation(type="line", line=line, new=new)
        return self._execute(file_path, context, self._apply([operation]))

    def update_by_selector(self, file_path, selector: str, new: str, context: Optional[Dict[str, Any]] = None) -> UpdateResult:
        operation = UpdateOperation(type="selector", selector=selector, new=new)
        return self._execute(file_path, context, self._apply([operation]))

    def update_attribute(
        self, file_path, selector: str, attribute: str, value: str, context: Optional[Dict[str, Any]] = None
    ) -> UpdateResult:
        """Set an attribute on matching elements; an empty value removes it."""
        operation = UpdateOperation(type="attribute", selector=selector, attribute=attribute, value=value)
        return self._execute(file_path, context, self._apply([operation]))

    def batch_update(
        self, file_path, operations: List[Union[UpdateOperation, Dict[str, Any]]], context: Optional[Dict[str, Any]] = None
    ) -> UpdateResult:
        """
        Apply several operations with one lock, one validation and one write.

        Raises:
            UnknownOperationTypeError: before anything is locked
        """
        parsed = [op if isinstance(op, UpdateOperation) else UpdateOperation.from_dict(op) for op in operations]
        if not parsed:
            raise ContentNotFoundError("Batch update has no operations")
        return self._execute(file_path, context, self._apply(parsed), operations=len(parsed))

    def update_file(self, file_path, content: str, context: Optional[Dict[str, Any]] = None) -> UpdateResult:
        """Replace the whole file content."""

        def mutate(original: str, base_context: Dict[str, Any]) -> Tuple[str, List[str]]:
            if original == content:
                raise ContentNotFoundError(f"New content is identical to {base_context['file_path']}")
            return content, ["full"]

        return self._execute(file_path, context, mutate)

    def update_region(self, file_path, region_id: str, content: str, context: Optional[Dict[str, Any]] = None) -> UpdateResult:
        """Replace the body of @cmseditable('region_id') ... @endcmseditable."""
        pattern = _region_pattern(region_id)

        def mutate(original: str, base_context: Dict[str, Any]) -> Tuple[str, List[str]]:
            if not pattern.search(original):
                raise ContentNotFoundError(f"Editable region '{region_id}' not found")
            updated = pattern.sub(lambda m: m.group("open") + content + m.group("close"), original)
            if updated == original:
                raise ContentNotFoundError(f"Editable region '{region_id}' already has this content")
            return updated, ["region"]

        return self._execute(file_path, context, mutate)

    def atomic_write(self, file_path, content: Union[str, bytes]) -> None:
        """Temp-write, verify, rename (no lock or backup)."""
        data = content.encode(self.encoding) if isinstance(content, str) else content
        atomic_write(self.storage, self.check_allowed(file_path), data)

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def create_backup(self, file_path) -> BackupRecord:
        return self.backups.create(self.validate_file_path(file_path))

    def restore(self, file_path, backup_id: str) -> BackupRecord:
        """
        Put a backup's bytes back in place.

        The backup is verified before the live file is touched.

        Raises:
            BackupNotFoundError: unknown id, missing backup file, or a backup of another file
            BackupCorruptedError: checksum mismatch (live file untouched)
        """
        path = self.check_allowed(file_path)
        record = self.backups.get(backup_id)
        if record.original_file != path:
            raise BackupNotFoundError(f"Backup {backup_id} belongs to {record.original_file}, not {path}")
        data = self.backups.read_verified(backup_id)

        if not self.storage.exists(path):
            self.locks.acquire(path)
            try:
                atomic_write(self.storage, path, data)
            finally:
                self.locks.release(path)
        else:
            with self._transaction(path) as tx:
                tx.mutating()
                tx.validating()
                tx.commit(data)

        self.logger.info(f"Restored {path} from {backup_id}")
        return record

    def diff(self, file_path, backup_id: str) -> FileDiff:
        """Compare a backup (old) with the live file (new), line by line."""
        path = self.validate_file_path(file_path)
        old_text = self.backups.read_verified(backup_id).decode(self.encoding)
        new_text = self.storage.read(path).decode(self.encoding)
        old_lines = old_text.splitlines()
        new_lines = new_text.splitlines()

        result = FileDiff(file=path, backup_id=backup_id)
        for index in range(max(len(old_lines), len(new_lines))):
            line = index + 1
            if index >= len(old_lines):
                result.added.append({"line": line, "content": new_lines[index]})
            elif index >= len(new_lines):
                result.removed.append({"line": line, "content": old_lines[index]})
            elif old_lines[index] != new_lines[index]:
                result.modified.append({"line": line, "old": old_lines[index], "new": new_lines[index]})
            else:
                result.unchanged.append({"line": line, "content": old_lines[index]})

        result.unified = "".join(
            difflib.unified_diff(
                old_text.splitlines(keepends=True),
                new_text.splitlines(keepends=True),
                fromfile=f"{backup_id}",
                tofile=path,
            )
        )
        return result

    def history(self, file_path=None) -> List[BackupRecord]:
        """Backups for a file (or all files), newest first."""
        return self.backups.history(self.check_allowed(file_path) if file_path is not None else None)

    def cleanup_backups(self, max_age_days: Optional[int] = None) -> int:
        if max_age_days is None:
            max_age_days = self.config.get("max_backup_age_days", 30)
        return self.backups.cleanup(max_age_days)

    # ------------------------------------------------------------------
    # Locks and strategies
    # ------------------------------------------------------------------

    def lock(self, file_path) -> None:
        self.locks.acquire(self.validate_file_path(file_path))

    def unlock(self, file_path) -> None:
        self.locks.release(self.check_allowed(file_path))

    def is_locked(self, file_path) -> bool:
        return self.locks.is_locked(self.check_allowed(file_path))

    def register_strategy(self, name: str, handler, priority: int = 50, predicate=None) -> None:
        self.chain.register(name, handler, priority=priority, predicate=predicate)
