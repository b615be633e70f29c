"""
Local filesystem storage collaborator.

Wraps the handful of file operations the updater and translation store need
so tests (or another backend) can swap them out.
"""

import os
import shutil
import uuid
from pathlib import Path
from typing import List, Union

from cms_scout.core.errors import AtomicWriteVerificationError, FileAccessError

PathLike = Union[str, Path]


class LocalStorage:
    """Byte-oriented file storage on the local disk."""

    def read(self, path: PathLike) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    def write(self, path: PathLike, data: bytes) -> int:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            written = f.write(data)
            f.flush()
            os.fsync(f.fileno())
        return written

    def exists(self, path: PathLike) -> bool:
        return Path(path).exists()

    def copy(self, source: PathLike, destination: PathLike) -> None:
        Path(destination).parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)

    def move(self, source: PathLike, destination: PathLike) -> None:
        """Rename source over destination (atomic on the same filesystem)."""
        os.replace(source, destination)

    def delete(self, path: PathLike) -> bool:
        try:
            Path(path).unlink()
            return True
        except FileNotFoundError:
            return False

    def size(self, path: PathLike) -> int:
        return Path(path).stat().st_size

    def last_modified(self, path: PathLike) -> float:
        return Path(path).stat().st_mtime

    def list_directories(self, path: PathLike) -> List[str]:
        root = Path(path)
        if not root.is_dir():
            return []
        return sorted(str(p) for p in root.iterdir() if p.is_dir())

    def list_files(self, path: PathLike, pattern: str = "*") -> List[str]:
        root = Path(path)
        if not root.is_dir():
            return []
        return sorted(str(p) for p in root.rglob(pattern) if p.is_file())


def atomic_write(storage, file_path: PathLike, data: bytes) -> None:
    """
    Write via <file>.tmp.<hex>, verify the temp copy byte-for-byte, then rename.

    Raises:
        AtomicWriteVerificationError: temp copy differs; the target is untouched
        FileAccessError: the temp file could not be written or renamed
    """
    temp_path = f"{file_path}.tmp.{uuid.uuid4().hex[:12]}"
    try:
        storage.write(temp_path, data)
        if storage.read(temp_path) != data:
            raise AtomicWriteVerificationError(f"Atomic write verification failed for {file_path}")
        storage.move(temp_path, file_path)
    except AtomicWriteVerificationError:
        storage.delete(temp_path)
        raise
    except OSError as e:
        storage.delete(temp_path)
        raise FileAccessError(f"Could not write {file_path}: {e}") from e
