"""Durable queue document stored as a single JSON file with locking."""

import json
import logging
import os
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Union

from pydantic import ValidationError as PydanticValidationError

from .errors import PersistenceError
from .models import QueueDocument

# Handle platform-specific locking
if sys.platform == "win32":
    import msvcrt
else:
    import fcntl

logger = logging.getLogger(__name__)


class Storage:
    """File-backed queue document with serialized read-modify-write."""

    def __init__(self, storage_path: Union[str, Path] = "storage"):
        self.storage_path = Path(storage_path)
        self.db_dir = self.storage_path / "db"
        self.pdf_dir = self.storage_path / "pdf"
        self.db_file = self.db_dir / "db.json"
        self.lock_file = self.db_dir / "db.lock"
        self._lock = threading.RLock()

        try:
            self.db_dir.mkdir(parents=True, exist_ok=True)
            self.pdf_dir.mkdir(parents=True, exist_ok=True)
            # Initialize the document if it doesn't exist
            if not self.db_file.exists():
                self._write_json(self.db_file, QueueDocument().model_dump(mode="json"))
        except OSError as e:
            raise PersistenceError(f"Could not initialize storage at {self.storage_path}: {e}") from e

    def _write_json(self, file_path: Path, data: Any) -> None:
        """Write data to JSON file with atomic write."""
        temp_file = file_path.with_suffix(".tmp")
        with open(temp_file, "w") as f:
            json.dump(data, f, indent=2, default=str)
            f.flush()
            os.fsync(f.fileno())
        temp_file.replace(file_path)

    def _read_json(self, file_path: Path) -> Any:
        """Read JSON file safely."""
        if not file_path.exists():
            return {}
        with open(file_path, "r") as f:
            return json.load(f)

    def _lock_file(self, fd: int) -> None:
        if sys.platform == "win32":
            msvcrt.locking(fd, msvcrt.LK_LOCK, 1)
        else:
            fcntl.flock(fd, fcntl.LOCK_EX)

    def _unlock_file(self, fd: int) -> None:
        try:
            if sys.platform == "win32":
                msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
            else:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def load(self) -> QueueDocument:
        """Read the current document."""
        with self._lock:
            return self._load()

    def _load(self) -> QueueDocument:
        try:
            return QueueDocument(**self._read_json(self.db_file))
        except (OSError, ValueError, PydanticValidationError) as e:
            raise PersistenceError(f"Could not read queue document {self.db_file}: {e}") from e

    def save(self, document: QueueDocument) -> None:
        with self._lock:
            self._save(document)

    def _save(self, document: QueueDocument) -> None:
        try:
            self._write_json(self.db_file, document.model_dump(mode="json"))
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Could not write queue document {self.db_file}: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[QueueDocument]:
        """Load the document, let the caller mutate it, and write it back.

        The in-process lock and an exclusive file lock are held for the whole
        read-modify-write so that no writer works from a stale read. Nothing is
        written if the body raises.
        """
        with self._lock:
            try:
                fd = os.open(str(self.lock_file), os.O_CREAT | os.O_WRONLY, 0o644)
            except OSError as e:
                raise PersistenceError(f"Could not open lock file {self.lock_file}: {e}") from e
            try:
                self._lock_file(fd)
            except OSError as e:
                os.close(fd)
                raise PersistenceError(f"Could not lock queue document {self.db_file}: {e}") from e
            try:
                document = self._load()
                yield document
                self._save(document)
            finally:
                self._unlock_file(fd)
