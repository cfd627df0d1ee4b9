"""
JSON File Store

DESIGN DECISION: The whole key/value map lives in a single JSON file.
A user's data is small enough to rewrite on every change, and a single
file makes backup and inspection trivial.

Writes go to a temporary file in the same directory and are moved into
place with os.replace, so a crash mid-write leaves either the old or the
new file, never a truncated one.
"""

import json
import os
import re
import shutil
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, Union

import structlog

from finsync.store.interface import KeyValueStore, StorageError


logger = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class JsonFileStore(KeyValueStore):
    """
    Durable store backed by one JSON object of string values.

    The file is read once at construction and kept in memory;
    every mutation rewrites it atomically.
    """

    def __init__(self, file_path: Union[str, Path]):
        self._file_path = Path(file_path)
        self._lock = threading.Lock()
        self._data = self._load()

    @classmethod
    def for_user(cls, directory: Union[str, Path], user_id: str) -> "JsonFileStore":
        """Open the store file dedicated to one user identity."""
        safe_id = _UNSAFE_CHARS.sub("_", user_id)
        return cls(Path(directory) / f"store_{safe_id}.json")

    @property
    def file_path(self) -> Path:
        return self._file_path

    def _load(self) -> dict[str, str]:
        try:
            with open(self._file_path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(
                "store_file_unreadable",
                path=str(self._file_path),
                error=str(e),
            )
            self._quarantine()
            return {}

        if not isinstance(data, dict):
            logger.warning("store_file_invalid_root", path=str(self._file_path))
            self._quarantine()
            return {}

        values = {}
        for key, value in data.items():
            if isinstance(value, str):
                values[key] = value
            else:
                logger.warning("store_value_not_string", key=key)
        return values

    def _quarantine(self) -> Optional[Path]:
        """Keep a copy of an unreadable file before it gets overwritten."""
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        target = self._file_path.with_name(
            f"{self._file_path.stem}_corrupt_{stamp}{self._file_path.suffix}"
        )
        try:
            shutil.copy2(self._file_path, target)
        except OSError as e:
            logger.error("store_quarantine_failed", path=str(self._file_path), error=str(e))
            return None
        logger.info("store_quarantined", path=str(target))
        return target

    def _save(self) -> None:
        directory = self._file_path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".store_", suffix=".json", dir=directory)
        except OSError as e:
            raise StorageError(f"Cannot write store file {self._file_path}: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self._file_path)
        except OSError as e:
            raise StorageError(f"Cannot write store file {self._file_path}: {e}") from e
        finally:
            if os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    logger.exception("store_tmp_cleanup_failed", path=tmp_path)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            previous = self._data.get(key)
            self._data[key] = value
            try:
                self._save()
            except StorageError:
                # Keep memory consistent with disk
                if previous is None:
                    self._data.pop(key, None)
                else:
                    self._data[key] = previous
                raise

    def remove(self, key: str) -> None:
        with self._lock:
            if key not in self._data:
                return
            previous = self._data.pop(key)
            try:
                self._save()
            except StorageError:
                self._data[key] = previous
                raise

    def keys(self) -> Iterable[str]:
        with self._lock:
            return list(self._data)
