"""
JSON file ledger backend for single-instance and local deployments.

One file per namespace: ``<data_dir>/<key>.json``. Writes go through a
temporary file and ``os.replace`` so a crash never leaves a torn document.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional

from core.exceptions import PersistenceUnavailableError


class FileLedgerRepository:
    """Ledger backend on the local filesystem."""

    name = "file"

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def probe(self) -> None:
        """Check that the data directory exists and is writable."""
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=self.data_dir, prefix=".probe", delete=True):
                pass
        except OSError as e:
            raise PersistenceUnavailableError(str(self.data_dir), str(e)) from e

    def read_raw(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceUnavailableError(key, str(e)) from e

    def write_raw(self, key: str, payload: str) -> None:
        path = self._path(key)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceUnavailableError(key, str(e)) from e

    def close(self) -> None:
        pass
