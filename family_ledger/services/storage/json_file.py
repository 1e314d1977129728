"""
JSON File Storage Implementation

The whole store lives in one db.json file with one top-level list per
collection.

TRADEOFFS:
- Every save rewrites the full file (fine for a household's data)
- The file is written to a sibling temp file and swapped in with
  os.replace, so a reader never sees a half-written file
- File I/O is blocking and runs while the AtomicStore lock is held
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Union

from pydantic import ValidationError

from family_ledger.models.ledger import Snapshot
from family_ledger.services.storage.interface import SnapshotStore, StorageError


class JsonFileSnapshotStore(SnapshotStore):
    """Snapshot store backed by a single JSON document."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> Snapshot:
        """Read the snapshot; a missing or empty file is an empty store."""
        if not self._path.exists():
            return Snapshot()
        try:
            raw = self._path.read_text(encoding="utf-8")
            if not raw.strip():
                return Snapshot()
            return Snapshot.model_validate(json.loads(raw))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise StorageError(f"Failed to load snapshot from {self._path}: {e}") from e

    async def save(self, snapshot: Snapshot) -> None:
        """Write the snapshot atomically (temp file + os.replace)."""
        payload = json.dumps(snapshot.model_dump(mode="json"), indent=2)
        directory = self._path.parent
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=directory, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to save snapshot to {self._path}: {e}") from e
