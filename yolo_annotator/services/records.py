"""JSON record persistence shared by the store services."""

import json
import os
import threading
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel

ModelT = TypeVar("ModelT", bound=BaseModel)

# Serializes read-modify-write cycles on record files within the process
STORE_LOCK = threading.RLock()

SEQUENCE_FILENAME = "sequences.json"


def load_model(path: Path, model: type[ModelT]) -> ModelT | None:
    """Load a pydantic model from a JSON file, or None if it does not exist."""
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    return model.model_validate(data)


def save_model(path: Path, record: BaseModel) -> None:
    """Write a pydantic model to a JSON file, replacing it atomically."""
    tmp_path = path.with_name(f".{path.name}.tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        json.dump(record.model_dump(mode="json"), f, indent=2)
    os.replace(tmp_path, path)


class IdSequence:
    """Monotonically increasing integer ids, one counter per table.

    Counters persist in ``sequences.json`` so ids are never reused, even
    after the newest record is deleted.
    """

    def __init__(self, base_dir: Path) -> None:
        self.path = base_dir / SEQUENCE_FILENAME

    def _load(self) -> dict[str, int]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            return {str(k): int(v) for k, v in json.load(f).items()}

    def next(self, table: str) -> int:
        """Allocate the next id for a table."""
        with STORE_LOCK:
            counters = self._load()
            value = counters.get(table, 0) + 1
            counters[table] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_name(f".{self.path.name}.tmp")
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(counters, f, indent=2)
            os.replace(tmp_path, self.path)
            return value
