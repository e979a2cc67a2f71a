from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from bookingdesk.application.exceptions import RecordStoreError
from bookingdesk.application.ports.record_store import RecordStorePort, Row
from bookingdesk.application.utils.row_mapping import id_label


class JsonRecordStore(RecordStorePort):
    """One JSON file per collection, written atomically. Used for local development."""

    def __init__(self, data_dir: str = "./data/records") -> None:
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, threading.Lock] = {}
        self._lock_lock = threading.Lock()  # Lock for managing locks dict

    def _get_lock(self, collection: str) -> threading.Lock:
        """Get or create a lock for a collection."""
        with self._lock_lock:
            if collection not in self._locks:
                self._locks[collection] = threading.Lock()
            return self._locks[collection]

    def _get_file_path(self, collection: str) -> Path:
        return self._data_dir / f"{collection}.json"

    def _load_rows(self, collection: str) -> list[Row]:
        """Load rows from the collection file; a missing file is an empty collection."""
        file_path = self._get_file_path(collection)
        if not file_path.exists():
            return []
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise RecordStoreError(f"Could not read {collection}: {e}") from e
        rows = data.get("rows", []) if isinstance(data, dict) else data
        return [dict(row) for row in rows if isinstance(row, dict)]

    def _save_rows(self, collection: str, rows: list[Row]) -> None:
        """Save rows to the collection file atomically."""
        file_path = self._get_file_path(collection)
        temp_path = file_path.with_suffix(".json.tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump({"collection": collection, "rows": rows}, f, indent=2, ensure_ascii=False)
            # Atomic rename
            temp_path.replace(file_path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)
            raise RecordStoreError(f"Could not write {collection}: {e}") from e

    def list_all(self, collection: str) -> list[Row]:
        with self._get_lock(collection):
            return self._load_rows(collection)

    def find_by_id(self, collection: str, record_id: str) -> Row | None:
        key = id_label(collection)
        for row in self.list_all(collection):
            if str(row.get(key, "")) == record_id:
                return row
        return None

    def append(self, collection: str, row: Row) -> None:
        with self._get_lock(collection):
            rows = self._load_rows(collection)
            rows.append({k: _jsonable(v) for k, v in row.items()})
            self._save_rows(collection, rows)

    def update_by_id(self, collection: str, record_id: str, partial: Row) -> None:
        key = id_label(collection)
        with self._get_lock(collection):
            rows = self._load_rows(collection)
            for row in rows:
                if str(row.get(key, "")) == record_id:
                    row.update({k: _jsonable(v) for k, v in partial.items()})
                    self._save_rows(collection, rows)
                    return
        raise RecordStoreError(f"No record {record_id} in {collection}")


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)
