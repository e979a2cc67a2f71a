from __future__ import annotations

import threading
from typing import Any

from bookingdesk.application.exceptions import RecordStoreError
from bookingdesk.application.ports.record_store import RecordStorePort, Row
from bookingdesk.application.utils.row_mapping import id_label


class MemoryRecordStore(RecordStorePort):
    """In-process store that behaves like the spreadsheet: cells come back as text."""

    def __init__(self, stringify: bool = True) -> None:
        self._collections: dict[str, list[Row]] = {}
        self._lock = threading.Lock()
        self._stringify = stringify

    def list_all(self, collection: str) -> list[Row]:
        with self._lock:
            return [dict(row) for row in self._collections.get(collection, [])]

    def find_by_id(self, collection: str, record_id: str) -> Row | None:
        key = id_label(collection)
        with self._lock:
            for row in self._collections.get(collection, []):
                if str(row.get(key, "")) == record_id:
                    return dict(row)
        return None

    def append(self, collection: str, row: Row) -> None:
        with self._lock:
            self._collections.setdefault(collection, []).append(self._cells(row))

    def update_by_id(self, collection: str, record_id: str, partial: Row) -> None:
        key = id_label(collection)
        with self._lock:
            for row in self._collections.get(collection, []):
                if str(row.get(key, "")) == record_id:
                    row.update(self._cells(partial))
                    return
        raise RecordStoreError(f"No record {record_id} in {collection}")

    def _cells(self, row: Row) -> Row:
        if not self._stringify:
            return dict(row)
        return {key: _cell_text(value) for key, value in row.items()}


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)
