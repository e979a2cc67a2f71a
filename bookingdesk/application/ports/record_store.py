from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

Row = dict[str, Any]


class RecordStorePort(ABC):
    """Tabular store with no transactions and no uniqueness constraints.

    Rows are flat mappings keyed by business-language column labels. Adapters
    raise ``RecordStoreError`` on any failure.
    """

    @abstractmethod
    def list_all(self, collection: str) -> list[Row]:
        raise NotImplementedError

    @abstractmethod
    def find_by_id(self, collection: str, record_id: str) -> Row | None:
        raise NotImplementedError

    @abstractmethod
    def append(self, collection: str, row: Row) -> None:
        raise NotImplementedError

    @abstractmethod
    def update_by_id(self, collection: str, record_id: str, partial: Row) -> None:
        """Merge ``partial`` into the row. Raises ``RecordStoreError`` if no row has that id."""
        raise NotImplementedError
