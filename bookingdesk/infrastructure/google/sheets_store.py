from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import quote

import httpx

from bookingdesk.application.exceptions import RecordStoreError
from bookingdesk.application.ports.record_store import RecordStorePort, Row
from bookingdesk.application.utils.row_mapping import HEADERS, id_label
from bookingdesk.infrastructure.google.auth import GoogleAuthError


def column_letter(index: int) -> str:
    """1-based column index to A1 letters (1 -> A, 27 -> AA)."""
    letters = ""
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


class SheetsRecordStore(RecordStorePort):
    """Record store backed by a Google Sheets spreadsheet.

    Row 1 of each sheet holds the column labels; data starts on row 2. Values
    are written RAW so phone numbers and ids keep their leading zeros.
    """

    def __init__(
        self,
        spreadsheet_id: str,
        token_provider: Callable[[], str],
        sheet_names: dict[str, str],
        base_url: str = "https://sheets.googleapis.com/v4",
        client: httpx.Client | None = None,
    ) -> None:
        if not spreadsheet_id:
            raise ValueError("SPREADSHEET_ID is required for the Sheets record store")
        self._spreadsheet_id = spreadsheet_id
        self._token_provider = token_provider
        self._sheet_names = dict(sheet_names)
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=10.0)
        self._logger = logging.getLogger(__name__)

    def list_all(self, collection: str) -> list[Row]:
        values = self._get_values(collection, "A1:ZZ")
        if not values:
            return []
        headers = [str(h) for h in values[0]]
        rows: list[Row] = []
        for raw in values[1:]:
            if not any(str(cell).strip() for cell in raw):
                continue
            rows.append({header: (raw[i] if i < len(raw) else "") for i, header in enumerate(headers) if header})
        return rows

    def find_by_id(self, collection: str, record_id: str) -> Row | None:
        key = id_label(collection)
        for row in self.list_all(collection):
            if str(row.get(key, "")) == record_id:
                return row
        return None

    def append(self, collection: str, row: Row) -> None:
        headers = self._headers(collection)
        dropped = [label for label in row if label not in headers]
        if dropped:
            self._logger.warning(
                "Columns missing from sheet; values dropped",
                extra={"collection": collection, "reason": ",".join(dropped)},
            )
        values = [_cell(row.get(header)) for header in headers]
        self._request(
            "POST",
            f"{self._values_url(collection, 'A1')}:append",
            collection,
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": [values]},
        )

    def update_by_id(self, collection: str, record_id: str, partial: Row) -> None:
        values = self._get_values(collection, "A1:ZZ")
        if not values:
            raise RecordStoreError(f"No record {record_id} in {collection}")
        headers = [str(h) for h in values[0]]
        key = id_label(collection)
        if key not in headers:
            raise RecordStoreError(f"Sheet for {collection} has no {key} column")
        key_index = headers.index(key)

        for offset, raw in enumerate(values[1:]):
            if key_index < len(raw) and str(raw[key_index]) == record_id:
                current = {header: (raw[i] if i < len(raw) else "") for i, header in enumerate(headers)}
                current.update(partial)
                row_number = offset + 2
                cell_range = f"A{row_number}:{column_letter(len(headers))}{row_number}"
                self._request(
                    "PUT",
                    self._values_url(collection, cell_range),
                    collection,
                    params={"valueInputOption": "RAW"},
                    json={"values": [[_cell(current.get(header)) for header in headers]]},
                )
                return
        raise RecordStoreError(f"No record {record_id} in {collection}")

    def _headers(self, collection: str) -> list[str]:
        values = self._get_values(collection, "A1:ZZ1")
        if values and values[0]:
            return [str(h) for h in values[0]]
        # Empty sheet: lay down the known header row first
        headers = list(HEADERS.get(collection, ()))
        if not headers:
            raise RecordStoreError(f"Sheet for {collection} has no header row")
        self._request(
            "PUT",
            self._values_url(collection, f"A1:{column_letter(len(headers))}1"),
            collection,
            params={"valueInputOption": "RAW"},
            json={"values": [headers]},
        )
        return headers

    def _get_values(self, collection: str, cell_range: str) -> list[list[Any]]:
        data = self._request("GET", self._values_url(collection, cell_range), collection)
        return data.get("values", []) or []

    def _values_url(self, collection: str, cell_range: str) -> str:
        sheet = self._sheet_names.get(collection, collection)
        a1 = quote(f"'{sheet}'!{cell_range}", safe="")
        return f"{self._base_url}/spreadsheets/{self._spreadsheet_id}/values/{a1}"

    def _request(self, method: str, url: str, collection: str, **kwargs: Any) -> dict[str, Any]:
        try:
            headers = {"Authorization": f"Bearer {self._token_provider()}"}
            response = self._client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
        except (httpx.HTTPError, GoogleAuthError) as e:
            self._logger.error("Sheets request failed", extra={"collection": collection, "error": str(e)})
            raise RecordStoreError(f"Sheets {method} for {collection} failed: {e}") from e
        if not response.content:
            return {}
        return response.json()


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (int, float, str, bool)):
        return value
    return str(value)
