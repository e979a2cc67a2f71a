"""
Tests for the JSON file record store used in local development.
"""

from __future__ import annotations

import json
import tempfile
from pathlib import Path

import pytest

from conftest import MONDAY, TZ, at, make_appointment
from bookingdesk.application.exceptions import RecordStoreError
from bookingdesk.application.records import BookingRecords
from bookingdesk.application.utils.row_mapping import COLLECTION_SESSIONS
from bookingdesk.domain.entities.appointment import AppointmentStatus
from bookingdesk.infrastructure.store.json_store import JsonRecordStore


def test_json_store_persistence():
    """Rows written by one store instance are read back by another."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonRecordStore(data_dir=tmpdir)
        BookingRecords(store, TZ).add_appointment(make_appointment("S1", at(MONDAY, 10), meeting_url="https://meet.google.com/x"))

        # Simulate a restart
        reloaded = BookingRecords(JsonRecordStore(data_dir=tmpdir), TZ)
        appointment = reloaded.get_appointment("S1")

        assert appointment is not None
        assert appointment.scheduled_at == at(MONDAY, 10)
        assert appointment.meeting_url == "https://meet.google.com/x"


def test_update_by_id_merges_partial_rows():
    """Only the given columns change."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonRecordStore(data_dir=tmpdir)
        store.append(COLLECTION_SESSIONS, {"Session ID": "S1", "Status": "scheduled", "Notes": "first visit"})
        store.append(COLLECTION_SESSIONS, {"Session ID": "S2", "Status": "scheduled"})

        store.update_by_id(COLLECTION_SESSIONS, "S1", {"Status": AppointmentStatus.canceled.value})

        assert store.find_by_id(COLLECTION_SESSIONS, "S1") == {"Session ID": "S1", "Status": "canceled", "Notes": "first visit"}
        assert store.find_by_id(COLLECTION_SESSIONS, "S2")["Status"] == "scheduled"


def test_update_of_missing_row_raises():
    """Updating an unknown id is an error, not a silent no-op."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonRecordStore(data_dir=tmpdir)

        with pytest.raises(RecordStoreError):
            store.update_by_id(COLLECTION_SESSIONS, "S404", {"Status": "canceled"})


def test_file_layout():
    """Each collection is one JSON document with its rows."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonRecordStore(data_dir=tmpdir)
        store.append(COLLECTION_SESSIONS, {"Session ID": "S1", "Phone": "0901234567"})

        data = json.loads((Path(tmpdir) / "sessions.json").read_text(encoding="utf-8"))

        assert data == {"collection": "sessions", "rows": [{"Session ID": "S1", "Phone": "0901234567"}]}
        assert not (Path(tmpdir) / "sessions.json.tmp").exists()


def test_missing_collection_is_empty():
    """Collections that were never written read as empty."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonRecordStore(data_dir=tmpdir)

        assert store.list_all("clients") == []
        assert store.find_by_id("clients", "C1") is None


def test_corrupt_file_raises_store_error():
    """A damaged file is reported as a store failure."""
    with tempfile.TemporaryDirectory() as tmpdir:
        (Path(tmpdir) / "sessions.json").write_text("{not json", encoding="utf-8")
        store = JsonRecordStore(data_dir=tmpdir)

        with pytest.raises(RecordStoreError):
            store.list_all(COLLECTION_SESSIONS)
