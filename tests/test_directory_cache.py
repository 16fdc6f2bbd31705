"""
Tests for the JSON-backed directory cache.
"""

import json
import threading
import time
from unittest.mock import patch

import pytest

from slipdesk.directory_cache import DirectoryCache
from slipdesk.errors import InvalidInputError, StorageError
from slipdesk.models import Employee


@pytest.fixture
def cache(snapshot_path):
    cache = DirectoryCache(snapshot_path, debounce_seconds=10)
    cache.load()
    return cache


def read_snapshot(path):
    return json.loads(path.read_text(encoding="utf-8"))


class TestLoad:
    def test_missing_snapshot_created_empty(self, snapshot_path):
        cache = DirectoryCache(snapshot_path)

        assert cache.load() == 0
        assert read_snapshot(snapshot_path) == []
        assert cache.is_empty()

    def test_loads_rows_with_blank_fields_as_absent(self, snapshot_path):
        snapshot_path.parent.mkdir(parents=True)
        snapshot_path.write_text(
            json.dumps(
                [
                    {"empid": "E001", "name": "John Doe", "mobileNo": "9825533053"},
                    {"empid": "E002", "name": "", "mobileNo": ""},
                ]
            )
        )
        cache = DirectoryCache(snapshot_path)

        assert cache.load() == 2
        assert cache.get("E002") == Employee(id="E002")

    def test_invalid_rows_skipped(self, snapshot_path):
        snapshot_path.parent.mkdir(parents=True)
        snapshot_path.write_text(json.dumps([{"empid": ""}, {"empid": "E001"}]))
        cache = DirectoryCache(snapshot_path)

        assert cache.load() == 1

    def test_corrupt_snapshot_raises(self, snapshot_path):
        snapshot_path.parent.mkdir(parents=True)
        snapshot_path.write_text("{not json")

        with pytest.raises(StorageError):
            DirectoryCache(snapshot_path).load()


class TestUpsertMobile:
    def test_unknown_id_creates_employee_without_name(self, cache):
        employee = cache.upsert_mobile("E100", "9000000100")

        assert employee == Employee(id="E100", mobile="9000000100")
        assert cache.get("E100").name is None

    def test_known_id_only_mobile_changes(self, cache):
        cache.replace_all([Employee(id="E001", name="John Doe", mobile="111")])

        employee = cache.upsert_mobile("E001", "9825533053")

        assert employee.name == "John Doe"
        assert employee.mobile == "9825533053"

    def test_none_clears_mobile(self, cache):
        cache.replace_all([Employee(id="E001", name="John Doe", mobile="9825533053")])

        assert cache.upsert_mobile("E001", None).mobile is None

    def test_empty_id_rejected(self, cache):
        with pytest.raises(InvalidInputError):
            cache.upsert_mobile("  ", "9000000000")

    def test_mutation_schedules_persist(self, cache, snapshot_path):
        cache.upsert_mobile("E100", "9000000100")

        assert cache.persist_pending
        assert read_snapshot(snapshot_path) == []

        assert cache.flush() is True
        assert read_snapshot(snapshot_path) == [
            {"empid": "E100", "name": "", "mobileNo": "9000000100"}
        ]


class TestPersistence:
    def test_debounced_persist_eventually_written(self, snapshot_path):
        cache = DirectoryCache(snapshot_path, debounce_seconds=0.05)
        cache.load()

        for i in range(5):
            cache.upsert_mobile(f"E00{i}", f"900000000{i}")

        time.sleep(0.3)
        assert not cache.persist_pending
        assert len(read_snapshot(snapshot_path)) == 5

    def test_snapshot_round_trip(self, cache, snapshot_path):
        employees = [
            Employee(id="B", name="Bravo", mobile="9000000002"),
            Employee(id="A"),
        ]
        cache.replace_all(employees)
        cache.flush()

        reloaded = DirectoryCache(snapshot_path)
        reloaded.load()

        assert reloaded.all() == employees

    def test_persist_failure_keeps_memory_state(self, cache, caplog):
        cache.upsert_mobile("E100", "9000000100")

        with patch.object(cache, "_write_rows", side_effect=OSError("disk full")):
            with caplog.at_level("ERROR"):
                assert cache.persist() is False

        assert "disk full" in caplog.text
        assert cache.get("E100").mobile == "9000000100"

    def test_insertion_order_preserved(self, cache):
        cache.replace_all([Employee(id="B"), Employee(id="A")])
        cache.upsert_mobile("C", None)

        assert [e.id for e in cache.all()] == ["B", "A", "C"]

    def test_slow_snapshot_write_does_not_block_lookups(self, cache):
        cache.upsert_mobile("E100", "9000000100")
        started = threading.Event()
        release = threading.Event()

        def slow_write(rows):
            started.set()
            release.wait(2)

        with patch.object(cache, "_write_rows", side_effect=slow_write):
            writer = threading.Thread(target=cache.flush)
            writer.start()
            assert started.wait(1)

            began = time.monotonic()
            assert cache.get("E100").mobile == "9000000100"
            cache.upsert_mobile("E101", "9000000101")
            elapsed = time.monotonic() - began

            release.set()
            writer.join(1)

        assert elapsed < 0.5
        assert cache.get("E101").mobile == "9000000101"
