# -*- coding: utf-8 -*-
"""Kiểm tra IngestionWriter: payload đơn, batch, transaction, dọn dữ liệu cũ, visitor."""
import pytest
from sqlalchemy import select

from temp_station.app import models
from temp_station.app.db import Database
from temp_station.app.errors import StorageError, ValidationError
from temp_station.app.ingest import IngestionWriter

from .conftest import NOW, count_rows, failing_statements, seed_reading

DAY = 86400


class TestIngestReading:

    def test_simple_payload_creates_one_reading_and_one_sample(self, writer, database):
        before = count_rows(database, models.Reading)
        result = writer.ingest_reading({"temperature": 20.5})

        assert result.sample_count == 1
        assert result.temperature == 20.5
        assert result.total_records == before + 1
        with database.session() as db:
            reading = db.get(models.Reading, result.record_id)
            assert reading.received_at == NOW
            assert reading.device_timestamp == NOW
            assert [(s.temperature, s.offset) for s in reading.samples] == [(20.5, 0)]

    def test_batch_payload_stores_samples_in_order(self, writer, database):
        payload = {
            "timestamp": NOW - 300,
            "samples": [
                {"temp": 21.0, "offset": 0},
                {"temp": 21.5, "offset": 120},
                {"temp": 22.0, "offset": 60},
            ],
        }
        result = writer.ingest_reading(payload)

        assert result.sample_count == 3
        assert result.temperature is None
        with database.session() as db:
            reading = db.get(models.Reading, result.record_id)
            assert reading.device_timestamp == NOW - 300
            assert reading.received_at == NOW
            assert [(s.temperature, s.offset) for s in reading.samples] == [
                (21.0, 0), (21.5, 120), (22.0, 60),
            ]

    def test_invalid_payload_writes_nothing(self, writer, database):
        with pytest.raises(ValidationError):
            writer.ingest_reading({"timestamp": NOW})
        assert count_rows(database, models.Reading) == 0

    def test_failed_sample_insert_rolls_back_whole_batch(self, writer, database):
        payload = {
            "timestamp": NOW,
            "samples": [{"temp": 20.0, "offset": 0}, {"temp": 20.1, "offset": 60}],
        }
        with failing_statements(database, "INSERT INTO temperature_samples"):
            with pytest.raises(StorageError):
                writer.ingest_reading(payload)

        assert count_rows(database, models.Reading) == 0
        assert count_rows(database, models.Sample) == 0

    def test_missing_database_is_storage_error(self, settings, clock):
        database = Database(settings)
        try:
            with pytest.raises(StorageError, match="not initialized"):
                IngestionWriter(database, settings, clock=clock).ingest_reading({"temperature": 1.0})
        finally:
            database.dispose()

    def test_sweep_after_commit_removes_expired_readings(self, writer, database):
        seed_reading(database, received_at=NOW - 31 * DAY, samples=[(10.0, 0), (11.0, 60)])
        seed_reading(database, received_at=NOW - 29 * DAY)

        result = writer.ingest_reading({"temperature": 20.0})

        assert result.total_records == 2
        assert count_rows(database, models.Sample) == 2

    def test_sweep_can_be_deferred(self, writer, database):
        seed_reading(database, received_at=NOW - 31 * DAY)
        result = writer.ingest_reading({"temperature": 20.0}, sweep=False)
        assert result.total_records == 2
        assert writer.sweep_expired() == 1
        assert count_rows(database, models.Reading) == 1

    def test_sweep_failure_does_not_fail_ingest(self, writer, database):
        with failing_statements(database, "DELETE FROM temperature_data"):
            result = writer.ingest_reading({"temperature": 20.0})
        assert result.total_records == 1

    def test_sweep_failure_returns_zero(self, writer, database):
        seed_reading(database, received_at=NOW - 40 * DAY)
        with failing_statements(database, "DELETE FROM temperature_data"):
            assert writer.sweep_expired() == 0
        assert count_rows(database, models.Reading) == 1

    def test_sweep_keeps_reading_exactly_at_cutoff(self, writer, database):
        seed_reading(database, received_at=NOW - 30 * DAY)
        assert writer.sweep_expired() == 0


class TestIngestVisitors:

    def test_creates_table_and_applies_defaults(self, writer, database):
        assert not database.table_exists("connected_users")
        result = writer.ingest_visitors({"users": [
            {"mac": "AA:AA:AA:AA:AA:01"},
            {"mac": "AA:AA:AA:AA:AA:02", "device": "Pixel", "email": "a@example.com",
             "phone": "0901234567", "connect_time": NOW - 100, "duration": 90},
        ]})

        assert result.count == 2
        assert result.total_users == 2
        with database.session() as db:
            rows = db.scalars(select(models.Visitor).order_by(models.Visitor.id)).all()
        first, second = rows
        assert (first.device_name, first.email, first.phone) == ("", "", "")
        assert first.connect_time == NOW
        assert first.duration == 0
        assert first.received_at == NOW
        assert second.device_name == "Pixel"
        assert second.connect_time == NOW - 100
        assert second.received_at == NOW

    def test_null_optional_fields_become_empty_strings(self, writer, database):
        writer.ingest_visitors({"users": [{"mac": "AA", "email": None, "phone": None}]})
        with database.session() as db:
            visitor = db.scalars(select(models.Visitor)).one()
        assert visitor.email == "" and visitor.phone == ""

    def test_repeated_mac_produces_repeated_rows(self, writer):
        writer.ingest_visitors({"users": [{"mac": "AA"}]})
        result = writer.ingest_visitors({"users": [{"mac": "AA"}]})
        assert result.total_users == 2

    def test_missing_users_is_validation_error(self, writer, database):
        with pytest.raises(ValidationError):
            writer.ingest_visitors({"visitors": []})
        assert not database.table_exists("connected_users")

    def test_failed_row_rolls_back_batch(self, writer, database):
        writer.ingest_visitors({"users": [{"mac": "AA"}]})
        with failing_statements(database, "INSERT INTO connected_users"):
            with pytest.raises(StorageError):
                writer.ingest_visitors({"users": [{"mac": "BB"}, {"mac": "CC"}]})
        assert count_rows(database, models.Visitor) == 1


def test_numeric_visitor_fields_are_stored_as_text(writer, database):
    writer.ingest_visitors({"users": [{"mac": "AA", "device": 8266, "phone": 901234567}]})
    with database.session() as db:
        visitor = db.scalars(select(models.Visitor)).one()
    assert visitor.device_name == "8266"
    assert visitor.phone == "901234567"


def test_non_finite_temperature_writes_nothing(writer, database):
    with pytest.raises(ValidationError):
        writer.ingest_reading({"temperature": float("nan")})
    assert count_rows(database, models.Reading) == 0
