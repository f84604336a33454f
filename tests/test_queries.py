# -*- coding: utf-8 -*-
"""Kiểm tra QueryReader: cửa sổ thời gian, thứ tự, thống kê, visitor."""
import pytest

from temp_station.app import models
from temp_station.app.db import Database
from temp_station.app.errors import NotFoundError
from temp_station.app.queries import QueryReader, clamp_hours, clamp_limit, coerce_int

from .conftest import NOW, seed_reading

HOUR = 3600


class TestClamps:

    @pytest.mark.parametrize("value,expected", [
        (None, 24), (0, 24), (-5, 24), ("abc", 24), ("", 24), (1, 1), ("48", 48), (168, 168),
    ])
    def test_hours(self, value, expected):
        assert clamp_hours(value) == expected

    @pytest.mark.parametrize("value,expected", [
        (None, 10000), (0, 10000), (100000, 50000), ("250", 250), (50000, 50000), ("x", 10000),
    ])
    def test_readings_limit(self, value, expected):
        assert clamp_limit(value, 10000, 50000) == expected

    def test_visitor_limit_has_no_upper_bound(self):
        assert clamp_limit(100000, 1000) == 100000
        assert clamp_limit(0, 1000) == 1000

    @pytest.mark.parametrize("value,expected", [
        ("1.5", 1), ("12abc", 12), (" 6 ", 6), (2.9, 2), (float("nan"), None), ("-3", -3), ("abc", None),
    ])
    def test_coerce_int_truncates_like_intval(self, value, expected):
        assert coerce_int(value) == expected

    def test_decimal_hours_are_truncated(self):
        assert clamp_hours("1.5") == 1
        assert clamp_hours("0.5") == 24

    def test_coerce_int_ignores_bool(self):
        assert coerce_int(True) is None


class TestGetReadings:

    def test_flattens_and_orders_by_device_time_then_offset(self, reader, database):
        # Reading nhận sau nhưng device_timestamp sớm hơn phải đứng trước
        seed_reading(database, received_at=NOW - 60, device_timestamp=NOW - 600,
                     samples=[(20.0, 120), (22.0, 0)])
        seed_reading(database, received_at=NOW - 120, device_timestamp=NOW - 300,
                     samples=[(18.0, 0)])

        result = reader.get_readings()

        assert [(p.timestamp, p.temperature) for p in result.data] == [
            (NOW - 600, 22.0),
            (NOW - 480, 20.0),
            (NOW - 300, 18.0),
        ]
        assert result.data[0].received_at == NOW - 60

    def test_stats(self, reader, database):
        seed_reading(database, received_at=NOW - 10, device_timestamp=NOW - 1000,
                     samples=[(22.0, 0), (18.0, 10), (20.0, 20)])

        stats = reader.get_readings().stats

        assert stats.min == 18.0
        assert stats.max == 22.0
        assert stats.avg == 20.0
        assert stats.current == 20.0
        assert stats.total_readings == 3

    def test_avg_is_rounded_to_two_decimals(self, reader, database):
        seed_reading(database, received_at=NOW, samples=[(20.0, 0), (20.0, 1), (20.1, 2)])
        assert reader.get_readings().stats.avg == 20.03

    def test_current_is_greatest_device_time_not_latest_received(self, reader, database):
        seed_reading(database, received_at=NOW - 5, device_timestamp=NOW - 500, samples=[(30.0, 0)])
        seed_reading(database, received_at=NOW - 50, device_timestamp=NOW - 100, samples=[(15.0, 0)])
        assert reader.get_readings().stats.current == 15.0

    def test_window_filters_on_received_at(self, reader, database):
        seed_reading(database, received_at=NOW - 2 * HOUR, samples=[(10.0, 0)])
        seed_reading(database, received_at=NOW - 30 * HOUR, samples=[(5.0, 0)])

        assert [p.temperature for p in reader.get_readings(hours=24).data] == [10.0]
        assert len(reader.get_readings(hours=48).data) == 2
        # hours=0 cư xử như hours=24
        zero = reader.get_readings(hours=0)
        assert [p.temperature for p in zero.data] == [10.0]
        assert zero.filter["hours"] == 24

    def test_limit(self, reader, database):
        seed_reading(database, received_at=NOW, samples=[(float(i), i) for i in range(5)])
        assert [p.temperature for p in reader.get_readings(limit=2).data] == [0.0, 1.0]

    def test_reading_without_samples_is_invisible(self, reader, database):
        seed_reading(database, received_at=NOW - 10, samples=[])
        with pytest.raises(NotFoundError):
            reader.get_readings()

        seed_reading(database, received_at=NOW - 5, samples=[(21.0, 0)])
        result = reader.get_readings()
        assert len(result.data) == 1

    def test_database_info_is_global(self, reader, database):
        seed_reading(database, received_at=NOW - 100 * HOUR, samples=[(1.0, 0), (2.0, 5)])
        seed_reading(database, received_at=NOW - HOUR, samples=[(3.0, 0)])

        info = reader.get_readings(hours=1).database_info

        assert info.total_records == 2
        assert info.total_samples == 3
        assert info.oldest_record == NOW - 100 * HOUR
        assert info.newest_record == NOW - HOUR

    def test_empty_window_is_not_found_with_filter(self, reader, database):
        seed_reading(database, received_at=NOW - 48 * HOUR)
        with pytest.raises(NotFoundError) as exc_info:
            reader.get_readings(hours=6)
        assert "No data available" in exc_info.value.message
        assert exc_info.value.extra["filter"]["hours"] == 6

    def test_missing_database_is_not_found(self, settings, clock):
        database = Database(settings)
        try:
            with pytest.raises(NotFoundError, match="Database not found"):
                QueryReader(database, settings, clock=clock).get_readings()
            assert not database.exists()
        finally:
            database.dispose()


class TestGetVisitors:

    def _seed(self, database, rows):
        database.ensure_visitor_table()
        with database.session() as db:
            db.add_all(models.Visitor(**row) for row in rows)
            db.commit()

    def _row(self, mac, received_at, email="", phone="", duration=0):
        return dict(mac_address=mac, device_name="", email=email, phone=phone,
                    connect_time=received_at, duration=duration, received_at=received_at)

    def test_missing_table_is_empty_success(self, reader):
        result = reader.get_visitors()
        assert result.data == []
        assert result.stats.model_dump() == {
            "total_users": 0, "unique_devices": 0, "users_with_email": 0,
            "users_with_phone": 0, "avg_duration": 0, "connections_24h": 0,
        }

    def test_stats(self, reader, database):
        self._seed(database, [
            self._row("AA", NOW - 10, email="a@example.com", duration=100),
            self._row("AA", NOW - 20, email="b@example.com", duration=0),
            self._row("BB", NOW - 30, duration=51),
        ])

        stats = reader.get_visitors().stats

        assert stats.total_users == 3
        assert stats.unique_devices == 2
        assert stats.users_with_email == 2
        assert stats.users_with_phone == 0
        assert stats.avg_duration == 75.5
        assert stats.connections_24h == 3

    def test_rows_are_most_recent_first_and_windowed(self, reader, database):
        self._seed(database, [
            self._row("OLD", NOW - 3 * HOUR),
            self._row("NEW", NOW - HOUR),
            self._row("MID", NOW - 2 * HOUR),
            self._row("ANCIENT", NOW - 30 * HOUR),
        ])

        result = reader.get_visitors(hours=24)

        assert [r.mac_address for r in result.data] == ["NEW", "MID", "OLD"]
        assert result.filter["hours"] == 24
        assert [r.mac_address for r in reader.get_visitors(hours=24, limit=1).data] == ["NEW"]

    def test_connections_24h_ignores_requested_window(self, reader, database):
        self._seed(database, [
            self._row("AA", NOW - HOUR),
            self._row("BB", NOW - 30 * HOUR),
            self._row("CC", NOW - 72 * HOUR),
        ])

        result = reader.get_visitors(hours=100)

        assert len(result.data) == 3
        assert result.stats.total_users == 3
        assert result.stats.connections_24h == 1
