# -*- coding: utf-8 -*-
"""
Fixtures dùng chung: database tạm trong tmp_path, đồng hồ giả, và
hàm tiêm lỗi SQL qua event before_cursor_execute của SQLAlchemy.
"""
from contextlib import contextmanager

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.exc import OperationalError

from temp_station.app import models
from temp_station.app.config import Settings
from temp_station.app.db import Database
from temp_station.app.ingest import IngestionWriter
from temp_station.app.maintenance import MaintenanceToolkit
from temp_station.app.queries import QueryReader

NOW = 1_700_000_000


class FakeClock:
    """Đồng hồ cố định, có thể tua tới."""

    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    data_dir = tmp_path / "data"
    return Settings(
        db_path=str(data_dir / "temperature.db"),
        legacy_json_path=str(data_dir / "temperature_data.json"),
    )


@pytest.fixture
def database(settings):
    db = Database(settings)
    db.init_schema()
    yield db
    db.dispose()


@pytest.fixture
def writer(database, settings, clock):
    return IngestionWriter(database, settings, clock=clock)


@pytest.fixture
def reader(database, settings, clock):
    return QueryReader(database, settings, clock=clock)


@pytest.fixture
def answers():
    """Danh sách câu trả lời cho callback confirm; mặc định luôn đồng ý."""
    return []


@pytest.fixture
def prompts():
    return []


@pytest.fixture
def toolkit(database, settings, clock, answers, prompts):
    def confirm(question):
        prompts.append(question)
        return answers.pop(0) if answers else True

    return MaintenanceToolkit(database, settings, confirm=confirm, clock=clock)


@contextmanager
def failing_statements(database, fragment):
    """Mọi câu lệnh SQL chứa `fragment` sẽ lỗi như khi SQLite báo lỗi."""

    def _fail(conn, cursor, statement, parameters, context, executemany):
        if fragment in statement:
            raise OperationalError(statement, parameters, Exception("injected fault"))

    event.listen(database.engine, "before_cursor_execute", _fail)
    try:
        yield
    finally:
        event.remove(database.engine, "before_cursor_execute", _fail)


def seed_reading(database, received_at, device_timestamp=None, samples=((20.0, 0),)):
    """Ghi thẳng một Reading (và các Sample) vào database, bỏ qua IngestionWriter."""
    with database.session() as db:
        reading = models.Reading(
            received_at=received_at,
            device_timestamp=device_timestamp if device_timestamp is not None else received_at,
        )
        reading.samples = [models.Sample(temperature=t, offset=o) for t, o in samples]
        db.add(reading)
        db.commit()
        return reading.id


def count_rows(database, model):
    with database.session() as db:
        return db.scalar(select(func.count()).select_from(model))
