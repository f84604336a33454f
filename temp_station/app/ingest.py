# -*- coding: utf-8 -*-
"""
@file ingest.py
@brief Ghi dữ liệu từ ESP8266 vào database.

Quy trình cho mỗi payload nhiệt độ:
1. Phân loại payload (đơn hoặc batch), sai định dạng thì ValidationError
2. Ghi Reading và toàn bộ Sample trong MỘT transaction (lỗi một dòng thì rollback cả batch)
3. Sau khi commit, dọn dữ liệu cũ hơn retention_days (best-effort, lỗi chỉ ghi log)
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from . import models
from .config import Settings
from .db import Database
from .errors import StorageError
from .schemas import BatchReadingPayload, SimpleReadingPayload, parse_reading_payload, parse_visitor_batch

logger = logging.getLogger(__name__)


@dataclass
class ReadingIngestResult:
    """
    Kết quả ghi một payload nhiệt độ.

    Attributes:
        record_id (int): ID của Reading vừa tạo
        sample_count (int): Số Sample đã ghi
        total_records (int): Tổng số Reading sau khi ghi
        temperature (Optional[float]): Nhiệt độ (chỉ với payload đơn)
    """
    record_id: int
    sample_count: int
    total_records: int
    temperature: Optional[float] = None


@dataclass
class VisitorIngestResult:
    count: int
    total_users: int


class IngestionWriter:
    """
    Ghi payload nhiệt độ và visitor vào database.

    Args:
        database (Database): Storage engine
        settings (Settings): Cấu hình (retention_days)
        clock (Callable[[], float]): Nguồn thời gian, mặc định time.time
    """

    def __init__(self, database: Database, settings: Settings, clock: Callable[[], float] = time.time):
        self.database = database
        self.settings = settings
        self.clock = clock

    def _now(self) -> int:
        return int(self.clock())

    def _require_database(self) -> None:
        if not self.database.exists():
            raise StorageError("Database not initialized")

    def ingest_reading(self, payload: Any, sweep: bool = True) -> ReadingIngestResult:
        """
        Ghi một payload nhiệt độ (đơn hoặc batch) thành một Reading và các Sample.

        Args:
            payload (Any): JSON đã parse từ body request
            sweep (bool): Dọn dữ liệu cũ ngay sau khi commit. HTTP layer để False
                và chạy sweep_expired như background task.

        Returns:
            ReadingIngestResult: ID bản ghi, số mẫu và tổng số Reading

        Raises:
            ValidationError: payload sai định dạng (không ghi gì)
            StorageError: chưa khởi tạo database, hoặc lỗi SQLite (toàn bộ batch đã rollback)
        """
        parsed = parse_reading_payload(payload)
        self._require_database()
        now = self._now()

        if isinstance(parsed, SimpleReadingPayload):
            # Payload đơn: thời gian thiết bị = thời gian server, offset = 0
            reading = models.Reading(received_at=now, device_timestamp=now)
            reading.samples = [models.Sample(temperature=parsed.temperature, offset=0)]
            temperature = parsed.temperature
        elif isinstance(parsed, BatchReadingPayload):
            reading = models.Reading(received_at=now, device_timestamp=parsed.timestamp)
            reading.samples = [models.Sample(temperature=s.temp, offset=s.offset) for s in parsed.samples]
            temperature = None
        else:
            raise TypeError(f"Unhandled payload type: {type(parsed).__name__}")

        sample_count = len(reading.samples)
        with self.database.session() as db:
            try:
                db.add(reading)
                db.commit()
                record_id = reading.id
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to store reading batch ({sample_count} samples): {e}")
                raise StorageError(f"Database error: {e}") from e

        if sweep:
            self.sweep_expired()

        total = self.count_readings()
        logger.info(f"📊 Stored reading #{record_id} with {sample_count} sample(s), total {total}")
        return ReadingIngestResult(
            record_id=record_id,
            sample_count=sample_count,
            total_records=total,
            temperature=temperature,
        )

    def sweep_expired(self) -> int:
        """
        Xóa các Reading có received_at cũ hơn retention_days (Sample bị xóa theo cascade).

        Đây là dọn dẹp best-effort: lỗi SQLite chỉ được ghi log, không raise,
        để không làm hỏng response của lần ghi vừa commit.

        Returns:
            int: Số Reading đã xóa (0 nếu lỗi)
        """
        cutoff = self._now() - self.settings.retention_seconds
        try:
            with self.database.session() as db:
                result = db.execute(
                    delete(models.Reading)
                    .where(models.Reading.received_at < cutoff)
                    .execution_options(synchronize_session=False)
                )
                db.commit()
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Retention sweep failed: {e}")
            return 0
        if result.rowcount:
            logger.info(f"Retention sweep removed {result.rowcount} reading(s) older than {cutoff}")
        return result.rowcount

    def count_readings(self) -> int:
        try:
            with self.database.session() as db:
                return db.scalar(select(func.count()).select_from(models.Reading))
        except SQLAlchemyError as e:
            raise StorageError(f"Database error: {e}") from e

    def ingest_visitors(self, payload: Any) -> VisitorIngestResult:
        """
        Ghi một batch visitor từ captive portal.

        Bảng connected_users được tạo nếu chưa có. Trường không bắt buộc được
        gán chuỗi rỗng, connect_time mặc định là lúc nhận, received_at luôn do server gán.

        Args:
            payload (Any): `{"users": [...]}`

        Returns:
            VisitorIngestResult: số dòng đã ghi và tổng số dòng trong bảng

        Raises:
            ValidationError: thiếu `users` hoặc entry sai định dạng
            StorageError: lỗi SQLite, toàn bộ batch đã rollback
        """
        batch = parse_visitor_batch(payload)
        self._require_database()
        now = self._now()

        try:
            self.database.ensure_visitor_table()
        except SQLAlchemyError as e:
            raise StorageError(f"Database error: {e}") from e

        visitors = [
            models.Visitor(
                mac_address=user.mac,
                device_name=user.device or "",
                email=user.email or "",
                phone=user.phone or "",
                connect_time=user.connect_time if user.connect_time is not None else now,
                duration=user.duration if user.duration is not None else 0,
                received_at=now,
            )
            for user in batch.users
        ]

        with self.database.session() as db:
            try:
                db.add_all(visitors)
                db.commit()
                total = db.scalar(select(func.count()).select_from(models.Visitor))
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to store visitor batch ({len(visitors)} users): {e}")
                raise StorageError(f"Database error: {e}") from e

        logger.info(f"Stored {len(visitors)} visitor(s), total {total}")
        return VisitorIngestResult(count=len(visitors), total_users=total)
