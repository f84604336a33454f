# -*- coding: utf-8 -*-
"""
@file maintenance.py
@brief Công cụ bảo trì database: info, stats, cleanup, vacuum, export, import, migrate.

Các thao tác phá hủy (cleanup, import, đổi tên file khi migrate) hỏi xác nhận
qua callback `confirm(prompt) -> bool` thay vì đọc trực tiếp từ bàn phím.
CLI (manage_database.py) truyền callback đọc stdin hoặc luôn đồng ý với --yes.
"""
import json
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from . import models
from .config import Settings
from .db import Database
from .errors import NotFoundError, StorageError, ValidationError
from .schemas import ExportRecord, parse_export_document

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400

Confirm = Callable[[str], bool]


def deny(prompt: str) -> bool:
    return False


def format_bytes(size: float) -> str:
    """
    Đổi số bytes sang chuỗi dễ đọc (B, KB, MB, GB), làm tròn 2 chữ số.

    Ví dụ: 512 -> "512 B", 1536 -> "1.5 KB"
    """
    units = ["B", "KB", "MB", "GB"]
    i = 0
    while size >= 1024 and i < len(units) - 1:
        size /= 1024
        i += 1
    value = round(size, 2)
    if value == int(value):
        value = int(value)
    return f"{value} {units[i]}"


@dataclass
class CleanupResult:
    days: int
    cutoff: int
    matched: int
    deleted: int = 0
    cancelled: bool = False


@dataclass
class ImportResult:
    path: str
    found: int
    imported: int = 0
    cancelled: bool = False


@dataclass
class MigrateResult:
    import_result: ImportResult
    backup_path: Optional[str] = None


@dataclass
class DatabaseInfo:
    """
    Thông tin tổng quan về database.

    Attributes:
        path (str): Đường dẫn file
        size_bytes (int): Kích thước file
        total_records (int): Số Reading
        total_samples (int): Số Sample
        oldest (Optional[int]): received_at nhỏ nhất
        newest (Optional[int]): received_at lớn nhất
        journal_mode (str): Chế độ journal hiện tại (mong đợi "wal")
    """
    path: str
    size_bytes: int
    total_records: int
    total_samples: int
    oldest: Optional[int]
    newest: Optional[int]
    journal_mode: str

    @property
    def size_human(self) -> str:
        return format_bytes(self.size_bytes)

    @property
    def avg_samples_per_record(self) -> float:
        if self.total_records <= 0:
            return 0
        return round(self.total_samples / self.total_records, 1)

    @property
    def span_days(self) -> Optional[float]:
        if not self.oldest or not self.newest:
            return None
        return round((self.newest - self.oldest) / SECONDS_PER_DAY, 1)


@dataclass
class AggregateStats:
    min: Optional[float]
    max: Optional[float]
    avg: Optional[float]
    count: int


@dataclass
class TemperatureStats:
    all_time: AggregateStats
    last_24h: AggregateStats


class MaintenanceToolkit:
    """
    Các thao tác bảo trì do người vận hành gọi (không mở ra mạng).

    Args:
        database (Database): Storage engine
        settings (Settings): Cấu hình (legacy_json_path)
        confirm (Confirm): Callback xác nhận, mặc định luôn từ chối
        clock (Callable[[], float]): Nguồn thời gian, mặc định time.time
    """

    def __init__(
        self,
        database: Database,
        settings: Settings,
        confirm: Optional[Confirm] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.database = database
        self.settings = settings
        self.confirm = confirm or deny
        self.clock = clock

    def _now(self) -> int:
        return int(self.clock())

    def _require_database(self) -> None:
        if not self.database.exists():
            raise NotFoundError(f"Database not found at {self.database.path}")

    # --------------------------------------------------------------------
    # Schema
    # --------------------------------------------------------------------

    def init(self) -> None:
        """Tạo database và hai bảng nhiệt độ nếu chưa có."""
        try:
            self.database.init_schema()
        except SQLAlchemyError as e:
            raise StorageError(f"Database error: {e}") from e
        logger.info(f"Schema ready at {self.database.path}")

    # --------------------------------------------------------------------
    # Thông tin và thống kê
    # --------------------------------------------------------------------

    def info(self) -> DatabaseInfo:
        self._require_database()
        try:
            with self.database.session() as db:
                total_records, oldest, newest = db.execute(
                    select(
                        func.count(models.Reading.id),
                        func.min(models.Reading.received_at),
                        func.max(models.Reading.received_at),
                    )
                ).one()
                total_samples = db.scalar(select(func.count(models.Sample.id)))
            journal_mode = self.database.journal_mode()
        except SQLAlchemyError as e:
            raise StorageError(f"Database error: {e}") from e

        return DatabaseInfo(
            path=str(self.database.path),
            size_bytes=self.database.file_size(),
            total_records=total_records,
            total_samples=total_samples,
            oldest=oldest,
            newest=newest,
            journal_mode=journal_mode,
        )

    def stats(self) -> TemperatureStats:
        """
        Thống kê nhiệt độ toàn thời gian và 24 giờ gần nhất (theo received_at của Reading).
        """
        self._require_database()
        Sample, Reading = models.Sample, models.Reading
        columns = (
            func.min(Sample.temperature),
            func.max(Sample.temperature),
            func.avg(Sample.temperature),
            func.count(Sample.id),
        )
        cutoff = self._now() - SECONDS_PER_DAY
        try:
            with self.database.session() as db:
                overall = db.execute(select(*columns)).one()
                recent = db.execute(
                    select(*columns)
                    .join(Reading, Sample.data_id == Reading.id)
                    .where(Reading.received_at >= cutoff)
                ).one()
        except SQLAlchemyError as e:
            raise StorageError(f"Database error: {e}") from e
        return TemperatureStats(all_time=_aggregate(overall), last_24h=_aggregate(recent))

    # --------------------------------------------------------------------
    # Dọn dẹp
    # --------------------------------------------------------------------

    def cleanup(self, older_than_days: int = 30) -> CleanupResult:
        """
        Xóa Reading có received_at < now - days*86400 (Sample xóa theo), rồi VACUUM.

        Args:
            older_than_days (int): Số ngày giữ lại (>= 0)

        Returns:
            CleanupResult: số bản ghi khớp, đã xóa, hoặc đã hủy
        """
        if older_than_days < 0:
            raise ValidationError("Days must be zero or positive")
        self._require_database()
        cutoff = self._now() - older_than_days * SECONDS_PER_DAY
        condition = models.Reading.received_at < cutoff

        try:
            with self.database.session() as db:
                count = db.scalar(select(func.count(models.Reading.id)).where(condition))
                result = CleanupResult(days=older_than_days, cutoff=cutoff, matched=count)
                if count == 0:
                    return result
                if not self.confirm(f"Records to delete: {count}"):
                    result.cancelled = True
                    return result
                deleted = db.execute(delete(models.Reading).where(condition).execution_options(synchronize_session=False))
                db.commit()
                result.deleted = deleted.rowcount
        except SQLAlchemyError as e:
            raise StorageError(f"Database error: {e}") from e

        logger.info(f"Deleted {result.deleted} reading(s) older than {older_than_days} days")
        self.vacuum()
        return result

    def vacuum(self) -> None:
        self._require_database()
        try:
            self.database.vacuum()
        except SQLAlchemyError as e:
            raise StorageError(f"Database error: {e}") from e

    # --------------------------------------------------------------------
    # Export / Import / Migrate
    # --------------------------------------------------------------------

    def export(self, path: str) -> int:
        """
        Ghi toàn bộ Reading (kèm Sample) ra file JSON, sắp xếp theo received_at tăng dần.

        Định dạng: [{"received_at", "device_timestamp", "samples": [{"temp", "offset"}]}]

        Returns:
            int: Số Reading đã export
        """
        self._require_database()
        Reading = models.Reading
        try:
            with self.database.session() as db:
                readings = db.scalars(
                    select(Reading)
                    .where(Reading.samples.any())
                    .options(selectinload(Reading.samples))
                    .order_by(Reading.received_at.asc(), Reading.id.asc())
                ).all()
                records = [
                    {
                        "received_at": r.received_at,
                        "device_timestamp": r.device_timestamp,
                        "samples": [{"temp": s.temperature, "offset": s.offset} for s in r.samples],
                    }
                    for r in readings
                ]
        except SQLAlchemyError as e:
            raise StorageError(f"Database error: {e}") from e

        with open(path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=4)
        logger.info(f"Exported {len(records)} record(s) to {path}")
        return len(records)

    def import_file(self, path: str) -> ImportResult:
        """
        Nhập dữ liệu từ file JSON cùng định dạng với export.

        Toàn bộ file được validate trước, sau đó ghi trong MỘT transaction:
        lỗi ở bất kỳ bản ghi nào thì rollback tất cả.

        Raises:
            NotFoundError: không có file hoặc không có database
            ValidationError: JSON hỏng, không phải mảng, hoặc bản ghi sai định dạng
            StorageError: lỗi SQLite (đã rollback)
        """
        self._require_database()
        if not os.path.isfile(path):
            raise NotFoundError(f"File not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Invalid JSON format: {e}") from e

        records = parse_export_document(data)
        result = ImportResult(path=path, found=len(records))
        if not self.confirm(f"Found {len(records)} records to import"):
            result.cancelled = True
            return result

        with self.database.session() as db:
            try:
                db.add_all(_to_reading(record) for record in records)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Import from {path} rolled back: {e}")
                raise StorageError(f"Error importing data: {e}") from e

        result.imported = len(records)
        logger.info(f"Imported {result.imported} record(s) from {path}")
        return result

    def migrate(self) -> MigrateResult:
        """
        Chuyển dữ liệu từ file JSON cũ (legacy_json_path) sang SQLite.

        Sau khi import thành công, hỏi có đổi tên file cũ thành
        `<file>.backup.<YYYY-mm-dd-HHMMSS>` không.
        """
        legacy = self.settings.legacy_json_path
        if not os.path.isfile(legacy):
            raise NotFoundError(f"JSON file not found at {legacy}")

        result = MigrateResult(import_result=self.import_file(legacy))
        if result.import_result.cancelled:
            return result

        if self.confirm("Create backup of JSON file?"):
            stamp = datetime.fromtimestamp(self.clock()).strftime("%Y-%m-%d-%H%M%S")
            backup = f"{legacy}.backup.{stamp}"
            os.rename(legacy, backup)
            result.backup_path = backup
        return result


def _to_reading(record: ExportRecord) -> models.Reading:
    reading = models.Reading(received_at=record.received_at, device_timestamp=record.device_timestamp)
    reading.samples = [models.Sample(temperature=s.temp, offset=s.offset) for s in record.samples]
    return reading


def _aggregate(row) -> AggregateStats:
    low, high, avg, count = row
    return AggregateStats(
        min=round(low, 2) if low is not None else None,
        max=round(high, 2) if high is not None else None,
        avg=round(avg, 2) if avg is not None else None,
        count=count,
    )
