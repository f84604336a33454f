# -*- coding: utf-8 -*-
"""
@file queries.py
@brief Truy vấn và thống kê dữ liệu cho dashboard.

- get_readings: chuỗi thời gian nhiệt độ trong cửa sổ `hours`, kèm thống kê
- get_visitors: log kết nối captive portal, kèm thống kê visitor
"""
import logging
import math
import re
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy import distinct, func, select
from sqlalchemy.exc import SQLAlchemyError

from . import models
from .config import Settings
from .db import Database
from .errors import NotFoundError, StorageError
from .schemas import (
    DatabaseSummary,
    ReadingPoint,
    ReadingsResult,
    ReadingStats,
    VisitorOut,
    VisitorsResult,
    VisitorStats,
)

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600
RECENT_CONNECTIONS_WINDOW = 24 * SECONDS_PER_HOUR

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def coerce_int(value: Any) -> Optional[int]:
    """
    Đổi tham số query sang int; trả về None nếu không đổi được.

    Chuỗi được cắt theo phần số nguyên ở đầu, giống intval của PHP.

    Ví dụ: 12 -> 12, "12" -> 12, "1.5" -> 1, "12abc" -> 12, "abc" -> None, None -> None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def clamp_hours(value: Any, default: int = 24) -> int:
    """Số giờ < 1 hoặc không hợp lệ thì dùng mặc định."""
    hours = coerce_int(value)
    if hours is None or hours < 1:
        return default
    return hours


def clamp_limit(value: Any, default: int, maximum: Optional[int] = None) -> int:
    """Limit < 1 hoặc không hợp lệ thì dùng mặc định, lớn hơn maximum thì cắt về maximum."""
    limit = coerce_int(value)
    if limit is None or limit < 1:
        limit = default
    if maximum is not None and limit > maximum:
        limit = maximum
    return limit


def format_local_time(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


class QueryReader:
    """
    Đọc dữ liệu nhiệt độ và visitor.

    Args:
        database (Database): Storage engine
        settings (Settings): Cấu hình (giá trị mặc định cho hours/limit)
        clock (Callable[[], float]): Nguồn thời gian, mặc định time.time
    """

    def __init__(self, database: Database, settings: Settings, clock: Callable[[], float] = time.time):
        self.database = database
        self.settings = settings
        self.clock = clock

    def _filter_window(self, hours: int, cutoff: int, now: int) -> Dict[str, Any]:
        return {"hours": hours, "from": format_local_time(cutoff), "to": format_local_time(now)}

    def _require_database(self) -> None:
        if not self.database.exists():
            raise NotFoundError("Database not found. Run `manage_database.py init` first.")

    def get_readings(self, hours: Any = None, limit: Any = None) -> ReadingsResult:
        """
        Lấy các mẫu nhiệt độ có Reading.received_at >= now - hours*3600.

        Kết quả sắp xếp theo (device_timestamp, offset) tăng dần, đây là thứ tự
        trục x của biểu đồ, nên `current` là mẫu cuối cùng của danh sách.
        Chỉ lấy Reading có ít nhất một Sample (INNER JOIN).

        Args:
            hours (Any): Số giờ (>= 1, mặc định 24)
            limit (Any): Số mẫu tối đa (1..50000, mặc định 10000)

        Returns:
            ReadingsResult: data, stats, filter, database_info

        Raises:
            NotFoundError: chưa có database hoặc không có dữ liệu trong khoảng thời gian
            StorageError: lỗi SQLite
        """
        hours = clamp_hours(hours, self.settings.readings_default_hours)
        limit = clamp_limit(limit, self.settings.readings_default_limit, self.settings.readings_max_limit)
        self._require_database()

        now = int(self.clock())
        cutoff = now - hours * SECONDS_PER_HOUR
        window = self._filter_window(hours, cutoff, now)

        stmt = (
            select(
                models.Reading.received_at,
                models.Reading.device_timestamp,
                models.Sample.temperature,
                models.Sample.offset,
            )
            .join(models.Sample, models.Sample.data_id == models.Reading.id)
            .where(models.Reading.received_at >= cutoff)
            .order_by(
                models.Reading.device_timestamp.asc(),
                models.Sample.offset.asc(),
                models.Reading.id.asc(),
                models.Sample.id.asc(),
            )
            .limit(limit)
        )

        try:
            with self.database.session() as db:
                rows = db.execute(stmt).all()
                if not rows:
                    raise NotFoundError("No data available for the selected time range", extra={"filter": window})
                summary = self._database_summary(db)
        except SQLAlchemyError as e:
            logger.error(f"Readings query failed: {e}")
            raise StorageError(f"Database error: {e}") from e

        points = [
            ReadingPoint(
                timestamp=int(row.device_timestamp) + int(row.offset),
                temperature=float(row.temperature),
                received_at=int(row.received_at),
            )
            for row in rows
        ]
        return ReadingsResult(data=points, stats=compute_stats(points), filter=window, database_info=summary)

    def _database_summary(self, db) -> DatabaseSummary:
        # Số liệu toàn database, không phụ thuộc cửa sổ `hours`
        total_records, oldest, newest = db.execute(
            select(
                func.count(models.Reading.id),
                func.min(models.Reading.received_at),
                func.max(models.Reading.received_at),
            )
        ).one()
        total_samples = db.scalar(select(func.count(models.Sample.id)))
        return DatabaseSummary(
            total_records=total_records,
            total_samples=total_samples,
            oldest_record=oldest,
            newest_record=newest,
        )

    def get_visitors(self, hours: Any = None, limit: Any = None) -> VisitorsResult:
        """
        Lấy log kết nối captive portal, mới nhất trước.

        Nếu bảng connected_users chưa tồn tại (chưa có batch visitor nào),
        trả về danh sách rỗng và thống kê bằng 0, không coi là lỗi.

        Args:
            hours (Any): Số giờ (>= 1, mặc định 24)
            limit (Any): Số dòng tối đa (>= 1, mặc định 1000)

        Returns:
            VisitorsResult: data, stats, filter

        Raises:
            NotFoundError: chưa có database
            StorageError: lỗi SQLite
        """
        hours = clamp_hours(hours, self.settings.readings_default_hours)
        limit = clamp_limit(limit, self.settings.visitors_default_limit)
        self._require_database()

        try:
            if not self.database.table_exists(models.Visitor.__tablename__):
                return VisitorsResult(data=[], stats=VisitorStats(), message="No user data yet")

            now = int(self.clock())
            cutoff = now - hours * SECONDS_PER_HOUR
            with self.database.session() as db:
                visitors = db.scalars(
                    select(models.Visitor)
                    .where(models.Visitor.received_at >= cutoff)
                    .order_by(models.Visitor.received_at.desc(), models.Visitor.id.desc())
                    .limit(limit)
                ).all()
                rows = [VisitorOut.model_validate(v) for v in visitors]
                stats = self._visitor_stats(db, now)
        except SQLAlchemyError as e:
            logger.error(f"Visitors query failed: {e}")
            raise StorageError(f"Database error: {e}") from e

        return VisitorsResult(data=rows, stats=stats, filter=self._filter_window(hours, cutoff, now))

    def _visitor_stats(self, db, now: int) -> VisitorStats:
        Visitor = models.Visitor

        def count(*conditions) -> int:
            stmt = select(func.count(Visitor.id))
            if conditions:
                stmt = stmt.where(*conditions)
            return db.scalar(stmt)

        avg_duration = db.scalar(select(func.avg(Visitor.duration)).where(Visitor.duration > 0))
        return VisitorStats(
            total_users=count(),
            unique_devices=db.scalar(select(func.count(distinct(Visitor.mac_address)))),
            users_with_email=count(Visitor.email != ""),
            users_with_phone=count(Visitor.phone != ""),
            avg_duration=round(float(avg_duration or 0), 1),
            # Luôn là 24 giờ gần nhất, không theo tham số `hours`
            connections_24h=count(Visitor.received_at >= now - RECENT_CONNECTIONS_WINDOW),
        )


def compute_stats(points) -> ReadingStats:
    """
    Tính thống kê cho danh sách điểm đã sắp xếp tăng dần theo thời gian thiết bị.

    Args:
        points (list[ReadingPoint]): Danh sách không rỗng

    Returns:
        ReadingStats: current (điểm cuối), min, max, avg (2 chữ số), total_readings
    """
    temps = [p.temperature for p in points]
    return ReadingStats(
        current=temps[-1],
        min=min(temps),
        max=max(temps),
        avg=round(sum(temps) / len(temps), 2),
        total_readings=len(temps),
    )
