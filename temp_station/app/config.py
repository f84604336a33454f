# -*- coding: utf-8 -*-
"""
@file config.py
@brief Cấu hình ứng dụng, đọc từ biến môi trường.

Một đối tượng Settings duy nhất được truyền vào từng thành phần
(Database, IngestionWriter, QueryReader, MaintenanceToolkit) khi khởi tạo,
thay vì dùng biến toàn cục cho đường dẫn database.
"""
import os
from typing import List

from pydantic import BaseModel, Field


class Settings(BaseModel):
    """
    Cấu hình cho backend Temp Station.

    Attributes:
        db_path (str): Đường dẫn file SQLite (mặc định ./data/temperature.db)
        legacy_json_path (str): File JSON cũ dùng cho lệnh migrate
        retention_days (int): Số ngày giữ dữ liệu nhiệt độ trước khi tự động xóa
        readings_default_hours (int): Cửa sổ thời gian mặc định cho /api/data
        readings_default_limit (int): Số mẫu trả về mặc định
        readings_max_limit (int): Giới hạn trên của limit
        visitors_default_limit (int): Số lượt kết nối trả về mặc định
        cors_origins (List[str]): Danh sách origin được phép (CORS)
    """
    db_path: str = "./data/temperature.db"
    legacy_json_path: str = "./data/temperature_data.json"
    retention_days: int = Field(default=30, ge=1)
    readings_default_hours: int = 24
    readings_default_limit: int = 10000
    readings_max_limit: int = 50000
    visitors_default_limit: int = 1000
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Tạo Settings từ biến môi trường, fallback về giá trị mặc định.

        Biến môi trường:
            TEMP_STATION_DB_PATH: đường dẫn file SQLite
            TEMP_STATION_LEGACY_JSON: file JSON cũ (migrate)
            TEMP_STATION_RETENTION_DAYS: số ngày giữ dữ liệu
            TEMP_STATION_CORS_ORIGINS: danh sách origin, phân tách bằng dấu phẩy
        """
        defaults = cls()
        origins = os.getenv("TEMP_STATION_CORS_ORIGINS")
        return cls(
            db_path=os.getenv("TEMP_STATION_DB_PATH", defaults.db_path),
            legacy_json_path=os.getenv("TEMP_STATION_LEGACY_JSON", defaults.legacy_json_path),
            retention_days=int(os.getenv("TEMP_STATION_RETENTION_DAYS", str(defaults.retention_days))),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else defaults.cors_origins,
        )

    @property
    def retention_seconds(self) -> int:
        return self.retention_days * 24 * 60 * 60
