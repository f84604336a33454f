# -*- coding: utf-8 -*-
"""
@file errors.py
@brief Các loại lỗi của tầng dữ liệu.

- ValidationError: payload sai định dạng/thiếu trường, không ghi gì vào database
- StorageError: lỗi SQLite khi đọc/ghi, transaction đã được rollback
- NotFoundError: chưa có database hoặc không có dữ liệu trong khoảng thời gian
"""
from typing import Any, Dict, Optional


class TelemetryError(Exception):
    """Lỗi gốc của Temp Station."""

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        # Dữ liệu bổ sung cho response (ví dụ: filter của truy vấn)
        self.extra = extra or {}


class ValidationError(TelemetryError):
    pass


class StorageError(TelemetryError):
    pass


class NotFoundError(TelemetryError):
    pass
