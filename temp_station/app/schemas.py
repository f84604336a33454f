# -*- coding: utf-8 -*-
"""
@file schemas.py
@brief Định nghĩa Pydantic schemas cho payload từ ESP8266 và response của API.

Schemas đảm bảo:
- Payload nhiệt độ được phân loại đúng (đơn hoặc batch), sai định dạng thì báo ValidationError
- Batch visitor và file export/import có cấu trúc hợp lệ trước khi mở transaction
- Response được serialize đúng cấu trúc JSON mà dashboard đang dùng
"""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError


# --------------------------------------------------------------------
# Payload nhiệt độ: {"temperature": 20.5} hoặc {"timestamp": ..., "samples": [...]}
# --------------------------------------------------------------------

class SimpleReadingPayload(BaseModel):
    """
    Payload đơn: một giá trị nhiệt độ, server tự gán thời gian.

    Attributes:
        temperature (float): Nhiệt độ (°C)
    """
    temperature: float = Field(allow_inf_nan=False)


class BatchSample(BaseModel):
    """
    Một mẫu trong batch.

    Attributes:
        temp (float): Nhiệt độ (°C)
        offset (int): Số giây lệch so với timestamp của batch
    """
    temp: float = Field(allow_inf_nan=False)
    offset: int


class BatchReadingPayload(BaseModel):
    """
    Payload batch: thiết bị gom nhiều mẫu rồi gửi một lần.

    Attributes:
        timestamp (int): Unix timestamp của thiết bị
        samples (List[BatchSample]): Danh sách mẫu, ít nhất một mẫu
    """
    timestamp: int
    samples: List[BatchSample] = Field(min_length=1)


ReadingPayload = Union[SimpleReadingPayload, BatchReadingPayload]


def _describe(exc: PydanticValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err["loc"])
    return f"{loc}: {err['msg']}" if loc else err["msg"]


def _has(data: Dict[str, Any], key: str) -> bool:
    # Trường có mặt và khác null
    return data.get(key) is not None


def parse_reading_payload(data: Any) -> ReadingPayload:
    """
    Giải mã payload nhiệt độ thành SimpleReadingPayload hoặc BatchReadingPayload.

    Có `temperature` thì là payload đơn (ưu tiên), có cả `timestamp` và
    `samples` thì là batch, ngoài ra là lỗi.

    Args:
        data (Any): JSON đã parse từ body request

    Returns:
        ReadingPayload: payload đã validate

    Raises:
        ValidationError: payload không phải object hoặc thiếu trường bắt buộc
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON")
    try:
        if _has(data, "temperature"):
            return SimpleReadingPayload.model_validate(data)
        if _has(data, "timestamp") and _has(data, "samples"):
            return BatchReadingPayload.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid payload: {_describe(e)}") from e
    raise ValidationError("Missing required fields")


# --------------------------------------------------------------------
# Payload visitor từ captive portal
# --------------------------------------------------------------------

class VisitorEntry(BaseModel):
    """
    Một lượt kết nối do ESP8266 báo lên.

    Attributes:
        mac (str): Địa chỉ MAC (bắt buộc)
        device (Optional[str]): Tên thiết bị
        email (Optional[str]): Email
        phone (Optional[str]): Số điện thoại
        connect_time (Optional[int]): Unix timestamp lúc kết nối, mặc định là lúc server nhận
        duration (Optional[int]): Thời gian kết nối (giây)
    """
    # Firmware có thể gửi số cho device/email/phone, lưu dạng chuỗi
    model_config = ConfigDict(coerce_numbers_to_str=True)

    mac: str = Field(min_length=1)
    device: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    connect_time: Optional[int] = None
    duration: Optional[int] = None


class VisitorBatch(BaseModel):
    users: List[VisitorEntry]


def parse_visitor_batch(data: Any) -> VisitorBatch:
    """
    Validate batch visitor `{"users": [...]}`.

    Raises:
        ValidationError: thiếu `users` hoặc có entry không hợp lệ
    """
    if not isinstance(data, dict) or data.get("users") is None:
        raise ValidationError("Invalid data")
    try:
        return VisitorBatch.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid data: {_describe(e)}") from e


# --------------------------------------------------------------------
# Định dạng export/import (JSON di động)
# --------------------------------------------------------------------

class ExportSample(BaseModel):
    temp: float = Field(allow_inf_nan=False)
    offset: int


class ExportRecord(BaseModel):
    """
    Một Reading trong file export.

    Attributes:
        received_at (int): Unix timestamp server nhận
        device_timestamp (int): Unix timestamp thiết bị
        samples (List[ExportSample]): Các mẫu {temp, offset}
    """
    received_at: int
    device_timestamp: int
    samples: List[ExportSample] = Field(min_length=1)


_export_document = TypeAdapter(List[ExportRecord])


def parse_export_document(data: Any) -> List[ExportRecord]:
    """
    Validate toàn bộ tài liệu export trước khi import.

    Raises:
        ValidationError: không phải mảng hoặc có bản ghi sai định dạng
    """
    if not isinstance(data, list):
        raise ValidationError("Invalid JSON format: expected an array of records")
    try:
        return _export_document.validate_python(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid record: {_describe(e)}") from e


# --------------------------------------------------------------------
# Response schemas
# --------------------------------------------------------------------

class ReceiveResponse(BaseModel):
    """
    Response cho POST /api/receive.

    Payload đơn trả về `temperature`, batch trả về `samples_received`.
    """
    status: str
    message: str
    temperature: Optional[float] = None
    samples_received: Optional[int] = None
    total_records: int


class ReceiveUserResponse(BaseModel):
    status: str
    message: str
    users_received: int
    total_users: int


class ReadingPoint(BaseModel):
    """
    Một điểm trên biểu đồ.

    Attributes:
        timestamp (int): device_timestamp + offset
        temperature (float): Nhiệt độ (°C)
        received_at (int): Thời gian server nhận Reading chứa mẫu này
    """
    timestamp: int
    temperature: float
    received_at: int


class ReadingStats(BaseModel):
    """
    Thống kê trong cửa sổ thời gian.

    Attributes:
        current (float): Nhiệt độ của mẫu mới nhất (theo thời gian thiết bị)
        min (float): Nhỏ nhất
        max (float): Lớn nhất
        avg (float): Trung bình, làm tròn 2 chữ số
        total_readings (int): Số mẫu
    """
    current: float
    min: float
    max: float
    avg: float
    total_readings: int


class DatabaseSummary(BaseModel):
    """Số liệu toàn database, không phụ thuộc cửa sổ `hours`."""
    total_records: int
    total_samples: int
    oldest_record: Optional[int] = None
    newest_record: Optional[int] = None


class ReadingsResult(BaseModel):
    data: List[ReadingPoint]
    stats: ReadingStats
    filter: Dict[str, Any]
    database_info: DatabaseSummary


class ReadingsResponse(ReadingsResult):
    status: str


class VisitorOut(BaseModel):
    mac_address: str
    device_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    connect_time: int
    duration: Optional[int] = None
    received_at: int

    class Config:
        # Cho phép convert từ SQLAlchemy model (ORM) sang Pydantic model
        from_attributes = True


class VisitorStats(BaseModel):
    """
    Thống kê visitor.

    Attributes:
        total_users (int): Tổng số dòng
        unique_devices (int): Số MAC khác nhau
        users_with_email (int): Số dòng có email
        users_with_phone (int): Số dòng có số điện thoại
        avg_duration (float): Thời gian kết nối trung bình (chỉ tính duration > 0), làm tròn 1 chữ số
        connections_24h (int): Số dòng nhận trong 24 giờ gần nhất (cố định, không theo `hours`)
    """
    total_users: int = 0
    unique_devices: int = 0
    users_with_email: int = 0
    users_with_phone: int = 0
    avg_duration: float = 0
    connections_24h: int = 0


class VisitorsResult(BaseModel):
    data: List[VisitorOut]
    stats: VisitorStats
    filter: Optional[Dict[str, Any]] = None
    message: Optional[str] = None


class VisitorsResponse(VisitorsResult):
    status: str


class ErrorResponse(BaseModel):
    status: str = "error"
    message: str
