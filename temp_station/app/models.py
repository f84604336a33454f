# -*- coding: utf-8 -*-
"""
@file models.py
@brief Định nghĩa SQLAlchemy models cho database schema.

Mỗi model tương ứng với một bảng trong database:
- Reading (temperature_data): một lần ESP8266 gửi dữ liệu
- Sample (temperature_samples): từng mẫu nhiệt độ trong lần gửi đó
- Visitor (connected_users): một lượt kết nối vào captive portal
"""
from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import relationship

from .db import Base


class Reading(Base):
    """
    Một lần nhận dữ liệu từ thiết bị.

    Attributes:
        id (int): Primary key, tự động tăng
        received_at (int): Unix timestamp do server ghi nhận khi nhận dữ liệu
        device_timestamp (int): Unix timestamp do thiết bị báo (có thể lệch so với server)
        created_at (datetime): Thời gian tạo bản ghi (SQLite CURRENT_TIMESTAMP)
        samples (list[Sample]): Các mẫu nhiệt độ, xóa theo khi xóa Reading
    """
    __tablename__ = "temperature_data"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Index để lọc theo cửa sổ thời gian và dọn dữ liệu cũ
    received_at = Column(Integer, nullable=False, index=True)
    device_timestamp = Column(Integer, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    # passive_deletes: để SQLite tự xóa samples qua ON DELETE CASCADE
    samples = relationship(
        "Sample",
        back_populates="reading",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Sample.id",
    )


class Sample(Base):
    """
    Một mẫu nhiệt độ trong batch của Reading.

    Thời điểm thực của mẫu = Reading.device_timestamp + offset.

    Attributes:
        id (int): Primary key
        data_id (int): Reading sở hữu mẫu này (foreign key, cascade delete)
        temperature (float): Nhiệt độ (°C), không giới hạn giá trị
        offset (int): Số giây lệch so với device_timestamp (0 với payload đơn)
    """
    __tablename__ = "temperature_samples"

    id = Column(Integer, primary_key=True, autoincrement=True)
    data_id = Column(
        Integer,
        ForeignKey("temperature_data.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    temperature = Column(Float, nullable=False)
    offset = Column(Integer, nullable=False, default=0)

    reading = relationship("Reading", back_populates="samples")


class Visitor(Base):
    """
    Một lượt kết nối vào captive portal, không liên quan tới Reading/Sample.

    Chuỗi rỗng là giá trị "không có" cho device_name, email, phone.

    Attributes:
        id (int): Primary key
        mac_address (str): Địa chỉ MAC (bắt buộc, không unique: mỗi lần kết nối là một dòng)
        device_name (str): Tên thiết bị
        email (str): Email người dùng nhập
        phone (str): Số điện thoại người dùng nhập
        connect_time (int): Unix timestamp lúc kết nối
        duration (int): Thời gian kết nối (giây), 0 nếu không biết
        received_at (int): Unix timestamp server nhận batch
        created_at (datetime): Thời gian tạo bản ghi
    """
    __tablename__ = "connected_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    mac_address = Column(String, nullable=False)
    device_name = Column(String, default="")
    email = Column(String, default="")
    phone = Column(String, default="")
    connect_time = Column(Integer, nullable=False)
    duration = Column(Integer, default=0)
    received_at = Column(Integer, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_mac_address", "mac_address"),
        Index("idx_received_at_users", "received_at"),
    )
