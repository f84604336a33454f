# -*- coding: utf-8 -*-
"""
@file db.py
@brief Cấu hình kết nối SQLite và quản lý session SQLAlchemy.

Module này thiết lập engine, session factory và các thao tác mức storage:
- Bật WAL (cho phép đọc song song khi đang ghi) và foreign key (cascade delete)
- Tạo schema cho bảng temperature_data / temperature_samples
- Tạo lười (lazy) bảng connected_users khi có batch visitor đầu tiên
- Kiểm tra bảng tồn tại, kích thước file, journal mode, VACUUM
"""
import os
import pathlib

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.schema import CreateIndex, CreateTable

from .config import Settings

# Base class cho tất cả models (dùng declarative_base)
Base = declarative_base()


def _enable_sqlite_pragmas(dbapi_connection, connection_record):
    """
    Chạy PRAGMA cho mỗi kết nối DBAPI mới.

    - foreign_keys=ON: SQLite mặc định tắt, cần bật để ON DELETE CASCADE hoạt động
    - journal_mode=WAL: reader không bị chặn khi ESP8266 đang ghi
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def create_sqlite_engine(db_path: str) -> Engine:
    """
    Tạo SQLAlchemy engine cho file SQLite.

    Args:
        db_path (str): Đường dẫn file database

    Returns:
        Engine: engine đã gắn listener PRAGMA
    """
    url = f"sqlite:///{pathlib.Path(db_path).as_posix()}"
    # check_same_thread=False để FastAPI dùng session từ threadpool
    engine = create_engine(url, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _enable_sqlite_pragmas)
    return engine


class Database:
    """
    Storage engine: một file SQLite chứa bảng readings, samples và visitors.

    Đối tượng này được tạo từ Settings và truyền vào từng thành phần,
    không có engine toàn cục.

    Attributes:
        path (pathlib.Path): Đường dẫn file database
        engine (Engine): SQLAlchemy engine
        SessionLocal (sessionmaker): Session factory (autocommit=False, autoflush=False)
    """

    def __init__(self, settings: Settings):
        self.path = pathlib.Path(settings.db_path)
        self.engine = create_sqlite_engine(settings.db_path)
        # Session factory: kiểm soát transaction thủ công
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def exists(self) -> bool:
        """File database đã tồn tại chưa (chưa kết nối lần nào thì chưa có file)."""
        return self.path.is_file()

    def session(self) -> Session:
        """Mở session mới; dùng với `with database.session() as db:`."""
        return self.SessionLocal()

    def init_schema(self) -> None:
        """
        Tạo thư mục chứa database và hai bảng temperature_data, temperature_samples.

        Bảng connected_users KHÔNG được tạo ở đây, nó chỉ xuất hiện khi
        nhận batch visitor đầu tiên (xem ensure_visitor_table).
        """
        from .models import Reading, Sample

        self.path.parent.mkdir(parents=True, exist_ok=True)
        Base.metadata.create_all(bind=self.engine, tables=[Reading.__table__, Sample.__table__])

    def ensure_visitor_table(self) -> None:
        """Tạo bảng connected_users và hai index nếu chưa có (DDL idempotent)."""
        from .models import Visitor

        table = Visitor.__table__
        with self.engine.begin() as conn:
            conn.execute(CreateTable(table, if_not_exists=True))
            for index in sorted(table.indexes, key=lambda i: i.name):
                conn.execute(CreateIndex(index, if_not_exists=True))

    def table_exists(self, name: str) -> bool:
        return inspect(self.engine).has_table(name)

    def file_size(self) -> int:
        """Kích thước file database (bytes), 0 nếu chưa có file."""
        return os.path.getsize(self.path) if self.exists() else 0

    def journal_mode(self) -> str:
        with self.engine.connect() as conn:
            return conn.exec_driver_sql("PRAGMA journal_mode").scalar()

    def vacuum(self) -> None:
        """
        Chạy VACUUM để thu hồi dung lượng sau khi xóa hàng loạt.

        VACUUM không được chạy bên trong transaction nên dùng AUTOCOMMIT.
        """
        with self.engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
            conn.exec_driver_sql("VACUUM")

    def dispose(self) -> None:
        self.engine.dispose()
