# -*- coding: utf-8 -*-
"""
@file main.py
@brief FastAPI application cho Temp Station Backend.

Module này cung cấp:
- POST /api/receive: ESP8266 gửi nhiệt độ (payload đơn hoặc batch có offset)
- POST /api/receive_user: ESP8266 gửi danh sách lượt kết nối captive portal
- GET /api/data: chuỗi thời gian nhiệt độ + thống kê cho biểu đồ
- GET /api/users: log visitor + thống kê
- Dọn dữ liệu cũ hơn retention_days sau mỗi lần nhận (background task)

Chạy:
    uvicorn temp_station.app.main:app --host 0.0.0.0 --port 8000
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import schemas
from .config import Settings
from .db import Database
from .errors import NotFoundError, StorageError, TelemetryError, ValidationError
from .ingest import IngestionWriter
from .queries import QueryReader

logger = logging.getLogger(__name__)

router = APIRouter()


# --------------------------------------------------------------------
# Dependency injection: lấy các thành phần từ app.state
# --------------------------------------------------------------------

def get_writer(request: Request) -> IngestionWriter:
    return request.app.state.writer


def get_reader(request: Request) -> QueryReader:
    return request.app.state.reader


# --------------------------------------------------------------------
# Exception handlers: mọi lỗi đều trả về {"status": "error", "message": ...}
# --------------------------------------------------------------------

_STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    StorageError: 500,
}


def _error_body(message: str, **extra: Any) -> dict:
    body = schemas.ErrorResponse(message=message).model_dump()
    body.update(extra)
    return body


async def telemetry_error_handler(request: Request, exc: TelemetryError) -> JSONResponse:
    """
    Chuyển lỗi tầng dữ liệu sang JSON response.

    NotFoundError của truy vấn kèm `data: []`, `stats: null` và filter (nếu có)
    để dashboard phân biệt "không có dữ liệu" với lỗi database.
    """
    status_code = _STATUS_CODES.get(type(exc), 500)
    extra = dict(exc.extra)
    if isinstance(exc, NotFoundError):
        extra.setdefault("data", [])
        extra.setdefault("stats", None)
    if isinstance(exc, StorageError):
        logger.error(f"Storage error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content=_error_body(exc.message, **extra))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Body không phải JSON hợp lệ
    return JSONResponse(status_code=400, content=_error_body("Invalid JSON"))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = "Method not allowed" if exc.status_code == 405 else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content=_error_body(message), headers=exc.headers)


# --------------------------------------------------------------------
# REST API Endpoints: nhận dữ liệu từ ESP8266
# --------------------------------------------------------------------

@router.post("/api/receive", response_model=schemas.ReceiveResponse, response_model_exclude_none=True)
def receive(
    background_tasks: BackgroundTasks,
    payload: Any = Body(None),
    writer: IngestionWriter = Depends(get_writer),
):
    """
    Endpoint chính để ESP8266 gửi nhiệt độ.

    Body:
        {"temperature": 20.5}
        hoặc {"timestamp": 1700000000, "samples": [{"temp": 20.5, "offset": 0}, ...]}

    Sau khi trả response, dữ liệu cũ hơn retention_days được dọn trong background.

    Returns:
        schemas.ReceiveResponse: status, message, temperature hoặc samples_received, total_records
    """
    result = writer.ingest_reading(payload, sweep=False)
    background_tasks.add_task(writer.sweep_expired)

    if result.temperature is not None:
        return schemas.ReceiveResponse(
            status="success",
            message="Temperature stored",
            temperature=result.temperature,
            total_records=result.total_records,
        )
    return schemas.ReceiveResponse(
        status="success",
        message="Batch data stored",
        samples_received=result.sample_count,
        total_records=result.total_records,
    )


@router.post("/api/receive_user", response_model=schemas.ReceiveUserResponse)
def receive_user(payload: Any = Body(None), writer: IngestionWriter = Depends(get_writer)):
    """
    ESP8266 gửi danh sách lượt kết nối captive portal.

    Body:
        {"users": [{"mac": "...", "device": "...", "email": "...", "phone": "...",
                    "connect_time": 1700000000, "duration": 120}, ...]}
    """
    result = writer.ingest_visitors(payload)
    return schemas.ReceiveUserResponse(
        status="success",
        message="User data stored",
        users_received=result.count,
        total_users=result.total_users,
    )


# --------------------------------------------------------------------
# REST API Endpoints: truy vấn cho dashboard
# --------------------------------------------------------------------

@router.get("/api/data", response_model=schemas.ReadingsResponse)
def get_data(
    hours: Optional[str] = None,
    limit: Optional[str] = None,
    reader: QueryReader = Depends(get_reader),
):
    """
    Chuỗi thời gian nhiệt độ cho biểu đồ.

    Args:
        hours (str): Số giờ gần nhất (>= 1, mặc định 24)
        limit (str): Số mẫu tối đa (1..50000, mặc định 10000)

    Returns:
        schemas.ReadingsResponse: data, stats, filter, database_info
    """
    result = reader.get_readings(hours=hours, limit=limit)
    return schemas.ReadingsResponse(status="success", **result.model_dump())


@router.get("/api/users", response_model=schemas.VisitorsResponse, response_model_exclude_none=True)
def get_users(
    hours: Optional[str] = None,
    limit: Optional[str] = None,
    reader: QueryReader = Depends(get_reader),
):
    """
    Log visitor captive portal (mới nhất trước) và thống kê.

    Args:
        hours (str): Số giờ gần nhất (>= 1, mặc định 24)
        limit (str): Số dòng tối đa (>= 1, mặc định 1000)
    """
    result = reader.get_visitors(hours=hours, limit=limit)
    return schemas.VisitorsResponse(status="success", **result.model_dump())


@router.get("/health")
def health(request: Request):
    database: Database = request.app.state.database
    return {"status": "ok", "database": database.exists()}


# --------------------------------------------------------------------
# Khởi tạo FastAPI Application
# --------------------------------------------------------------------

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Tạo FastAPI app với một Database dùng chung cho writer và reader.

    Args:
        settings (Settings): Cấu hình; mặc định đọc từ biến môi trường

    Returns:
        FastAPI: application
    """
    settings = settings or Settings.from_env()
    database = Database(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Tự động tạo bảng trong database nếu chưa tồn tại
        database.init_schema()
        logger.info(f"✅ Database ready at {database.path}")
        yield
        database.dispose()

    app = FastAPI(title="Temp Station Backend", lifespan=lifespan)

    app.state.settings = settings
    app.state.database = database
    app.state.writer = IngestionWriter(database, settings)
    app.state.reader = QueryReader(database, settings)

    # Cấu hình CORS: dashboard có thể được host ở origin khác
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.add_exception_handler(TelemetryError, telemetry_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.include_router(router)
    return app


app = create_app()
