"""
API异常处理器

统一返回 {"success": false, "error": {...}} 结构
"""

import logging
from datetime import datetime, timezone

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import BusinessException

logger = logging.getLogger(__name__)

__all__ = [
    "BusinessException",
    "validation_exception_handler",
    "http_exception_handler",
    "database_exception_handler",
    "business_exception_handler",
    "general_exception_handler",
]


def _error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({
            "success": False,
            "error": {
                "code": code,
                "message": message,
                "details": details or {},
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """请求参数校验失败"""
    errors = {}
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"][1:])
        errors[field] = error["msg"]

    return _error_response(422, "VALIDATION_ERROR", "Validation failed", {"errors": errors})


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        return _error_response(exc.status_code, f"HTTP_{exc.status_code}", "Request failed", exc.detail)
    return _error_response(exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail))


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """数据库异常，不向客户端暴露细节"""
    logger.error(f"数据库异常 {request.url.path}: {exc}")
    return _error_response(503, "DATABASE_ERROR", "A database error occurred")


async def business_exception_handler(request: Request, exc: BusinessException) -> JSONResponse:
    """业务异常"""
    logger.info(f"业务异常 {request.url.path}: {exc.code}")
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """未预期的异常"""
    logger.exception(f"未处理异常 {request.url.path}: {exc}")
    return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")
