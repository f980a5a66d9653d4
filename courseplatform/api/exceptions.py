"""
API异常处理器
业务异常按类型映射HTTP状态码，响应体统一为 {"error", "message", "details"}
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from courseplatform.core.exceptions import (
    ConflictError,
    CoursePlatformError,
    LedgerError,
    NotFoundError,
    ValidationError
)

logger = logging.getLogger(__name__)

STATUS_CODES = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (ConflictError, 409),
    (LedgerError, 409),
)


def status_code_for(exc: CoursePlatformError) -> int:
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


async def business_exception_handler(request: Request, exc: CoursePlatformError) -> JSONResponse:
    """业务异常处理"""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"未分类的业务异常 {request.url.path}: {exc.message}")
    else:
        logger.info(f"请求被拒绝 {request.url.path}: {exc.code} {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """数据库异常处理"""
    logger.error(f"数据库异常 {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "database_error", "message": "数据库操作失败", "details": {}}
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """未处理异常"""
    logger.exception(f"未处理的异常 {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "服务器内部错误", "details": {}}
    )
