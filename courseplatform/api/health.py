from fastapi import APIRouter, Depends, Request
import logging

from courseplatform.api.dependencies import get_database
from courseplatform.core.config import settings
from courseplatform.core.database import Database

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["健康检查"])


@router.get("")
async def health_check():
    """基础健康检查接口"""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment
    }


@router.get("/database")
async def database_health(request: Request, database: Database = Depends(get_database)):
    """数据库及缓存连接健康检查"""
    health_status = {
        "database": False,
        "cache": None,
        "overall": False,
        "details": {}
    }

    db_status = await database.health_check()
    health_status["database"] = db_status["status"] == "healthy"
    health_status["details"]["database"] = db_status["message"]

    # 缓存是可选组件，未配置时不影响整体状态
    cache = getattr(request.app.state, "cache", None)
    if cache is None:
        health_status["details"]["cache"] = "未启用"
    else:
        health_status["cache"] = await cache.ping()
        health_status["details"]["cache"] = "连接正常" if health_status["cache"] else "连接失败"

    health_status["overall"] = health_status["database"] and health_status["cache"] is not False

    if not health_status["overall"]:
        logger.warning("数据库连接检查部分失败", extra={"health": health_status})
    return health_status


@router.get("/detailed")
async def detailed_health(request: Request, database: Database = Depends(get_database)):
    """详细健康检查，包括连接池信息"""
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "debug": settings.debug
        },
        "database": database.get_connection_info(),
        "cache_enabled": getattr(request.app.state, "cache", None) is not None
    }
