from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
import logging
import uvicorn

from courseplatform.core.config import settings
from courseplatform.core.database import Database
from courseplatform.core.exceptions import CoursePlatformError
from courseplatform.core.logging_config import setup_logging
from courseplatform.api.health import router as health_router
from courseplatform.api.documentation import router as documentation_router
from courseplatform.api.webhooks import router as webhooks_router
from courseplatform.api.exceptions import (
    business_exception_handler,
    database_exception_handler,
    general_exception_handler
)
from courseplatform.services.common_cache import SimpleCache, report_cache
from courseplatform.services.documentation_service import DocumentationService
from courseplatform.services.entitlement_ledger import EntitlementLedger
from courseplatform.services.enrollment_service import EnrollmentService
from courseplatform.services.progress_tracker import ProgressTracker
from courseplatform.services.reporting_service import ReportingService
from courseplatform.services.newsletter_service import NewsletterService

logger = logging.getLogger(__name__)


def attach_services(app: FastAPI, database: Database, cache: Optional[SimpleCache] = None) -> None:
    """创建各业务服务并挂到 app.state"""
    session_factory = database.session_factory
    enrollment_service = EnrollmentService(session_factory, cache=cache)

    app.state.database = database
    app.state.cache = cache
    app.state.documentation_service = DocumentationService(session_factory)
    app.state.entitlement_ledger = EntitlementLedger(session_factory, cache=cache)
    app.state.enrollment_service = enrollment_service
    app.state.progress_tracker = ProgressTracker(session_factory, enrollment_service=enrollment_service, cache=cache)
    app.state.reporting_service = ReportingService(session_factory, cache=cache)
    app.state.newsletter_service = NewsletterService(session_factory)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    setup_logging()
    logger.info(f"正在启动 {settings.app_name}")

    # 已注入数据库（测试或嵌入式使用）时不接管连接的创建和关闭
    owned = getattr(app.state, "database", None) is None
    if owned:
        try:
            database = Database().init()
            cache = None
            if settings.cache_enabled:
                await report_cache.init_redis()
                cache = report_cache
            attach_services(app, database, cache)
            logger.info("应用启动完成")
        except Exception as e:
            logger.error(f"应用启动失败: {e}")
            raise

    yield

    logger.info("正在关闭应用")
    if owned:
        await app.state.database.dispose()
        if app.state.cache:
            await app.state.cache.close_redis()
    logger.info("应用关闭完成")


def create_app(database: Optional[Database] = None, cache: Optional[SimpleCache] = None) -> FastAPI:
    """创建FastAPI应用"""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="课程平台核心 - 内容引用图校验、购买权益账本与学习进度",
        debug=settings.debug,
        lifespan=lifespan
    )

    if database is not None:
        attach_services(app, database, cache)

    # CORS中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册路由
    app.include_router(health_router)
    app.include_router(documentation_router)
    app.include_router(webhooks_router)

    # 注册异常处理器
    app.add_exception_handler(CoursePlatformError, business_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    @app.get("/")
    async def root():
        """根路径"""
        return {
            "message": f"欢迎使用 {settings.app_name}",
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "courseplatform.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
