from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy import text, select
from typing import Optional
import logging

from courseplatform.core.config import settings

logger = logging.getLogger(__name__)

# 创建基础模型类
Base = declarative_base()


class Database:
    """数据库连接管理：持有引擎和会话工厂，由调用方显式创建并注入各服务"""

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        self.url = url or settings.database_url_computed
        self.echo = settings.debug if echo is None else echo
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None

    def init(self) -> "Database":
        """初始化数据库连接"""
        try:
            engine_kwargs = {
                "echo": self.echo,
                "pool_pre_ping": True,  # 连接前ping检查
            }
            if self.url.startswith("sqlite"):
                # SQLite写锁等待时间，避免并发写入立即失败
                engine_kwargs["connect_args"] = {"timeout": 15}
            else:
                engine_kwargs["pool_recycle"] = 3600  # 连接回收时间1小时
                engine_kwargs["pool_timeout"] = settings.db_pool_timeout

            self.engine = create_async_engine(self.url, **engine_kwargs)

            # 创建异步session工厂
            self.session_factory = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            logger.info("数据库连接初始化成功")
            return self

        except Exception as e:
            logger.error(f"数据库连接初始化失败: {e}")
            raise

    async def create_all(self) -> None:
        """创建所有表并写入内容图版本号初始行"""
        # 导入所有数据库模型，确保表被注册到Base.metadata
        from courseplatform.models.database import (  # noqa: F401
            CategoryDB,
            ContentGraphRevisionDB,
            ProviderEventLogDB,
            CourseProgressDB,
            NewsletterSubscriberDB,
        )

        if not self.engine:
            raise RuntimeError("数据库未初始化，请先调用 init()")

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with self.session_factory() as session:
            async with session.begin():
                existing = await session.execute(
                    select(ContentGraphRevisionDB).where(ContentGraphRevisionDB.id == 1)
                )
                if existing.scalar_one_or_none() is None:
                    session.add(ContentGraphRevisionDB(id=1, revision=0))

        logger.info("数据表创建完成")

    async def dispose(self) -> None:
        """关闭数据库连接"""
        if self.engine:
            await self.engine.dispose()
            logger.info("数据库连接已关闭")

    async def health_check(self) -> dict:
        """数据库健康检查"""
        try:
            if not self.engine:
                return {"status": "error", "message": "数据库引擎未初始化"}

            # 执行简单查询测试连接
            async with self.engine.begin() as conn:
                result = await conn.execute(text("SELECT 1"))
                row = result.fetchone()

            return {
                "status": "healthy",
                "message": "数据库连接正常",
                "test_query_result": row[0] if row else None
            }

        except Exception as e:
            return {
                "status": "error",
                "message": f"数据库连接失败: {str(e)}"
            }

    def get_connection_info(self) -> dict:
        """获取数据库连接信息"""
        if not self.engine:
            return {"status": "not_initialized"}

        url = self.engine.url
        return {
            "url": url.render_as_string(hide_password=True),
            "driver": url.drivername,
            "database": url.database,
            "host": url.host,
            "port": url.port,
            "pool_size": self.engine.pool.size() if hasattr(self.engine.pool, 'size') else None,
            "checked_out_connections": self.engine.pool.checkedout() if hasattr(self.engine.pool, 'checkedout') else None,
        }
