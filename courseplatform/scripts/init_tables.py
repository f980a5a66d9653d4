"""
数据库表初始化脚本

运行方式:
python -m courseplatform.scripts.init_tables          创建全部数据表
python -m courseplatform.scripts.init_tables --check  检查数据表是否存在
"""

import argparse
import asyncio
import logging
from typing import List, Optional

from sqlalchemy import inspect, text

from courseplatform.core.database import Base, Database
from courseplatform.core.logging_config import setup_logging
import courseplatform.models.database  # noqa: F401  注册全部数据表

logger = logging.getLogger(__name__)

EXPECTED_TABLES = [
    "categories",
    "courses",
    "course_sections",
    "documentation",
    "content_graph_revision",
    "purchases",
    "provider_events",
    "enrollments",
    "course_progress",
    "course_reviews",
    "newsletter_subscribers",
]

# 仅PostgreSQL执行的检查约束
CHECK_CONSTRAINTS = [
    "ALTER TABLE courses ADD CONSTRAINT chk_course_rating CHECK (rating >= 0 AND rating <= 5)",
    "ALTER TABLE courses ADD CONSTRAINT chk_course_student_count CHECK (student_count >= 0)",
    "ALTER TABLE course_reviews ADD CONSTRAINT chk_review_rating CHECK (rating BETWEEN 1 AND 5)",
    "ALTER TABLE course_progress ADD CONSTRAINT chk_progress_percentage "
    "CHECK (progress_percentage BETWEEN 0 AND 100)",
    "ALTER TABLE purchases ADD CONSTRAINT chk_purchase_amount CHECK (amount >= 0)",
    "ALTER TABLE purchases ADD CONSTRAINT chk_purchase_status "
    "CHECK (status IN ('pending', 'completed', 'failed', 'refunded'))",
    "ALTER TABLE enrollments ADD CONSTRAINT chk_enrollment_status "
    "CHECK (status IN ('ACTIVE', 'COMPLETED', 'CANCELLED', 'PAUSED'))",
]


async def create_tables(url: Optional[str] = None) -> None:
    """创建全部数据表并写入内容图版本号初始行"""
    database = Database(url, echo=False).init()
    try:
        logger.info("开始创建数据表...")
        await database.create_all()

        if database.engine.dialect.name == "postgresql":
            await _create_check_constraints(database)

        logger.info("数据库初始化完成")

    except Exception as e:
        logger.error(f"创建数据表失败: {e}")
        raise
    finally:
        await database.dispose()


async def _create_check_constraints(database: Database) -> None:
    """创建额外的检查约束，已存在时跳过"""
    for constraint_sql in CHECK_CONSTRAINTS:
        try:
            async with database.engine.begin() as conn:
                await conn.execute(text(constraint_sql))
            logger.info(f"约束创建成功: {constraint_sql.split('CONSTRAINT ')[1].split()[0]}")
        except Exception as e:
            if "already exists" in str(e).lower():
                logger.info("约束已存在，跳过")
            else:
                logger.warning(f"创建约束失败: {e}")


async def drop_tables(url: Optional[str] = None) -> None:
    """删除全部数据表（谨慎使用）"""
    database = Database(url, echo=False).init()
    try:
        logger.warning("开始删除数据表...")
        async with database.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.warning("数据表删除完成")
    finally:
        await database.dispose()


async def missing_tables(url: Optional[str] = None) -> List[str]:
    """返回缺少的数据表"""
    database = Database(url, echo=False).init()
    try:
        async with database.engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
    finally:
        await database.dispose()

    missing = [table for table in EXPECTED_TABLES if table not in tables]
    if missing:
        logger.warning(f"缺少表: {missing}")
    else:
        logger.info("所有数据表都存在")
    return missing


def main() -> None:
    parser = argparse.ArgumentParser(description="课程平台数据表初始化")
    parser.add_argument("--url", help="数据库URL，默认读取配置")
    parser.add_argument("--check", action="store_true", help="只检查数据表是否存在")
    parser.add_argument("--drop", action="store_true", help="删除全部数据表")
    args = parser.parse_args()

    setup_logging()

    if args.check:
        missing = asyncio.run(missing_tables(args.url))
        raise SystemExit(1 if missing else 0)
    if args.drop:
        asyncio.run(drop_tables(args.url))
        return
    asyncio.run(create_tables(args.url))


if __name__ == "__main__":
    main()
