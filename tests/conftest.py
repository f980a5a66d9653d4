"""
测试配置文件 - pytest fixtures和共用配置
每个测试使用独立的SQLite文件数据库（aiosqlite），多个会话可以真实并发写入
"""

import httpx
import pytest
import pytest_asyncio
from decimal import Decimal
from typing import List, Optional
from unittest.mock import AsyncMock

from courseplatform.core.database import Database
from courseplatform.main import create_app
from courseplatform.models.content import CategoryCreate, CourseCreate, DocumentationCreate
from courseplatform.repositories.content_repository import ContentRepository
from courseplatform.services.common_cache import SimpleCache


class ContentSeeder:
    """测试数据构造工具：分类、课程（含章节）、文档"""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._counter = 0

    def _next(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    async def category(self, title: Optional[str] = None) -> str:
        title = title or self._next("category")
        async with self.session_factory() as session:
            async with session.begin():
                db_category = await ContentRepository(session).create_category(
                    CategoryCreate(title=title, slug=title.lower())
                )
                return db_category.id

    async def course(self, sections: int = 0, category_id: Optional[str] = None) -> str:
        category_id = category_id or await self.category()
        async with self.session_factory() as session:
            async with session.begin():
                repo = ContentRepository(session)
                db_course = await repo.create_course(
                    CourseCreate(title=self._next("course"), category_id=category_id)
                )
                for index in range(sections):
                    await repo.add_section(db_course.id, f"第{index + 1}节", order=index)
                return db_course.id

    async def course_sections(self, course_id: str) -> List[str]:
        async with self.session_factory() as session:
            sections = await ContentRepository(session).get_course_sections(course_id)
            return [section.id for section in sections]

    async def documentation(
        self,
        price: Optional[Decimal] = None,
        currency: str = "usd",
        sections: Optional[List[str]] = None,
        category_id: Optional[str] = None
    ) -> str:
        """直接写库创建文档（不经过引用图校验，用于构造初始图）"""
        category_id = category_id or await self.category()
        slug = self._next("doc")
        async with self.session_factory() as session:
            async with session.begin():
                db_doc = await ContentRepository(session).create_documentation(
                    DocumentationCreate(
                        title=slug,
                        slug=slug,
                        category_id=category_id,
                        content=f"{slug} 内容",
                        price=price,
                        currency=currency
                    ),
                    sections or []
                )
                return db_doc.id


@pytest_asyncio.fixture
async def database(tmp_path):
    """测试数据库 - 每个测试一个SQLite文件"""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False).init()
    await db.create_all()

    yield db

    await db.dispose()


@pytest.fixture
def session_factory(database):
    return database.session_factory


@pytest_asyncio.fixture
async def db_session(session_factory):
    """测试数据库会话"""
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@pytest.fixture
def seed(session_factory):
    return ContentSeeder(session_factory)


@pytest.fixture
def mock_cache():
    """模拟缓存"""
    cache = AsyncMock(spec=SimpleCache)
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock(return_value=True)
    cache.delete_pattern = AsyncMock(return_value=0)
    cache.ping = AsyncMock(return_value=True)
    return cache


@pytest_asyncio.fixture
async def client(database):
    """测试HTTP客户端，服务直接挂到测试数据库上"""
    app = create_app(database=database)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client
