"""
内容数据库操作层：分类、课程、章节、文档及内容图版本号
"""

import uuid
from typing import List, Optional, Dict
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from courseplatform.models.content import (
    Category,
    CategoryCreate,
    Course,
    CourseCreate,
    CourseSection,
    CodeExample,
    Documentation,
    DocumentationCreate
)
from courseplatform.models.database.content_db import (
    CategoryDB,
    CourseDB,
    CourseSectionDB,
    DocumentationDB,
    ContentGraphRevisionDB
)

GRAPH_REVISION_ROW_ID = 1


class ContentRepository:
    """内容数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ---------- 分类 ----------

    async def create_category(self, data: CategoryCreate) -> CategoryDB:
        """创建分类"""
        db_category = CategoryDB(id=str(uuid.uuid4()), **data.dict())
        self.db.add(db_category)
        await self.db.flush()
        return db_category

    async def get_category(self, category_id: str) -> Optional[CategoryDB]:
        result = await self.db.execute(select(CategoryDB).where(CategoryDB.id == category_id))
        return result.scalar_one_or_none()

    # ---------- 课程 ----------

    async def create_course(self, data: CourseCreate) -> CourseDB:
        """创建课程"""
        db_course = CourseDB(
            id=str(uuid.uuid4()),
            rating=Decimal("0"),
            student_count=0,
            **data.dict()
        )
        db_course.level = data.level.value
        self.db.add(db_course)
        await self.db.flush()
        return db_course

    async def get_course(self, course_id: str) -> Optional[CourseDB]:
        result = await self.db.execute(select(CourseDB).where(CourseDB.id == course_id))
        return result.scalar_one_or_none()

    async def update_course_stats(
        self,
        course_id: str,
        new_rating: Optional[Decimal] = None,
        student_count_delta: Optional[int] = None
    ) -> bool:
        """更新课程统计信息（学员数使用增量更新，避免并发覆盖）"""
        update_data = {"updated_at": datetime.now()}

        if new_rating is not None:
            update_data["rating"] = new_rating
        if student_count_delta:
            update_data["student_count"] = CourseDB.student_count + student_count_delta

        result = await self.db.execute(
            update(CourseDB)
            .where(CourseDB.id == course_id)
            .values(**update_data)
            .execution_options(synchronize_session=False)
        )

        return result.rowcount > 0

    # ---------- 章节 ----------

    async def add_section(self, course_id: str, title: str, content: str = "", order: int = 0) -> CourseSectionDB:
        """添加课程章节"""
        max_position = await self.db.execute(
            select(func.max(CourseSectionDB.position)).where(CourseSectionDB.course_id == course_id)
        )
        position = (max_position.scalar() or 0) + 1

        db_section = CourseSectionDB(
            id=str(uuid.uuid4()),
            course_id=course_id,
            title=title,
            content=content,
            order=order,
            position=position
        )
        self.db.add(db_section)
        await self.db.flush()
        return db_section

    async def get_course_sections(self, course_id: str) -> List[CourseSectionDB]:
        """按显示顺序获取章节，order相同按插入顺序"""
        result = await self.db.execute(
            select(CourseSectionDB)
            .where(CourseSectionDB.course_id == course_id)
            .order_by(CourseSectionDB.order, CourseSectionDB.position)
        )
        return result.scalars().all()

    async def count_course_sections(self, course_id: str) -> int:
        result = await self.db.execute(
            select(func.count(CourseSectionDB.id)).where(CourseSectionDB.course_id == course_id)
        )
        return result.scalar() or 0

    # ---------- 文档 ----------

    async def create_documentation(
        self,
        data: DocumentationCreate,
        sections: List[str],
        doc_id: Optional[str] = None
    ) -> DocumentationDB:
        """创建文档（子文档列表需先通过校验）"""
        payload = data.dict(exclude={"document_sections", "code_examples"})
        db_doc = DocumentationDB(
            id=doc_id or str(uuid.uuid4()),
            code_examples=[example.dict() for example in data.code_examples],
            document_sections=list(sections),
            **payload
        )
        self.db.add(db_doc)
        await self.db.flush()
        return db_doc

    async def get_documentation(self, doc_id: str) -> Optional[DocumentationDB]:
        result = await self.db.execute(select(DocumentationDB).where(DocumentationDB.id == doc_id))
        return result.scalar_one_or_none()

    async def get_documentation_by_slug(self, slug: str) -> Optional[DocumentationDB]:
        result = await self.db.execute(
            select(DocumentationDB).where(DocumentationDB.slug == slug.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_documentation_price(self, doc_id: str) -> Optional[Dict[str, Optional[Decimal]]]:
        """仅获取文档价格，文档不存在返回None"""
        result = await self.db.execute(
            select(DocumentationDB.price, DocumentationDB.currency).where(DocumentationDB.id == doc_id)
        )
        row = result.fetchone()
        if row is None:
            return None
        return {"price": row.price, "currency": row.currency}

    async def load_graph_snapshot(self) -> Dict[str, List[str]]:
        """读取内容图快照：文档ID -> 子文档ID列表"""
        result = await self.db.execute(
            select(DocumentationDB.id, DocumentationDB.document_sections)
        )
        return {row.id: list(row.document_sections or []) for row in result.fetchall()}

    async def set_document_sections(self, doc_id: str, sections: List[str]) -> bool:
        """写入子文档列表"""
        result = await self.db.execute(
            update(DocumentationDB)
            .where(DocumentationDB.id == doc_id)
            .values(document_sections=list(sections), updated_at=datetime.now())
        )
        return result.rowcount > 0

    # ---------- 内容图版本号 ----------

    async def get_graph_revision(self) -> int:
        """读取内容图版本号，不存在时创建初始行"""
        result = await self.db.execute(
            select(ContentGraphRevisionDB.revision).where(ContentGraphRevisionDB.id == GRAPH_REVISION_ROW_ID)
        )
        revision = result.scalar_one_or_none()
        if revision is None:
            self.db.add(ContentGraphRevisionDB(id=GRAPH_REVISION_ROW_ID, revision=0))
            await self.db.flush()
            return 0
        return revision

    async def bump_graph_revision(self, expected_revision: int) -> bool:
        """比较并递增版本号，返回False说明期间有其他写入提交"""
        result = await self.db.execute(
            update(ContentGraphRevisionDB)
            .where(
                and_(
                    ContentGraphRevisionDB.id == GRAPH_REVISION_ROW_ID,
                    ContentGraphRevisionDB.revision == expected_revision
                )
            )
            .values(revision=expected_revision + 1)
        )
        return result.rowcount > 0

    # ---------- 模型转换 ----------

    def category_to_model(self, db_category: CategoryDB) -> Category:
        """转换为Pydantic模型"""
        return Category(
            id=db_category.id,
            title=db_category.title,
            slug=db_category.slug,
            order=db_category.order or 0,
            description=db_category.description,
            content=db_category.content,
            bg_color=db_category.bg_color,
            icon=db_category.icon,
            created_at=db_category.created_at,
            updated_at=db_category.updated_at
        )

    def course_to_model(self, db_course: CourseDB) -> Course:
        """转换为Pydantic模型"""
        return Course(
            id=db_course.id,
            title=db_course.title,
            category_id=db_course.category_id,
            level=db_course.level,
            rating=db_course.rating or Decimal("0"),
            student_count=db_course.student_count or 0,
            price=db_course.price,
            is_premium=bool(db_course.is_premium),
            is_published=bool(db_course.is_published),
            description=db_course.description,
            duration=db_course.duration,
            instructor=db_course.instructor,
            bg_color=db_course.bg_color,
            created_at=db_course.created_at,
            updated_at=db_course.updated_at
        )

    def section_to_model(self, db_section: CourseSectionDB) -> CourseSection:
        return CourseSection(
            id=db_section.id,
            course_id=db_section.course_id,
            title=db_section.title,
            content=db_section.content or "",
            order=db_section.order or 0
        )

    def documentation_to_model(self, db_doc: DocumentationDB) -> Documentation:
        """转换为Pydantic模型"""
        return Documentation(
            id=db_doc.id,
            title=db_doc.title,
            slug=db_doc.slug,
            category_id=db_doc.category_id,
            content=db_doc.content,
            description=db_doc.description,
            read_time=db_doc.read_time,
            key_features=db_doc.key_features or [],
            code_examples=[CodeExample(**example) for example in (db_doc.code_examples or [])],
            quick_links=db_doc.quick_links or [],
            document_sections=db_doc.document_sections or [],
            pro_tip=db_doc.pro_tip,
            price=db_doc.price,
            currency=db_doc.currency or "usd",
            stripe_price_id=db_doc.stripe_price_id,
            is_published=bool(db_doc.is_published),
            created_at=db_doc.created_at,
            updated_at=db_doc.updated_at
        )
