"""
ContentRepository测试 - 使用真实SQLite数据库
"""

from decimal import Decimal

import pytest

from courseplatform.repositories.content_repository import ContentRepository


@pytest.mark.asyncio
class TestContentRepository:
    """内容仓储测试类"""

    async def test_sections_ordered_by_order_then_insertion(self, db_session, seed):
        course_id = await seed.course()
        repo = ContentRepository(db_session)

        late = await repo.add_section(course_id, "第三节", order=2)
        first = await repo.add_section(course_id, "第一节", order=1)
        second = await repo.add_section(course_id, "第二节", order=1)

        sections = await repo.get_course_sections(course_id)
        assert [section.id for section in sections] == [first.id, second.id, late.id]
        assert await repo.count_course_sections(course_id) == 3

    async def test_graph_revision_compare_and_set(self, db_session):
        repo = ContentRepository(db_session)

        assert await repo.get_graph_revision() == 0
        assert await repo.bump_graph_revision(0)
        assert not await repo.bump_graph_revision(0)
        assert await repo.get_graph_revision() == 1

    async def test_graph_snapshot_and_price(self, db_session, seed):
        child = await seed.documentation(price=Decimal("9.99"))
        parent = await seed.documentation(sections=[child])
        repo = ContentRepository(db_session)

        snapshot = await repo.load_graph_snapshot()
        assert snapshot[parent] == [child]
        assert snapshot[child] == []

        price_info = await repo.get_documentation_price(child)
        assert Decimal(str(price_info["price"])) == Decimal("9.99")
        assert (await repo.get_documentation_price(parent))["price"] is None
        assert await repo.get_documentation_price("missing") is None

    async def test_course_stats_increment(self, db_session, seed):
        course_id = await seed.course()
        repo = ContentRepository(db_session)

        await repo.update_course_stats(course_id, student_count_delta=1)
        await repo.update_course_stats(course_id, new_rating=Decimal("4.25"), student_count_delta=1)

        course = repo.course_to_model(await repo.get_course(course_id))
        assert course.student_count == 2
        assert course.rating == Decimal("4.25")

    async def test_category_and_section_models(self, db_session, seed):
        repo = ContentRepository(db_session)
        category_id = await seed.category("Python")
        course_id = await seed.course(sections=1, category_id=category_id)

        category = repo.category_to_model(await repo.get_category(category_id))
        section = repo.section_to_model((await repo.get_course_sections(course_id))[0])

        assert category.slug == "python"
        assert section.course_id == course_id
        assert section.title == "第1节"
        assert section.order == 0
