"""
DocumentationService测试 - 使用真实SQLite数据库
"""

import asyncio

import pytest

from courseplatform.core.config import MutualReferencePolicy
from courseplatform.core.exceptions import (
    ConflictError,
    CycleError,
    GraphConflictError,
    MutualReferenceError,
    NotFoundError,
    SelfReferenceError,
    UnknownSectionError
)
from courseplatform.models.content import DocumentationCreate
from courseplatform.repositories.content_repository import ContentRepository
from courseplatform.services.documentation_service import DocumentationService


@pytest.mark.asyncio
class TestDocumentationService:
    """文档服务测试类"""

    @pytest.fixture
    def service(self, session_factory):
        return DocumentationService(session_factory, mutual_reference_policy=MutualReferencePolicy.WARN)

    async def _revision(self, session_factory) -> int:
        async with session_factory() as session:
            return await ContentRepository(session).get_graph_revision()

    async def test_mutual_reference_accepted_then_self_reference_rejected(self, service, seed, session_factory):
        """D1 -> D2 后设置 D2 -> D1 被接受并返回互相引用；D2 -> [D1, D2] 被拒绝"""
        d2 = await seed.documentation()
        d1 = await seed.documentation(sections=[d2])

        result = await service.update_document_sections(d2, [d1])
        assert result.documentation.document_sections == [d1]
        assert result.mutual_references == [d1]

        revision = await self._revision(session_factory)
        with pytest.raises(SelfReferenceError):
            await service.update_document_sections(d2, [d1, d2])

        # 被拒绝的写入不改变任何数据
        stored = await service.get_documentation(d2)
        assert stored.document_sections == [d1]
        assert await self._revision(session_factory) == revision

    async def test_cycle_rejected_with_path(self, service, seed):
        c = await seed.documentation()
        b = await seed.documentation(sections=[c])
        a = await seed.documentation(sections=[b])

        with pytest.raises(CycleError) as exc_info:
            await service.update_document_sections(c, [a])

        assert exc_info.value.path == [c, a, b, c]
        assert (await service.get_documentation(c)).document_sections == []
        assert await service.verify_graph()

    async def test_update_bumps_revision(self, service, seed, session_factory):
        d1 = await seed.documentation()
        d2 = await seed.documentation()
        before = await self._revision(session_factory)

        result = await service.update_document_sections(d1, [d2, d2])

        assert result.documentation.document_sections == [d2]
        assert result.graph_revision == before + 1
        assert await self._revision(session_factory) == before + 1

    async def test_unknown_section_rejected(self, service, seed):
        d1 = await seed.documentation()
        with pytest.raises(UnknownSectionError):
            await service.update_document_sections(d1, ["does-not-exist"])

    async def test_missing_document(self, service):
        with pytest.raises(NotFoundError):
            await service.update_document_sections("does-not-exist", [])

    async def test_reject_policy_blocks_mutual_reference(self, session_factory, seed):
        service = DocumentationService(session_factory, mutual_reference_policy=MutualReferencePolicy.REJECT)
        d2 = await seed.documentation()
        d1 = await seed.documentation(sections=[d2])

        with pytest.raises(MutualReferenceError) as exc_info:
            await service.update_document_sections(d2, [d1])

        assert exc_info.value.mutual_ids == [d1]
        assert (await service.get_documentation(d2)).document_sections == []

    async def test_concurrent_graph_edit_raises_conflict(self, service, seed, session_factory, monkeypatch):
        """校验期间另一个写入提交了内容图修改，本次写入必须放弃"""
        d1 = await seed.documentation()
        d2 = await seed.documentation()

        original = ContentRepository.load_graph_snapshot

        async def snapshot_then_concurrent_edit(repo):
            graph = await original(repo)
            async with session_factory() as other:
                async with other.begin():
                    other_repo = ContentRepository(other)
                    await other_repo.bump_graph_revision(await other_repo.get_graph_revision())
            return graph

        monkeypatch.setattr(ContentRepository, "load_graph_snapshot", snapshot_then_concurrent_edit)
        with pytest.raises(GraphConflictError):
            await service.update_document_sections(d1, [d2])
        monkeypatch.undo()

        assert (await service.get_documentation(d1)).document_sections == []

        # 重试成功
        result = await service.update_document_sections(d1, [d2])
        assert result.documentation.document_sections == [d2]

    async def test_concurrent_edits_never_form_cycle(self, service, seed):
        """已有 A -> B，并发设置 B -> C 和 C -> A：只能有一个成功，图保持无环"""
        c = await seed.documentation()
        b = await seed.documentation()
        a = await seed.documentation(sections=[b])

        results = await asyncio.gather(
            service.update_document_sections(b, [c]),
            service.update_document_sections(c, [a]),
            return_exceptions=True
        )

        successes = [item for item in results if not isinstance(item, Exception)]
        failures = [item for item in results if isinstance(item, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], (GraphConflictError, CycleError))
        assert await service.verify_graph()

    async def test_create_documentation(self, service, seed):
        category_id = await seed.category()
        child = await seed.documentation()

        result = await service.create_documentation(
            DocumentationCreate(
                title="入门指南",
                slug="Getting-Started",
                category_id=category_id,
                content="内容",
                document_sections=[child, child]
            )
        )

        assert result.documentation.slug == "getting-started"
        assert result.documentation.document_sections == [child]
        assert (await service.get_by_slug("GETTING-STARTED")).id == result.documentation.id
        assert [doc.id for doc in await service.get_sections(result.documentation.id)] == [child]

    async def test_create_documentation_duplicate_slug(self, service, seed):
        category_id = await seed.category()
        data = DocumentationCreate(title="文档", slug="same-slug", category_id=category_id, content="内容")

        await service.create_documentation(data)
        with pytest.raises(ConflictError):
            await service.create_documentation(data)

    async def test_create_documentation_unknown_category(self, service):
        with pytest.raises(NotFoundError):
            await service.create_documentation(
                DocumentationCreate(title="文档", slug="orphan", category_id="missing", content="内容")
            )

    async def test_preview_does_not_write(self, service, seed, session_factory):
        d2 = await seed.documentation()
        d1 = await seed.documentation(sections=[d2])
        before = await self._revision(session_factory)

        report = await service.preview_sections(d2, [d1])

        assert report.mutual_references == [d1]
        assert (await service.get_documentation(d2)).document_sections == []
        assert await self._revision(session_factory) == before
