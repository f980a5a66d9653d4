"""
文档业务服务层
负责文档及其子文档引用图的写入：每次修改 document_sections 都在同一个事务内
读取内容图版本号 -> 加载快照 -> 校验 -> 比较并递增版本号 -> 写入
"""

import logging
import uuid
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from courseplatform.core.config import settings, MutualReferencePolicy
from courseplatform.core.exceptions import (
    ConflictError,
    GraphConflictError,
    MutualReferenceError,
    NotFoundError
)
from courseplatform.models.content import Documentation, DocumentationCreate, SectionUpdateResult
from courseplatform.repositories.content_repository import ContentRepository
from courseplatform.services.graph_validator import (
    GraphValidationReport,
    is_acyclic,
    validate_document_sections
)

logger = logging.getLogger(__name__)


class DocumentationService:
    """文档业务服务"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        mutual_reference_policy: Optional[MutualReferencePolicy] = None
    ):
        self.session_factory = session_factory
        self.mutual_reference_policy = MutualReferencePolicy(
            mutual_reference_policy or settings.mutual_reference_policy
        )

    def _apply_mutual_reference_policy(self, report: GraphValidationReport) -> None:
        if not report.has_mutual_references:
            return

        if self.mutual_reference_policy == MutualReferencePolicy.REJECT:
            raise MutualReferenceError(report.doc_id, report.mutual_references)

        logger.warning(
            f"文档 {report.doc_id} 与 {report.mutual_references} 互相引用，按warn策略放行"
        )

    async def create_documentation(self, data: DocumentationCreate) -> SectionUpdateResult:
        """创建文档，初始子文档列表同样需要通过校验"""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    repo = ContentRepository(session)

                    revision = await repo.get_graph_revision()

                    if not await repo.get_category(data.category_id):
                        raise NotFoundError("category", data.category_id)
                    if await repo.get_documentation_by_slug(data.slug):
                        raise ConflictError(f"文档slug已存在: {data.slug}", {"slug": data.slug})

                    doc_id = str(uuid.uuid4())
                    graph = await repo.load_graph_snapshot()
                    report = validate_document_sections(
                        doc_id, data.document_sections, graph, known_ids=graph.keys()
                    )

                    if not await repo.bump_graph_revision(revision):
                        raise GraphConflictError(
                            "内容图在校验期间被修改，请重试",
                            {"expected_revision": revision}
                        )

                    db_doc = await repo.create_documentation(data, report.sections, doc_id=doc_id)
                    documentation = repo.documentation_to_model(db_doc)

        except IntegrityError as e:
            logger.warning(f"创建文档冲突 {data.slug}: {e.orig}")
            raise ConflictError(f"文档slug已存在: {data.slug}", {"slug": data.slug}) from e

        logger.info(f"文档创建成功: {documentation.id} ({documentation.slug})")
        return SectionUpdateResult(
            documentation=documentation,
            mutual_references=[],
            graph_revision=revision + 1
        )

    async def update_document_sections(self, doc_id: str, proposed_sections: Sequence[str]) -> SectionUpdateResult:
        """修改文档的子文档列表

        自引用、环、引用不存在的文档都会被拒绝且不写入任何数据；
        并发修改导致版本号不一致时抛出 GraphConflictError，调用方可重试
        """
        async with self.session_factory() as session:
            async with session.begin():
                repo = ContentRepository(session)

                revision = await repo.get_graph_revision()

                db_doc = await repo.get_documentation(doc_id)
                if not db_doc:
                    raise NotFoundError("documentation", doc_id)

                graph = await repo.load_graph_snapshot()
                report = validate_document_sections(
                    doc_id, list(proposed_sections), graph, known_ids=graph.keys()
                )
                self._apply_mutual_reference_policy(report)

                if not await repo.bump_graph_revision(revision):
                    logger.warning(f"文档 {doc_id} 子文档修改冲突，版本号 {revision} 已过期")
                    raise GraphConflictError(
                        "内容图在校验期间被修改，请重试",
                        {"doc_id": doc_id, "expected_revision": revision}
                    )

                await repo.set_document_sections(doc_id, report.sections)
                await session.refresh(db_doc)
                documentation = repo.documentation_to_model(db_doc)

        logger.info(f"文档 {doc_id} 子文档已更新: {report.sections}")
        return SectionUpdateResult(
            documentation=documentation,
            mutual_references=report.mutual_references,
            graph_revision=revision + 1
        )

    async def get_documentation(self, doc_id: str) -> Optional[Documentation]:
        async with self.session_factory() as session:
            repo = ContentRepository(session)
            db_doc = await repo.get_documentation(doc_id)
            return repo.documentation_to_model(db_doc) if db_doc else None

    async def get_by_slug(self, slug: str) -> Optional[Documentation]:
        async with self.session_factory() as session:
            repo = ContentRepository(session)
            db_doc = await repo.get_documentation_by_slug(slug)
            return repo.documentation_to_model(db_doc) if db_doc else None

    async def get_sections(self, doc_id: str) -> List[Documentation]:
        """按顺序获取子文档"""
        async with self.session_factory() as session:
            repo = ContentRepository(session)
            db_doc = await repo.get_documentation(doc_id)
            if not db_doc:
                raise NotFoundError("documentation", doc_id)

            sections = []
            for section_id in db_doc.document_sections or []:
                db_section = await repo.get_documentation(section_id)
                if db_section:
                    sections.append(repo.documentation_to_model(db_section))
            return sections

    async def preview_sections(self, doc_id: str, proposed_sections: Sequence[str]) -> GraphValidationReport:
        """只校验不写入，供编辑界面提前提示"""
        async with self.session_factory() as session:
            repo = ContentRepository(session)
            graph = await repo.load_graph_snapshot()
            if doc_id not in graph:
                raise NotFoundError("documentation", doc_id)
            return validate_document_sections(doc_id, list(proposed_sections), graph, known_ids=graph.keys())

    async def verify_graph(self) -> bool:
        """对当前整张内容图做一次独立的无环检查"""
        async with self.session_factory() as session:
            graph = await ContentRepository(session).load_graph_snapshot()

        acyclic = is_acyclic(graph)
        if not acyclic:
            logger.error("内容图中存在环，请检查 document_sections 数据")
        return acyclic
