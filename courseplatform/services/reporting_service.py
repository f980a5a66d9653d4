"""
报表查询服务（只读）
每个查询在单个事务中完成；配置了缓存时使用旁路缓存，写入方提交后负责清除相关key
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from courseplatform.core.config import settings
from courseplatform.models.learning import CourseProgressOverview
from courseplatform.models.purchase import Purchase, PurchaseStatus
from courseplatform.repositories.learning_repository import LearningRepository
from courseplatform.repositories.purchase_repository import PurchaseRepository
from courseplatform.services.common_cache import SimpleCache, report_key

logger = logging.getLogger(__name__)


class ReportingService:
    """报表查询服务"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        cache: Optional[SimpleCache] = None,
        cache_ttl: Optional[int] = None
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.cache_ttl = cache_ttl or settings.cache_ttl

    async def _cache_get(self, key: str) -> Optional[Any]:
        if not self.cache:
            return None
        return await self.cache.get(key)

    async def _cache_set(self, key: str, value: Any) -> None:
        if self.cache:
            await self.cache.set(key, value, ttl=self.cache_ttl)

    async def user_purchase_history(
        self,
        user_id: str,
        status_filter: Optional[PurchaseStatus] = None,
        limit: Optional[int] = None
    ) -> List[Purchase]:
        """用户购买记录，按购买时间倒序"""
        status_value = PurchaseStatus(status_filter).value if status_filter else None
        cache_key = report_key("user", user_id, "history", status_value, limit)

        cached = await self._cache_get(cache_key)
        if cached is not None:
            return [Purchase(**item) for item in cached]

        async with self.session_factory() as session:
            async with session.begin():
                repo = PurchaseRepository(session)
                db_purchases = await repo.get_user_purchases(user_id, status_filter=status_value, limit=limit)
                purchases = [repo.to_model(item) for item in db_purchases]

        await self._cache_set(cache_key, [purchase.dict() for purchase in purchases])
        return purchases

    async def total_spent(self, user_id: str, currency: Optional[str] = None) -> Decimal:
        """单一币种下已完成购买的金额合计

        不同币种的金额不能直接相加，未指定币种时按默认币种统计；
        各币种的分项见 spending_by_currency
        """
        currency = (currency or settings.default_currency).strip().lower()
        cache_key = report_key("user", user_id, "total", currency)

        cached = await self._cache_get(cache_key)
        if cached is not None:
            return Decimal(str(cached))

        async with self.session_factory() as session:
            async with session.begin():
                spending = await PurchaseRepository(session).get_user_spending(user_id, currency)

        total = sum(spending.values(), Decimal("0.00"))
        await self._cache_set(cache_key, str(total))
        return total

    async def spending_by_currency(self, user_id: str) -> Dict[str, Decimal]:
        """按币种汇总已完成购买金额"""
        cache_key = report_key("user", user_id, "spending")

        cached = await self._cache_get(cache_key)
        if cached is not None:
            return {currency: Decimal(str(amount)) for currency, amount in cached.items()}

        async with self.session_factory() as session:
            async with session.begin():
                spending = await PurchaseRepository(session).get_user_spending(user_id)

        await self._cache_set(cache_key, {currency: str(amount) for currency, amount in spending.items()})
        return spending

    async def document_sales_stats(self, document_id: str) -> Dict[str, Any]:
        """文档销售统计"""
        cache_key = report_key("document", document_id, "stats")

        cached = await self._cache_get(cache_key)
        if cached is not None:
            return cached

        async with self.session_factory() as session:
            async with session.begin():
                stats = await PurchaseRepository(session).get_document_statistics(document_id)

        await self._cache_set(cache_key, stats)
        return stats

    async def course_progress_overview(self, course_id: str) -> CourseProgressOverview:
        """课程学习概况：报名状态分布、平均进度、评价均分"""
        cache_key = report_key("course", course_id, "overview")

        cached = await self._cache_get(cache_key)
        if cached is not None:
            return CourseProgressOverview(**cached)

        async with self.session_factory() as session:
            async with session.begin():
                repo = LearningRepository(session)
                breakdown = await repo.get_enrollment_breakdown(course_id)
                progress = await repo.get_progress_summary(course_id)
                reviews = await repo.get_review_summary(course_id)

        overview = CourseProgressOverview(
            course_id=course_id,
            enrollment_breakdown=breakdown,
            learners_with_progress=progress["learners"],
            average_progress=progress["average"],
            review_count=reviews["count"],
            average_rating=reviews["average"]
        )

        await self._cache_set(cache_key, overview.dict())
        return overview
