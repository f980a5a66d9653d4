"""
ReportingService测试 - 真实SQLite数据库 + 模拟缓存
"""

from decimal import Decimal

import pytest
import pytest_asyncio

from courseplatform.models.learning import CourseProgressOverview
from courseplatform.models.purchase import ProviderEvent, ProviderOutcome, PurchaseStatus
from courseplatform.services.enrollment_service import EnrollmentService
from courseplatform.services.entitlement_ledger import EntitlementLedger
from courseplatform.services.progress_tracker import ProgressTracker
from courseplatform.services.reporting_service import ReportingService


@pytest.mark.asyncio
class TestReportingService:
    """报表服务测试类"""

    @pytest.fixture
    def reporting(self, session_factory):
        return ReportingService(session_factory)

    @pytest_asyncio.fixture
    async def purchases(self, session_factory, seed):
        """user-1: 两笔usd完成、一笔eur完成、一笔失败、一笔待支付"""
        ledger = EntitlementLedger(session_factory)
        plan = [
            ("19.99", "usd", ProviderOutcome.SUCCEEDED),
            ("10.01", "usd", ProviderOutcome.SUCCEEDED),
            ("5.50", "eur", ProviderOutcome.SUCCEEDED),
            ("99.00", "usd", ProviderOutcome.FAILED),
            ("42.00", "usd", None),
        ]
        doc_ids = []
        for index, (amount, currency, outcome) in enumerate(plan):
            doc_id = await seed.documentation(price=Decimal(amount), currency=currency)
            doc_ids.append(doc_id)
            session_ref = f"cs_{index}"
            await ledger.record_pending_purchase("user-1", doc_id, Decimal(amount), currency, session_ref=session_ref)
            if outcome:
                await ledger.apply_provider_event(
                    ProviderEvent(session_ref=session_ref, outcome=outcome, amount=Decimal(amount), currency=currency)
                )
        return doc_ids

    async def test_total_spent(self, reporting, purchases):
        assert await reporting.total_spent("user-1", "usd") == Decimal("30.00")
        assert await reporting.total_spent("user-1", "EUR") == Decimal("5.50")
        # 未指定币种时按默认币种(usd)统计，不与eur相加
        assert await reporting.total_spent("user-1") == Decimal("30.00")
        assert await reporting.total_spent("user-2") == Decimal("0.00")

    async def test_spending_by_currency(self, reporting, purchases):
        assert await reporting.spending_by_currency("user-1") == {
            "usd": Decimal("30.00"),
            "eur": Decimal("5.50")
        }

    async def test_purchase_history(self, reporting, purchases):
        history = await reporting.user_purchase_history("user-1")
        completed = await reporting.user_purchase_history("user-1", PurchaseStatus.COMPLETED)
        limited = await reporting.user_purchase_history("user-1", limit=2)

        assert len(history) == 5
        assert len(completed) == 3
        assert all(item.status == PurchaseStatus.COMPLETED for item in completed)
        assert len(limited) == 2
        # 按购买时间倒序
        dates = [item.purchase_date for item in history]
        assert dates == sorted(dates, reverse=True)

    async def test_document_sales_stats(self, reporting, purchases):
        stats = await reporting.document_sales_stats(purchases[0])

        assert stats["document_id"] == purchases[0]
        assert stats["total_purchases"] == 1
        assert stats["completed_purchases"] == 1
        assert stats["revenue"] == pytest.approx(19.99)

        failed_stats = await reporting.document_sales_stats(purchases[3])
        assert failed_stats["completed_purchases"] == 0
        assert failed_stats["revenue"] == 0.0
        assert failed_stats["status_breakdown"]["failed"]["count"] == 1

    async def test_course_progress_overview(self, reporting, session_factory, seed):
        course_id = await seed.course(sections=4)
        section_ids = await seed.course_sections(course_id)
        enrollment_service = EnrollmentService(session_factory)
        tracker = ProgressTracker(session_factory, enrollment_service=enrollment_service)

        for user_id in ("user-1", "user-2", "user-3"):
            await enrollment_service.enroll(user_id, course_id)
        await enrollment_service.pause("user-3", course_id)
        for section_id in section_ids:
            await tracker.mark_section_complete("user-1", course_id, section_id)
        await tracker.mark_section_complete("user-2", course_id, section_ids[0])
        await tracker.record_review("user-1", course_id, 5)
        await tracker.record_review("user-2", course_id, 4)

        overview = await reporting.course_progress_overview(course_id)

        assert overview.enrollment_breakdown == {"COMPLETED": 1, "ACTIVE": 1, "PAUSED": 1}
        assert overview.learners_with_progress == 2
        assert overview.average_progress == pytest.approx(62.5)
        assert overview.review_count == 2
        assert overview.average_rating == Decimal("4.50")

    async def test_cache_miss_populates_cache(self, session_factory, purchases, mock_cache):
        reporting = ReportingService(session_factory, cache=mock_cache, cache_ttl=60)

        total = await reporting.total_spent("user-1", "usd")

        assert total == Decimal("30.00")
        mock_cache.get.assert_awaited_once_with("user:user-1:total:usd")
        mock_cache.set.assert_awaited_once_with("user:user-1:total:usd", "30.00", ttl=60)

    async def test_total_without_currency_uses_default_key(self, session_factory, purchases, mock_cache):
        reporting = ReportingService(session_factory, cache=mock_cache)

        assert await reporting.total_spent("user-1") == Decimal("30.00")
        mock_cache.get.assert_awaited_once_with("user:user-1:total:usd")

    async def test_cache_hit_skips_database(self, mock_cache):
        mock_cache.get.return_value = {
            "course_id": "course-1",
            "enrollment_breakdown": {"ACTIVE": 2},
            "learners_with_progress": 1,
            "average_progress": 50.0,
            "review_count": 0,
            "average_rating": None
        }

        def unusable_session_factory():
            raise AssertionError("命中缓存时不应访问数据库")

        reporting = ReportingService(unusable_session_factory, cache=mock_cache)
        overview = await reporting.course_progress_overview("course-1")

        assert isinstance(overview, CourseProgressOverview)
        assert overview.enrollment_breakdown == {"ACTIVE": 2}
        mock_cache.set.assert_not_awaited()
