"""
PurchaseRepository测试 - 使用真实SQLite数据库
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from courseplatform.models.purchase import ProviderEvent, ProviderOutcome
from courseplatform.repositories.purchase_repository import PurchaseRepository


@pytest.mark.asyncio
class TestPurchaseRepository:
    """购买记录仓储测试类"""

    async def test_create_and_lookup(self, db_session):
        repo = PurchaseRepository(db_session)

        db_purchase = await repo.create_pending("user-1", "doc-1", Decimal("29.99"), "usd", session_ref="cs_1")
        await repo.set_provider_refs(db_purchase.id, payment_ref="pi_1")

        assert (await repo.get_by_user_and_document("user-1", "doc-1")).id == db_purchase.id
        assert (await repo.find_by_provider_refs("cs_1", None)).id == db_purchase.id
        assert (await repo.find_by_provider_refs(None, "pi_1")).id == db_purchase.id
        assert (await repo.find_by_provider_refs("cs_other", "pi_1")).id == db_purchase.id
        assert await repo.find_by_provider_refs("cs_other", None) is None
        assert await repo.find_by_provider_refs(None, None) is None

        model = repo.to_model(db_purchase)
        assert model.amount == Decimal("29.99")
        assert model.status.value == "pending"

    async def test_unique_user_document(self, session_factory):
        async with session_factory() as session:
            async with session.begin():
                await PurchaseRepository(session).create_pending("user-1", "doc-1", Decimal("1.00"), "usd")

        with pytest.raises(IntegrityError):
            async with session_factory() as session:
                async with session.begin():
                    await PurchaseRepository(session).create_pending("user-1", "doc-1", Decimal("1.00"), "usd")

    async def test_compare_and_set_status(self, db_session):
        repo = PurchaseRepository(db_session)
        db_purchase = await repo.create_pending("user-1", "doc-1", Decimal("10.00"), "usd")

        assert await repo.compare_and_set_status(db_purchase.id, "pending", "completed")
        assert not await repo.compare_and_set_status(db_purchase.id, "pending", "failed")
        assert await repo.has_completed_purchase("user-1", "doc-1")

    async def test_restart_as_pending_clears_payment_ref(self, db_session):
        repo = PurchaseRepository(db_session)
        db_purchase = await repo.create_pending("user-1", "doc-1", Decimal("10.00"), "usd", session_ref="cs_1")
        await repo.set_provider_refs(db_purchase.id, payment_ref="pi_1")
        await repo.compare_and_set_status(db_purchase.id, "pending", "failed")

        assert not await repo.restart_as_pending(db_purchase.id, "refunded", Decimal("12.00"), "usd", "cs_2")
        assert await repo.restart_as_pending(db_purchase.id, "failed", Decimal("12.00"), "usd", "cs_2")

        await db_session.refresh(db_purchase)
        assert db_purchase.status == "pending"
        assert db_purchase.provider_session_ref == "cs_2"
        assert db_purchase.provider_payment_ref is None
        assert Decimal(str(db_purchase.amount)) == Decimal("12.00")

    async def test_spending_and_statistics(self, db_session):
        repo = PurchaseRepository(db_session)
        first = await repo.create_pending("user-1", "doc-1", Decimal("10.00"), "usd")
        second = await repo.create_pending("user-1", "doc-2", Decimal("2.50"), "eur")
        await repo.create_pending("user-2", "doc-1", Decimal("10.00"), "usd")
        await repo.compare_and_set_status(first.id, "pending", "completed")
        await repo.compare_and_set_status(second.id, "pending", "completed")

        assert await repo.get_user_spending("user-1") == {"usd": Decimal("10.00"), "eur": Decimal("2.50")}
        assert await repo.get_user_spending("user-1", "USD") == {"usd": Decimal("10.00")}

        stats = await repo.get_document_statistics("doc-1")
        assert stats["total_purchases"] == 2
        assert stats["completed_purchases"] == 1
        assert stats["revenue"] == pytest.approx(10.0)
        assert stats["status_breakdown"]["pending"]["count"] == 1

    async def test_event_log(self, db_session):
        repo = PurchaseRepository(db_session)
        db_purchase = await repo.create_pending("user-1", "doc-1", Decimal("10.00"), "usd", session_ref="cs_1")
        event = ProviderEvent(
            event_id="evt_1",
            session_ref="cs_1",
            outcome=ProviderOutcome.SUCCEEDED,
            amount=Decimal("10.00"),
            currency="USD"
        )

        applied = await repo.log_event(event, "applied", purchase_id=db_purchase.id)
        unknown = await repo.log_event(event, "unknown_reference", detail="未匹配")

        assert [item.id for item in await repo.get_events_for_purchase(db_purchase.id)] == [applied.id]
        assert [item.id for item in await repo.get_events_by_result(["unknown_reference"])] == [unknown.id]

        restored = repo.event_to_model(await repo.get_event_log(unknown.id)).to_event()
        assert restored.event_id == "evt_1"
        assert restored.currency == "usd"
        assert restored.outcome == ProviderOutcome.SUCCEEDED
