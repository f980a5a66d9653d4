"""
购买记录数据库操作层
"""

import uuid
from typing import List, Optional, Dict, Any
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update, and_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from courseplatform.models.purchase import Purchase, ProviderEvent, ProviderEventLog
from courseplatform.models.database.purchase_db import PurchaseDB, ProviderEventLogDB


class PurchaseRepository:
    """购买记录数据库操作层"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, purchase_id: str) -> Optional[PurchaseDB]:
        result = await self.db.execute(select(PurchaseDB).where(PurchaseDB.id == purchase_id))
        return result.scalar_one_or_none()

    async def get_by_user_and_document(self, user_id: str, document_id: str) -> Optional[PurchaseDB]:
        """根据(用户, 文档)获取购买记录"""
        result = await self.db.execute(
            select(PurchaseDB).where(
                and_(
                    PurchaseDB.user_id == user_id,
                    PurchaseDB.document_id == document_id
                )
            )
        )
        return result.scalar_one_or_none()

    async def find_by_provider_refs(
        self,
        session_ref: Optional[str],
        payment_ref: Optional[str]
    ) -> Optional[PurchaseDB]:
        """优先按支付会话ID查找，其次按支付单ID"""
        if session_ref:
            result = await self.db.execute(
                select(PurchaseDB).where(PurchaseDB.provider_session_ref == session_ref)
            )
            purchase = result.scalars().first()
            if purchase:
                return purchase

        if payment_ref:
            result = await self.db.execute(
                select(PurchaseDB).where(PurchaseDB.provider_payment_ref == payment_ref)
            )
            return result.scalars().first()

        return None

    async def create_pending(
        self,
        user_id: str,
        document_id: str,
        amount: Decimal,
        currency: str,
        session_ref: Optional[str] = None
    ) -> PurchaseDB:
        """创建pending购买记录，(用户, 文档)唯一约束冲突时由flush抛出IntegrityError"""
        now = datetime.now()
        db_purchase = PurchaseDB(
            id=str(uuid.uuid4()),
            user_id=user_id,
            document_id=document_id,
            provider_session_ref=session_ref,
            amount=amount,
            currency=currency,
            status="pending",
            purchase_date=now,
            created_at=now,
            updated_at=now
        )
        self.db.add(db_purchase)
        await self.db.flush()
        return db_purchase

    async def restart_as_pending(
        self,
        purchase_id: str,
        expected_status: str,
        amount: Decimal,
        currency: str,
        session_ref: Optional[str] = None
    ) -> bool:
        """重新购买：把失败/退款的记录重置为pending并清空旧的支付引用"""
        now = datetime.now()
        result = await self.db.execute(
            update(PurchaseDB)
            .where(
                and_(
                    PurchaseDB.id == purchase_id,
                    PurchaseDB.status == expected_status
                )
            )
            .values(
                status="pending",
                amount=amount,
                currency=currency,
                provider_session_ref=session_ref,
                provider_payment_ref=None,
                purchase_date=now,
                updated_at=now
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def update_pending_details(
        self,
        purchase_id: str,
        amount: Decimal,
        currency: str,
        session_ref: Optional[str] = None
    ) -> bool:
        """更新pending记录的金额/币种/支付会话"""
        values = {"amount": amount, "currency": currency, "updated_at": datetime.now()}
        if session_ref:
            values["provider_session_ref"] = session_ref

        result = await self.db.execute(
            update(PurchaseDB)
            .where(
                and_(
                    PurchaseDB.id == purchase_id,
                    PurchaseDB.status == "pending"
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def set_provider_refs(
        self,
        purchase_id: str,
        session_ref: Optional[str] = None,
        payment_ref: Optional[str] = None
    ) -> bool:
        """写入支付平台引用"""
        values: Dict[str, Any] = {"updated_at": datetime.now()}
        if session_ref:
            values["provider_session_ref"] = session_ref
        if payment_ref:
            values["provider_payment_ref"] = payment_ref

        result = await self.db.execute(
            update(PurchaseDB)
            .where(PurchaseDB.id == purchase_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def compare_and_set_status(
        self,
        purchase_id: str,
        expected_status: str,
        new_status: str
    ) -> bool:
        """仅当当前状态等于expected_status时更新，返回是否更新成功"""
        result = await self.db.execute(
            update(PurchaseDB)
            .where(
                and_(
                    PurchaseDB.id == purchase_id,
                    PurchaseDB.status == expected_status
                )
            )
            .values(status=new_status, updated_at=datetime.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def has_completed_purchase(self, user_id: str, document_id: str) -> bool:
        result = await self.db.execute(
            select(func.count(PurchaseDB.id)).where(
                and_(
                    PurchaseDB.user_id == user_id,
                    PurchaseDB.document_id == document_id,
                    PurchaseDB.status == "completed"
                )
            )
        )
        return (result.scalar() or 0) > 0

    async def get_user_purchases(
        self,
        user_id: str,
        status_filter: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[PurchaseDB]:
        """获取用户购买记录，按购买时间倒序"""
        conditions = [PurchaseDB.user_id == user_id]
        if status_filter:
            conditions.append(PurchaseDB.status == status_filter)

        query = select(PurchaseDB).where(
            and_(*conditions)
        ).order_by(desc(PurchaseDB.purchase_date), desc(PurchaseDB.created_at)).offset(offset)
        if limit is not None:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return result.scalars().all()

    async def get_user_spending(self, user_id: str, currency: Optional[str] = None) -> Dict[str, Decimal]:
        """按币种汇总用户已完成购买的金额"""
        conditions = [
            PurchaseDB.user_id == user_id,
            PurchaseDB.status == "completed"
        ]
        if currency:
            conditions.append(PurchaseDB.currency == currency.lower())

        result = await self.db.execute(
            select(
                PurchaseDB.currency,
                func.sum(PurchaseDB.amount).label("total")
            ).where(and_(*conditions)).group_by(PurchaseDB.currency)
        )
        return {
            row.currency: Decimal(str(row.total or 0)).quantize(Decimal("0.01"))
            for row in result.fetchall()
        }

    async def get_document_statistics(self, document_id: str) -> Dict[str, Any]:
        """获取文档销售统计"""
        status_stats = await self.db.execute(
            select(
                PurchaseDB.status,
                func.count(PurchaseDB.id).label("count"),
                func.sum(PurchaseDB.amount).label("amount")
            ).where(PurchaseDB.document_id == document_id)
            .group_by(PurchaseDB.status)
        )

        breakdown = {
            row.status: {
                "count": row.count,
                "amount": float(row.amount or 0)
            }
            for row in status_stats.fetchall()
        }
        completed = breakdown.get("completed", {"count": 0, "amount": 0.0})

        return {
            "document_id": document_id,
            "total_purchases": sum(item["count"] for item in breakdown.values()),
            "completed_purchases": completed["count"],
            "revenue": completed["amount"],
            "status_breakdown": breakdown
        }

    # ---------- 事件记录 ----------

    async def log_event(
        self,
        event: ProviderEvent,
        result: str,
        purchase_id: Optional[str] = None,
        detail: Optional[str] = None
    ) -> ProviderEventLogDB:
        """记录支付平台事件"""
        db_event = ProviderEventLogDB(
            id=str(uuid.uuid4()),
            event_id=event.event_id,
            session_ref=event.session_ref,
            payment_ref=event.payment_ref,
            outcome=event.outcome.value,
            amount=event.amount,
            currency=event.currency,
            purchase_id=purchase_id,
            result=result,
            detail=detail,
            received_at=datetime.now()
        )
        self.db.add(db_event)
        await self.db.flush()
        return db_event

    async def get_event_log(self, event_log_id: str) -> Optional[ProviderEventLogDB]:
        result = await self.db.execute(
            select(ProviderEventLogDB).where(ProviderEventLogDB.id == event_log_id)
        )
        return result.scalar_one_or_none()

    async def mark_event_replayed(
        self,
        event_log_id: str,
        expected_results: List[str],
        replayed_by: str
    ) -> bool:
        """把待对账事件标记为已重放并指向新记录；结果已被他人修改时返回False"""
        result = await self.db.execute(
            update(ProviderEventLogDB)
            .where(
                and_(
                    ProviderEventLogDB.id == event_log_id,
                    ProviderEventLogDB.result.in_(expected_results)
                )
            )
            .values(result="replayed", detail=f"replayed_by:{replayed_by}")
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def get_events_by_result(self, results: List[str], limit: int = 100) -> List[ProviderEventLogDB]:
        """获取待人工对账的事件"""
        result = await self.db.execute(
            select(ProviderEventLogDB)
            .where(ProviderEventLogDB.result.in_(results))
            .order_by(ProviderEventLogDB.received_at)
            .limit(limit)
        )
        return result.scalars().all()

    async def get_events_for_purchase(self, purchase_id: str) -> List[ProviderEventLogDB]:
        result = await self.db.execute(
            select(ProviderEventLogDB)
            .where(ProviderEventLogDB.purchase_id == purchase_id)
            .order_by(ProviderEventLogDB.received_at)
        )
        return result.scalars().all()

    def to_model(self, db_purchase: PurchaseDB) -> Purchase:
        """转换为Pydantic模型"""
        return Purchase(
            id=db_purchase.id,
            user_id=db_purchase.user_id,
            document_id=db_purchase.document_id,
            provider_session_ref=db_purchase.provider_session_ref,
            provider_payment_ref=db_purchase.provider_payment_ref,
            amount=db_purchase.amount,
            currency=db_purchase.currency,
            status=db_purchase.status,
            purchase_date=db_purchase.purchase_date,
            created_at=db_purchase.created_at,
            updated_at=db_purchase.updated_at
        )

    def event_to_model(self, db_event: ProviderEventLogDB) -> ProviderEventLog:
        return ProviderEventLog(
            id=db_event.id,
            event_id=db_event.event_id,
            session_ref=db_event.session_ref,
            payment_ref=db_event.payment_ref,
            outcome=db_event.outcome,
            amount=db_event.amount,
            currency=db_event.currency,
            purchase_id=db_event.purchase_id,
            result=db_event.result,
            detail=db_event.detail,
            received_at=db_event.received_at
        )
