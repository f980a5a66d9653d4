"""
权益账本服务
维护(用户, 文档)唯一的购买记录，并按状态迁移表应用支付平台的回调事件。

所有状态写入都是比较并设置（WHERE status = 当前状态），冲突时有限次重试；
每个支付事件无论处理结果如何都先落库，再决定是否向调用方抛出异常
"""

from decimal import Decimal
from typing import List, Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from courseplatform.core.config import settings
from courseplatform.core.exceptions import (
    AmountMismatchError,
    ConflictError,
    InvalidTransitionError,
    LedgerError,
    NotFoundError,
    OutOfRangeError,
    UnknownReferenceError,
    ValidationError
)
from courseplatform.models.purchase import (
    EventResult,
    ProviderEvent,
    ProviderEventLog,
    ProviderEventReceipt,
    ProviderEventResult,
    Purchase,
    PurchaseStatus,
    RECONCILABLE_RESULTS
)
from courseplatform.repositories.content_repository import ContentRepository
from courseplatform.repositories.purchase_repository import PurchaseRepository
from courseplatform.services.common_cache import SimpleCache, document_cache_pattern, user_cache_pattern
from courseplatform.services.state_machines import can_restart_purchase, next_purchase_status

logger = structlog.get_logger(__name__)

AMOUNT_QUANT = Decimal("0.01")


class EntitlementLedger:
    """权益账本"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        cache: Optional[SimpleCache] = None,
        max_retries: Optional[int] = None
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.max_retries = max_retries or settings.max_write_retries

    async def _invalidate(self, user_id: str, document_id: str) -> None:
        """提交后清除用户及文档相关的报表缓存"""
        if not self.cache:
            return
        await self.cache.delete_pattern(user_cache_pattern(user_id))
        await self.cache.delete_pattern(document_cache_pattern(document_id))

    # ---------- 创建购买记录 ----------

    async def record_pending_purchase(
        self,
        user_id: str,
        document_id: str,
        amount: Decimal,
        currency: Optional[str] = None,
        session_ref: Optional[str] = None
    ) -> Purchase:
        """创建或返回(用户, 文档)唯一的待支付记录

        - 已有 pending：直接返回（金额/币种/支付会话有变化时刷新）
        - 已有 completed：原样返回，不会重复扣费
        - 已有 failed / refunded：同一行重置为 pending
        """
        amount = Decimal(str(amount)).quantize(AMOUNT_QUANT)
        if amount < 0:
            raise OutOfRangeError("amount", str(amount), 0, None)
        currency = (currency or settings.default_currency).strip().lower()

        for attempt in range(self.max_retries):
            try:
                purchase, changed = await self._record_pending_once(
                    user_id, document_id, amount, currency, session_ref
                )
            except IntegrityError:
                # 并发创建时唯一约束决定胜者，失败方重新读取
                logger.info(
                    "purchase_create_race",
                    user_id=user_id,
                    document_id=document_id,
                    attempt=attempt + 1
                )
                continue

            if purchase is None:
                logger.info(
                    "purchase_status_race",
                    user_id=user_id,
                    document_id=document_id,
                    attempt=attempt + 1
                )
                continue

            if changed:
                await self._invalidate(user_id, document_id)
            return purchase

        raise ConflictError(
            f"购买记录并发写入冲突，已重试{self.max_retries}次",
            {"user_id": user_id, "document_id": document_id}
        )

    async def _record_pending_once(
        self,
        user_id: str,
        document_id: str,
        amount: Decimal,
        currency: str,
        session_ref: Optional[str]
    ) -> Tuple[Optional[Purchase], bool]:
        """单次尝试，返回(购买记录, 是否有写入)；购买记录为None表示状态在读写之间被修改"""
        async with self.session_factory() as session:
            async with session.begin():
                repo = PurchaseRepository(session)

                if not await ContentRepository(session).get_documentation_price(document_id):
                    raise NotFoundError("documentation", document_id)

                db_purchase = await repo.get_by_user_and_document(user_id, document_id)
                if db_purchase is None:
                    db_purchase = await repo.create_pending(user_id, document_id, amount, currency, session_ref)
                    logger.info("purchase_created", purchase_id=db_purchase.id, user_id=user_id, document_id=document_id)
                    return repo.to_model(db_purchase), True

                status = PurchaseStatus(db_purchase.status)

                if status == PurchaseStatus.COMPLETED:
                    return repo.to_model(db_purchase), False

                if status == PurchaseStatus.PENDING:
                    unchanged = (
                        Decimal(str(db_purchase.amount)).quantize(AMOUNT_QUANT) == amount
                        and db_purchase.currency == currency
                        and (session_ref is None or session_ref == db_purchase.provider_session_ref)
                    )
                    if unchanged:
                        return repo.to_model(db_purchase), False
                    if not await repo.update_pending_details(db_purchase.id, amount, currency, session_ref):
                        return None, False

                elif can_restart_purchase(status):
                    if not await repo.restart_as_pending(db_purchase.id, status.value, amount, currency, session_ref):
                        return None, False
                    logger.info(
                        "purchase_restarted",
                        purchase_id=db_purchase.id,
                        previous_status=status.value
                    )

                await session.refresh(db_purchase)
                return repo.to_model(db_purchase), True

    async def attach_provider_session(
        self,
        purchase_id: str,
        session_ref: str,
        payment_ref: Optional[str] = None
    ) -> Purchase:
        """关联支付平台创建的支付会话"""
        async with self.session_factory() as session:
            async with session.begin():
                repo = PurchaseRepository(session)
                db_purchase = await repo.get_by_id(purchase_id)
                if not db_purchase:
                    raise NotFoundError("purchase", purchase_id)

                await repo.set_provider_refs(purchase_id, session_ref=session_ref, payment_ref=payment_ref)
                await session.refresh(db_purchase)
                purchase = repo.to_model(db_purchase)

        logger.info("purchase_session_attached", purchase_id=purchase_id, session_ref=session_ref)
        return purchase

    # ---------- 支付事件 ----------

    def _check_amount(self, purchase_id: str, amount: Decimal, currency: str, event: ProviderEvent) -> List[str]:
        """金额或币种不一致只记录异常，不阻止状态迁移"""
        anomalies = []
        expected = Decimal(str(amount)).quantize(AMOUNT_QUANT)
        received = Decimal(str(event.amount)).quantize(AMOUNT_QUANT)

        if expected != received or currency != event.currency:
            error = AmountMismatchError(
                purchase_id,
                f"{expected} {currency}",
                f"{received} {event.currency}"
            )
            logger.warning("provider_event_amount_mismatch", details=error.details)
            anomalies.append(error.code)
        return anomalies

    async def apply_provider_event(self, event: ProviderEvent) -> ProviderEventResult:
        """应用支付平台事件

        事件先写入事件记录再返回或抛出：未匹配到购买记录抛出 UnknownReferenceError，
        状态迁移表不允许时抛出 InvalidTransitionError
        """
        return await self._apply_with_retry(event)

    async def _apply_with_retry(
        self,
        event: ProviderEvent,
        detail: Optional[str] = None,
        replay_of: Optional[str] = None
    ) -> ProviderEventResult:
        for attempt in range(self.max_retries):
            outcome = await self._apply_once(event, detail, replay_of)
            if outcome is None:
                logger.info("provider_event_status_race", event_id=event.event_id, attempt=attempt + 1)
                continue

            result, error = outcome
            if error is not None:
                logger.warning(
                    "provider_event_rejected",
                    event_id=event.event_id,
                    error=error.code,
                    details=error.details
                )
                raise error

            logger.info(
                "provider_event_processed",
                event_id=event.event_id,
                event_log_id=result.event_log_id,
                purchase_id=result.purchase.id,
                previous_status=result.previous_status.value,
                status=result.purchase.status.value,
                result=result.result.value,
                anomalies=result.anomalies
            )
            if result.changed:
                await self._invalidate(result.purchase.user_id, result.purchase.document_id)
            return result

        raise ConflictError(
            f"支付事件应用冲突，已重试{self.max_retries}次",
            {"event_id": event.event_id}
        )

    @staticmethod
    async def _resolve_replayed(repo: PurchaseRepository, replay_of: Optional[str], event_log_id: str) -> None:
        """重放时在同一事务内把原记录移出对账队列；原记录已被处理则整个事务回滚"""
        if not replay_of:
            return
        resolved = await repo.mark_event_replayed(
            replay_of,
            [result.value for result in RECONCILABLE_RESULTS],
            event_log_id
        )
        if not resolved:
            raise ConflictError("事件已被重放或无需对账", {"event_log_id": replay_of})

    async def _apply_once(
        self,
        event: ProviderEvent,
        detail: Optional[str],
        replay_of: Optional[str] = None
    ) -> Optional[Tuple[Optional[ProviderEventResult], Optional[LedgerError]]]:
        """单次尝试；返回None表示比较并设置失败需要重试，被拒绝的事件随事务一起提交"""
        async with self.session_factory() as session:
            async with session.begin():
                repo = PurchaseRepository(session)

                db_purchase = await repo.find_by_provider_refs(event.session_ref, event.payment_ref)
                if db_purchase is None:
                    error = UnknownReferenceError(event.session_ref, event.payment_ref)
                    db_log = await repo.log_event(
                        event, EventResult.UNKNOWN_REFERENCE.value, detail=detail or error.message
                    )
                    await self._resolve_replayed(repo, replay_of, db_log.id)
                    error.details["event_log_id"] = db_log.id
                    return None, error

                current = PurchaseStatus(db_purchase.status)
                try:
                    target = next_purchase_status(current, event.outcome)
                except InvalidTransitionError as error:
                    db_log = await repo.log_event(
                        event,
                        EventResult.INVALID_TRANSITION.value,
                        purchase_id=db_purchase.id,
                        detail=detail or error.message
                    )
                    await self._resolve_replayed(repo, replay_of, db_log.id)
                    error.details["event_log_id"] = db_log.id
                    error.details["purchase_id"] = db_purchase.id
                    return None, error

                anomalies = self._check_amount(db_purchase.id, db_purchase.amount, db_purchase.currency, event)

                if target == current:
                    event_result = EventResult.NOOP
                else:
                    if not await repo.compare_and_set_status(db_purchase.id, current.value, target.value):
                        return None
                    event_result = EventResult.APPLIED

                # 回填缺失的支付平台引用
                missing_refs = {}
                if event.payment_ref and not db_purchase.provider_payment_ref:
                    missing_refs["payment_ref"] = event.payment_ref
                if event.session_ref and not db_purchase.provider_session_ref:
                    missing_refs["session_ref"] = event.session_ref
                if missing_refs:
                    await repo.set_provider_refs(db_purchase.id, **missing_refs)

                notes = [note for note in (detail, ",".join(anomalies)) if note]
                db_log = await repo.log_event(
                    event,
                    event_result.value,
                    purchase_id=db_purchase.id,
                    detail="; ".join(notes) or None
                )
                await self._resolve_replayed(repo, replay_of, db_log.id)

                await session.refresh(db_purchase)
                return ProviderEventResult(
                    event_log_id=db_log.id,
                    result=event_result,
                    purchase=repo.to_model(db_purchase),
                    previous_status=current,
                    anomalies=anomalies
                ), None

    async def reconcile_provider_event(self, event: ProviderEvent) -> ProviderEventReceipt:
        """供webhook调用：对账异常不抛出，只要事件已落库即返回 accepted"""
        try:
            result = await self.apply_provider_event(event)
        except LedgerError as e:
            logger.warning("provider_event_needs_reconciliation", error=e.code, message=e.message)
            return ProviderEventReceipt(
                event_log_id=e.details.get("event_log_id"),
                result=e.code,
                purchase_id=e.details.get("purchase_id")
            )

        return ProviderEventReceipt(
            event_log_id=result.event_log_id,
            result=result.result.value,
            purchase_id=result.purchase.id,
            status=result.purchase.status,
            anomalies=result.anomalies
        )

    async def replay_event(self, event_log_id: str) -> ProviderEventResult:
        """重新应用待对账的事件（人工对账乱序到达的事件）

        原记录在同一事务内标记为 replayed 并指向新记录，因此离开对账队列；
        重放仍被拒绝时，新记录代替原记录留在队列中
        """
        async with self.session_factory() as session:
            repo = PurchaseRepository(session)
            db_log = await repo.get_event_log(event_log_id)
            if not db_log:
                raise NotFoundError("provider_event", event_log_id)
            event_log = repo.event_to_model(db_log)

        if event_log.result not in [result.value for result in RECONCILABLE_RESULTS]:
            raise ConflictError(
                "事件已被重放或无需对账",
                {"event_log_id": event_log_id, "result": event_log.result}
            )
        event = event_log.to_event()
        if not event.has_reference():
            raise ValidationError("支付事件缺少 session_ref 和 payment_ref，无法重放", {"event_log_id": event_log_id})

        logger.info("provider_event_replay", event_log_id=event_log_id, event_id=event.event_id)
        return await self._apply_with_retry(event, detail=f"replay:{event_log_id}", replay_of=event_log_id)

    async def pending_reconciliation(self, limit: int = 100) -> List[ProviderEventLog]:
        """待人工对账的事件（未知引用、非法迁移），已重放的不再出现"""
        async with self.session_factory() as session:
            repo = PurchaseRepository(session)
            db_events = await repo.get_events_by_result(
                [result.value for result in RECONCILABLE_RESULTS],
                limit=limit
            )
            return [repo.event_to_model(db_event) for db_event in db_events]

    # ---------- 访问权限 ----------

    async def has_access(self, user_id: str, document_id: str) -> bool:
        """已完成购买，或文档未定价/价格为0时可访问；文档不存在返回False"""
        async with self.session_factory() as session:
            price_info = await ContentRepository(session).get_documentation_price(document_id)
            if price_info is None:
                return False

            price = price_info["price"]
            if price is None or price == 0:
                return True

            return await PurchaseRepository(session).has_completed_purchase(user_id, document_id)
