import logging

from fastapi import APIRouter, Depends

from courseplatform.api.dependencies import get_entitlement_ledger
from courseplatform.models.purchase import ProviderEvent, ProviderEventReceipt
from courseplatform.services.entitlement_ledger import EntitlementLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["支付回调"])


@router.post("/payments", response_model=ProviderEventReceipt)
async def receive_payment_event(
    event: ProviderEvent,
    ledger: EntitlementLedger = Depends(get_entitlement_ledger)
):
    """支付平台回调

    事件落库后即返回200，对账异常（未知引用、非法迁移）不会让支付平台重试；
    只有事件无法落库时才返回5xx
    """
    receipt = await ledger.reconcile_provider_event(event)
    if receipt.result != "applied":
        logger.info(f"支付回调已记录: event={event.event_id}, result={receipt.result}")
    return receipt
