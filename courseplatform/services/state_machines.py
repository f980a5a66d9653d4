"""
状态机迁移表
购买状态由支付平台事件驱动，报名状态由学习进度和显式操作驱动。
迁移函数为纯函数：返回新状态（与当前状态相同即为幂等的重复事件），非法迁移抛出 InvalidTransitionError
"""

from typing import Dict, Tuple

from courseplatform.core.exceptions import InvalidTransitionError
from courseplatform.models.purchase import PurchaseStatus, ProviderOutcome
from courseplatform.models.learning import EnrollmentStatus, EnrollmentAction


PURCHASE_TRANSITIONS: Dict[Tuple[PurchaseStatus, ProviderOutcome], PurchaseStatus] = {
    (PurchaseStatus.PENDING, ProviderOutcome.SUCCEEDED): PurchaseStatus.COMPLETED,
    (PurchaseStatus.PENDING, ProviderOutcome.FAILED): PurchaseStatus.FAILED,
    (PurchaseStatus.COMPLETED, ProviderOutcome.SUCCEEDED): PurchaseStatus.COMPLETED,
    (PurchaseStatus.COMPLETED, ProviderOutcome.REFUNDED): PurchaseStatus.REFUNDED,
    (PurchaseStatus.FAILED, ProviderOutcome.FAILED): PurchaseStatus.FAILED,
    (PurchaseStatus.REFUNDED, ProviderOutcome.REFUNDED): PurchaseStatus.REFUNDED,
}

# 用户重新购买时允许把同一行重置为 pending 的状态
PURCHASE_RESTARTABLE = frozenset({PurchaseStatus.FAILED, PurchaseStatus.REFUNDED})


ENROLLMENT_TRANSITIONS: Dict[Tuple[EnrollmentStatus, EnrollmentAction], EnrollmentStatus] = {
    (EnrollmentStatus.ACTIVE, EnrollmentAction.COMPLETE): EnrollmentStatus.COMPLETED,
    (EnrollmentStatus.ACTIVE, EnrollmentAction.PAUSE): EnrollmentStatus.PAUSED,
    (EnrollmentStatus.ACTIVE, EnrollmentAction.RESUME): EnrollmentStatus.ACTIVE,
    (EnrollmentStatus.ACTIVE, EnrollmentAction.CANCEL): EnrollmentStatus.CANCELLED,
    (EnrollmentStatus.ACTIVE, EnrollmentAction.REACTIVATE): EnrollmentStatus.ACTIVE,
    (EnrollmentStatus.PAUSED, EnrollmentAction.PAUSE): EnrollmentStatus.PAUSED,
    (EnrollmentStatus.PAUSED, EnrollmentAction.RESUME): EnrollmentStatus.ACTIVE,
    (EnrollmentStatus.PAUSED, EnrollmentAction.CANCEL): EnrollmentStatus.CANCELLED,
    (EnrollmentStatus.PAUSED, EnrollmentAction.REACTIVATE): EnrollmentStatus.ACTIVE,
    (EnrollmentStatus.CANCELLED, EnrollmentAction.CANCEL): EnrollmentStatus.CANCELLED,
    (EnrollmentStatus.CANCELLED, EnrollmentAction.REACTIVATE): EnrollmentStatus.ACTIVE,
    (EnrollmentStatus.COMPLETED, EnrollmentAction.COMPLETE): EnrollmentStatus.COMPLETED,
}


def next_purchase_status(current: PurchaseStatus, outcome: ProviderOutcome) -> PurchaseStatus:
    """根据支付结果计算购买记录的下一个状态"""
    current = PurchaseStatus(current)
    outcome = ProviderOutcome(outcome)
    try:
        return PURCHASE_TRANSITIONS[(current, outcome)]
    except KeyError:
        raise InvalidTransitionError("purchase", current.value, outcome.value) from None


def next_enrollment_status(current: EnrollmentStatus, action: EnrollmentAction) -> EnrollmentStatus:
    """根据操作计算报名记录的下一个状态"""
    current = EnrollmentStatus(current)
    action = EnrollmentAction(action)
    try:
        return ENROLLMENT_TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidTransitionError("enrollment", current.value, action.value) from None


def can_restart_purchase(current: PurchaseStatus) -> bool:
    return PurchaseStatus(current) in PURCHASE_RESTARTABLE
