"""
购买及支付事件相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, validator
from enum import Enum


class PurchaseStatus(str, Enum):
    """购买状态枚举"""
    PENDING = "pending"  # 待支付
    COMPLETED = "completed"  # 已完成
    FAILED = "failed"  # 支付失败
    REFUNDED = "refunded"  # 已退款


class ProviderOutcome(str, Enum):
    """支付平台事件结果"""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class EventResult(str, Enum):
    """事件处理结果"""
    APPLIED = "applied"  # 状态已迁移
    NOOP = "noop"  # 重复事件，状态不变
    UNKNOWN_REFERENCE = "unknown_reference"
    INVALID_TRANSITION = "invalid_transition"
    REPLAYED = "replayed"  # 已被重放，结果见新记录


# 等待人工对账的事件结果
RECONCILABLE_RESULTS = (EventResult.UNKNOWN_REFERENCE, EventResult.INVALID_TRANSITION)


class Purchase(BaseModel):
    """购买记录模型"""

    id: str = Field(..., description="购买记录ID")
    user_id: str = Field(..., description="用户ID")
    document_id: str = Field(..., description="文档ID")
    provider_session_ref: Optional[str] = Field(None, description="支付会话ID")
    provider_payment_ref: Optional[str] = Field(None, description="支付单ID")
    amount: Decimal = Field(..., ge=0, description="金额")
    currency: str = Field(default="usd", description="币种")
    status: PurchaseStatus = Field(default=PurchaseStatus.PENDING, description="购买状态")
    purchase_date: Optional[datetime] = Field(None, description="购买时间")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_completed(self) -> bool:
        return self.status == PurchaseStatus.COMPLETED


class ProviderEvent(BaseModel):
    """支付平台回调事件"""

    event_id: Optional[str] = Field(None, description="支付平台事件ID")
    session_ref: Optional[str] = Field(None, description="支付会话ID")
    payment_ref: Optional[str] = Field(None, description="支付单ID")
    outcome: ProviderOutcome = Field(..., description="支付结果")
    amount: Decimal = Field(..., ge=0, description="金额")
    currency: str = Field(..., min_length=1, description="币种")

    @validator('currency')
    def lowercase_currency(cls, v):
        return v.strip().lower()

    def has_reference(self) -> bool:
        return bool(self.session_ref or self.payment_ref)


class ProviderEventResult(BaseModel):
    """事件应用结果"""

    event_log_id: str = Field(..., description="事件记录ID")
    result: EventResult
    purchase: Purchase
    previous_status: PurchaseStatus
    anomalies: List[str] = Field(default_factory=list, description="对账异常代码")

    @property
    def changed(self) -> bool:
        return self.result == EventResult.APPLIED


class ProviderEventReceipt(BaseModel):
    """回调回执：只要事件已落库即为 accepted"""

    accepted: bool = True
    event_log_id: Optional[str] = None
    result: str
    purchase_id: Optional[str] = None
    status: Optional[PurchaseStatus] = None
    anomalies: List[str] = Field(default_factory=list)


class ProviderEventLog(BaseModel):
    """事件记录模型"""

    id: str
    event_id: Optional[str] = None
    session_ref: Optional[str] = None
    payment_ref: Optional[str] = None
    outcome: ProviderOutcome
    amount: Decimal
    currency: str
    purchase_id: Optional[str] = None
    result: str
    detail: Optional[str] = None
    received_at: Optional[datetime] = None

    def to_event(self) -> ProviderEvent:
        """还原为可重放的事件"""
        return ProviderEvent(
            event_id=self.event_id,
            session_ref=self.session_ref,
            payment_ref=self.payment_ref,
            outcome=self.outcome,
            amount=self.amount,
            currency=self.currency
        )
