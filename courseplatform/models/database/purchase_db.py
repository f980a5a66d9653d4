"""
购买相关数据库模型
"""

from sqlalchemy import Column, String, Numeric, Text, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func
from courseplatform.core.database import Base


class PurchaseDB(Base):
    """购买记录表，每个(用户, 文档)只有一行"""

    __tablename__ = "purchases"

    id = Column(String(50), primary_key=True, comment="购买记录ID")
    user_id = Column(String(50), nullable=False, index=True, comment="用户ID")
    document_id = Column(String(50), ForeignKey("documentation.id"), nullable=False, index=True, comment="文档ID")

    # 支付平台引用
    provider_session_ref = Column(String(255), index=True, comment="支付会话ID")
    provider_payment_ref = Column(String(255), index=True, comment="支付单ID")

    # 金额信息
    amount = Column(Numeric(12, 2), nullable=False, comment="金额")
    currency = Column(String(10), nullable=False, default="usd", comment="币种")

    status = Column(String(20), nullable=False, default="pending", index=True, comment="购买状态")

    # 时间戳
    purchase_date = Column(DateTime(timezone=True), server_default=func.now(), index=True, comment="购买时间")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        UniqueConstraint('user_id', 'document_id', name='uq_purchase_user_document'),
        Index('idx_purchase_user_status', 'user_id', 'status'),
        Index('idx_purchase_document_status', 'document_id', 'status'),
    )


class ProviderEventLogDB(Base):
    """支付平台事件记录表，所有事件（包括异常事件）都落库以便对账和重放"""

    __tablename__ = "provider_events"

    id = Column(String(50), primary_key=True, comment="记录ID")
    event_id = Column(String(255), index=True, comment="支付平台事件ID")
    session_ref = Column(String(255), comment="支付会话ID")
    payment_ref = Column(String(255), comment="支付单ID")
    outcome = Column(String(20), nullable=False, comment="支付结果")
    amount = Column(Numeric(12, 2), nullable=False, comment="事件金额")
    currency = Column(String(10), nullable=False, comment="事件币种")

    purchase_id = Column(String(50), index=True, comment="匹配到的购买记录ID")
    result = Column(String(30), nullable=False, index=True, comment="处理结果")
    detail = Column(Text, comment="异常详情")

    received_at = Column(DateTime(timezone=True), server_default=func.now(), index=True, comment="接收时间")
