from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from courseplatform.core.database import Base


class NewsletterSubscriberDB(Base):
    """邮件订阅表"""

    __tablename__ = "newsletter_subscribers"

    id = Column(String(50), primary_key=True, comment="订阅ID")
    email = Column(String(255), nullable=False, unique=True, index=True, comment="邮箱(小写)")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="订阅时间")
