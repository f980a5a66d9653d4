"""
邮件订阅数据库操作层
"""

import uuid
from typing import Optional
from datetime import datetime

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from courseplatform.models.newsletter import NewsletterSubscriber
from courseplatform.models.database.newsletter_db import NewsletterSubscriberDB


class NewsletterRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_email(self, email: str) -> Optional[NewsletterSubscriberDB]:
        result = await self.db.execute(
            select(NewsletterSubscriberDB).where(NewsletterSubscriberDB.email == email)
        )
        return result.scalar_one_or_none()

    async def create(self, email: str) -> NewsletterSubscriberDB:
        db_subscriber = NewsletterSubscriberDB(
            id=str(uuid.uuid4()),
            email=email,
            created_at=datetime.now()
        )
        self.db.add(db_subscriber)
        await self.db.flush()
        return db_subscriber

    async def delete_by_email(self, email: str) -> bool:
        result = await self.db.execute(
            delete(NewsletterSubscriberDB).where(NewsletterSubscriberDB.email == email)
        )
        return result.rowcount > 0

    async def count(self) -> int:
        result = await self.db.execute(select(func.count(NewsletterSubscriberDB.id)))
        return result.scalar() or 0

    def to_model(self, db_subscriber: NewsletterSubscriberDB) -> NewsletterSubscriber:
        return NewsletterSubscriber(
            id=db_subscriber.id,
            email=db_subscriber.email,
            created_at=db_subscriber.created_at
        )
