"""
邮件订阅服务
"""

import logging
import re

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from courseplatform.core.exceptions import ValidationError
from courseplatform.models.newsletter import NewsletterSubscriber
from courseplatform.repositories.newsletter_repository import NewsletterRepository

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError(f"邮箱格式不正确: {email}", {"email": email})
    return email


class NewsletterService:
    """邮件订阅服务"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def subscribe(self, email: str) -> NewsletterSubscriber:
        """订阅，重复订阅返回已有记录"""
        email = normalize_email(email)

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    repo = NewsletterRepository(session)
                    db_subscriber = await repo.get_by_email(email)
                    if db_subscriber is None:
                        db_subscriber = await repo.create(email)
                        logger.info(f"新增订阅: {email}")
                    return repo.to_model(db_subscriber)

        except IntegrityError:
            # 并发订阅同一邮箱
            async with self.session_factory() as session:
                repo = NewsletterRepository(session)
                return repo.to_model(await repo.get_by_email(email))

    async def unsubscribe(self, email: str) -> bool:
        email = normalize_email(email)
        async with self.session_factory() as session:
            async with session.begin():
                removed = await NewsletterRepository(session).delete_by_email(email)

        if removed:
            logger.info(f"取消订阅: {email}")
        return removed

    async def count(self) -> int:
        async with self.session_factory() as session:
            return await NewsletterRepository(session).count()
