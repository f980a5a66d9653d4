"""
NewsletterService测试
"""

import pytest

from courseplatform.core.exceptions import ValidationError
from courseplatform.services.newsletter_service import NewsletterService, normalize_email


def test_normalize_email():
    assert normalize_email("  Reader@Example.COM ") == "reader@example.com"
    for invalid in ("", "no-at-sign", "a@b", "two@@example.com", "space @example.com"):
        with pytest.raises(ValidationError):
            normalize_email(invalid)


@pytest.mark.asyncio
class TestNewsletterService:
    """邮件订阅服务测试类"""

    @pytest.fixture
    def service(self, session_factory):
        return NewsletterService(session_factory)

    async def test_subscribe_is_idempotent(self, service):
        first = await service.subscribe("Reader@Example.com")
        second = await service.subscribe("reader@example.com")

        assert first.id == second.id
        assert first.email == "reader@example.com"
        assert await service.count() == 1

    async def test_unsubscribe(self, service):
        await service.subscribe("reader@example.com")

        assert await service.unsubscribe("READER@example.com") is True
        assert await service.unsubscribe("reader@example.com") is False
        assert await service.count() == 0
