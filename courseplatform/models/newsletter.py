from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class NewsletterSubscriber(BaseModel):
    """邮件订阅者"""

    id: str
    email: str = Field(..., description="邮箱(小写)")
    created_at: Optional[datetime] = None
