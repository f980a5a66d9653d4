"""
仓库包初始化文件 - 数据库访问层
"""

from .content_repository import ContentRepository
from .purchase_repository import PurchaseRepository
from .learning_repository import LearningRepository
from .newsletter_repository import NewsletterRepository

__all__ = [
    "ContentRepository",
    "PurchaseRepository",
    "LearningRepository",
    "NewsletterRepository"
]
